"""Construction of the builtin tool set from configuration."""

from __future__ import annotations

import logging
import os

import httpx

from nexus.config import ToolsConfig
from nexus.tools.base import Tool
from nexus.tools.crawl import CrawlTool
from nexus.tools.exa import ExaClient
from nexus.tools.registry import ToolRegistry
from nexus.tools.text_file import TextFileTool
from nexus.tools.web_search import WebSearchTool

logger = logging.getLogger(__name__)


def builtin_tools(
    cfg: ToolsConfig,
    *,
    exa_transport: httpx.AsyncBaseTransport | None = None,
) -> list[Tool]:
    exa = ExaClient(os.environ.get(cfg.exa_api_key_env, ""), transport=exa_transport)
    return [
        WebSearchTool(exa, num_results=cfg.search_results),
        CrawlTool(exa),
        TextFileTool(cfg.files_dir),
    ]


def build_registry(
    cfg: ToolsConfig,
    *,
    exa_transport: httpx.AsyncBaseTransport | None = None,
) -> ToolRegistry:
    """Registry of builtin tools, restricted to ``cfg.enabled`` when set."""
    tools = builtin_tools(cfg, exa_transport=exa_transport)
    if cfg.enabled:
        wanted = set(cfg.enabled)
        unknown = wanted - {t.name for t in tools}
        if unknown:
            logger.warning("Unknown tools in config ignored: %s", ", ".join(sorted(unknown)))
        tools = [t for t in tools if t.name in wanted]
    return ToolRegistry(tools)
