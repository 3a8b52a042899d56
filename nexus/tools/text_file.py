from __future__ import annotations

import json
import logging
import unicodedata
from pathlib import Path

from nexus.tools.base import Tool, ToolKind

logger = logging.getLogger(__name__)

_FORBIDDEN = set('/\\:"|?*\n\r\t\0')

_LANGUAGE_HINTS = {
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "hpp": "cpp",
    "swift": "swift",
    "m": "objectivec",
    "mm": "objectivecpp",
    "java": "java",
    "kt": "kotlin",
    "kts": "kotlin",
    "py": "python",
    "js": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "jsx": "jsx",
    "rb": "ruby",
    "go": "go",
    "rs": "rust",
    "php": "php",
    "sh": "bash",
    "bash": "bash",
    "zsh": "bash",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "md": "markdown",
    "markdown": "markdown",
}


def sanitize_filename(name: str) -> str:
    cleaned = "".join(
        ch for ch in name
        if ch not in _FORBIDDEN and unicodedata.category(ch) not in ("Cc", "Cs")
    )
    cleaned = cleaned.strip().strip(".").strip()
    if not cleaned:
        cleaned = "file.txt"
    if "." not in cleaned:
        cleaned += ".txt"
    return cleaned


def language_hint(file_name: str) -> str:
    return _LANGUAGE_HINTS.get(Path(file_name).suffix.lstrip(".").lower(), "")


class TextFileTool(Tool):
    """Writes a text file into the configured output directory."""

    def __init__(self, files_dir: str | Path) -> None:
        self._files_dir = Path(files_dir).expanduser()

    @property
    def name(self) -> str:
        return "create_text_file"

    @property
    def description(self) -> str:
        return (
            "Create a text file (e.g., .txt, .md, .py, .c, .json, etc.) and "
            "return a link to it along with a preview."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "fileName": {
                    "type": "string",
                    "description": "File name including extension (e.g., notes.txt, main.py).",
                },
                "content": {
                    "type": "string",
                    "description": "UTF-8 text content for the file.",
                },
            },
            "required": ["fileName", "content"],
            "additionalProperties": False,
        }

    @property
    def kind(self) -> ToolKind:
        return ToolKind.FILE

    @property
    def display_name(self) -> str:
        return "text file creation"

    @property
    def accepts_raw_arguments(self) -> bool:
        return True

    def describe_call(self, arguments: dict) -> str | None:
        name = arguments.get("fileName")
        return f"Creating {name}" if name else None

    async def execute(self, arguments: str, auxiliary: str | None = None) -> str:
        try:
            args = json.loads(arguments)
            file_name = str(args["fileName"]).strip()
            content = str(args["content"])
        except (json.JSONDecodeError, KeyError, TypeError):
            return _error("Invalid or missing arguments. Provide JSON with fileName and content.")

        if not file_name:
            return _error("'fileName' cannot be empty.")
        if not content:
            return _error("'content' cannot be empty.")

        safe_name = sanitize_filename(file_name)
        self._files_dir.mkdir(parents=True, exist_ok=True)
        path = self._files_dir / safe_name
        path.write_text(content, encoding="utf-8")
        logger.info("Created text file %s (%d chars)", path, len(content))

        return (
            f"File created: {safe_name}\n"
            f"Download: [{safe_name}]({path.resolve().as_uri()})\n\n"
            f"```{language_hint(safe_name)}\n{content}\n```"
        )


def _error(message: str) -> str:
    return json.dumps({"error": f"create_text_file: {message}"})
