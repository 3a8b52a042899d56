"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from nexus.llm.types import ConversationTurn, Role
from nexus.tools.base import Tool, ToolKind

KIND_COLORS = {
    ToolKind.WEB_SEARCH: "green",
    ToolKind.CRAWL: "cyan",
    ToolKind.FILE: "yellow",
    ToolKind.GENERIC: "white",
}

ROLE_COLORS = {
    Role.SYSTEM: "dim",
    Role.USER: "blue",
    Role.ASSISTANT: "green",
    Role.TOOL: "cyan",
    Role.ERROR: "red",
}


class OutputFormatter:
    """Rich-based output formatting for the nexus CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_tool_list(self, tools: list[Tool]) -> None:
        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Kind", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            color = KIND_COLORS.get(t.kind, "white")
            table.add_row(t.name, Text(t.kind.value, style=color), t.description)

        self.console.print(table)

    def format_tool_info(self, tool: Tool) -> None:
        color = KIND_COLORS.get(tool.kind, "white")
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n"
            f"[dim]Kind:[/dim] [{color}]{tool.kind.value}[/{color}]\n"
            f"[dim]Shown as:[/dim] {tool.display_name}\n\n"
            f"{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(tool.parameters, indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_tool_turn(self, turn: ConversationTurn) -> None:
        label = turn.tool_args_label or turn.tool_name or "tool"
        preview = (turn.content or "").replace("\n", " ")[:200]
        self.console.print(f"  [cyan]\\[{escape(label)}][/cyan] [dim]{escape(preview)}[/dim]")

    def format_chat_list(self, chats: list[dict]) -> None:
        if not chats:
            self.console.print("[dim]No chats found.[/dim]")
            return

        table = Table(title="Chats")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Created", no_wrap=True)
        table.add_column("Metadata")

        for c in chats:
            table.add_row(
                c.get("chat_id", "?"),
                c.get("created_at", "?"),
                str(c.get("metadata", {})),
            )

        self.console.print(table)

    def format_turns(self, turns: list[ConversationTurn]) -> None:
        if not turns:
            self.console.print("[dim]No turns.[/dim]")
            return

        for turn in turns:
            ts = turn.created_at.strftime("%H:%M:%S")
            color = ROLE_COLORS.get(turn.role, "white")

            if turn.role is Role.TOOL:
                content = f"{turn.tool_name or '?'} -> {(turn.content or '')[:80]}"
            elif turn.tool_calls:
                content = ", ".join(tc.name for tc in turn.tool_calls)
                content = f"calls {content}"
            else:
                content = (turn.content or "")[:100]

            self.console.print(
                f"  [{color}]{ts} {turn.role.value:>9s}[/{color}]  {escape(content)}",
                highlight=False,
            )

    def format_config(self, config: dict[str, Any]) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))
