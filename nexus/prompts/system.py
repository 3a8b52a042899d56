"""System prompt builder."""

from __future__ import annotations

from datetime import date

from nexus.tools.base import Tool


def build_system_prompt(
    tools: list[Tool] | None = None,
    user_location: str | None = None,
    today: date | None = None,
    extra_sections: list[str] | None = None,
) -> str:
    """
    Build the system prompt sent ahead of every conversation.

    Assembles the assistant identity, the available tools, interaction
    guidelines and request metadata into a single prompt string.
    """
    sections: list[str] = []

    sections.append(
        "# Nexus AI Assistant\n\n"
        "You are an advanced AI assistant with access to tools. "
        "Be conversational, helpful, and concise, and use markdown for readability."
    )

    if tools:
        tool_lines = [f"- **{t.name}**: {t.description}" for t in tools]
        sections.append("## Available Tools\n\n" + "\n".join(tool_lines))
        sections.append(TOOL_USAGE_SECTION)

    sections.append(ERROR_HANDLING_SECTION)

    metadata = [f"- Today is {(today or date.today()).isoformat()}"]
    if user_location:
        metadata.append(f"- The user is located in {user_location}")
    sections.append("## Metadata\n\n" + "\n".join(metadata))

    if extra_sections:
        sections.extend(extra_sections)

    return "\n\n".join(sections)


TOOL_USAGE_SECTION = """## Tool Usage

- Proactively use tools when they would improve your answer.
- For current events, recent information, or specific data, use web search.
- When the user gives one or more URLs, read the pages instead of guessing their content.
- Tools run automatically; you don't need to ask permission.
- Say briefly what you are doing before using a tool and present results clearly."""

ERROR_HANDLING_SECTION = """## Error Handling

- If a tool fails, explain the issue clearly and offer alternatives.
- If you're uncertain about something, be transparent about limitations."""
