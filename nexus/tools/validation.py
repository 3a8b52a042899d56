import json

import jsonschema

from nexus.tools.base import Tool, ToolError, normalize_schema


def parse_arguments(raw: str) -> dict:
    """Decode a tool-call argument string; an empty string means ``{}``."""
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise ToolError(f"invalid JSON arguments: {e.msg}") from e
    if not isinstance(args, dict):
        raise ToolError("arguments must be a JSON object")
    return args


class ToolValidator:
    @staticmethod
    def validate(tool: Tool, arguments: dict) -> tuple[bool, str | None]:
        try:
            jsonschema.validate(
                instance=arguments,
                schema=normalize_schema(tool.parameters),
            )
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)
