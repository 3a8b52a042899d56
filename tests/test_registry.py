"""Tests for ToolRegistry."""

import pytest

from nexus.tools.base import ToolKind
from nexus.tools.registry import ToolRegistry
from tests.mock_tools import EchoTool, FailingTool, SlowTool


class TestToolRegistry:
    """Test suite for ToolRegistry."""

    def test_register_and_get(self):
        reg = ToolRegistry()
        tool = EchoTool()
        reg.register(tool)
        assert reg.get("echo") is tool
        assert "echo" in reg

    def test_constructor_registers(self):
        reg = ToolRegistry([EchoTool(), SlowTool()])
        assert len(reg) == 2

    def test_get_returns_none_for_unknown(self):
        reg = ToolRegistry()
        assert reg.get("nonexistent") is None

    def test_require_raises_keyerror_for_unknown(self):
        reg = ToolRegistry()
        with pytest.raises(KeyError, match="nonexistent"):
            reg.require("nonexistent")

    def test_duplicate_registration_raises_valueerror(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        with pytest.raises(ValueError, match="already registered"):
            reg.register(EchoTool())

    def test_duplicate_registration_with_overwrite(self):
        reg = ToolRegistry()
        tool1 = EchoTool()
        tool2 = EchoTool()
        reg.register(tool1)
        reg.register(tool2, overwrite=True)
        assert reg.get("echo") is tool2

    def test_list_returns_all_sorted_by_name(self):
        reg = ToolRegistry([SlowTool(), EchoTool(), FailingTool()])
        assert reg.names == ["echo", "explode", "sleepy"]

    def test_kind_of(self):
        reg = ToolRegistry([EchoTool(), FailingTool()])
        assert reg.kind_of("explode") is ToolKind.WEB_SEARCH
        assert reg.kind_of("echo") is ToolKind.GENERIC
        assert reg.kind_of("missing") is ToolKind.GENERIC

    def test_function_definitions(self):
        reg = ToolRegistry([EchoTool()])
        defs = reg.function_definitions()
        assert len(defs) == 1
        fn = defs[0]
        assert fn["type"] == "function"
        assert fn["function"]["name"] == "echo"
        assert fn["function"]["parameters"]["additionalProperties"] is False
        assert fn["function"]["parameters"]["required"] == ["message"]

    def test_empty_registry(self):
        reg = ToolRegistry()
        assert reg.list() == []
        assert reg.function_definitions() == []
