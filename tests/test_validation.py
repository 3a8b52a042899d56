"""Tests for argument parsing and ToolValidator."""

import pytest

from nexus.tools.base import ToolError
from nexus.tools.validation import ToolValidator, parse_arguments
from tests.mock_tools import EchoTool, FailingTool


class TestParseArguments:
    def test_object(self):
        assert parse_arguments('{"a": 1}') == {"a": 1}

    def test_empty_string_is_empty_object(self):
        assert parse_arguments("") == {}

    def test_invalid_json(self):
        with pytest.raises(ToolError, match="invalid JSON"):
            parse_arguments('{"a": ')

    def test_non_object(self):
        with pytest.raises(ToolError, match="JSON object"):
            parse_arguments("[1]")


class TestToolValidator:
    """Test suite for ToolValidator.validate()."""

    def test_valid_args_pass(self):
        ok, err = ToolValidator.validate(EchoTool(), {"message": "hello"})
        assert ok is True
        assert err is None

    def test_missing_required_arg_fails(self):
        ok, err = ToolValidator.validate(EchoTool(), {})
        assert ok is False
        assert "message" in err

    def test_extra_unknown_keys_rejected(self):
        ok, err = ToolValidator.validate(EchoTool(), {"message": "hello", "rogue": "value"})
        assert ok is False
        assert err is not None

    def test_type_mismatch(self):
        ok, err = ToolValidator.validate(EchoTool(), {"message": 42})
        assert ok is False
        assert err is not None

    def test_empty_dict_for_no_required_fields(self):
        ok, err = ToolValidator.validate(FailingTool(), {})
        assert ok is True
        assert err is None
