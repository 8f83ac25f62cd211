"""Tests for ToolRegistry construction, lookup, argument normalization and dispatch."""

import pytest

from errors import DuplicateToolError, ToolExecutionError, ToolNotFoundError
from tools.registry import Tool, ToolRegistry
from tools.tool_schema import dropped_keys, normalize_args


@pytest.fixture
def echo_registry(tool_factory, tmp_path):
    return ToolRegistry(
        [
            tool_factory("echo", lambda value: f"echo:{value}"),
            tool_factory("count", lambda value, times=1: value * times,
                         props={"value": {"type": "string"}, "times": {"type": "integer"}}),
        ],
        root=tmp_path,
    )


class TestConstruction:

    def test_duplicate_names_fail_fast(self, tool_factory):
        with pytest.raises(DuplicateToolError):
            ToolRegistry([tool_factory("a", lambda value: value), tool_factory("a", lambda value: value)])

    def test_duplicate_error_is_a_value_error(self, tool_factory):
        with pytest.raises(ValueError):
            ToolRegistry([tool_factory("a", lambda value: value)] * 2)

    def test_registration_order_is_kept(self, echo_registry):
        assert echo_registry.names() == ["echo", "count"]
        assert [t.name for t in echo_registry.list_tools()] == ["echo", "count"]

    def test_tools_mapping_is_read_only(self, echo_registry, tool_factory):
        with pytest.raises(TypeError):
            echo_registry.tools["new"] = tool_factory("new", lambda value: value)

    def test_builtin_tool_order(self, builtin_registry):
        assert builtin_registry.names() == ["read_file", "list_files", "bash", "edit_file", "code_search"]


class TestLookup:

    def test_find(self, echo_registry):
        assert echo_registry.find("echo").name == "echo"
        assert "echo" in echo_registry
        assert len(echo_registry) == 2

    def test_find_missing(self, echo_registry):
        with pytest.raises(ToolNotFoundError, match="Tool 'nope' not found"):
            echo_registry.find("nope")

    def test_not_found_is_a_tool_execution_error(self, echo_registry):
        with pytest.raises(ToolExecutionError):
            echo_registry.invoke("nope", {})

    def test_function_declarations(self, echo_registry):
        decl = echo_registry.function_declarations()[0]
        assert decl == {
            "name": "echo",
            "description": "echo tool",
            "parameters": echo_registry.find("echo").input_schema,
        }


class TestInvoke:

    def test_success(self, echo_registry):
        assert echo_registry.invoke("echo", {"value": "hi"}) == "echo:hi"

    def test_unknown_keys_are_dropped(self, echo_registry):
        assert echo_registry.invoke("echo", {"value": "hi", "bogus": 1}) == "echo:hi"

    def test_missing_required(self, echo_registry):
        with pytest.raises(ToolExecutionError, match="Missing required argument"):
            echo_registry.invoke("echo", {})

    def test_none_args_treated_as_empty(self, echo_registry):
        with pytest.raises(ToolExecutionError, match="Missing required argument"):
            echo_registry.invoke("echo", None)

    def test_integer_coercion(self, echo_registry):
        assert echo_registry.invoke("count", {"value": "ab", "times": 2.0}) == "abab"
        assert echo_registry.invoke("count", {"value": "ab", "times": "3"}) == "ababab"

    def test_unexpected_exception_is_wrapped(self, tool_factory):
        def boom(value):
            raise RuntimeError("kaput")

        reg = ToolRegistry([tool_factory("boom", boom)])
        with pytest.raises(ToolExecutionError, match="RuntimeError: kaput"):
            reg.invoke("boom", {"value": "x"})

    def test_os_errors_are_mapped(self, tool_factory):
        def denied(value):
            raise PermissionError(13, "Permission denied", "/etc/shadow")

        reg = ToolRegistry([tool_factory("denied", denied)])
        with pytest.raises(ToolExecutionError, match="Permission denied: /etc/shadow"):
            reg.invoke("denied", {"value": "x"})

    def test_non_string_results_are_serialized(self, tool_factory):
        reg = ToolRegistry([tool_factory("data", lambda value: {"value": value})])
        assert '"value": "x"' in reg.invoke("data", {"value": "x"})

    def test_tool_execution_error_passes_through(self, tool_factory):
        def picky(value):
            raise ToolExecutionError("nope", retryable=False)

        reg = ToolRegistry([tool_factory("picky", picky)])
        with pytest.raises(ToolExecutionError) as info:
            reg.invoke("picky", {"value": "x"})
        assert info.value.retryable is False


class TestNormalizeArgs:
    SCHEMA = {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "recursive": {"type": "boolean"},
            "depth": {"type": "integer", "default": 2},
        },
        "required": ["path"],
    }

    def test_defaults_filled(self):
        ok, fixed, err = normalize_args("t", {"path": "."}, self.SCHEMA)
        assert ok and err is None
        assert fixed == {"path": ".", "depth": 2}

    def test_boolean_strings(self):
        ok, fixed, _ = normalize_args("t", {"path": ".", "recursive": "true"}, self.SCHEMA)
        assert ok and fixed["recursive"] is True

    def test_bool_is_not_an_integer(self):
        ok, _, err = normalize_args("t", {"path": ".", "depth": True}, self.SCHEMA)
        assert not ok
        assert "depth (expected integer)" in err

    def test_non_object_arguments(self):
        ok, _, err = normalize_args("t", ["path"], self.SCHEMA)
        assert not ok
        assert "must be an object" in err

    def test_dropped_keys(self):
        assert dropped_keys({"path": ".", "zzz": 1, "aaa": 2}, self.SCHEMA) == ["aaa", "zzz"]

    def test_tool_declaration_is_verbatim(self):
        tool = Tool("t", "desc", self.SCHEMA, fn=lambda **kw: "")
        assert tool.declaration()["parameters"] is self.SCHEMA
