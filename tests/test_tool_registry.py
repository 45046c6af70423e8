"""Tests for orchestration/tools/registry.py."""

from __future__ import annotations

import pytest

from turnstile.ai.orchestration.tools import (
    EMPTY_OUTPUT_PLACEHOLDER,
    DuplicateToolError,
    SimpleTool,
    ToolNotFoundError,
    ToolRegistry,
    ToolSpec,
)


def make_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(name="echo", description="Echo the input"),
        handler=lambda args: args.get("message", ""),
    )

    async def greet(args):
        return {"greeting": f"Hello, {args.get('name', 'World')}!"}

    registry.register_function(spec=ToolSpec(name="greet", description="Greet"), handler=greet)

    def explode(args):
        raise ValueError("boom")

    registry.register_function(spec=ToolSpec(name="explode", description="Fails"), handler=explode)
    return registry


# -----------------------------------------------------------------------------
# Registration
# -----------------------------------------------------------------------------


class TestRegistration:
    def test_register_and_lookup(self) -> None:
        registry = make_registry()

        assert len(registry) == 3
        assert "echo" in registry
        assert registry.has("greet")
        assert isinstance(registry.get("echo"), SimpleTool)
        assert registry.list_names() == ["echo", "greet", "explode"]

    def test_duplicate_rejected_unless_override(self) -> None:
        registry = make_registry()
        spec = ToolSpec(name="echo", description="Another echo")

        with pytest.raises(DuplicateToolError):
            registry.register_function(spec=spec, handler=lambda args: "x")

        registry.register_function(spec=spec, handler=lambda args: "x", allow_override=True)
        assert registry.get_required("echo").spec.description == "Another echo"

    def test_get_required_missing_raises(self) -> None:
        with pytest.raises(ToolNotFoundError):
            ToolRegistry().get_required("nope")

    def test_disable_hides_tool(self) -> None:
        registry = make_registry()

        assert registry.disable("greet") is True
        assert registry.get("greet") is None
        assert "greet" not in registry.list_names()
        assert "greet" in registry.list_names(include_disabled=True)
        assert [definition.name for definition in registry.definitions()] == ["echo", "explode"]

        registry.enable("greet")
        assert registry.has("greet")

    def test_unregister(self) -> None:
        registry = make_registry()

        assert registry.unregister("echo") is True
        assert registry.unregister("echo") is False
        assert "echo" not in registry

    def test_definitions_default_schema(self) -> None:
        registry = make_registry()

        definition = registry.definitions(filter_names=["echo"])[0]

        assert definition.name == "echo"
        assert definition.parameters == {"type": "object", "properties": {}}
        assert definition.to_openai_tool()["function"]["name"] == "echo"


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------


class TestExecute:
    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self) -> None:
        registry = make_registry()

        assert await registry.execute("echo", '{"message": "hi"}') == "hi"
        assert await registry.execute("greet", '{"name": "Ada"}') == '{"greeting": "Hello, Ada!"}'

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments", [None, "", "   "])
    async def test_missing_arguments(self, arguments) -> None:
        registry = make_registry()

        text = await registry.execute("echo", arguments)

        assert text == "Error: No arguments provided for tool call"

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        registry = make_registry()

        text = await registry.execute("echo", "{not json")

        assert text.startswith("Error: Invalid JSON arguments - ")

    @pytest.mark.asyncio
    async def test_non_object_arguments(self) -> None:
        registry = make_registry()

        text = await registry.execute("echo", "[1, 2]")

        assert text == "Error: Invalid JSON arguments - expected a JSON object"

    @pytest.mark.asyncio
    async def test_unknown_tool_lists_available(self) -> None:
        registry = make_registry()

        text = await registry.execute("missing", "{}")

        assert text == "Error: Tool 'missing' not found. Available tools: echo, greet, explode"

    @pytest.mark.asyncio
    async def test_unknown_tool_with_empty_registry(self) -> None:
        text = await ToolRegistry().execute("missing", "{}")

        assert text == "Error: Tool 'missing' not found. Available tools: none"

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_text(self) -> None:
        registry = make_registry()

        result = await registry.run("explode", "{}")

        assert result.success is False
        assert result.content == "Error executing tool: boom"

    @pytest.mark.asyncio
    async def test_empty_output_placeholder(self) -> None:
        registry = make_registry()
        registry.register_function(
            spec=ToolSpec(name="noop", description="Nothing"), handler=lambda args: None
        )

        assert await registry.execute("noop", "{}") == EMPTY_OUTPUT_PLACEHOLDER
        assert await registry.execute("echo", '{"message": ""}') == EMPTY_OUTPUT_PLACEHOLDER
