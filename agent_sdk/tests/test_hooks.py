"""Tests for agent_sdk.hooks."""

import pytest

from agent_sdk.errors import ControlRequestError, ProcessError, ToolExecutionError
from agent_sdk.hooks import HookCallbackRegistry, convert_hook_output
from agent_sdk.types import HookContext, HookMatcher


async def _allow(input_data, tool_use_id, context):
    return {"decision": "allow"}


async def _block(input_data, tool_use_id, context):
    return {"decision": "block", "reason": "nope"}


class TestConvertHookOutput:

    def test_python_safe_keys_renamed(self):
        output = {"async_": True, "continue_": False, "decision": "allow"}
        assert convert_hook_output(output) == {
            "async": True,
            "continue": False,
            "decision": "allow",
        }

    def test_other_keys_untouched(self):
        assert convert_hook_output({"suppressOutput": True}) == {"suppressOutput": True}


class TestBuildConfig:

    def test_one_id_per_hook_function(self):
        registry = HookCallbackRegistry()
        hooks = {
            "PreToolUse": [
                HookMatcher(matcher="Bash", hooks=[_allow, _block]),
                HookMatcher(matcher=None, hooks=[_allow]),
            ],
            "PostToolUse": [HookMatcher(hooks=[_block])],
        }

        config = registry.build_config(hooks)

        assert config == {
            "PreToolUse": [
                {"matcher": "Bash", "hookCallbackIds": ["hook_0", "hook_1"]},
                {"matcher": None, "hookCallbackIds": ["hook_2"]},
            ],
            "PostToolUse": [
                {"matcher": None, "hookCallbackIds": ["hook_3"]},
            ],
        }
        assert len(registry) == 4
        assert len(set(registry.callback_ids)) == 4

    def test_events_without_matchers_omitted(self):
        registry = HookCallbackRegistry()
        config = registry.build_config({
            "Stop": [],
            "PreToolUse": [HookMatcher(matcher="Write", hooks=[_allow])],
        })
        assert list(config) == ["PreToolUse"]

    def test_no_hooks_gives_none(self):
        registry = HookCallbackRegistry()
        assert registry.build_config(None) is None
        assert registry.build_config({}) is None
        assert registry.build_config({"Stop": []}) is None

    def test_ids_keep_increasing(self):
        registry = HookCallbackRegistry()
        assert registry.register(_allow) == "hook_0"
        assert registry.register(_allow) == "hook_1"
        assert registry.register(_block) == "hook_2"


class TestExecute:

    @pytest.mark.asyncio
    async def test_executes_registered_callback(self):
        registry = HookCallbackRegistry()
        seen = {}

        async def callback(input_data, tool_use_id, context):
            seen.update(input=input_data, tool_use_id=tool_use_id, context=context)
            return {"continue_": True}

        registry.register_callback("custom", callback)
        result = await registry.execute("custom", {"tool_name": "Bash"}, "tu_1")

        assert result == {"continue_": True}
        assert seen["input"] == {"tool_name": "Bash"}
        assert seen["tool_use_id"] == "tu_1"
        assert isinstance(seen["context"], HookContext)

    @pytest.mark.asyncio
    async def test_unknown_id(self):
        registry = HookCallbackRegistry()
        with pytest.raises(ProcessError, match="Hook callback not found: hook_7"):
            await registry.execute("hook_7", {})

    @pytest.mark.asyncio
    async def test_callback_exception_wrapped(self):
        registry = HookCallbackRegistry()

        async def broken(input_data, tool_use_id, context):
            raise RuntimeError("disk full")

        callback_id = registry.register(broken)
        with pytest.raises(ToolExecutionError, match="disk full") as exc_info:
            await registry.execute(callback_id, {})
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_sdk_errors_pass_through(self):
        registry = HookCallbackRegistry()

        async def failing(input_data, tool_use_id, context):
            raise ControlRequestError("interrupt", "rejected")

        callback_id = registry.register(failing)
        with pytest.raises(ControlRequestError):
            await registry.execute(callback_id, {})

    def test_register_callback_replaces(self):
        registry = HookCallbackRegistry()
        registry.register_callback("x", _allow)
        registry.register_callback("x", _block)
        assert len(registry) == 1
        assert "x" in registry
