"""Hook callback registry.

Hooks are caller-supplied async functions attached to agent events
(``PreToolUse``, ``PostToolUse``, ...). The agent process never sees the
functions themselves: during initialization each one is given an opaque
callback id, the ids are announced in the ``initialize`` request, and the
peer later asks for a hook by id.

The hooks configuration sent to the peer has the shape::

    {
        "PreToolUse": [
            {"matcher": "Bash", "hookCallbackIds": ["hook_0", "hook_1"]},
        ],
    }
"""

import itertools
import logging
from typing import Any, Dict, List, Optional

from .errors import AgentError, ProcessError, ToolExecutionError
from .types import HookCallback, HookContext, HookMatcher

logger = logging.getLogger(__name__)


def convert_hook_output(output: Dict[str, Any]) -> Dict[str, Any]:
    """Map Python-safe keys to the names the peer expects.

    ``async`` and ``continue`` are keywords, so hooks return ``async_``
    and ``continue_`` instead.
    """
    converted = {}
    for key, value in output.items():
        if key == "async_":
            converted["async"] = value
        elif key == "continue_":
            converted["continue"] = value
        else:
            converted[key] = value
    return converted


class HookCallbackRegistry:
    """Maps callback ids to hook functions for the lifetime of a session.

    Callbacks are only ever added; an id once issued keeps pointing at the
    same function.
    """

    def __init__(self):
        self._callbacks: Dict[str, HookCallback] = {}
        self._next_id = itertools.count(0)

    def __len__(self) -> int:
        return len(self._callbacks)

    def __contains__(self, callback_id: str) -> bool:
        return callback_id in self._callbacks

    @property
    def callback_ids(self) -> List[str]:
        return list(self._callbacks)

    def register(self, callback: HookCallback) -> str:
        """Register a callback under a freshly allocated id."""
        callback_id = f"hook_{next(self._next_id)}"
        self._callbacks[callback_id] = callback
        return callback_id

    def register_callback(self, callback_id: str, callback: HookCallback) -> None:
        """Register a callback under an explicit id.

        Re-registering an existing id replaces its function; this is the
        only way an id is rebound.
        """
        if callback_id in self._callbacks:
            logger.debug(f"hooks: replacing callback {callback_id}")
        self._callbacks[callback_id] = callback

    def build_config(
        self,
        hooks: Optional[Dict[str, List[HookMatcher]]],
    ) -> Optional[Dict[str, List[Dict[str, Any]]]]:
        """Register every declared hook and build the initialize payload.

        One id is allocated per hook function, in declaration order.
        Events without matchers are left out.

        Returns:
            The hooks configuration, or None when nothing was declared.
        """
        if not hooks:
            return None

        config: Dict[str, List[Dict[str, Any]]] = {}
        for event, matchers in hooks.items():
            if not matchers:
                continue
            entries = []
            for matcher in matchers:
                callback_ids = [self.register(callback) for callback in matcher.hooks]
                entries.append({
                    "matcher": matcher.matcher,
                    "hookCallbackIds": callback_ids,
                })
            config[event] = entries

        logger.debug(f"hooks: registered {len(self)} callback(s) for {list(config)}")
        return config or None

    async def execute(
        self,
        callback_id: str,
        input_data: Dict[str, Any],
        tool_use_id: Optional[str] = None,
        context: Optional[HookContext] = None,
    ) -> Dict[str, Any]:
        """Invoke the hook registered under ``callback_id``.

        Raises:
            ProcessError: No callback is registered under that id.
            ToolExecutionError: The callback raised.
        """
        callback = self._callbacks.get(callback_id)
        if callback is None:
            raise ProcessError(f"Hook callback not found: {callback_id}")

        try:
            return await callback(input_data, tool_use_id, context or HookContext())
        except AgentError:
            raise
        except Exception as e:
            raise ToolExecutionError(f"Hook callback {callback_id} failed: {e}") from e


__all__ = [
    "HookCallbackRegistry",
    "convert_hook_output",
]
