"""Permission gate for tool invocations.

Before the agent runs a tool it can ask the caller whether the call may
proceed. The gate forwards that question to a caller-supplied predicate
(``can_use_tool``) and hands back an allow/deny decision. Without a
predicate every call is allowed with its input unchanged.

Permission updates (from an Allow result or issued directly) are applied
to a local :class:`PermissionState`; a ``setMode`` update is instead
forwarded to the peer by the session as a ``set_permission_mode``
control request.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import AgentError, ProcessError, ToolExecutionError
from .types import (
    PERMISSION_UPDATE_TYPES,
    CanUseTool,
    PermissionResult,
    PermissionResultAllow,
    PermissionResultDeny,
    PermissionRuleValue,
    PermissionUpdate,
    ToolPermissionContext,
)

logger = logging.getLogger(__name__)

# Behavior assumed for rule updates that do not name one
DEFAULT_RULE_BEHAVIOR = "allow"


def validate_permission_update(update: PermissionUpdate) -> None:
    """Reject updates the gate cannot apply.

    Raises:
        ProcessError: Unknown update kind, or a setMode without a mode.
    """
    if update.type not in PERMISSION_UPDATE_TYPES:
        raise ProcessError(f"Unknown permission update type: {update.type}")
    if update.type == "setMode" and not update.mode:
        raise ProcessError("setMode permission update requires a mode")


@dataclass
class PermissionState:
    """Local view of the permission rules, directories and mode.

    Attributes:
        rules: Rules keyed by behavior ("allow", "deny", "ask").
        directories: Additional directories the agent may access.
        mode: Last permission mode acknowledged by the peer.
    """
    rules: Dict[str, List[PermissionRuleValue]] = field(default_factory=dict)
    directories: List[str] = field(default_factory=list)
    mode: Optional[str] = None

    def rules_for(self, behavior: str) -> List[PermissionRuleValue]:
        return list(self.rules.get(behavior, []))

    def apply(self, update: PermissionUpdate) -> None:
        """Apply a rule or directory update.

        ``setMode`` is not handled here: the mode only changes once the
        peer has acknowledged it.
        """
        validate_permission_update(update)
        kind = update.type
        behavior = update.behavior or DEFAULT_RULE_BEHAVIOR
        rules = update.rules or []
        directories = update.directories or []

        if kind == "addRules":
            current = self.rules.setdefault(behavior, [])
            current.extend(rule for rule in rules if rule not in current)
        elif kind == "replaceRules":
            self.rules[behavior] = list(rules)
        elif kind == "removeRules":
            current = self.rules.get(behavior, [])
            self.rules[behavior] = [rule for rule in current if rule not in rules]
        elif kind == "addDirectories":
            self.directories.extend(d for d in directories if d not in self.directories)
        elif kind == "removeDirectories":
            self.directories = [d for d in self.directories if d not in directories]
        else:
            raise ProcessError(f"Permission update {kind} must be sent to the agent")

        logger.debug(f"permissions: applied {kind} ({behavior}, {len(rules) or len(directories)} item(s))")


class PermissionGate:
    """Decides whether a requested tool invocation may proceed."""

    def __init__(
        self,
        can_use_tool: Optional[CanUseTool] = None,
        state: Optional[PermissionState] = None,
    ):
        self.can_use_tool = can_use_tool
        self.state = state if state is not None else PermissionState()

    @property
    def has_predicate(self) -> bool:
        return self.can_use_tool is not None

    async def check(
        self,
        tool_name: str,
        tool_input: Dict[str, Any],
        suggestions: Optional[List[PermissionUpdate]] = None,
    ) -> PermissionResult:
        """Ask the predicate about one tool invocation.

        Args:
            tool_name: Tool the agent wants to run.
            tool_input: Arguments of the call.
            suggestions: Permission updates proposed by the agent.

        Returns:
            The predicate's result, unchanged; ``PermissionResultAllow()``
            when no predicate is configured.

        Raises:
            ToolExecutionError: The predicate raised or returned something
                other than a permission result.
        """
        if self.can_use_tool is None:
            return PermissionResultAllow()

        context = ToolPermissionContext(signal=None, suggestions=list(suggestions or []))
        try:
            result = await self.can_use_tool(tool_name, tool_input, context)
        except AgentError:
            raise
        except Exception as e:
            raise ToolExecutionError(f"Permission callback failed for {tool_name}: {e}") from e

        if not isinstance(result, (PermissionResultAllow, PermissionResultDeny)):
            raise ToolExecutionError(
                f"Permission callback for {tool_name} returned {type(result).__name__}, "
                "expected PermissionResultAllow or PermissionResultDeny"
            )

        logger.debug(f"permissions: {tool_name} -> {result.behavior}")
        return result


__all__ = [
    "DEFAULT_RULE_BEHAVIOR",
    "PermissionGate",
    "PermissionState",
    "validate_permission_update",
]
