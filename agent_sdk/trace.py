"""Wire trace for protocol debugging.

When enabled, every frame written to or read from the agent process is
appended to a trace file, one timestamped line per frame::

    [12:03:44.120] [wire] >> {"type": "control_request", ...}
    [12:03:44.131] [wire] << {"type": "control_response", ...}

Path resolution:
    AGENT_SDK_TRACE_LOG set to a path  -> that file
    AGENT_SDK_TRACE_LOG set to ""      -> tracing disabled
    unset                              -> agent_sdk_wire.log in the temp dir

Usage:
    from agent_sdk.trace import resolve_trace_path, trace_frame

    path = resolve_trace_path()
    trace_frame(">>", {"type": "query"}, path)
"""

import json
import os
import tempfile
from datetime import datetime
from typing import Any, Optional, Set

TRACE_ENV_VAR = "AGENT_SDK_TRACE_LOG"
DEFAULT_TRACE_FILENAME = "agent_sdk_wire.log"

# Cache of directories we've already ensured exist, to avoid
# repeated os.makedirs calls on every trace write.
_ensured_dirs: Set[str] = set()


def _ensure_parent_dirs(file_path: str) -> None:
    """Create parent directories for a file path if they don't exist."""
    parent = os.path.dirname(os.path.abspath(file_path))
    if parent not in _ensured_dirs:
        os.makedirs(parent, exist_ok=True)
        _ensured_dirs.add(parent)


def resolve_trace_path(explicit_path: Optional[str] = None) -> Optional[str]:
    """Resolve the trace file path.

    Args:
        explicit_path: Configured path; takes precedence over the
            environment.

    Returns:
        Resolved file path, or None if tracing is disabled.
    """
    if explicit_path:
        return explicit_path

    value = os.environ.get(TRACE_ENV_VAR)
    if value == "":
        return None  # Explicitly disabled
    if value:
        return value

    return os.path.join(tempfile.gettempdir(), DEFAULT_TRACE_FILENAME)


def trace_write(component: str, msg: str, trace_path: Optional[str]) -> None:
    """Append a trace line to ``trace_path``.

    Never raises - tracing errors are ignored so they cannot break the
    protocol I/O being traced.
    """
    if not trace_path:
        return
    try:
        _ensure_parent_dirs(trace_path)
        with open(trace_path, "a") as f:
            ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            f.write(f"[{ts}] [{component}] {msg}\n")
            f.flush()
    except Exception:
        pass  # Never let tracing errors break the application


def trace_frame(direction: str, frame: Any, trace_path: Optional[str]) -> None:
    """Trace one frame; ``direction`` is ``">>"`` (out) or ``"<<"`` (in)."""
    if not trace_path:
        return
    try:
        encoded = json.dumps(frame, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        encoded = repr(frame)
    trace_write("wire", f"{direction} {encoded}", trace_path)


__all__ = [
    "resolve_trace_path",
    "trace_frame",
    "trace_write",
]
