"""Client configuration loading with layered precedence.

Provides configuration loading for the agent client with support for:
1. JSON configuration files (project-level and user-level)
2. A ``.env`` file
3. Environment variable overrides
4. Built-in defaults

Configuration precedence (highest wins):
1. Environment variables (AGENT_SDK_*)
2. ``.env`` file in the workspace (read without touching os.environ)
3. Project config (.agent_sdk/client.json)
4. User config (~/.agent_sdk/client.json)
5. Built-in defaults

Usage:
    from agent_sdk.client.config import load_client_config

    config = load_client_config(workspace_path=Path.cwd())
    timeout = config.control.timeout

Environment Variables:
    AGENT_SDK_CONTROL_TIMEOUT: Seconds to wait for a control response (default: 60.0)
    AGENT_SDK_MAX_LINE_SIZE: Largest accepted frame in bytes (default: 10 MiB)
    AGENT_SDK_TRACE_FRAMES: Append every frame to the wire trace (default: false)
    AGENT_SDK_TRACE_LOG: Wire trace file path
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, get_type_hints

from dotenv import dotenv_values

from ..constants import DEFAULT_CONTROL_TIMEOUT, MAX_LINE_SIZE

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".agent_sdk"
CONFIG_FILE_NAME = "client.json"


def _parse_bool(value: str) -> bool:
    """Parse boolean from string."""
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_value(value: str, target_type: Type) -> Any:
    """Parse environment variable value to target type."""
    # Extract inner type from Optional
    args = getattr(target_type, '__args__', ())
    if args and type(None) in args:
        inner_types = [a for a in args if a is not type(None)]
        if inner_types:
            target_type = inner_types[0]

    if target_type == bool:
        return _parse_bool(value)
    elif target_type == int:
        return int(value)
    elif target_type == float:
        return float(value)
    return value


@dataclass
class ControlConfig:
    """Control protocol settings.

    Attributes:
        timeout: Seconds each control request waits for its response.
    """
    timeout: float = DEFAULT_CONTROL_TIMEOUT

    def __post_init__(self):
        """Validate configuration values."""
        if self.timeout <= 0:
            raise ValueError("timeout must be greater than 0")


@dataclass
class TransportConfig:
    """Stream transport settings.

    Attributes:
        max_line_size: Largest frame accepted from the agent, in bytes.
        trace_frames: Append every frame to the wire trace file.
        trace_log: Wire trace file path; defaults to the temp directory.
    """
    max_line_size: int = MAX_LINE_SIZE
    trace_frames: bool = False
    trace_log: Optional[str] = None

    def __post_init__(self):
        if self.max_line_size < 1:
            raise ValueError("max_line_size must be at least 1")


@dataclass
class ClientConfig:
    """Root client configuration.

    Attributes:
        control: Control protocol settings.
        transport: Stream transport settings.
    """
    control: ControlConfig = field(default_factory=ControlConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)


# Maps "section.field" paths to environment variable names
ENV_VAR_MAPPING: Dict[str, str] = {
    "control.timeout": "AGENT_SDK_CONTROL_TIMEOUT",
    "transport.max_line_size": "AGENT_SDK_MAX_LINE_SIZE",
    "transport.trace_frames": "AGENT_SDK_TRACE_FRAMES",
    "transport.trace_log": "AGENT_SDK_TRACE_LOG",
}

_SECTION_TYPES: Dict[str, Type] = {
    "control": ControlConfig,
    "transport": TransportConfig,
}


def _find_config_files(workspace_path: Optional[Path] = None) -> List[Path]:
    """Find configuration files in order of precedence (lowest first)."""
    files = []

    # User-level config (lowest precedence)
    user_config = Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME
    if user_config.exists():
        files.append(user_config)

    # Project-level config (higher precedence)
    if workspace_path:
        project_config = Path(workspace_path) / CONFIG_DIR_NAME / CONFIG_FILE_NAME
        if project_config.exists():
            files.append(project_config)

    return files


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base, returning new dict.

    Lists and other non-dict values are replaced, not merged.
    """
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _get_field_type(dataclass_type: Type, field_name: str) -> Type:
    try:
        hints = get_type_hints(dataclass_type)
        return hints.get(field_name, str)
    except Exception:
        return str


def _load_env_file(env_file: Optional[str], workspace_path: Optional[Path]) -> Dict[str, str]:
    """Read a .env file without modifying os.environ.

    Relative paths are resolved against ``workspace_path`` when given.
    """
    if not env_file:
        return {}
    env_path = Path(env_file)
    if not env_path.is_absolute() and workspace_path:
        env_path = Path(workspace_path) / env_path
    if not env_path.exists():
        return {}
    values = dotenv_values(env_path)
    logger.debug(f"Loaded env file {env_path}")
    return {k: v for k, v in values.items() if v is not None}


def _apply_env_overrides(config_dict: Dict[str, Any], env: Mapping[str, str]) -> Dict[str, Any]:
    """Apply mapped environment variables to the config dict.

    Args:
        config_dict: Configuration dictionary (not modified).
        env: Variables to read, already layered by precedence.

    Returns:
        New dictionary with overrides applied.
    """
    result = config_dict.copy()

    for path, env_var in ENV_VAR_MAPPING.items():
        env_value = env.get(env_var)
        if env_value is None:
            continue

        section, field_name = path.split(".")
        current = result.get(section)
        current = dict(current) if isinstance(current, dict) else {}
        result[section] = current

        target_type = _get_field_type(_SECTION_TYPES[section], field_name)
        try:
            current[field_name] = _parse_env_value(env_value, target_type)
            logger.debug(f"Applied env override: {env_var}={env_value}")
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid value for {env_var}: {env_value} ({e})")

    return result


def _dict_to_section(section: str, data: Any) -> Any:
    """Convert one config section to its dataclass.

    Unknown keys are ignored; invalid values fall back to the defaults of
    the whole section.
    """
    section_type = _SECTION_TYPES[section]
    if not isinstance(data, dict):
        logger.warning(f"Invalid '{section}' config (expected dict), using defaults")
        return section_type()

    valid_fields = {f.name for f in fields(section_type)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    unknown = set(data.keys()) - valid_fields
    if unknown:
        logger.warning(f"Unknown {section} config keys (ignored): {unknown}")

    try:
        return section_type(**filtered)
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid {section} config values, using defaults: {e}")
        return section_type()


def _dict_to_config(data: Dict[str, Any]) -> ClientConfig:
    return ClientConfig(
        control=_dict_to_section("control", data.get("control", {})),
        transport=_dict_to_section("transport", data.get("transport", {})),
    )


def load_client_config(
    workspace_path: Optional[Path] = None,
    env_file: Optional[str] = ".env",
) -> ClientConfig:
    """Load client configuration with layered precedence.

    Args:
        workspace_path: Path to project workspace for project-level config
            and relative ``env_file`` resolution.
        env_file: Path to a .env file; None skips it.

    Returns:
        Merged ClientConfig instance.

    Example:
        config = load_client_config(Path.cwd())
        if config.transport.trace_frames:
            print(f"Tracing to {config.transport.trace_log}")
    """
    # Start with empty dict (defaults come from dataclass)
    merged: Dict[str, Any] = {}

    for config_file in _find_config_files(workspace_path):
        try:
            with open(config_file) as f:
                file_config = json.load(f)

            if not isinstance(file_config, dict):
                logger.warning(f"Invalid config format in {config_file} (expected object)")
                continue

            merged = _deep_merge(merged, file_config)
            logger.debug(f"Loaded config from {config_file}")

        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in {config_file}: {e}")
        except PermissionError:
            logger.warning(f"Permission denied reading {config_file}")
        except OSError as e:
            logger.warning(f"Failed to load {config_file}: {e}")

    # Shell environment wins over the .env file
    env: Dict[str, str] = dict(_load_env_file(env_file, workspace_path))
    env.update(os.environ)
    merged = _apply_env_overrides(merged, env)

    return _dict_to_config(merged)


def generate_example_config() -> str:
    """Generate an example client.json configuration file."""
    example = {
        "_comment": "Agent SDK client configuration",
        "control": {
            "_comment": "Control protocol settings",
            "timeout": DEFAULT_CONTROL_TIMEOUT,
        },
        "transport": {
            "_comment": "Stream transport settings",
            "max_line_size": MAX_LINE_SIZE,
            "trace_frames": False,
            "trace_log": None,
        },
    }
    return json.dumps(example, indent=2)


def get_config_paths(workspace_path: Optional[Path] = None) -> Dict[str, Path]:
    """Get the paths where config files are searched.

    Returns:
        Dict with 'user' and optionally 'project' paths.
    """
    paths = {
        "user": Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME,
    }
    if workspace_path:
        paths["project"] = Path(workspace_path) / CONFIG_DIR_NAME / CONFIG_FILE_NAME
    return paths


__all__ = [
    "ClientConfig",
    "ControlConfig",
    "TransportConfig",
    "generate_example_config",
    "get_config_paths",
    "load_client_config",
]
