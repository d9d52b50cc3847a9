"""Agent SDK client implementations."""

from agent_sdk.client.client import AgentClient, MessageSink
from agent_sdk.client.config import (
    ClientConfig,
    ControlConfig,
    TransportConfig,
    load_client_config,
)

__all__ = [
    "AgentClient",
    "MessageSink",
    "ClientConfig",
    "ControlConfig",
    "TransportConfig",
    "load_client_config",
]
