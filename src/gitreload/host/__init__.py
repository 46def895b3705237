"""Reference agent host implementing the HostBridge protocol."""

from gitreload.host.agent import (
    AgentHost,
    load_document,
    reload_manager_factory,
    resolve_startup_document,
    run_agent,
)

__all__ = [
    "AgentHost",
    "load_document",
    "reload_manager_factory",
    "resolve_startup_document",
    "run_agent",
]
