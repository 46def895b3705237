"""
gitreload - Git-driven configuration hot reload for log agents

Tracks a configuration file in a Git repository, stages each new revision
next to the agent's local customizations, and commits or rolls back the
switch depending on whether the agent accepted it.
"""

from gitreload.protocols import (
    HostBridgeProtocol,
    RepositoryAccessProtocol,
)
from gitreload.reload.manager import GitReloadManager

__version__ = "0.3.0"

__all__ = [
    "GitReloadManager",
    "HostBridgeProtocol",
    "RepositoryAccessProtocol",
]
