"""Protocol abstractions for gitreload's external collaborators.

All protocols use `typing.Protocol` for structural subtyping with
`@runtime_checkable` for isinstance() support.

Protocols:
    RepositoryAccessProtocol: Remote revision lookup, sync and file reads.
    HostBridgeProtocol: Reload requests and outcome queries on the host.

Usage:
    from gitreload.protocols import HostBridgeProtocol

    assert isinstance(my_host, HostBridgeProtocol)
"""

from __future__ import annotations

from gitreload.protocols.host import HostBridgeProtocol
from gitreload.protocols.repository import RepositoryAccessProtocol

__all__ = [
    "HostBridgeProtocol",
    "RepositoryAccessProtocol",
]
