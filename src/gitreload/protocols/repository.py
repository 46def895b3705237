"""Repository access protocol.

Implementations are blocking and must bound every call with their own
timeout; the poll loop runs them via ``asyncio.to_thread``.

Usage:
    from gitreload.protocols import RepositoryAccessProtocol

    repo = GitRepository(timeout=30)
    assert isinstance(repo, RepositoryAccessProtocol)
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class RepositoryAccessProtocol(Protocol):
    """Read-only view of a remote version-controlled repository.

    Methods:
        current_remote_revision: Resolve a ref to a revision identifier.
        sync: Bring a local working copy to a ref's tip.
        read_file: Extract one file from the working copy.

    Note:
        Implementations do NOT need to inherit from this class.
    """

    def current_remote_revision(self, url: str, ref: str) -> str:
        """Return the revision the remote ref currently points to.

        Raises:
            RemoteUnreachable: If the remote cannot be queried.
        """
        ...

    def sync(self, url: str, ref: str, local_path: Path) -> str:
        """Synchronize ``local_path`` to the ref and return its revision.

        Raises:
            RemoteUnreachable: If fetching fails.
        """
        ...

    def read_file(self, local_path: Path, file_path: str) -> bytes:
        """Return the content of ``file_path`` at the synced revision.

        Raises:
            ExtractionFailed: If the file does not exist.
        """
        ...
