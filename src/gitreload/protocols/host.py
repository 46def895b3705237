"""Host bridge protocol.

The host owns the reload mechanism. A reload tears down and rebuilds
every component, including the one that asked for it, so requests are
fire-and-forget and the outcome is queried on a later poll cycle.

Usage:
    from gitreload.protocols import HostBridgeProtocol

    host.pause_polling()
    host.request_reload("/var/lib/gitreload/configs/abc123.yaml")
    # ... next cycle, possibly in a new component instance
    if host.last_reload_succeeded():
        ...
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class HostBridgeProtocol(Protocol):
    """Interface between the reload component and its host process.

    Methods:
        request_reload: Begin an asynchronous reload with a document.
        reload_in_progress: Whether a requested reload has not finished.
        last_reload_succeeded: Outcome flag of the last finished reload.
        last_reload_target_path: Document the last reload targeted.
        current_document_path: Document the host is running now.
        pause_polling / resume_polling: Gate the component's poll timer.
    """

    def request_reload(self, document_path: str) -> None:
        """Schedule a reload and return immediately.

        Raises:
            ReloadRejected: If the host refuses to begin the reload.
        """
        ...

    def reload_in_progress(self) -> bool:
        ...

    def last_reload_succeeded(self) -> bool:
        ...

    def last_reload_target_path(self) -> Optional[str]:
        ...

    def current_document_path(self) -> str:
        ...

    def pause_polling(self) -> None:
        ...

    def resume_polling(self) -> None:
        ...
