"""Git-backed configuration reload manager.

Wires the staging store, composer, coordinator and change detector
together for one watched repository. The host builds a fresh manager on
every (re)load of its component graph; everything the manager needs to
pick up where its predecessor left off lives in the state directory.

Usage:
    from gitreload.reload.manager import GitReloadManager

    manager = GitReloadManager(settings.watch, host)
    await manager.start()
    ...
    await manager.stop()
"""

from __future__ import annotations

from typing import Any, Optional

import structlog

from gitreload.core.config import WatchConfig
from gitreload.core.logging import sanitize_repo_url
from gitreload.protocols.host import HostBridgeProtocol
from gitreload.protocols.repository import RepositoryAccessProtocol
from gitreload.reload.coordinator import ReloadCoordinator
from gitreload.reload.detector import ChangeDetector, CycleOutcome
from gitreload.reload.state_machine import ReloadState
from gitreload.repository.git import GitRepository
from gitreload.staging.composer import ConfigComposer
from gitreload.staging.store import StagingStore


log = structlog.get_logger()


class GitReloadManager:
    """Keeps the host's configuration in sync with a Git ref.

    Attributes:
        watch: Repository tracking options.
        store: Candidate and pointer storage.
        coordinator: Reload state machine driver.
        detector: Background poller.
    """

    def __init__(
        self,
        watch: WatchConfig,
        host: HostBridgeProtocol,
        repository: Optional[RepositoryAccessProtocol] = None,
    ) -> None:
        self._watch = watch
        self._host = host
        self._repository = repository or GitRepository(timeout=watch.git_timeout_seconds)
        self._store = StagingStore(watch.configs_path, watch.document_suffix)
        self._composer = ConfigComposer(self._store.header_path)
        self._coordinator = ReloadCoordinator(self._store, self._composer, host)
        self._detector = ChangeDetector(
            watch, self._repository, self._store, self._composer, self._coordinator
        )
        self._last_outcome: Optional[ReloadState] = None
        self._coordinator.state_machine.add_listener(self._on_state_change)

    @property
    def watch(self) -> WatchConfig:
        return self._watch

    @property
    def store(self) -> StagingStore:
        return self._store

    @property
    def composer(self) -> ConfigComposer:
        return self._composer

    @property
    def coordinator(self) -> ReloadCoordinator:
        return self._coordinator

    @property
    def detector(self) -> ChangeDetector:
        return self._detector

    @property
    def last_outcome(self) -> Optional[ReloadState]:
        """COMMITTED or ROLLED_BACK from the most recent settled reload."""
        return self._last_outcome

    def _on_state_change(self, old: ReloadState, new: ReloadState) -> None:
        if new in (ReloadState.COMMITTED, ReloadState.ROLLED_BACK):
            self._last_outcome = new

    async def start(self) -> None:
        """Recover staging state and start polling.

        Raises:
            MissingCustomizationsSection: No header and the host document
                has no ``customizations`` block.
            CorruptStagingState: Pointers cannot be repaired.
            StagingIOFailure: The state directory is not writable.
        """
        log.info(
            "git_config_initialized",
            repository=sanitize_repo_url(self._watch.repository_url),
            ref=self._watch.ref,
            file_path=self._watch.file_path,
            state_directory=str(self._watch.state_path),
        )
        self._coordinator.initialize()
        self._detector.start()

    async def stop(self) -> None:
        await self._detector.stop()

    def pause(self) -> None:
        self._detector.pause()

    def resume(self) -> None:
        self._detector.resume()

    async def poll_once(self) -> CycleOutcome:
        """Run a single detection cycle outside the background loop."""
        return await self._detector.poll_once()

    def status(self) -> dict[str, Any]:
        """Snapshot of the manager for diagnostics."""
        return {
            "repository": sanitize_repo_url(self._watch.repository_url),
            "ref": self._watch.ref,
            "file_path": self._watch.file_path,
            "staging_state": str(self._store.state),
            "current_revision": self._store.current_revision(),
            "staged_revision": self._store.has_pending_staged(),
            "reload_state": str(self._coordinator.state),
            "last_outcome": str(self._last_outcome) if self._last_outcome else None,
            "rejected_revision": self._coordinator.rejected_revision,
            "polling": self._detector.is_running and not self._detector.is_paused,
            "cycles": self._detector.cycles,
        }
