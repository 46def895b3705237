"""Periodic change detection against the remote repository.

Each cycle first settles any outstanding reload (replay or reconcile),
then compares the remote revision with the current one and, when they
differ, syncs the working copy, composes a candidate and hands it to the
coordinator. Blocking git calls run in worker threads so the event loop
stays responsive.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import Optional

import structlog

from gitreload.core.config import WatchConfig
from gitreload.core.exceptions import ExtractionFailed, GitReloadError
from gitreload.core.logging import sanitize_repo_url
from gitreload.protocols.repository import RepositoryAccessProtocol
from gitreload.reload.coordinator import ReloadCoordinator
from gitreload.reload.state_machine import ReloadState
from gitreload.staging.composer import ConfigComposer
from gitreload.staging.store import StagingStore


log = structlog.get_logger()


class CycleOutcome(StrEnum):
    """What a single poll cycle did."""

    REPLAYED = "REPLAYED"
    WAITING = "WAITING"
    UNCHANGED = "UNCHANGED"
    SKIPPED = "SKIPPED"
    RELOADING = "RELOADING"
    FAILED = "FAILED"


class ChangeDetector:
    """Polls the remote ref and drives the coordinator.

    Attributes:
        is_paused: Polling is suspended until ``resume()``.
        is_running: The background poll task is alive.
        cycles: Number of completed poll cycles.
    """

    def __init__(
        self,
        watch: WatchConfig,
        repository: RepositoryAccessProtocol,
        store: StagingStore,
        composer: ConfigComposer,
        coordinator: ReloadCoordinator,
    ) -> None:
        self._watch = watch
        self._repository = repository
        self._store = store
        self._composer = composer
        self._coordinator = coordinator
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._task: Optional[asyncio.Task] = None
        self._cycles = 0
        self._last_outcome: Optional[CycleOutcome] = None

    @property
    def is_paused(self) -> bool:
        return not self._resume_event.is_set()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def last_outcome(self) -> Optional[CycleOutcome]:
        return self._last_outcome

    def pause(self) -> None:
        if not self.is_paused:
            self._resume_event.clear()
            log.debug("polling_paused")

    def resume(self) -> None:
        if self.is_paused:
            self._resume_event.set()
            log.debug("polling_resumed")

    def start(self) -> None:
        """Start the background poll task. The first cycle runs immediately."""
        if self.is_running:
            log.warning("change_detector_already_running")
            return
        self._task = asyncio.create_task(self._run(), name="gitreload-poll")
        log.info(
            "change_detector_started",
            repository=sanitize_repo_url(self._watch.repository_url),
            ref=self._watch.ref,
            interval=self._watch.poll_interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel the poll task and wait for it to exit."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("change_detector_stopped", cycles=self._cycles)

    async def _run(self) -> None:
        while True:
            await self._resume_event.wait()
            await self.poll_once()
            await asyncio.sleep(self._watch.poll_interval_seconds)

    async def poll_once(self) -> CycleOutcome:
        """Run one detection cycle.

        Failures are logged and reported as FAILED; the next cycle
        retries from whatever state the store was left in.
        """
        try:
            outcome = await self._cycle()
        except GitReloadError as e:
            log.error("poll_cycle_failed", error=str(e), **e.context)
            outcome = CycleOutcome.FAILED
        except Exception as e:
            log.exception("poll_cycle_crashed", error=str(e))
            outcome = CycleOutcome.FAILED

        self._cycles += 1
        self._last_outcome = outcome
        return outcome

    async def _cycle(self) -> CycleOutcome:
        if self._coordinator.replay_pending:
            self._coordinator.replay()
            return CycleOutcome.REPLAYED

        self._coordinator.reconcile()
        if self._coordinator.state == ReloadState.RELOAD_REQUESTED:
            return CycleOutcome.WAITING

        watch = self._watch
        remote = await asyncio.to_thread(
            self._repository.current_remote_revision, watch.repository_url, watch.ref
        )
        if remote == self._store.current_revision():
            log.debug("revision_unchanged", revision=remote[:7])
            return CycleOutcome.UNCHANGED
        if remote == self._coordinator.rejected_revision:
            log.debug("revision_previously_rejected", revision=remote[:7])
            return CycleOutcome.SKIPPED

        log.info(
            "remote_revision_changed",
            current=self._store.current_revision(),
            remote=remote,
        )
        revision = await asyncio.to_thread(
            self._repository.sync, watch.repository_url, watch.ref, watch.repo_path
        )
        if revision != remote:
            # Ref moved between ls-remote and fetch; go with what we fetched
            log.info("remote_revision_moved", expected=remote, fetched=revision)
            if revision == self._store.current_revision():
                return CycleOutcome.UNCHANGED
        if revision == self._coordinator.rejected_revision:
            log.debug("revision_previously_rejected", revision=revision[:7])
            return CycleOutcome.SKIPPED

        raw = await asyncio.to_thread(
            self._repository.read_file, watch.repo_path, watch.file_path
        )
        try:
            fragment = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ExtractionFailed(
                watch.file_path, revision=revision, message=f"{watch.file_path} is not UTF-8"
            ) from e

        document = self._composer.compose(fragment, source=watch.file_path)
        path = await asyncio.to_thread(self._coordinator.stage_candidate, revision, document)
        self._coordinator.request_reload(revision, path)
        return CycleOutcome.RELOADING
