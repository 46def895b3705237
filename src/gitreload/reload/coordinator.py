"""Reload coordination: stage → request reload → observe → commit/rollback.

The coordinator never waits for a reload to finish. The host tears down
and rebuilds the component graph (this coordinator included), so the
outcome is read back from the host on the next poll cycle, usually by a
freshly constructed coordinator that recovers its position from the
pointers on disk.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog

from gitreload.core.exceptions import ReloadRejected
from gitreload.protocols.host import HostBridgeProtocol
from gitreload.reload.state_machine import ReloadState, ReloadStateMachine
from gitreload.staging.composer import ConfigComposer
from gitreload.staging.store import StagingState, StagingStore


log = structlog.get_logger()


def _same_document(a: Optional[str | Path], b: Optional[str | Path]) -> bool:
    if a is None or b is None:
        return False
    return Path(a).absolute() == Path(b).absolute()


class ReloadCoordinator:
    """Drives staging state transitions against a host bridge.

    Attributes:
        state: Current reload state.
        replay_pending: A staged candidate found at startup awaits replay.
        rejected_revision: Last revision rolled back by this instance.
    """

    def __init__(
        self,
        store: StagingStore,
        composer: ConfigComposer,
        host: HostBridgeProtocol,
    ) -> None:
        self._store = store
        self._composer = composer
        self._host = host
        self._state_machine = ReloadStateMachine()
        self._replay_pending = False
        self._rejected_revision: Optional[str] = None

    @property
    def state_machine(self) -> ReloadStateMachine:
        return self._state_machine

    @property
    def state(self) -> ReloadState:
        return self._state_machine.current_state

    @property
    def replay_pending(self) -> bool:
        return self._replay_pending

    @property
    def rejected_revision(self) -> Optional[str]:
        return self._rejected_revision

    def initialize(self) -> StagingState:
        """Startup: capture the header, then recover the staging state.

        Returns:
            The staging state after repair.

        Raises:
            MissingCustomizationsSection: No header and none can be captured.
            CorruptStagingState: Pointers cannot be repaired.
        """
        running = Path(self._host.current_document_path())
        self._composer.capture_header_if_absent(running)

        state = self._store.recover()
        if state == StagingState.EMPTY:
            self._store.seed_current(running)
            state = StagingState.IDLE
        elif state == StagingState.STAGED:
            self._replay_pending = True
        elif state == StagingState.COMMITTING:
            # Outcome of a reload requested before we were rebuilt
            self._state_machine.transition(ReloadState.RELOAD_REQUESTED)

        log.info(
            "reload_coordinator_initialized",
            staging_state=str(state),
            current_revision=self._store.current_revision(),
            replay_pending=self._replay_pending,
        )
        return state

    def replay(self) -> None:
        """Finish a candidate that was staged but never handed to the host."""
        self._replay_pending = False
        staged = self._store.staged_path
        if staged is None:
            return

        self._state_machine.transition(ReloadState.RELOAD_REQUESTED)
        if _same_document(self._host.current_document_path(), staged):
            # Host was restarted directly on the staged candidate
            log.info("replay_already_running", path=str(staged))
            self._store.commit()
            self._finish(ReloadState.COMMITTED)
            return

        log.info("replay_staged_candidate", revision=self._store.revision_of(staged))
        self._store.arm_backup()
        self._dispatch(staged)

    def reconcile(self) -> Optional[ReloadState]:
        """Commit or roll back based on the host's last reload outcome.

        Returns:
            COMMITTED or ROLLED_BACK when an outcome was applied, None
            when there is nothing to reconcile or the reload is still
            in progress.
        """
        if self.state != ReloadState.RELOAD_REQUESTED:
            return None
        if self._host.reload_in_progress():
            log.debug("reload_outcome_pending")
            return None

        staged = self._store.staged_path
        succeeded = self._host.last_reload_succeeded()
        target = self._host.last_reload_target_path()
        running = self._host.current_document_path()

        if (
            staged is not None
            and succeeded
            and _same_document(target, staged)
            and _same_document(running, staged)
        ):
            self._store.commit()
            outcome = ReloadState.COMMITTED
        else:
            log.warning(
                "reload_failed",
                staged=str(staged) if staged else None,
                target=target,
                running=running,
                succeeded=succeeded,
            )
            if staged is not None:
                self._rejected_revision = self._store.revision_of(staged)
                self._undo()
            outcome = ReloadState.ROLLED_BACK

        self._finish(outcome)
        return outcome

    def stage_and_reload(self, revision: str, document: str) -> Path:
        """Stage a candidate and ask the host to load it.

        Returns:
            Path of the staged candidate.

        Raises:
            StagingIOFailure: Staging failed; prior state is untouched.
        """
        path = self.stage_candidate(revision, document)
        self.request_reload(revision, path)
        return path

    def stage_candidate(self, revision: str, document: str) -> Path:
        """Durably write a candidate. Touches no host state.

        Raises:
            StagingIOFailure: Staging failed; prior state is untouched.
        """
        self._state_machine.transition(ReloadState.STAGING)
        try:
            return self._store.stage(revision, document)
        except Exception:
            self._state_machine.transition(ReloadState.IDLE)
            raise

    def request_reload(self, revision: str, path: Path) -> bool:
        """Hand a staged candidate to the host.

        Must run on the event loop thread; the host schedules the reload
        as a task.

        Returns:
            False if the host refused and the candidate was rolled back.
        """
        self._state_machine.transition(ReloadState.RELOAD_REQUESTED)
        if not self._dispatch(path):
            self._rejected_revision = revision
            return False
        return True

    def _dispatch(self, path: Path) -> bool:
        """Pause polling and fire the reload request without waiting."""
        self._host.pause_polling()
        try:
            self._host.request_reload(str(path))
        except Exception as e:
            if isinstance(e, ReloadRejected):
                rejected = e
            else:
                rejected = ReloadRejected(str(path), reason=str(e))
            log.error("reload_request_rejected", error=str(rejected), **rejected.context)
            try:
                self._undo()
                self._state_machine.transition(ReloadState.ROLLED_BACK)
                self._state_machine.transition(ReloadState.IDLE)
            finally:
                self._host.resume_polling()
            return False

        log.info("reload_requested", path=str(path))
        return True

    def _undo(self) -> None:
        if self._store.backup_path is not None:
            self._store.rollback()
        else:
            self._store.discard_staged()

    def _finish(self, outcome: ReloadState) -> None:
        self._state_machine.transition(outcome)
        self._host.resume_polling()
        self._state_machine.transition(ReloadState.IDLE)
