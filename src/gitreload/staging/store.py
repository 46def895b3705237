"""Content-addressed candidate storage with crash-safe pointers.

Layout under ``configs/``::

    <revision><ext>   one immutable candidate document per revision
    header<ext>       customization header (see composer.py)
    cur.ref           path of the candidate the host runs
    new.ref           path of the staged candidate
    old.ref           path of the previous current, kept for rollback

Composite states (pointers resolved against existing files):

    EMPTY       nothing set (fresh state directory)
    IDLE        current only
    STAGED      staged set, backup empty, staged != current
    COMMITTING  staged and backup set, backup == current != staged

Every pointer mutation is one atomic rename followed by a directory
fsync. Operations are ordered so that a crash between any two steps
leaves either a valid state or one that ``recover()`` repairs
deterministically.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Optional

import structlog

from gitreload.core.exceptions import (
    CorruptStagingState,
    RollbackUnavailable,
    StagingIOFailure,
)
from gitreload.core.fileio import (
    TEMP_PREFIX,
    atomic_write_text,
    durable_unlink,
)


log = structlog.get_logger()

HEADER_STEM = "header"
POINTER_SUFFIX = ".ref"

_REVISION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class PointerName(StrEnum):
    """Pointer roles and their on-disk file stems."""

    CURRENT = "cur"
    STAGED = "new"
    BACKUP = "old"

    @property
    def filename(self) -> str:
        return f"{self.value}{POINTER_SUFFIX}"


class StagingState(StrEnum):
    """Composite state of the three pointers."""

    EMPTY = "EMPTY"
    IDLE = "IDLE"
    STAGED = "STAGED"
    COMMITTING = "COMMITTING"
    INCONSISTENT = "INCONSISTENT"


@dataclass(frozen=True)
class PointerSnapshot:
    """Raw pointer values as read from disk."""

    current: Optional[Path]
    staged: Optional[Path]
    backup: Optional[Path]

    def as_dict(self) -> dict[str, Optional[str]]:
        return {
            PointerName.CURRENT.filename: str(self.current) if self.current else None,
            PointerName.STAGED.filename: str(self.staged) if self.staged else None,
            PointerName.BACKUP.filename: str(self.backup) if self.backup else None,
        }


def classify(snapshot: PointerSnapshot) -> StagingState:
    """Map a pointer snapshot onto its composite state."""
    cur, new, old = snapshot.current, snapshot.staged, snapshot.backup

    # A pointer naming a vanished document is an interrupted transition
    for target in (cur, new, old):
        if target is not None and not target.is_file():
            return StagingState.INCONSISTENT

    if cur is None and new is None and old is None:
        return StagingState.EMPTY
    if new is None and old is None:
        return StagingState.IDLE
    if new is not None and old is None and new != cur:
        return StagingState.STAGED
    if new is not None and old is not None and cur is not None and old == cur and new != cur:
        return StagingState.COMMITTING
    return StagingState.INCONSISTENT


def validate_revision(revision: str) -> str:
    """Check a revision identifier is safe to use as a file name."""
    if not _REVISION_RE.match(revision or "") or revision == HEADER_STEM:
        raise ValueError(f"Invalid revision identifier: {revision!r}")
    return revision


class StagingStore:
    """Candidate documents plus the current/staged/backup pointers.

    Attributes:
        configs_path: Directory holding candidates, header and pointers.
        suffix: Extension of candidate documents (e.g. ``.yaml``).
    """

    def __init__(self, configs_path: Path, suffix: str = ".yaml") -> None:
        self._configs_path = Path(configs_path).absolute()
        self._suffix = suffix

    @property
    def configs_path(self) -> Path:
        return self._configs_path

    @property
    def suffix(self) -> str:
        return self._suffix

    @property
    def header_path(self) -> Path:
        """Location of the customization header."""
        return self._configs_path / f"{HEADER_STEM}{self._suffix}"

    def ensure_layout(self) -> None:
        """Create the configs directory if needed."""
        try:
            self._configs_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StagingIOFailure(str(self._configs_path), "mkdir", str(e)) from e

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def candidate_path(self, revision: str) -> Path:
        """Content-addressed location of a revision's candidate."""
        return self._configs_path / f"{validate_revision(revision)}{self._suffix}"

    def revision_of(self, path: Optional[Path]) -> Optional[str]:
        """Parse the revision out of a candidate path.

        Returns None for documents this store does not own (the header,
        a bootstrap document outside ``configs/``, ...).
        """
        if path is None:
            return None
        path = Path(path)
        if path.parent != self._configs_path or path.suffix != self._suffix:
            return None
        stem = path.name[: -len(self._suffix)] if self._suffix else path.name
        if stem == HEADER_STEM or not _REVISION_RE.match(stem):
            return None
        return stem

    def _pointer_file(self, name: PointerName) -> Path:
        return self._configs_path / name.filename

    # ------------------------------------------------------------------
    # Pointer primitives
    # ------------------------------------------------------------------

    def read_pointer(self, name: PointerName) -> Optional[Path]:
        """Dereference one pointer file; None if unset."""
        try:
            value = self._pointer_file(name).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StagingIOFailure(str(self._pointer_file(name)), "read", str(e)) from e
        return Path(value) if value else None

    def _write_pointer(self, name: PointerName, target: Path) -> None:
        atomic_write_text(self._pointer_file(name), str(Path(target).absolute()))
        log.debug("pointer_updated", pointer=name.filename, target=str(target))

    def _clear_pointer(self, name: PointerName) -> None:
        if durable_unlink(self._pointer_file(name)):
            log.debug("pointer_cleared", pointer=name.filename)

    def _delete_candidate(self, path: Path) -> None:
        # Only documents we created are ever removed
        if self.revision_of(path) is None:
            return
        if durable_unlink(path):
            log.debug("candidate_deleted", path=str(path))

    def snapshot(self) -> PointerSnapshot:
        return PointerSnapshot(
            current=self.read_pointer(PointerName.CURRENT),
            staged=self.read_pointer(PointerName.STAGED),
            backup=self.read_pointer(PointerName.BACKUP),
        )

    @property
    def state(self) -> StagingState:
        return classify(self.snapshot())

    @property
    def current_path(self) -> Optional[Path]:
        return self.read_pointer(PointerName.CURRENT)

    @property
    def staged_path(self) -> Optional[Path]:
        return self.read_pointer(PointerName.STAGED)

    @property
    def backup_path(self) -> Optional[Path]:
        return self.read_pointer(PointerName.BACKUP)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_revision(self) -> Optional[str]:
        """Revision of the active candidate, None if unset or not a candidate."""
        return self.revision_of(self.read_pointer(PointerName.CURRENT))

    def has_pending_staged(self) -> Optional[str]:
        """Revision of the staged candidate, if any."""
        return self.revision_of(self.read_pointer(PointerName.STAGED))

    def is_staged(self, revision: str) -> bool:
        staged = self.read_pointer(PointerName.STAGED)
        return staged is not None and staged == self.candidate_path(revision)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def stage(self, revision: str, document: str) -> Path:
        """Write a candidate and point ``staged`` (then ``backup``) at it.

        A different, unresolved staged candidate is replaced (last writer
        wins) and its document deleted.

        Returns:
            Path of the staged candidate.

        Raises:
            ValueError: If the revision is invalid or already current.
            StagingIOFailure: If any write fails; the prior valid state
                is left untouched.
        """
        self.ensure_layout()
        target = self.candidate_path(revision)
        snap = self.snapshot()
        if snap.current == target:
            raise ValueError(f"Revision {revision} is already current")

        atomic_write_text(target, document)
        self._write_pointer(PointerName.STAGED, target)

        previous = snap.staged
        if previous is not None and previous not in (target, snap.current, snap.backup):
            self._delete_candidate(previous)
            log.info("staged_candidate_superseded", previous=str(previous), revision=revision)

        self.arm_backup()
        log.info("candidate_staged", revision=revision, path=str(target))
        return target

    def arm_backup(self) -> None:
        """Record ``current`` as ``backup`` ahead of a reload request.

        No-op when there is no current document or a backup already exists.
        """
        current = self.read_pointer(PointerName.CURRENT)
        if current is None or self.read_pointer(PointerName.BACKUP) is not None:
            return
        self._write_pointer(PointerName.BACKUP, current)

    def commit(self) -> None:
        """Promote the staged candidate to current.

        No-op (logged) if nothing is staged.
        """
        snap = self.snapshot()
        if snap.staged is None:
            log.warning("commit_nothing_staged")
            return

        if snap.current != snap.staged:
            self._write_pointer(PointerName.CURRENT, snap.staged)
        self._clear_pointer(PointerName.STAGED)
        if snap.backup is not None and snap.backup != snap.staged:
            self._delete_candidate(snap.backup)
        self._clear_pointer(PointerName.BACKUP)
        self.prune()

        log.info(
            "staging_committed",
            revision=self.revision_of(snap.staged),
            path=str(snap.staged),
        )

    def rollback(self) -> None:
        """Restore ``current`` from ``backup`` and drop the staged candidate.

        Raises:
            RollbackUnavailable: If ``backup`` is empty. Nothing is changed.
        """
        snap = self.snapshot()
        if snap.backup is None:
            raise RollbackUnavailable()

        # Candidate goes first so a crash can never replay it
        if snap.staged is not None and snap.staged != snap.backup:
            self._delete_candidate(snap.staged)
        if snap.current != snap.backup:
            self._write_pointer(PointerName.CURRENT, snap.backup)
        self._clear_pointer(PointerName.STAGED)
        self._clear_pointer(PointerName.BACKUP)
        self.prune()

        log.info(
            "staging_rolled_back",
            rejected=self.revision_of(snap.staged),
            current=str(snap.backup),
        )

    def discard_staged(self) -> None:
        """Drop the staged candidate when there is nothing to roll back to."""
        snap = self.snapshot()
        if snap.staged is None:
            return
        if snap.staged not in (snap.current, snap.backup):
            self._delete_candidate(snap.staged)
        self._clear_pointer(PointerName.STAGED)
        if snap.backup is not None and snap.backup == snap.current:
            self._clear_pointer(PointerName.BACKUP)
        self.prune()
        log.info("staged_candidate_discarded", revision=self.revision_of(snap.staged))

    def seed_current(self, document_path: Path) -> bool:
        """Point ``current`` at the host's document on a fresh store.

        Returns:
            True if the pointer was written.
        """
        if self.state != StagingState.EMPTY:
            return False
        self.ensure_layout()
        self._write_pointer(PointerName.CURRENT, Path(document_path))
        log.info("current_seeded", path=str(document_path))
        return True

    def recover(self) -> StagingState:
        """Repair an interrupted transition and prune orphans.

        Valid states are returned unchanged. Anything else collapses to
        IDLE: keep ``current`` if it resolves, else promote ``backup``.

        Raises:
            CorruptStagingState: If neither ``current`` nor ``backup``
                names an existing document.
        """
        self.ensure_layout()
        snap = self.snapshot()
        state = classify(snap)
        if state != StagingState.INCONSISTENT:
            self.prune()
            return state

        log.warning("staging_state_inconsistent", pointers=snap.as_dict())

        if snap.current is not None and snap.current.is_file():
            keep = snap.current
        elif snap.backup is not None and snap.backup.is_file():
            keep = snap.backup
        else:
            raise CorruptStagingState(snap.as_dict())

        if snap.current != keep:
            self._write_pointer(PointerName.CURRENT, keep)
        self._clear_pointer(PointerName.STAGED)
        self._clear_pointer(PointerName.BACKUP)
        self.prune()

        log.info("staging_state_repaired", current=str(keep))
        return StagingState.IDLE

    def prune(self) -> list[Path]:
        """Delete unreferenced candidates and leftover temp files."""
        if not self._configs_path.is_dir():
            return []
        snap = self.snapshot()
        referenced = {p for p in (snap.current, snap.staged, snap.backup) if p is not None}

        removed: list[Path] = []
        for entry in sorted(self._configs_path.iterdir()):
            if not entry.is_file():
                continue
            orphan_temp = entry.name.startswith(TEMP_PREFIX)
            orphan_candidate = self.revision_of(entry) is not None and entry not in referenced
            if orphan_temp or orphan_candidate:
                if durable_unlink(entry):
                    removed.append(entry)

        if removed:
            log.debug("staging_pruned", removed=[p.name for p in removed])
        return removed
