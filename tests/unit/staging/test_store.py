"""Unit tests for the candidate store and its pointers.

Tests cover:
- Composite state classification
- stage(): candidate write, backup arming, last-writer-wins
- commit() / rollback() / discard_staged()
- Queries: current_revision, has_pending_staged, is_staged
- recover(): repair of interrupted transitions
- prune(): orphan candidates and temp files
"""

from pathlib import Path

import pytest

from gitreload.core.exceptions import CorruptStagingState, RollbackUnavailable
from gitreload.staging.store import (
    PointerName,
    PointerSnapshot,
    StagingState,
    StagingStore,
    classify,
    validate_revision,
)


def _pointer(store: StagingStore, name: PointerName) -> Path:
    return store.configs_path / name.filename


def _seeded(store: StagingStore, bootstrap: Path) -> StagingStore:
    store.ensure_layout()
    store.seed_current(bootstrap)
    return store


class TestNames:
    """Pointer file names and revision parsing."""

    def test_pointer_filenames(self) -> None:
        assert PointerName.CURRENT.filename == "cur.ref"
        assert PointerName.STAGED.filename == "new.ref"
        assert PointerName.BACKUP.filename == "old.ref"

    def test_candidate_path_is_content_addressed(self, store: StagingStore) -> None:
        assert store.candidate_path("abc123") == store.configs_path / "abc123.yaml"

    def test_revision_round_trip(self, store: StagingStore) -> None:
        assert store.revision_of(store.candidate_path("abc123")) == "abc123"

    def test_header_is_not_a_candidate(self, store: StagingStore) -> None:
        assert store.revision_of(store.header_path) is None

    def test_foreign_document_is_not_a_candidate(
        self, store: StagingStore, bootstrap_document: Path
    ) -> None:
        assert store.revision_of(bootstrap_document) is None
        assert store.revision_of(None) is None

    @pytest.mark.parametrize("revision", ["", "../etc", "a/b", "header", ".hidden"])
    def test_invalid_revisions_rejected(self, revision: str) -> None:
        with pytest.raises(ValueError):
            validate_revision(revision)


class TestClassify:
    """Composite state from resolved pointers."""

    def test_empty(self) -> None:
        assert classify(PointerSnapshot(None, None, None)) == StagingState.EMPTY

    def test_idle(self, tmp_path: Path) -> None:
        cur = tmp_path / "a.yaml"
        cur.write_text("x")
        assert classify(PointerSnapshot(cur, None, None)) == StagingState.IDLE

    def test_staged(self, tmp_path: Path) -> None:
        cur, new = tmp_path / "a.yaml", tmp_path / "b.yaml"
        cur.write_text("x")
        new.write_text("y")
        assert classify(PointerSnapshot(cur, new, None)) == StagingState.STAGED

    def test_staged_without_current(self, tmp_path: Path) -> None:
        new = tmp_path / "b.yaml"
        new.write_text("y")
        assert classify(PointerSnapshot(None, new, None)) == StagingState.STAGED

    def test_committing(self, tmp_path: Path) -> None:
        cur, new = tmp_path / "a.yaml", tmp_path / "b.yaml"
        cur.write_text("x")
        new.write_text("y")
        assert classify(PointerSnapshot(cur, new, cur)) == StagingState.COMMITTING

    def test_dangling_pointer_is_inconsistent(self, tmp_path: Path) -> None:
        assert classify(PointerSnapshot(tmp_path / "gone.yaml", None, None)) == StagingState.INCONSISTENT

    def test_backup_without_staged_is_inconsistent(self, tmp_path: Path) -> None:
        cur = tmp_path / "a.yaml"
        cur.write_text("x")
        assert classify(PointerSnapshot(cur, None, cur)) == StagingState.INCONSISTENT

    def test_half_committed_is_inconsistent(self, tmp_path: Path) -> None:
        old, new = tmp_path / "a.yaml", tmp_path / "b.yaml"
        old.write_text("x")
        new.write_text("y")
        assert classify(PointerSnapshot(new, new, old)) == StagingState.INCONSISTENT


class TestStage:
    """stage() writes the candidate, then staged, then backup."""

    def test_stage_from_idle(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        path = store.stage("abc123", "includes: []\n")

        assert path == store.candidate_path("abc123")
        assert path.read_text() == "includes: []\n"
        assert store.staged_path == path
        assert store.backup_path == bootstrap_document.absolute()
        assert store.current_path == bootstrap_document.absolute()
        assert store.state == StagingState.COMMITTING

    def test_stage_on_empty_store(self, store: StagingStore) -> None:
        path = store.stage("abc123", "a: 1\n")
        assert store.staged_path == path
        assert store.current_path is None
        assert store.backup_path is None
        assert store.state == StagingState.STAGED

    def test_pointer_files_hold_absolute_paths(
        self, store: StagingStore, bootstrap_document: Path
    ) -> None:
        _seeded(store, bootstrap_document)
        path = store.stage("abc123", "a: 1\n")
        assert _pointer(store, PointerName.STAGED).read_text() == str(path)

    def test_last_writer_wins(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        first = store.stage("abc123", "a: 1\n")
        second = store.stage("def456", "a: 2\n")

        assert store.staged_path == second
        assert not first.exists()
        assert store.backup_path == bootstrap_document.absolute()

    def test_restage_same_revision(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        store.stage("abc123", "a: 1\n")
        path = store.stage("abc123", "a: 1\n")
        assert path.exists()
        assert store.is_staged("abc123")

    def test_staging_current_revision_rejected(
        self, store: StagingStore, bootstrap_document: Path
    ) -> None:
        _seeded(store, bootstrap_document)
        store.stage("abc123", "a: 1\n")
        store.commit()
        with pytest.raises(ValueError, match="already current"):
            store.stage("abc123", "a: 1\n")

    def test_arm_backup_is_idempotent(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        store.arm_backup()
        store.arm_backup()
        assert store.backup_path == bootstrap_document.absolute()

    def test_arm_backup_without_current_is_noop(self, store: StagingStore) -> None:
        store.ensure_layout()
        store.arm_backup()
        assert store.backup_path is None


class TestCommit:
    """commit() promotes staged and drops the backup."""

    def test_commit(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        path = store.stage("abc123", "a: 1\n")
        store.commit()

        assert store.current_path == path
        assert store.staged_path is None
        assert store.backup_path is None
        assert store.state == StagingState.IDLE
        assert store.current_revision() == "abc123"
        # Foreign bootstrap documents are never deleted
        assert bootstrap_document.exists()

    def test_commit_deletes_previous_candidate(
        self, store: StagingStore, bootstrap_document: Path
    ) -> None:
        _seeded(store, bootstrap_document)
        first = store.stage("abc123", "a: 1\n")
        store.commit()
        second = store.stage("def456", "a: 2\n")
        store.commit()

        assert store.current_path == second
        assert not first.exists()
        assert sorted(p.name for p in store.configs_path.iterdir()) == ["cur.ref", "def456.yaml"]

    def test_commit_nothing_staged_is_noop(
        self, store: StagingStore, bootstrap_document: Path
    ) -> None:
        _seeded(store, bootstrap_document)
        store.commit()
        assert store.current_path == bootstrap_document.absolute()
        assert store.state == StagingState.IDLE


class TestRollback:
    """rollback() restores backup and drops the candidate."""

    def test_rollback(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        first = store.stage("abc123", "a: 1\n")
        store.commit()
        rejected = store.stage("def456", "broken: [\n")
        store.rollback()

        assert store.current_path == first
        assert store.staged_path is None
        assert store.backup_path is None
        assert not rejected.exists()
        assert first.exists()
        assert store.current_revision() == "abc123"

    def test_rollback_to_bootstrap(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        store.stage("abc123", "a: 1\n")
        store.rollback()
        assert store.current_path == bootstrap_document.absolute()
        assert store.current_revision() is None

    def test_rollback_without_backup_raises(self, store: StagingStore) -> None:
        path = store.stage("abc123", "a: 1\n")
        with pytest.raises(RollbackUnavailable):
            store.rollback()
        # Nothing was changed
        assert store.staged_path == path
        assert path.exists()


class TestDiscardStaged:
    def test_discard_without_current(self, store: StagingStore) -> None:
        path = store.stage("abc123", "a: 1\n")
        store.discard_staged()
        assert store.staged_path is None
        assert not path.exists()
        assert store.state == StagingState.EMPTY

    def test_discard_nothing_is_noop(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        store.discard_staged()
        assert store.state == StagingState.IDLE


class TestQueries:
    def test_current_revision_unset(self, store: StagingStore) -> None:
        assert store.current_revision() is None

    def test_has_pending_staged(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        assert store.has_pending_staged() is None
        store.stage("abc123", "a: 1\n")
        assert store.has_pending_staged() == "abc123"

    def test_is_staged(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        store.stage("abc123", "a: 1\n")
        assert store.is_staged("abc123")
        assert not store.is_staged("def456")


class TestSeedCurrent:
    def test_seed_empty_store(self, store: StagingStore, bootstrap_document: Path) -> None:
        assert store.seed_current(bootstrap_document) is True
        assert store.current_path == bootstrap_document.absolute()

    def test_seed_is_noop_when_not_empty(
        self, store: StagingStore, bootstrap_document: Path, tmp_path: Path
    ) -> None:
        _seeded(store, bootstrap_document)
        other = tmp_path / "other.yaml"
        other.write_text("a: 1\n")
        assert store.seed_current(other) is False
        assert store.current_path == bootstrap_document.absolute()


class TestRecover:
    """Startup repair of interrupted transitions."""

    def test_valid_states_untouched(self, store: StagingStore, bootstrap_document: Path) -> None:
        assert store.recover() == StagingState.EMPTY
        _seeded(store, bootstrap_document)
        assert store.recover() == StagingState.IDLE
        store.stage("abc123", "a: 1\n")
        assert store.recover() == StagingState.COMMITTING
        assert store.is_staged("abc123")

    def test_dangling_staged_dropped(self, store: StagingStore, bootstrap_document: Path) -> None:
        _seeded(store, bootstrap_document)
        path = store.stage("abc123", "a: 1\n")
        path.unlink()

        assert store.recover() == StagingState.IDLE
        assert store.current_path == bootstrap_document.absolute()
        assert store.staged_path is None
        assert store.backup_path is None

    def test_half_committed_keeps_current(
        self, store: StagingStore, bootstrap_document: Path
    ) -> None:
        _seeded(store, bootstrap_document)
        path = store.stage("abc123", "a: 1\n")
        # Crash after cur := staged, before the rest of commit
        _pointer(store, PointerName.CURRENT).write_text(str(path))

        assert store.recover() == StagingState.IDLE
        assert store.current_path == path
        assert store.staged_path is None

    def test_dangling_current_promotes_backup(
        self, store: StagingStore, bootstrap_document: Path, tmp_path: Path
    ) -> None:
        store.ensure_layout()
        _pointer(store, PointerName.CURRENT).write_text(str(tmp_path / "gone.yaml"))
        _pointer(store, PointerName.BACKUP).write_text(str(bootstrap_document))

        assert store.recover() == StagingState.IDLE
        assert store.current_path == bootstrap_document

    def test_unrepairable_raises(self, store: StagingStore, tmp_path: Path) -> None:
        store.ensure_layout()
        _pointer(store, PointerName.CURRENT).write_text(str(tmp_path / "gone.yaml"))
        with pytest.raises(CorruptStagingState) as exc_info:
            store.recover()
        assert "cur.ref" in exc_info.value.pointers


class TestPrune:
    def test_removes_orphans_and_temp_files(
        self, store: StagingStore, bootstrap_document: Path
    ) -> None:
        _seeded(store, bootstrap_document)
        orphan = store.configs_path / "deadbeef.yaml"
        orphan.write_text("a: 1\n")
        temp = store.configs_path / ".tmp-abcd"
        temp.write_text("partial")
        header = store.header_path
        header.write_text("retries: 3\n")

        removed = store.prune()

        assert set(removed) == {orphan, temp}
        assert header.exists()
        assert _pointer(store, PointerName.CURRENT).exists()

    def test_missing_directory(self, store: StagingStore) -> None:
        assert store.prune() == []
