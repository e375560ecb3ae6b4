"""Tests for the sync engine."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from helpers import FakeBackend

from studynote.exceptions import BackendRequestError, SessionError, SyncError, SyncInProgressError
from studynote.models import (
    SYNC_DELETED_FROM_BACKEND,
    SYNC_FAILED,
    SYNC_PENDING,
    SYNC_SYNCED,
    Folder,
    Note,
)
from studynote.store import NoteStore
from studynote.sync.engine import FOLDERS_TABLE, NOTES_TABLE, SyncEngine
from studynote.sync.progress import ProgressThrottle, SyncProgress
from studynote.sync.records import (
    EnhancedNoteRecord,
    SimpleFolderRecord,
    SimpleNoteRecord,
    encode_blob,
)


@pytest.fixture
def delays() -> list[float]:
    return []


@pytest.fixture
def engine(store: NoteStore, fake_backend: FakeBackend, delays: list[float]) -> SyncEngine:
    """Engine that records backoff delays and delivers every progress update."""
    return SyncEngine(
        store, fake_backend, sleep=delays.append, throttle=ProgressThrottle(interval=0)
    )


def _remote_note(note: Note, **changes: Any) -> dict[str, Any]:
    payload = SimpleNoteRecord.from_note(note, "user-1").to_payload()
    payload.update(changes)
    return payload


class TestUpload:
    """Tests for the upload phase."""

    def test_new_records_are_inserted(
        self,
        engine: SyncEngine,
        store: NoteStore,
        fake_backend: FakeBackend,
        sample_folder: Folder,
        sample_note: Note,
    ) -> None:
        """Test that pending folders and notes are created remotely."""
        store.add_folder(sample_folder)
        store.add_note(sample_note)

        progress = engine.sync(two_way=False)

        assert ("insert", FOLDERS_TABLE, sample_folder.id) in fake_backend.calls
        assert ("insert", NOTES_TABLE, sample_note.id) in fake_backend.calls
        row = fake_backend.tables[NOTES_TABLE][sample_note.id]
        assert row["title"] == "Photosynthesis"
        assert row["user_id"] == "user-1"
        assert "original_content" not in row
        assert sample_note.sync_status == SYNC_SYNCED
        assert sample_folder.sync_status == SYNC_SYNCED
        assert progress.synced_notes == progress.total_notes == 1
        assert progress.current_status == "Upload completed"

    def test_folders_are_uploaded_before_notes(
        self,
        engine: SyncEngine,
        store: NoteStore,
        fake_backend: FakeBackend,
        sample_folder: Folder,
        sample_note: Note,
    ) -> None:
        store.add_note(sample_note)
        store.add_folder(sample_folder)

        engine.sync(two_way=False)

        tables = [table for op, table, _ in fake_backend.calls if op == "insert"]
        assert tables == [FOLDERS_TABLE, NOTES_TABLE]

    def test_existing_record_is_updated(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        fake_backend.seed(NOTES_TABLE, _remote_note(sample_note, title="Old title"))
        store.add_note(sample_note)

        engine.sync(two_way=False)

        assert ("update", NOTES_TABLE, sample_note.id) in fake_backend.calls
        assert fake_backend.tables[NOTES_TABLE][sample_note.id]["title"] == "Photosynthesis"

    def test_soft_deleted_note_is_deleted_remotely(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        """Test that a deletion reaches the backend and the local copy is dropped."""
        fake_backend.seed(NOTES_TABLE, _remote_note(sample_note))
        store.add_note(sample_note)
        store.soft_delete_note(sample_note.id)

        progress = engine.sync(two_way=False)

        assert ("delete", NOTES_TABLE, sample_note.id) in fake_backend.calls
        assert fake_backend.tables[NOTES_TABLE] == {}
        assert store.find_note(sample_note.id) is None
        assert progress.synced_notes == 1

    def test_soft_deleted_folder_is_deleted_remotely(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_folder: Folder
    ) -> None:
        fake_backend.seed(
            FOLDERS_TABLE, SimpleFolderRecord.from_folder(sample_folder, "user-1").to_payload()
        )
        store.add_folder(sample_folder)
        store.soft_delete_folder(sample_folder.id)

        engine.sync()

        assert fake_backend.tables[FOLDERS_TABLE] == {}
        assert store.find_folder(sample_folder.id) is None

    def test_failed_record_does_not_stop_sync(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend
    ) -> None:
        """Test that a rejected note is marked failed while the rest upload."""
        bad = store.add_note(Note(title="bad"))
        good = store.add_note(Note(title="good"))
        fake_backend.reject_ids.add(bad.id)

        progress = engine.sync(two_way=False)

        assert bad.sync_status == SYNC_FAILED
        assert good.sync_status == SYNC_SYNCED
        assert progress.failed_notes == 1
        assert progress.synced_notes == 1
        assert store.notes_needing_sync() == [bad]

    def test_server_errors_are_retried(
        self,
        engine: SyncEngine,
        store: NoteStore,
        fake_backend: FakeBackend,
        delays: list[float],
    ) -> None:
        note = store.add_note(Note(title="flaky"))
        fake_backend.insert = MagicMock(  # type: ignore[method-assign]
            side_effect=[BackendRequestError("boom", status_code=500), [{}]]
        )

        engine.sync(two_way=False)

        assert fake_backend.insert.call_count == 2
        assert delays == [1.0]
        assert note.sync_status == SYNC_SYNCED

    def test_binary_data_is_base64_encoded(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        """Test that enhanced uploads carry content but not deleted_at or sizes."""
        store.add_note(sample_note)

        engine.sync(include_binary_data=True, two_way=False)

        row = fake_backend.tables[NOTES_TABLE][sample_note.id]
        assert row["original_content"] == encode_blob(b"Plants turn light into sugar.")
        assert "deleted_at" not in row
        assert "original_content_size" not in row


class TestDownload:
    """Tests for the download phase and conflict resolution."""

    def test_remote_records_are_created_locally(
        self,
        engine: SyncEngine,
        store: NoteStore,
        fake_backend: FakeBackend,
        sample_folder: Folder,
        sample_note: Note,
    ) -> None:
        fake_backend.seed(
            FOLDERS_TABLE, SimpleFolderRecord.from_folder(sample_folder, "user-1").to_payload()
        )
        fake_backend.seed(NOTES_TABLE, _remote_note(sample_note))

        progress = engine.sync()

        note = store.get_note(sample_note.id)
        assert note.title == "Photosynthesis"
        assert note.tags == ["biology", "plants"]
        assert note.sync_status == SYNC_SYNCED
        assert note.original_content is None
        assert store.get_folder(sample_folder.id).name == "Biology"
        assert progress.downloaded_notes == 1
        assert progress.downloaded_folders == 1
        assert progress.current_status == "Two-way sync completed"

    def test_binary_download_decodes_content(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        fake_backend.seed(
            NOTES_TABLE, EnhancedNoteRecord.from_note(sample_note, "user-1").to_payload()
        )

        engine.sync(include_binary_data=True)

        note = store.get_note(sample_note.id)
        assert note.original_content == b"Plants turn light into sugar."
        assert note.ai_generated_content == sample_note.ai_generated_content

    def test_remote_deleted_note_is_not_created(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        fake_backend.seed(
            NOTES_TABLE, _remote_note(sample_note, deleted_at="2024-06-01T00:00:00+00:00")
        )

        engine.sync()

        assert store.find_note(sample_note.id) is None

    def test_other_users_and_malformed_rows_are_ignored(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        fake_backend.seed(NOTES_TABLE, _remote_note(sample_note, user_id="someone-else"))
        fake_backend.seed(NOTES_TABLE, {"id": "broken", "user_id": "user-1", "title": "x"})

        progress = engine.sync()

        assert store.notes(include_deleted=True) == []
        assert progress.downloaded_notes == 0

    def test_newer_remote_note_wins(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        """Test last-write-wins when the remote copy is newer."""
        sample_note.sync_status = SYNC_SYNCED
        store.add_note(sample_note)
        newer = sample_note.last_modified + timedelta(hours=2)
        fake_backend.seed(
            NOTES_TABLE,
            _remote_note(sample_note, title="Edited elsewhere", last_modified=newer.isoformat()),
        )

        progress = engine.sync()

        assert sample_note.title == "Edited elsewhere"
        assert sample_note.last_modified == newer
        assert sample_note.ai_generated_content is not None
        assert progress.resolved_conflicts == 1

    def test_newer_local_note_is_kept(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        sample_note.sync_status = SYNC_SYNCED
        store.add_note(sample_note)
        older = sample_note.last_modified - timedelta(hours=2)
        fake_backend.seed(
            NOTES_TABLE, _remote_note(sample_note, title="Stale", last_modified=older.isoformat())
        )

        progress = engine.sync()

        assert sample_note.title == "Photosynthesis"
        assert progress.resolved_conflicts == 0

    def test_newer_remote_soft_delete_hides_local_note(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        """Test that a deletion made on another device reaches an existing local note."""
        sample_note.sync_status = SYNC_SYNCED
        store.add_note(sample_note)
        newer = sample_note.last_modified + timedelta(hours=1)
        fake_backend.seed(
            NOTES_TABLE,
            _remote_note(sample_note, last_modified=newer.isoformat(), deleted_at=newer.isoformat()),
        )

        progress = engine.sync()

        assert sample_note.is_deleted
        assert sample_note.deleted_at == newer
        assert sample_note.sync_status == SYNC_SYNCED
        assert store.notes() == []
        assert store.notes(include_deleted=True) == [sample_note]
        assert progress.resolved_conflicts == 1

    def test_deleted_from_backend_note_ignores_remote_state(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_note: Note
    ) -> None:
        """Test that a note whose deletion already reached the backend is not revived."""
        sample_note.sync_status = SYNC_DELETED_FROM_BACKEND
        store.add_note(sample_note)
        newer = sample_note.last_modified + timedelta(hours=1)
        fake_backend.seed(
            NOTES_TABLE,
            _remote_note(sample_note, title="Revived", last_modified=newer.isoformat()),
        )

        progress = engine.sync()

        assert sample_note.title == "Photosynthesis"
        assert sample_note.sync_status == SYNC_DELETED_FROM_BACKEND
        assert progress.resolved_conflicts == 0
        assert store.find_note(sample_note.id) is None

    def test_newer_remote_folder_wins(
        self, engine: SyncEngine, store: NoteStore, fake_backend: FakeBackend, sample_folder: Folder
    ) -> None:
        sample_folder.sync_status = SYNC_SYNCED
        store.add_folder(sample_folder)
        payload = SimpleFolderRecord.from_folder(sample_folder, "user-1").to_payload()
        payload["name"] = "Life Sciences"
        payload["updated_at"] = (sample_folder.timestamp + timedelta(days=1)).isoformat()
        fake_backend.seed(FOLDERS_TABLE, payload)

        progress = engine.sync()

        assert sample_folder.name == "Life Sciences"
        assert progress.resolved_conflicts == 1


class TestSyncRun:
    """Tests for run-level behavior."""

    def test_requires_session(self, store: NoteStore) -> None:
        engine = SyncEngine(store, FakeBackend(authenticated=False))  # type: ignore[arg-type]

        with pytest.raises(SessionError):
            engine.sync()
        assert not engine.is_syncing

    def test_concurrent_sync_is_rejected(self, engine: SyncEngine) -> None:
        engine._lock.acquire()
        try:
            assert engine.is_syncing
            with pytest.raises(SyncInProgressError):
                engine.sync()
        finally:
            engine._lock.release()

    def test_fetch_failure_raises_and_saves_store(
        self, fake_backend: FakeBackend, store_path: Path
    ) -> None:
        """Test that a failed download still persists upload results."""
        store = NoteStore(store_path)
        engine = SyncEngine(store, fake_backend, sleep=lambda _: None)  # type: ignore[arg-type]
        fake_backend.select = MagicMock(  # type: ignore[method-assign]
            side_effect=BackendRequestError("permission denied", status_code=403)
        )

        with pytest.raises(SyncError, match="permission denied"):
            engine.sync()

        assert store_path.exists()
        assert not engine.is_syncing

    def test_progress_snapshots(
        self, engine: SyncEngine, store: NoteStore, sample_note: Note
    ) -> None:
        """Test that callbacks receive independent snapshots ending with completion."""
        store.add_note(sample_note)
        snapshots: list[SyncProgress] = []

        final = engine.sync(progress_callback=snapshots.append)

        assert snapshots[0].current_status == "Checking authentication..."
        assert snapshots[-1].current_status == "Two-way sync completed"
        assert snapshots[-1] is not final
        assert any(s.is_download_phase for s in snapshots)
        assert final.is_two_way_sync


class TestMaintenance:
    """Tests for maintenance helpers."""

    def test_fix_remote_sync_status(self, engine: SyncEngine, fake_backend: FakeBackend) -> None:
        now = datetime(2024, 5, 1, tzinfo=timezone.utc).isoformat()
        for note_id, status in (("n1", SYNC_PENDING), ("n2", SYNC_PENDING), ("n3", SYNC_SYNCED)):
            fake_backend.seed(
                NOTES_TABLE,
                {"id": note_id, "user_id": "user-1", "sync_status": status, "timestamp": now},
            )
        fake_backend.seed(FOLDERS_TABLE, {"id": "f1", "user_id": "user-1", "sync_status": SYNC_PENDING})

        assert engine.fix_remote_sync_status() == (2, 1)
        statuses = {row["sync_status"] for row in fake_backend.tables[NOTES_TABLE].values()}
        assert statuses == {SYNC_SYNCED}

    def test_purge_deleted_notes(self, engine: SyncEngine, store: NoteStore) -> None:
        store.add_note(Note(title="old", deleted_at=datetime(2020, 1, 1, tzinfo=timezone.utc)))
        store.add_note(Note(title="live"))

        assert engine.purge_deleted_notes(days=30) == 1
        assert [n.title for n in store.notes(include_deleted=True)] == ["live"]
