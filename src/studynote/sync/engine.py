"""Two-way sync between the local note store and the backend tables.

A run uploads pending folders, then pending notes; in two-way mode it then
downloads the user's folders and notes and resolves conflicts by
last-write-wins. Records whose deletion reached the backend are dropped from
the store at the end of the run.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable

from studynote.backend import BackendClient
from studynote.exceptions import BackendError, SyncError, SyncInProgressError
from studynote.models import (
    SYNC_DELETED_FROM_BACKEND,
    SYNC_FAILED,
    SYNC_PENDING,
    SYNC_SYNCED,
    Folder,
    Note,
)
from studynote.store import NoteStore
from studynote.sync.progress import ProgressThrottle, SyncProgress
from studynote.sync.records import (
    EnhancedNoteRecord,
    SimpleFolderRecord,
    SimpleNoteRecord,
    wire_keys,
)
from studynote.sync.recovery import execute_with_retry

logger = logging.getLogger(__name__)

NOTES_TABLE = "notes"
FOLDERS_TABLE = "folders"

ProgressCallback = Callable[[SyncProgress], None]


class SyncEngine:
    """Synchronizes a NoteStore with the backend for the signed-in user.

    Only one sync runs at a time per engine.

    Example:
        engine = SyncEngine(store, backend)
        progress = engine.sync(include_binary_data=True)
        print(f"{progress.synced_notes}/{progress.total_notes} notes uploaded")
    """

    def __init__(
        self,
        store: NoteStore,
        backend: BackendClient,
        *,
        sleep: Callable[[float], None] = time.sleep,
        throttle: ProgressThrottle | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._sleep = sleep
        self._throttle = throttle or ProgressThrottle()
        self._lock = threading.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def _retry(self, operation: Callable[[], Any], name: str) -> Any:
        return execute_with_retry(operation, name, sleep=self._sleep)

    def _notify(self, progress: SyncProgress, callback: ProgressCallback | None) -> None:
        if callback is None:
            return
        snapshot = replace(progress)
        self._throttle.schedule(lambda: callback(snapshot))

    def sync(
        self,
        include_binary_data: bool = False,
        two_way: bool = True,
        progress_callback: ProgressCallback | None = None,
    ) -> SyncProgress:
        """Run a sync and return its final progress.

        Args:
            include_binary_data: Send and receive note content blobs
            two_way: Also download remote changes after uploading
            progress_callback: Receives throttled SyncProgress snapshots

        Raises:
            SyncInProgressError: If another sync is running on this engine
            SessionError: If the backend has no authenticated session
            SyncError: If fetching remote records fails
        """
        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError()
        try:
            progress = SyncProgress(
                include_binary_data=include_binary_data,
                is_two_way_sync=two_way,
                current_status="Checking authentication...",
            )
            self._notify(progress, progress_callback)
            user_id = self._backend.get_session().user_id

            logger.info(f"Starting {'two-way' if two_way else 'one-way'} sync for user {user_id}")
            try:
                progress.current_status = "Uploading local changes..."
                self._upload_folders(user_id, progress, progress_callback)
                self._upload_notes(user_id, include_binary_data, progress, progress_callback)

                if two_way:
                    progress.is_download_phase = True
                    progress.current_status = "Downloading remote changes..."
                    self._download_folders(user_id, progress, progress_callback)
                    self._download_notes(user_id, include_binary_data, progress, progress_callback)
            except BackendError as e:
                progress.current_status = f"Sync failed: {e}"
                self._notify(progress, progress_callback)
                raise SyncError(f"Sync failed: {e}") from e
            finally:
                self._store.cleanup_deleted_items()
                self._store.save()

            progress.current_status = "Two-way sync completed" if two_way else "Upload completed"
            self._notify(progress, progress_callback)
            logger.info(
                f"Sync completed - folders {progress.synced_folders}/{progress.total_folders}, "
                f"notes {progress.synced_notes}/{progress.total_notes}, "
                f"downloaded {progress.downloaded_folders} folders and {progress.downloaded_notes} notes, "
                f"resolved conflicts {progress.resolved_conflicts}"
            )
            return progress
        finally:
            self._throttle.flush()
            self._lock.release()

    # --- upload ---

    def _delete_remote(self, table: str, record_id: str, user_id: str) -> None:
        # Scoped by user so a client can only delete its own rows
        self._retry(
            lambda: self._backend.delete(table, {"id": record_id, "user_id": user_id}),
            f"Delete {table} {record_id}",
        )

    def _upsert_remote(self, table: str, payload: dict[str, Any], user_id: str) -> None:
        record_id = payload["id"]
        existing = self._retry(
            lambda: self._backend.select(table, columns="id", filters={"id": record_id}),
            f"Check {table} {record_id}",
        )
        if existing:
            self._retry(
                lambda: self._backend.update(table, payload, {"id": record_id, "user_id": user_id}),
                f"Update {table} {record_id}",
            )
        else:
            self._retry(lambda: self._backend.insert(table, payload), f"Insert {table} {record_id}")

    def _upload_folders(
        self, user_id: str, progress: SyncProgress, callback: ProgressCallback | None
    ) -> None:
        folders = self._store.folders_needing_sync()
        progress.total_folders = len(folders)
        progress.current_status = f"Syncing {len(folders)} folders..."
        self._notify(progress, callback)

        for folder in folders:
            try:
                if folder.is_deleted:
                    self._delete_remote(FOLDERS_TABLE, folder.id, user_id)
                    folder.sync_status = SYNC_DELETED_FROM_BACKEND
                else:
                    record = SimpleFolderRecord.from_folder(folder, user_id)
                    self._upsert_remote(FOLDERS_TABLE, record.to_payload(), user_id)
                    folder.sync_status = SYNC_SYNCED
                progress.synced_folders += 1
            except Exception as e:
                logger.error(f"Failed to sync folder {folder.id} ({folder.name}): {e}")
                folder.sync_status = SYNC_FAILED
                progress.failed_folders += 1
            self._notify(progress, callback)

    def _upload_notes(
        self,
        user_id: str,
        include_binary_data: bool,
        progress: SyncProgress,
        callback: ProgressCallback | None,
    ) -> None:
        notes = self._store.notes_needing_sync()
        progress.total_notes = len(notes)
        progress.current_status = f"Syncing {len(notes)} notes..."
        self._notify(progress, callback)

        for note in notes:
            try:
                if note.is_deleted:
                    self._delete_remote(NOTES_TABLE, note.id, user_id)
                    note.sync_status = SYNC_DELETED_FROM_BACKEND
                else:
                    record: SimpleNoteRecord
                    if include_binary_data:
                        record = EnhancedNoteRecord.from_note(note, user_id)
                        logger.debug(f"Note {note.id} carries {record.total_size:.0f} bytes of content")
                    else:
                        record = SimpleNoteRecord.from_note(note, user_id)
                    self._upsert_remote(NOTES_TABLE, record.to_payload(), user_id)
                    note.sync_status = SYNC_SYNCED
                progress.synced_notes += 1
            except Exception as e:
                logger.error(f"Failed to sync note {note.id} ({note.title}): {e}")
                note.sync_status = SYNC_FAILED
                progress.failed_notes += 1
            self._notify(progress, callback)

    # --- download ---

    def _fetch_rows(self, table: str, columns: list[str], user_id: str) -> list[dict[str, Any]]:
        return self._retry(  # type: ignore[no-any-return]
            lambda: self._backend.select(
                table, columns=",".join(columns), filters={"user_id": user_id}
            ),
            f"Download {table}",
        )

    def _download_folders(
        self, user_id: str, progress: SyncProgress, callback: ProgressCallback | None
    ) -> None:
        rows = self._fetch_rows(FOLDERS_TABLE, wire_keys(SimpleFolderRecord), user_id)
        progress.total_folders = max(progress.total_folders, len(rows))
        progress.current_status = f"Downloading {len(rows)} folders..."
        self._notify(progress, callback)

        for row in rows:
            try:
                remote = SimpleFolderRecord.from_payload(row)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed remote folder {row.get('id')}: {e}")
                continue
            local = self._store.find_folder(remote.id)
            if local is None:
                if remote.deleted_at is None:
                    self._store.add_folder(remote.to_folder())
            elif self._remote_wins(remote.modified_at, local):
                remote.apply_to(local)
                progress.resolved_conflicts += 1
            progress.downloaded_folders += 1
            self._notify(progress, callback)

    def _download_notes(
        self,
        user_id: str,
        include_binary_data: bool,
        progress: SyncProgress,
        callback: ProgressCallback | None,
    ) -> None:
        record_type = EnhancedNoteRecord if include_binary_data else SimpleNoteRecord
        rows = self._fetch_rows(NOTES_TABLE, wire_keys(record_type), user_id)
        progress.total_notes = max(progress.total_notes, len(rows))
        progress.current_status = f"Downloading {len(rows)} notes..."
        self._notify(progress, callback)

        for row in rows:
            try:
                remote = record_type.from_payload(row)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed remote note {row.get('id')}: {e}")
                continue
            local = self._store.find_note(remote.id)
            if local is None:
                if remote.deleted_at is None:
                    self._store.add_note(remote.to_note())
            elif self._remote_wins(remote.last_modified, local):
                remote.apply_to(local)
                progress.resolved_conflicts += 1
            progress.downloaded_notes += 1
            self._notify(progress, callback)

    @staticmethod
    def _remote_wins(remote_modified: Any, local: Note | Folder) -> bool:
        """Last-write-wins: the remote copy replaces the local one only if newer."""
        if local.sync_status == SYNC_DELETED_FROM_BACKEND:
            return False
        local_modified = local.modified_at if isinstance(local, Folder) else local.last_modified
        return bool(remote_modified > local_modified)

    # --- maintenance ---

    def fix_remote_sync_status(self) -> tuple[int, int]:
        """Mark remote rows stuck at ``pending`` as ``synced``.

        Returns:
            (notes fixed, folders fixed)
        """
        user_id = self._backend.get_session().user_id
        fixed = []
        for table in (NOTES_TABLE, FOLDERS_TABLE):
            rows = self._retry(
                lambda table=table: self._backend.update(
                    table,
                    {"sync_status": SYNC_SYNCED},
                    {"user_id": user_id, "sync_status": SYNC_PENDING},
                ),
                f"Fix {table} sync status",
            )
            fixed.append(len(rows or []))
        logger.info(f"Fixed remote sync status - notes: {fixed[0]}, folders: {fixed[1]}")
        return fixed[0], fixed[1]

    def purge_deleted_notes(self, days: int = 30) -> int:
        """Permanently remove notes soft-deleted more than ``days`` ago."""
        removed = self._store.purge_deleted_notes(days)
        self._store.save()
        return removed
