"""Local note and folder store persisted as a JSON file."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
from dataclasses import asdict, fields
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from studynote.exceptions import NotFoundError, StoreError
from studynote.models import (
    SYNC_DELETED_FROM_BACKEND,
    SYNC_PENDING,
    SYNC_SYNCED,
    Folder,
    Note,
    utcnow,
)
from studynote.sync.records import (
    BLOB_FIELDS,
    decode_blob,
    encode_blob,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

STORE_VERSION = 1

_NOTE_DATETIME_FIELDS = ("timestamp", "last_modified", "deleted_at")
_FOLDER_DATETIME_FIELDS = ("timestamp", "updated_at", "deleted_at")


def _note_to_dict(note: Note) -> dict[str, Any]:
    data = asdict(note)
    for name in _NOTE_DATETIME_FIELDS:
        data[name] = format_timestamp(data[name])
    for name in BLOB_FIELDS:
        data[name] = encode_blob(data[name])
    return data


def _note_from_dict(data: dict[str, Any]) -> Note:
    known = {f.name for f in fields(Note)}
    values = {key: value for key, value in data.items() if key in known}
    for name in _NOTE_DATETIME_FIELDS:
        if name in values:
            values[name] = parse_timestamp(values[name])
    for name in BLOB_FIELDS:
        if name in values:
            values[name] = decode_blob(values[name])
    values["tags"] = list(values.get("tags") or [])
    return Note(**values)


def _folder_to_dict(folder: Folder) -> dict[str, Any]:
    data = asdict(folder)
    for name in _FOLDER_DATETIME_FIELDS:
        data[name] = format_timestamp(data[name])
    return data


def _folder_from_dict(data: dict[str, Any]) -> Folder:
    known = {f.name for f in fields(Folder)}
    values = {key: value for key, value in data.items() if key in known}
    for name in _FOLDER_DATETIME_FIELDS:
        if name in values:
            values[name] = parse_timestamp(values[name])
    return Folder(**values)


class NoteStore:
    """Notes and folders kept in memory and optionally persisted to disk.

    Example:
        store = NoteStore(Path("~/.studynote/notes.json").expanduser())
        note = store.add_note(Note(title="Photosynthesis"))
        store.soft_delete_note(note.id)
        store.save()
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path else None
        self._notes: dict[str, Note] = {}
        self._folders: dict[str, Folder] = {}
        self._lock = threading.RLock()
        self.load()

    @property
    def path(self) -> Path | None:
        return self._path

    def load(self) -> None:
        """Load notes and folders from disk, if a store file exists."""
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text())
            notes = [_note_from_dict(item) for item in data.get("notes", [])]
            folders = [_folder_from_dict(item) for item in data.get("folders", [])]
        except (json.JSONDecodeError, TypeError, ValueError, AttributeError) as e:
            raise StoreError(f"Failed to load note store {self._path}: {e}") from e
        with self._lock:
            self._notes = {note.id: note for note in notes}
            self._folders = {folder.id: folder for folder in folders}
        logger.info(f"Loaded {len(notes)} notes and {len(folders)} folders from {self._path}")

    def save(self) -> None:
        """Write the store to disk. No-op for in-memory stores."""
        if not self._path:
            return
        with self._lock:
            payload = {
                "version": STORE_VERSION,
                "notes": [_note_to_dict(note) for note in self._notes.values()],
                "folders": [_folder_to_dict(folder) for folder in self._folders.values()],
            }
        text = json.dumps(payload, indent=2)
        # Written beside the store and swapped in, so the old file survives a failed save
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(text)
            os.replace(tmp_path, self._path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise StoreError(f"Failed to save note store {self._path}: {e}") from e

    # --- notes ---

    def add_note(self, note: Note) -> Note:
        with self._lock:
            self._notes[note.id] = note
        logger.debug(f"Added note {note.id}: {note.title}")
        return note

    def get_note(self, note_id: str) -> Note:
        with self._lock:
            note = self._notes.get(note_id)
        if note is None:
            raise NotFoundError(f"Note not found: {note_id}")
        return note

    def find_note(self, note_id: str) -> Note | None:
        with self._lock:
            return self._notes.get(note_id)

    def notes(self, *, include_deleted: bool = False) -> list[Note]:
        """Notes, newest first."""
        with self._lock:
            items = [n for n in self._notes.values() if include_deleted or not n.is_deleted]
        return sorted(items, key=lambda n: n.last_modified, reverse=True)

    def notes_in_folder(self, folder_id: str) -> list[Note]:
        return [note for note in self.notes() if note.folder_id == folder_id]

    def update_note(self, note_id: str, **changes: Any) -> Note:
        """Apply field changes, bump last_modified and mark the note for sync."""
        note = self.get_note(note_id)
        valid = {f.name for f in fields(Note)} - {"id"}
        for key, value in changes.items():
            if key not in valid:
                raise ValueError(f"Unknown note field: {key}")
            setattr(note, key, value)
        note.last_modified = utcnow()
        note.sync_status = SYNC_PENDING
        return note

    def soft_delete_note(self, note_id: str) -> Note:
        note = self.get_note(note_id)
        note.deleted_at = utcnow()
        note.last_modified = note.deleted_at
        note.sync_status = SYNC_PENDING
        return note

    def remove_note(self, note_id: str) -> None:
        with self._lock:
            self._notes.pop(note_id, None)

    def set_note_sync_status(self, note_id: str, status: str) -> None:
        note = self.find_note(note_id)
        if note is not None:
            note.sync_status = status

    def notes_needing_sync(self) -> list[Note]:
        """Notes not yet synced, including soft-deleted ones, newest first."""
        with self._lock:
            items = [
                n
                for n in self._notes.values()
                if n.sync_status not in (SYNC_SYNCED, SYNC_DELETED_FROM_BACKEND)
            ]
        return sorted(items, key=lambda n: n.last_modified, reverse=True)

    # --- folders ---

    def add_folder(self, folder: Folder) -> Folder:
        with self._lock:
            self._folders[folder.id] = folder
        return folder

    def get_folder(self, folder_id: str) -> Folder:
        with self._lock:
            folder = self._folders.get(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder not found: {folder_id}")
        return folder

    def find_folder(self, folder_id: str) -> Folder | None:
        with self._lock:
            return self._folders.get(folder_id)

    def folders(self, *, include_deleted: bool = False) -> list[Folder]:
        """Folders ordered by sort order, then name."""
        with self._lock:
            items = [f for f in self._folders.values() if include_deleted or not f.is_deleted]
        return sorted(items, key=lambda f: (f.sort_order, f.name))

    def update_folder(self, folder_id: str, **changes: Any) -> Folder:
        folder = self.get_folder(folder_id)
        valid = {f.name for f in fields(Folder)} - {"id"}
        for key, value in changes.items():
            if key not in valid:
                raise ValueError(f"Unknown folder field: {key}")
            setattr(folder, key, value)
        folder.updated_at = utcnow()
        folder.sync_status = SYNC_PENDING
        return folder

    def soft_delete_folder(self, folder_id: str) -> Folder:
        """Soft-delete a folder and detach its notes."""
        folder = self.get_folder(folder_id)
        folder.deleted_at = utcnow()
        folder.updated_at = folder.deleted_at
        folder.sync_status = SYNC_PENDING
        for note in self.notes_in_folder(folder_id):
            self.update_note(note.id, folder_id=None)
        return folder

    def remove_folder(self, folder_id: str) -> None:
        with self._lock:
            self._folders.pop(folder_id, None)

    def set_folder_sync_status(self, folder_id: str, status: str) -> None:
        folder = self.find_folder(folder_id)
        if folder is not None:
            folder.sync_status = status

    def folders_needing_sync(self) -> list[Folder]:
        with self._lock:
            items = [
                f
                for f in self._folders.values()
                if f.sync_status not in (SYNC_SYNCED, SYNC_DELETED_FROM_BACKEND)
            ]
        return sorted(items, key=lambda f: f.modified_at, reverse=True)

    # --- cleanup ---

    def cleanup_deleted_items(self) -> int:
        """Permanently drop records whose deletion reached the backend."""
        with self._lock:
            note_ids = [
                n.id for n in self._notes.values() if n.sync_status == SYNC_DELETED_FROM_BACKEND
            ]
            folder_ids = [
                f.id for f in self._folders.values() if f.sync_status == SYNC_DELETED_FROM_BACKEND
            ]
            for note_id in note_ids:
                del self._notes[note_id]
            for folder_id in folder_ids:
                del self._folders[folder_id]
        removed = len(note_ids) + len(folder_ids)
        if removed:
            logger.info(f"Cleaned up {len(note_ids)} notes and {len(folder_ids)} folders")
        return removed

    def purge_deleted_notes(self, older_than_days: int = 30, *, now: datetime | None = None) -> int:
        """Permanently remove notes soft-deleted more than ``older_than_days`` ago."""
        cutoff = (now or utcnow()) - timedelta(days=older_than_days)
        with self._lock:
            old_ids = [
                n.id
                for n in self._notes.values()
                if n.deleted_at is not None and n.deleted_at < cutoff
            ]
            for note_id in old_ids:
                del self._notes[note_id]
        logger.info(f"Purged {len(old_ids)} notes deleted before {cutoff.isoformat()}")
        return len(old_ids)
