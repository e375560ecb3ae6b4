"""Wire-format projections of local notes and folders.

Three shapes travel to and from the backend tables:

- ``SimpleFolderRecord``: folder metadata.
- ``SimpleNoteRecord``: note metadata only, no content blobs.
- ``EnhancedNoteRecord``: note metadata plus the content blobs encoded as
  base64 strings. Size counters are kept locally for reporting and are never
  sent; neither is ``deleted_at``, which the enhanced table does not carry.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from studynote.models import (
    PROCESSING_COMPLETED,
    SOURCE_TEXT,
    SYNC_SYNCED,
    Folder,
    Note,
)

DEFAULT_NOTE_TITLE = "Untitled Note"

BLOB_FIELDS = (
    "original_content",
    "ai_generated_content",
    "sections",
    "mind_map",
    "supplementary_materials",
)


# --- base64 helpers ---


def encode_blob(data: bytes | None) -> str | None:
    """Encode binary content for a JSON payload."""
    if data is None:
        return None
    return base64.b64encode(data).decode("ascii")


def decode_blob(value: str | None) -> bytes | None:
    """Decode a base64 payload field, returning None if it is not valid base64."""
    if value is None:
        return None
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None


def is_valid_base64(value: str) -> bool:
    return decode_blob(value) is not None


def blob_size(data: bytes | None) -> float | None:
    """Size of a blob in bytes, as the float counters the tables use."""
    if data is None:
        return None
    return float(len(data))


# --- timestamps and tags ---


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 value from the backend; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = date_parser.isoparse(str(value))
    if parsed.tzinfo is None or parsed.tzinfo.utcoffset(parsed) is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def join_tags(tags: list[str]) -> str | None:
    cleaned = [tag.strip() for tag in tags if tag and tag.strip()]
    return ",".join(cleaned) if cleaned else None


def split_tags(value: str | None) -> list[str]:
    if not value:
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def _require(payload: dict[str, Any], key: str) -> Any:
    if key not in payload or payload[key] is None:
        raise ValueError(f"Missing required field '{key}' in sync payload")
    return payload[key]


# --- folders ---


@dataclass(frozen=True)
class SimpleFolderRecord:
    """Metadata-only projection of a folder."""

    id: str
    name: str
    color: str
    timestamp: datetime
    sort_order: int
    user_id: str
    updated_at: datetime | None = None
    sync_status: str | None = SYNC_SYNCED
    deleted_at: datetime | None = None

    @classmethod
    def from_folder(cls, folder: Folder, user_id: str) -> SimpleFolderRecord:
        return cls(
            id=folder.id,
            name=folder.name,
            color=folder.color,
            timestamp=folder.timestamp,
            sort_order=folder.sort_order,
            user_id=user_id,
            updated_at=folder.updated_at,
            sync_status=SYNC_SYNCED,
            deleted_at=folder.deleted_at,
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SimpleFolderRecord:
        return cls(
            id=str(_require(payload, "id")),
            name=_require(payload, "name"),
            color=payload.get("color") or "blue",
            timestamp=parse_timestamp(_require(payload, "timestamp")),  # type: ignore[arg-type]
            sort_order=int(payload.get("sort_order") or 0),
            user_id=str(_require(payload, "user_id")),
            updated_at=parse_timestamp(payload.get("updated_at")),
            sync_status=payload.get("sync_status"),
            deleted_at=parse_timestamp(payload.get("deleted_at")),
        )

    @property
    def modified_at(self) -> datetime:
        return self.updated_at or self.timestamp

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "timestamp": format_timestamp(self.timestamp),
            "sort_order": self.sort_order,
            "user_id": self.user_id,
            "updated_at": format_timestamp(self.updated_at),
            "sync_status": self.sync_status,
            "deleted_at": format_timestamp(self.deleted_at),
        }

    def apply_to(self, folder: Folder) -> Folder:
        """Overwrite a local folder with this remote state."""
        folder.id = self.id
        folder.name = self.name
        folder.color = self.color
        folder.timestamp = self.timestamp
        folder.sort_order = self.sort_order
        folder.updated_at = self.updated_at or datetime.now(timezone.utc)
        folder.sync_status = SYNC_SYNCED
        folder.deleted_at = self.deleted_at
        return folder

    def to_folder(self) -> Folder:
        return self.apply_to(Folder(name=self.name))


# --- notes ---


@dataclass(frozen=True)
class SimpleNoteRecord:
    """Metadata-only projection of a note."""

    id: str
    title: str
    source_type: str
    timestamp: datetime
    last_modified: datetime
    is_favorite: bool
    processing_status: str
    user_id: str
    folder_id: str | None = None
    key_points: str | None = None
    citations: str | None = None
    duration: float | None = None
    language_code: str | None = None
    source_url: str | None = None
    tags: str | None = None
    transcript: str | None = None
    video_id: str | None = None
    sync_status: str | None = SYNC_SYNCED
    deleted_at: datetime | None = None

    @classmethod
    def _metadata_kwargs(cls, note: Note, user_id: str) -> dict[str, Any]:
        return {
            "id": note.id,
            "title": note.title or DEFAULT_NOTE_TITLE,
            "source_type": note.source_type or SOURCE_TEXT,
            "timestamp": note.timestamp,
            "last_modified": note.last_modified,
            "is_favorite": note.is_favorite,
            "processing_status": note.processing_status or PROCESSING_COMPLETED,
            "user_id": user_id,
            "folder_id": note.folder_id,
            "key_points": note.key_points,
            "citations": note.citations,
            "duration": note.duration,
            "language_code": note.language_code,
            "source_url": note.source_url,
            "tags": join_tags(note.tags),
            "transcript": note.transcript,
            "video_id": note.video_id,
            # The remote copy is always recorded as synced
            "sync_status": SYNC_SYNCED,
        }

    @classmethod
    def _payload_kwargs(cls, payload: dict[str, Any]) -> dict[str, Any]:
        duration = payload.get("duration")
        folder_id = payload.get("folder_id")
        return {
            "id": str(_require(payload, "id")),
            "title": payload.get("title") or DEFAULT_NOTE_TITLE,
            "source_type": payload.get("source_type") or SOURCE_TEXT,
            "timestamp": parse_timestamp(_require(payload, "timestamp")),
            "last_modified": parse_timestamp(_require(payload, "last_modified")),
            "is_favorite": bool(payload.get("is_favorite", False)),
            "processing_status": payload.get("processing_status") or PROCESSING_COMPLETED,
            "user_id": str(_require(payload, "user_id")),
            "folder_id": str(folder_id) if folder_id else None,
            "key_points": payload.get("key_points"),
            "citations": payload.get("citations"),
            "duration": float(duration) if duration is not None else None,
            "language_code": payload.get("language_code"),
            "source_url": payload.get("source_url"),
            "tags": payload.get("tags"),
            "transcript": payload.get("transcript"),
            "video_id": payload.get("video_id"),
            "sync_status": payload.get("sync_status"),
        }

    @classmethod
    def from_note(cls, note: Note, user_id: str) -> SimpleNoteRecord:
        return cls(**cls._metadata_kwargs(note, user_id), deleted_at=note.deleted_at)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SimpleNoteRecord:
        return cls(
            **cls._payload_kwargs(payload),
            deleted_at=parse_timestamp(payload.get("deleted_at")),
        )

    def _metadata_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "source_type": self.source_type,
            "timestamp": format_timestamp(self.timestamp),
            "last_modified": format_timestamp(self.last_modified),
            "is_favorite": self.is_favorite,
            "processing_status": self.processing_status,
            "user_id": self.user_id,
            "folder_id": self.folder_id,
            "key_points": self.key_points,
            "citations": self.citations,
            "duration": self.duration,
            "language_code": self.language_code,
            "source_url": self.source_url,
            "tags": self.tags,
            "transcript": self.transcript,
            "video_id": self.video_id,
            "sync_status": self.sync_status,
        }

    def to_payload(self) -> dict[str, Any]:
        payload = self._metadata_payload()
        payload["deleted_at"] = format_timestamp(self.deleted_at)
        return payload

    def apply_to(self, note: Note) -> Note:
        """Overwrite the metadata of a local note with this remote state."""
        note.id = self.id
        note.title = self.title
        note.source_type = self.source_type
        note.timestamp = self.timestamp
        note.last_modified = self.last_modified
        note.is_favorite = self.is_favorite
        note.processing_status = self.processing_status
        note.folder_id = self.folder_id
        note.key_points = self.key_points
        note.citations = self.citations
        note.duration = self.duration
        note.language_code = self.language_code
        note.source_url = self.source_url
        note.tags = split_tags(self.tags)
        note.transcript = self.transcript
        note.video_id = self.video_id
        note.deleted_at = self.deleted_at
        note.sync_status = SYNC_SYNCED
        return note

    def to_note(self) -> Note:
        return self.apply_to(Note(title=self.title))


@dataclass(frozen=True)
class EnhancedNoteRecord(SimpleNoteRecord):
    """Note projection that also carries base64-encoded content blobs."""

    original_content: str | None = None
    ai_generated_content: str | None = None
    sections: str | None = None
    mind_map: str | None = None
    supplementary_materials: str | None = None

    original_content_size: float | None = None
    ai_generated_content_size: float | None = None
    sections_size: float | None = None
    mind_map_size: float | None = None
    supplementary_materials_size: float | None = None

    @classmethod
    def from_note(cls, note: Note, user_id: str) -> EnhancedNoteRecord:
        kwargs = cls._metadata_kwargs(note, user_id)
        for name in BLOB_FIELDS:
            blob = getattr(note, name)
            kwargs[name] = encode_blob(blob)
            kwargs[f"{name}_size"] = blob_size(blob)
        return cls(**kwargs)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> EnhancedNoteRecord:
        kwargs = cls._payload_kwargs(payload)
        for name in BLOB_FIELDS:
            kwargs[name] = payload.get(name)
        return cls(**kwargs)

    @property
    def total_size(self) -> float:
        return sum(getattr(self, f"{name}_size") or 0.0 for name in BLOB_FIELDS)

    def to_payload(self) -> dict[str, Any]:
        payload = self._metadata_payload()
        for name in BLOB_FIELDS:
            payload[name] = getattr(self, name)
        return payload

    def apply_to(self, note: Note) -> Note:
        super().apply_to(note)
        for name in BLOB_FIELDS:
            decoded = decode_blob(getattr(self, name))
            # Invalid base64 leaves the local blob untouched
            if decoded is not None:
                setattr(note, name, decoded)
        return note


def wire_keys(record_type: type) -> list[str]:
    """Field names a record type puts on the wire."""
    excluded = {f"{name}_size" for name in BLOB_FIELDS}
    if issubclass(record_type, EnhancedNoteRecord):
        excluded.add("deleted_at")
    return [f.name for f in fields(record_type) if f.name not in excluded]
