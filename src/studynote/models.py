"""Data models for the studynote library."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

# Source types
SOURCE_AUDIO = "audio"
SOURCE_RECORDING = "recording"
SOURCE_TEXT = "text"
SOURCE_VIDEO = "video"
SOURCE_UPLOAD = "upload"
SOURCE_WEB = "web"

# Processing status
PROCESSING_PENDING = "pending"
PROCESSING_IN_PROGRESS = "processing"
PROCESSING_COMPLETED = "completed"
PROCESSING_FAILED = "failed"

# Sync status
SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"
SYNC_FAILED = "failed"
SYNC_DELETED_FROM_BACKEND = "deleted_from_backend"

# Chat roles
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Folder:
    """A user folder grouping notes."""

    name: str
    color: str = "blue"
    sort_order: int = 0
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None
    sync_status: str = SYNC_PENDING
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def modified_at(self) -> datetime:
        """Timestamp used for last-write-wins comparisons."""
        return self.updated_at or self.timestamp


@dataclass
class Note:
    """A captured or generated study item."""

    title: str
    source_type: str = SOURCE_TEXT
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    last_modified: datetime = field(default_factory=utcnow)
    processing_status: str = PROCESSING_COMPLETED
    is_favorite: bool = False
    tags: list[str] = field(default_factory=list)
    folder_id: str | None = None
    key_points: str | None = None
    citations: str | None = None
    duration: float | None = None
    language_code: str | None = None
    source_url: str | None = None
    transcript: str | None = None
    video_id: str | None = None
    original_content: bytes | None = None
    ai_generated_content: bytes | None = None
    sections: bytes | None = None
    mind_map: bytes | None = None
    supplementary_materials: bytes | None = None
    sync_status: str = SYNC_PENDING
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def content_text(self) -> str:
        """Best readable text for the note: AI content, else original content."""
        for blob in (self.ai_generated_content, self.original_content):
            if blob:
                return blob.decode("utf-8", errors="replace")
        return self.transcript or ""


@dataclass(frozen=True)
class TranscriptSegment:
    """A timed piece of caption text."""

    text: str
    start_time: float
    end_time: float


@dataclass(frozen=True)
class Transcript:
    """Plain-text transcript of a video with its timed segments."""

    video_id: str
    text: str
    language: str | None = None
    segments: tuple[TranscriptSegment, ...] = ()


@dataclass(frozen=True)
class VideoMetadata:
    """Information about a YouTube video."""

    video_id: str
    title: str
    thumbnail_url: str | None = None
    duration: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Flashcard:
    """A question/answer study card."""

    front: str
    back: str


@dataclass(frozen=True)
class QuizQuestion:
    """A multiple-choice question with exactly four options."""

    question: str
    options: tuple[str, ...]
    correct_answer: int
    explanation: str | None = None

    def grade(self, selected_answer: int) -> QuizResult:
        return QuizResult(
            question=self.question,
            selected_answer=selected_answer,
            correct_answer=self.correct_answer,
        )


@dataclass(frozen=True)
class QuizResult:
    """Outcome of answering one quiz question."""

    question: str
    selected_answer: int
    correct_answer: int
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def is_correct(self) -> bool:
        return self.selected_answer == self.correct_answer


@dataclass(frozen=True)
class ChatMessage:
    """A message in a chat about a note."""

    role: str
    content: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Session:
    """An authenticated backend session."""

    access_token: str
    user_id: str
    email: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= utcnow()
