"""StudyNote - Turn YouTube videos, web pages and documents into AI study notes.

Example usage:
    from studynote import GenerationService, GeminiCompletionClient, NoteStore, YouTubeClient

    store = NoteStore("notes.json")
    service = GenerationService(GeminiCompletionClient(api_key))

    with YouTubeClient() as youtube:
        transcript = youtube.get_transcript("https://youtu.be/dQw4w9WgXcQ")

    note = service.create_note_from_transcript(transcript.text, video_id=transcript.video_id)
    store.add_note(note)
    store.save()

    # Sync with the backend
    with BackendClient(url, key, "user@example.com", "password") as backend:
        SyncEngine(store, backend).sync(include_binary_data=True)
"""

from studynote.backend import BackendClient
from studynote.exceptions import (
    AuthenticationError,
    BackendError,
    BackendRequestError,
    EmailConfirmationRequiredError,
    GenerationError,
    SessionError,
    StoreError,
    StudyNoteError,
    SyncError,
    SyncInProgressError,
    WebScrapingError,
    YouTubeError,
)
from studynote.generation import CompletionClient, GeminiCompletionClient, GenerationService
from studynote.models import (
    ChatMessage,
    Flashcard,
    Folder,
    Note,
    QuizQuestion,
    QuizResult,
    Transcript,
    TranscriptSegment,
    VideoMetadata,
)
from studynote.store import NoteStore
from studynote.sync.engine import SyncEngine
from studynote.sync.progress import SyncProgress
from studynote.web import WebArticle, WebScraper
from studynote.youtube import YouTubeClient

__version__ = "0.1.0"

__all__ = [
    # Clients and services
    "BackendClient",
    "GenerationService",
    "CompletionClient",
    "GeminiCompletionClient",
    "NoteStore",
    "SyncEngine",
    "WebScraper",
    "YouTubeClient",
    # Models
    "ChatMessage",
    "Flashcard",
    "Folder",
    "Note",
    "QuizQuestion",
    "QuizResult",
    "SyncProgress",
    "Transcript",
    "TranscriptSegment",
    "VideoMetadata",
    "WebArticle",
    # Exceptions
    "StudyNoteError",
    "AuthenticationError",
    "BackendError",
    "BackendRequestError",
    "EmailConfirmationRequiredError",
    "GenerationError",
    "SessionError",
    "StoreError",
    "SyncError",
    "SyncInProgressError",
    "WebScrapingError",
    "YouTubeError",
]
