"""Exception hierarchy for the studynote library."""

from __future__ import annotations

from typing import Any


class StudyNoteError(Exception):
    """Base exception for all studynote errors."""

    pass


# --- YouTube ---


class YouTubeError(StudyNoteError):
    """Base exception for YouTube transcript and metadata errors."""

    pass


class InvalidVideoIdError(YouTubeError):
    """Raised when a URL or string does not contain a YouTube video id."""

    def __init__(self, message: str = "Invalid YouTube video ID") -> None:
        super().__init__(message)


class TranscriptNotAvailableError(YouTubeError):
    """Raised when a video has no caption tracks."""

    def __init__(self, message: str = "Transcript not available for this video") -> None:
        super().__init__(message)


class TranscriptParsingError(YouTubeError):
    """Raised when the watch page or timed-text payload cannot be parsed."""

    pass


class YouTubeNetworkError(YouTubeError):
    """Raised when a request to YouTube fails."""

    pass


# --- Web scraping ---


class WebScrapingError(StudyNoteError):
    """Base exception for web article scraping."""

    pass


class InvalidURLError(WebScrapingError):
    """Raised for malformed or non-http(s) URLs."""

    pass


class WebFetchError(WebScrapingError):
    """Raised when the page cannot be fetched."""

    pass


class EmptyContentError(WebScrapingError):
    """Raised when no readable content is found on the page."""

    def __init__(self, message: str = "No content found on the page") -> None:
        super().__init__(message)


# --- Generation ---


class GenerationError(StudyNoteError):
    """Base exception for AI generation errors."""

    pass


class GenerationConfigError(GenerationError):
    """Raised when the completion client is not configured."""

    pass


class EmptyTranscriptError(GenerationError):
    """Raised when generation is requested for empty input."""

    def __init__(self, message: str = "Empty transcript provided") -> None:
        super().__init__(message)


class CompletionAPIError(GenerationError):
    """Raised when the completion API call fails."""

    pass


class InvalidResponseError(GenerationError):
    """Raised when the completion API returns no usable content."""

    def __init__(self, message: str = "Invalid response from completion API") -> None:
        super().__init__(message)


class InvalidResponseFormatError(GenerationError):
    """Raised when a structured (JSON) response cannot be parsed."""

    def __init__(self, message: str = "Invalid response format") -> None:
        super().__init__(message)


class InvalidFlashcardFormatError(GenerationError):
    """Raised when a flashcard item lacks a front or back."""

    def __init__(self, message: str = "Invalid flashcard format in response") -> None:
        super().__init__(message)


class InvalidQuizQuestionFormatError(GenerationError):
    """Raised when a quiz item is malformed."""

    def __init__(self, message: str = "Invalid quiz question format in response") -> None:
        super().__init__(message)


# --- Backend ---


class BackendError(StudyNoteError):
    """Base exception for backend-as-a-service errors."""

    pass


class AuthenticationError(BackendError):
    """Raised when authentication fails."""

    pass


class EmailConfirmationRequiredError(AuthenticationError):
    """Raised when sign-up succeeded but the email must be confirmed first.

    The confirmation_context attribute carries what verify_email() needs.
    """

    def __init__(self, message: str, confirmation_context: dict[str, Any]) -> None:
        super().__init__(message)
        self.confirmation_context = confirmation_context


class SessionError(BackendError):
    """Raised when there's an issue with the session state."""

    pass


class BackendRequestError(BackendError):
    """Raised when a REST call to the backend fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# --- Local store and sync ---


class StoreError(StudyNoteError):
    """Raised when the local note store cannot be read or written."""

    pass


class NotFoundError(StoreError):
    """Raised when a note or folder id is unknown."""

    pass


class SyncError(StudyNoteError):
    """Base exception for sync errors."""

    pass


class SyncInProgressError(SyncError):
    """Raised when a sync is requested while another one is running."""

    def __init__(self, message: str = "A sync is already in progress") -> None:
        super().__init__(message)
