"""Study material generation on top of a completion client."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from studynote.exceptions import (
    EmptyTranscriptError,
    InvalidFlashcardFormatError,
    InvalidQuizQuestionFormatError,
    InvalidResponseError,
    InvalidResponseFormatError,
)
from studynote.generation import prompts
from studynote.generation.completion import CompletionClient
from studynote.models import (
    PROCESSING_COMPLETED,
    ROLE_ASSISTANT,
    ROLE_USER,
    SOURCE_VIDEO,
    SYNC_PENDING,
    ChatMessage,
    Flashcard,
    Note,
    QuizQuestion,
)
from studynote.sync.records import DEFAULT_NOTE_TITLE

logger = logging.getLogger(__name__)

# Rough number of chunks in a streamed note, used to estimate progress
ESTIMATED_TOTAL_CHUNKS = 150
MAX_STREAM_PROGRESS = 0.95
DEFAULT_CARD_COUNT = 15
QUIZ_OPTION_COUNT = 4


def _strip_code_fences(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()


def _load_items(text: str, key: str) -> list[Any]:
    """Parse a JSON array, or an object holding the array under ``key``."""
    try:
        data = json.loads(_strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise InvalidResponseFormatError(f"Invalid response format: {e}") from e
    if isinstance(data, dict) and isinstance(data.get(key), list):
        data = data[key]
    if not isinstance(data, list):
        raise InvalidResponseFormatError()
    return data


def parse_flashcards(text: str) -> list[Flashcard]:
    """Parse a completion into flashcards.

    Raises:
        InvalidResponseFormatError: If the text is not the expected JSON shape
        InvalidFlashcardFormatError: If an item lacks a string front or back
    """
    cards = []
    for item in _load_items(text, "flashcards"):
        if not isinstance(item, dict):
            raise InvalidFlashcardFormatError()
        front, back = item.get("front"), item.get("back")
        if not isinstance(front, str) or not isinstance(back, str):
            raise InvalidFlashcardFormatError()
        cards.append(Flashcard(front=front, back=back))
    return cards


def parse_quiz_questions(text: str) -> list[QuizQuestion]:
    """Parse a completion into four-option quiz questions.

    Raises:
        InvalidResponseFormatError: If the text is not the expected JSON shape
        InvalidQuizQuestionFormatError: If an item is malformed
    """
    questions = []
    for item in _load_items(text, "questions"):
        if not isinstance(item, dict):
            raise InvalidQuizQuestionFormatError()
        question = item.get("question")
        options = item.get("options")
        correct = item.get("correctAnswer")
        if (
            not isinstance(question, str)
            or not isinstance(options, list)
            or len(options) != QUIZ_OPTION_COUNT
            or not all(isinstance(option, str) for option in options)
            or isinstance(correct, bool)
            or not isinstance(correct, int)
            or not 0 <= correct < QUIZ_OPTION_COUNT
        ):
            raise InvalidQuizQuestionFormatError()
        explanation = item.get("explanation")
        questions.append(
            QuizQuestion(
                question=question,
                options=tuple(options),
                correct_answer=correct,
                explanation=explanation if isinstance(explanation, str) else None,
            )
        )
    return questions


def clean_title(text: str) -> str:
    """Strip whitespace and any quotes wrapped around a generated title."""
    title = text.strip()
    while len(title) >= 2 and title[0] == title[-1] and title[0] in "\"'":
        title = title[1:-1].strip()
    return title


class GenerationService:
    """Generates notes, titles, flashcards, quizzes and chat answers.

    Example:
        service = GenerationService(GeminiCompletionClient(api_key))
        note = service.create_note_from_transcript(transcript.text, language="en")
        cards = service.generate_flashcards(note.content_text, note.title)
    """

    def __init__(self, client: CompletionClient) -> None:
        self._client = client

    def generate_note(self, transcript: str, language: str | None = None) -> str:
        """Generate Markdown study notes from a transcript."""
        if not transcript or not transcript.strip():
            raise EmptyTranscriptError()
        logger.info(f"Generating note from transcript of length {len(transcript)}")
        return self._client.complete(prompts.note_prompt(transcript, language))

    def generate_title(self, transcript: str, language: str | None = None) -> str:
        if not transcript or not transcript.strip():
            raise EmptyTranscriptError()
        return clean_title(self._client.complete(prompts.title_prompt(transcript, language)))

    def generate_note_with_progress(
        self,
        transcript: str,
        progress_callback: Callable[[float], None],
        language: str | None = None,
    ) -> str:
        """Stream note generation, reporting an estimated progress per chunk.

        Progress never exceeds 0.95 while streaming and is reported as 1.0
        once the stream ends.

        Raises:
            EmptyTranscriptError: If the transcript is empty
            InvalidResponseError: If the stream produced no text
        """
        if not transcript or not transcript.strip():
            raise EmptyTranscriptError()

        parts: list[str] = []
        for chunk in self._client.stream(prompts.note_prompt(transcript, language)):
            parts.append(chunk)
            progress = min(MAX_STREAM_PROGRESS, len(parts) / ESTIMATED_TOTAL_CHUNKS)
            progress_callback(progress)
            if len(parts) % 10 == 0:
                logger.debug(f"Received chunk {len(parts)}, progress {progress:.0%}")
        progress_callback(1.0)

        content = "".join(parts)
        if not content:
            raise InvalidResponseError()
        logger.info(f"Streamed note in {len(parts)} chunks")
        return content

    def generate_flashcards(
        self, content: str, title: str, count: int = DEFAULT_CARD_COUNT
    ) -> list[Flashcard]:
        logger.info(f"Generating flashcards (min: {count}) for note: {title}")
        return parse_flashcards(self._client.complete(prompts.flashcards_prompt(content, title, count)))

    def generate_quiz(
        self, content: str, title: str, count: int = DEFAULT_CARD_COUNT
    ) -> list[QuizQuestion]:
        logger.info(f"Generating quiz questions (min: {count}) for note: {title}")
        return parse_quiz_questions(self._client.complete(prompts.quiz_prompt(content, title, count)))

    def answer_question(
        self,
        note_title: str,
        note_content: str,
        question: str,
        history: list[ChatMessage] | None = None,
    ) -> str:
        """Answer a student's question about a note, given earlier messages."""
        prompt = prompts.chat_prompt(note_title, note_content, question, history)
        return self._client.complete(prompt).strip()

    def chat(
        self, note: Note, question: str, history: list[ChatMessage] | None = None
    ) -> list[ChatMessage]:
        """Answer ``question`` and return the conversation with both new messages appended."""
        history = list(history or [])
        answer = self.answer_question(note.title, note.content_text, question, history)
        return [
            *history,
            ChatMessage(role=ROLE_USER, content=question),
            ChatMessage(role=ROLE_ASSISTANT, content=answer),
        ]

    def create_note_from_transcript(
        self,
        transcript: str,
        *,
        language: str | None = None,
        source_type: str = SOURCE_VIDEO,
        video_id: str | None = None,
        source_url: str | None = None,
        folder_id: str | None = None,
        progress_callback: Callable[[float], None] | None = None,
    ) -> Note:
        """Generate a title and notes for a transcript and wrap them in a Note.

        The transcript is kept as the note's original content; the generated
        Markdown becomes its AI content.
        """
        title = self.generate_title(transcript, language) or DEFAULT_NOTE_TITLE
        if progress_callback is not None:
            body = self.generate_note_with_progress(transcript, progress_callback, language)
        else:
            body = self.generate_note(transcript, language)
        return Note(
            title=title,
            source_type=source_type,
            original_content=transcript.encode("utf-8"),
            ai_generated_content=body.encode("utf-8"),
            processing_status=PROCESSING_COMPLETED,
            sync_status=SYNC_PENDING,
            transcript=transcript,
            language_code=language,
            video_id=video_id,
            source_url=source_url,
            folder_id=folder_id,
        )
