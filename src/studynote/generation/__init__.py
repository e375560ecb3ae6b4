"""AI generation of study notes, titles, flashcards, quizzes and chat answers."""

from studynote.generation.completion import CompletionClient, GeminiCompletionClient
from studynote.generation.service import GenerationService

__all__ = ["CompletionClient", "GeminiCompletionClient", "GenerationService"]
