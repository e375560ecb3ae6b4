"""Completion clients: prompt in, text out."""

from __future__ import annotations

import logging
from typing import Any, Iterator, Protocol

import google.generativeai as genai

from studynote.exceptions import CompletionAPIError, GenerationConfigError, InvalidResponseError
from studynote.generation.prompts import SYSTEM_INSTRUCTION

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class CompletionClient(Protocol):
    """Anything that can turn a prompt into text."""

    def complete(self, prompt: str) -> str: ...

    def stream(self, prompt: str) -> Iterator[str]: ...


def _candidate_text(response: Any) -> str:
    """Text of the first candidate, or "" when the response carries none."""
    if not getattr(response, "candidates", None):
        feedback = getattr(response, "prompt_feedback", "N/A")
        logger.warning(f"Gemini returned no candidates. Prompt feedback: {feedback}")
        return ""
    candidate = response.candidates[0]
    if not candidate.content or not candidate.content.parts:
        finish_reason = getattr(candidate, "finish_reason", "N/A")
        logger.warning(f"Gemini candidate has no content/parts. Finish reason: {finish_reason}")
        return ""
    return "".join(getattr(part, "text", "") for part in candidate.content.parts)


class GeminiCompletionClient:
    """Completion client backed by the Gemini API.

    Example:
        client = GeminiCompletionClient(api_key=os.environ["GEMINI_API_KEY"])
        print(client.complete("Summarize photosynthesis in one sentence."))
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        *,
        system_instruction: str = SYSTEM_INSTRUCTION,
    ) -> None:
        if not api_key:
            raise GenerationConfigError("GEMINI_API_KEY is not set")
        genai.configure(api_key=api_key)
        self.model_name = model
        self._model = genai.GenerativeModel(model, system_instruction=system_instruction)

    def complete(self, prompt: str) -> str:
        """Return the full completion for ``prompt``.

        Raises:
            CompletionAPIError: If the API call fails
            InvalidResponseError: If the response has no text
        """
        if not prompt:
            raise CompletionAPIError("Empty prompt provided")
        logger.info(f"Sending prompt of length {len(prompt)} to {self.model_name}")
        try:
            response = self._model.generate_content(prompt)
        except Exception as e:
            raise CompletionAPIError(f"API error: {e}") from e

        text = _candidate_text(response)
        if not text.strip():
            raise InvalidResponseError()
        logger.info(f"Received completion of length {len(text)}")
        return text

    def stream(self, prompt: str) -> Iterator[str]:
        """Yield completion text chunks as they arrive.

        Raises:
            CompletionAPIError: If the API call fails
        """
        if not prompt:
            raise CompletionAPIError("Empty prompt provided")
        logger.info(f"Streaming prompt of length {len(prompt)} to {self.model_name}")
        try:
            for chunk in self._model.generate_content(prompt, stream=True):
                text = _candidate_text(chunk)
                if text:
                    yield text
        except Exception as e:
            raise CompletionAPIError(f"API error: {e}") from e
