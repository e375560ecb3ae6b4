"""
Configuration management for studynote.
Loads environment variables (and a .env file, if present) into Settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_STORE_PATH = Path.home() / ".studynote" / "notes.json"
DEFAULT_TOKEN_CACHE = Path.home() / ".studynote" / "token_cache.json"
DEFAULT_HTTP_TIMEOUT = 30.0

# Settings attribute for each environment variable that require() can check
_ENV_NAMES = {
    "backend_url": "STUDYNOTE_BACKEND_URL",
    "backend_key": "STUDYNOTE_BACKEND_KEY",
    "gemini_api_key": "GEMINI_API_KEY",
}


@dataclass(frozen=True)
class Settings:
    backend_url: str | None
    backend_key: str | None
    gemini_api_key: str | None
    model: str = DEFAULT_MODEL
    store_path: Path = DEFAULT_STORE_PATH
    token_cache_path: Path = DEFAULT_TOKEN_CACHE
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    def require(self, *names: str) -> None:
        """
        Raise ValueError naming every missing environment variable among
        the given settings (e.g. "backend_url", "gemini_api_key").
        """
        missing = [_ENV_NAMES[name] for name in names if not getattr(self, name)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")


def get_config() -> Settings:
    """
    Load configuration from environment variables.
    Raises ValueError if STUDYNOTE_HTTP_TIMEOUT is not a number.
    """
    load_dotenv()

    timeout_value = os.getenv("STUDYNOTE_HTTP_TIMEOUT")
    try:
        http_timeout = float(timeout_value) if timeout_value else DEFAULT_HTTP_TIMEOUT
    except ValueError as e:
        raise ValueError(f"STUDYNOTE_HTTP_TIMEOUT must be a number, got {timeout_value!r}") from e

    store_path = os.getenv("STUDYNOTE_STORE_PATH")
    token_cache = os.getenv("STUDYNOTE_TOKEN_CACHE")
    return Settings(
        backend_url=os.getenv("STUDYNOTE_BACKEND_URL"),
        backend_key=os.getenv("STUDYNOTE_BACKEND_KEY"),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        model=os.getenv("STUDYNOTE_MODEL", DEFAULT_MODEL),
        store_path=Path(store_path).expanduser() if store_path else DEFAULT_STORE_PATH,
        token_cache_path=Path(token_cache).expanduser() if token_cache else DEFAULT_TOKEN_CACHE,
        http_timeout=http_timeout,
    )
