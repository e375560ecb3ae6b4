"""Pytest fixtures for studynote tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from helpers import FakeBackend

from studynote.config import Settings
from studynote.models import SOURCE_VIDEO, Folder, Note
from studynote.store import NoteStore


@pytest.fixture
def store() -> NoteStore:
    """In-memory note store."""
    return NoteStore()


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "notes.json"


@pytest.fixture
def sample_folder() -> Folder:
    return Folder(
        name="Biology",
        color="green",
        sort_order=1,
        timestamp=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_note(sample_folder: Folder) -> Note:
    return Note(
        title="Photosynthesis",
        source_type=SOURCE_VIDEO,
        timestamp=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
        last_modified=datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc),
        tags=["biology", "plants"],
        folder_id=sample_folder.id,
        original_content=b"Plants turn light into sugar.",
        ai_generated_content=b"## Introduction\n\nPlants make food from light.",
        language_code="en",
        video_id="dQw4w9WgXcQ",
        source_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every variable set and paths under tmp_path."""
    return Settings(
        backend_url="https://project.example.co",
        backend_key="anon-key",
        gemini_api_key="gemini-key",
        store_path=tmp_path / "notes.json",
        token_cache_path=tmp_path / "token_cache.json",
    )


@pytest.fixture
def patch_rest_client() -> Any:
    """Patch the RestClient class used by BackendClient."""
    with patch("studynote.backend.RestClient") as mock_class:
        mock_instance = MagicMock()
        mock_instance._access_token = "test_token"
        mock_class.return_value = mock_instance
        yield mock_instance
