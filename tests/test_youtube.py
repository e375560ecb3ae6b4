"""Tests for YouTube transcript scraping."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from studynote.exceptions import (
    InvalidVideoIdError,
    TranscriptNotAvailableError,
    TranscriptParsingError,
    YouTubeNetworkError,
)
from studynote.youtube import (
    ResponseCache,
    YouTubeClient,
    extract_player_response,
    extract_video_id,
    format_transcript,
    parse_timed_text,
    select_caption_track,
)

VIDEO_ID = "dQw4w9WgXcQ"
CAPTION_URL = "https://www.youtube.com/api/timedtext?v=dQw4w9WgXcQ&lang=en"

TIMED_TEXT = (
    "<transcript>"
    '<text start="0.0" dur="1.5">Hello there</text>'
    '<text start="1.5" dur="2.0">it&amp;#39;s a &amp;quot;test&amp;quot;</text>'
    '<text start="3.5" dur="1.0">   </text>'
    '<text start="4.5" dur="1.0">Done!</text>'
    "</transcript>"
)


def _player_response(tracks: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "videoDetails": {"title": "A {braced} \"title\""},
        "captions": {"playerCaptionsTracklistRenderer": {"captionTracks": tracks}},
    }


def _watch_page(player_response: dict[str, Any], title: str = "Test Video - YouTube") -> str:
    return (
        f"<html><head><title>{title}</title></head><body><script>"
        f"var ytInitialPlayerResponse = {json.dumps(player_response)};"
        "var other = {};</script></body></html>"
    )


class TestExtractVideoId:
    """Tests for extract_video_id."""

    @pytest.mark.parametrize(
        "value",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ?t=42",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://youtube.com/shorts/dQw4w9WgXcQ",
            "youtube.com/watch?v=dQw4w9WgXcQ",
            "dQw4w9WgXcQ",
        ],
    )
    def test_supported_forms(self, value: str) -> None:
        assert extract_video_id(value) == VIDEO_ID

    @pytest.mark.parametrize(
        "value",
        ["", "https://example.com/watch?v=dQw4w9WgXcQ", "https://youtu.be/short", "not a url"],
    )
    def test_invalid_values_raise(self, value: str) -> None:
        with pytest.raises(InvalidVideoIdError, match="Invalid YouTube video ID"):
            extract_video_id(value)


class TestExtractPlayerResponse:
    """Tests for extract_player_response."""

    def test_braces_inside_strings_are_ignored(self) -> None:
        """Test that brace matching skips string literals."""
        data = extract_player_response(_watch_page(_player_response([])))
        assert data["videoDetails"]["title"] == 'A {braced} "title"'

    def test_missing_marker_raises(self) -> None:
        with pytest.raises(TranscriptParsingError, match="Could not find"):
            extract_player_response("<html></html>")

    def test_invalid_json_raises(self) -> None:
        with pytest.raises(TranscriptParsingError):
            extract_player_response("ytInitialPlayerResponse = {'single': quotes};")

    def test_truncated_json_raises(self) -> None:
        with pytest.raises(TranscriptParsingError, match="truncated"):
            extract_player_response('ytInitialPlayerResponse = {"a": {"b": 1}')


class TestSelectCaptionTrack:
    """Tests for select_caption_track."""

    TRACKS = [
        {"baseUrl": "https://asr", "languageCode": "en", "kind": "asr"},
        {"baseUrl": "https://manual-de", "languageCode": "de"},
        {"baseUrl": "https://manual-es", "languageCode": "es-419"},
    ]

    def test_preferred_language(self) -> None:
        assert select_caption_track(_player_response(self.TRACKS), "en") == ("https://asr", "en")

    def test_preferred_language_matches_region_variants(self) -> None:
        result = select_caption_track(_player_response(self.TRACKS), "es")
        assert result == ("https://manual-es", "es-419")

    def test_manual_track_before_auto_generated(self) -> None:
        """Test that a manual track wins when no language is requested."""
        assert select_caption_track(_player_response(self.TRACKS)) == ("https://manual-de", "de")

    def test_falls_back_to_first_track(self) -> None:
        tracks = [{"baseUrl": "https://asr-fr", "languageCode": "fr", "kind": "asr"}]
        assert select_caption_track(_player_response(tracks), "ja") == ("https://asr-fr", "fr")

    def test_no_tracks_raises(self) -> None:
        with pytest.raises(TranscriptNotAvailableError):
            select_caption_track({"videoDetails": {}})
        with pytest.raises(TranscriptNotAvailableError):
            select_caption_track(_player_response([]))


class TestParseTimedText:
    """Tests for parse_timed_text and format_transcript."""

    def test_parses_segments_and_entities(self) -> None:
        """Test that double-escaped entities are decoded and blanks skipped."""
        segments = parse_timed_text(TIMED_TEXT)

        assert [s.text for s in segments] == ["Hello there", 'it\'s a "test"', "Done!"]
        assert segments[1].start_time == 1.5
        assert segments[1].end_time == 3.5

    def test_escaped_markup_is_decoded_only_twice(self) -> None:
        """Test that a caption meant to show "&lt;" keeps it as literal text."""
        xml = '<transcript><text start="0" dur="1">use &amp;amp;lt;b&amp;amp;gt; tags</text></transcript>'

        segments = parse_timed_text(xml)

        assert segments[0].text == "use &lt;b&gt; tags"

    def test_malformed_xml_raises(self) -> None:
        with pytest.raises(TranscriptParsingError, match="Malformed"):
            parse_timed_text("<transcript><text>oops</transcript>")

    def test_format_adds_periods_and_paragraphs(self) -> None:
        """Test punctuation and a paragraph break after every fifth line."""
        parts = ["Hello", "How are you?", "Fine!", "a", "b.", "c"]
        assert format_transcript(parts) == "Hello. How are you? Fine! a. b.\n\nc."

    def test_format_empty(self) -> None:
        assert format_transcript([]) == ""


class TestResponseCache:
    """Tests for ResponseCache."""

    def test_entries_expire(self) -> None:
        now = [0.0]
        cache = ResponseCache(ttl=10, clock=lambda: now[0])
        cache.set("a", "page")
        assert cache.get("a") == "page"

        now[0] = 11.0
        assert cache.get("a") is None

    def test_oldest_entry_evicted(self) -> None:
        cache = ResponseCache(max_entries=2)
        cache.set("a", "1")
        cache.set("b", "2")
        cache.set("c", "3")

        assert cache.get("a") is None
        assert cache.get("b") == "2"
        assert len(cache) == 2


class TestYouTubeClient:
    """Tests for YouTubeClient with a mocked transport."""

    def _client(self, handler: Any) -> YouTubeClient:
        return YouTubeClient(transport=httpx.MockTransport(handler))

    def test_get_transcript(self) -> None:
        """Test the full watch page to transcript pipeline."""
        page = _watch_page(
            _player_response([{"baseUrl": CAPTION_URL, "languageCode": "en", "kind": "asr"}])
        )
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if request.url.path == "/watch":
                return httpx.Response(200, text=page)
            return httpx.Response(200, text=TIMED_TEXT)

        with self._client(handler) as client:
            transcript = client.get_transcript(f"https://youtu.be/{VIDEO_ID}")
            # Second call is served from the cache
            client.get_transcript(VIDEO_ID)

        assert transcript.video_id == VIDEO_ID
        assert transcript.language == "en"
        assert transcript.text == 'Hello there. it\'s a "test". Done!'
        assert len(transcript.segments) == 3
        assert len(requested) == 2

    def test_transcript_without_captions(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=_watch_page(_player_response([])))

        with self._client(handler) as client, pytest.raises(TranscriptNotAvailableError):
            client.get_transcript(VIDEO_ID)

    def test_get_video_metadata(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=_watch_page({}, title="Cells &amp; Energy - YouTube"))

        with self._client(handler) as client:
            metadata = client.get_video_metadata(VIDEO_ID)

        assert metadata.title == "Cells & Energy"
        assert metadata.thumbnail_url == f"https://img.youtube.com/vi/{VIDEO_ID}/hqdefault.jpg"

    def test_metadata_without_title_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html></html>")

        with self._client(handler) as client, pytest.raises(TranscriptParsingError):
            client.get_video_metadata(VIDEO_ID)

    def test_non_200_raises_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429)

        with self._client(handler) as client, pytest.raises(YouTubeNetworkError, match="429"):
            client.get_video_metadata(VIDEO_ID)

    def test_transport_error_raises_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route to host", request=request)

        with self._client(handler) as client, pytest.raises(YouTubeNetworkError):
            client.get_transcript(VIDEO_ID)
