"""YouTube transcript and metadata scraping.

Transcripts are read from the watch page: the embedded
``ytInitialPlayerResponse`` JSON lists the caption tracks, and the selected
track's timed-text XML holds the caption lines.
"""

from __future__ import annotations

import html
import json
import logging
import re
import threading
import time
import xml.etree.ElementTree as ET
from collections import OrderedDict
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

import httpx

from studynote.exceptions import (
    InvalidVideoIdError,
    TranscriptNotAvailableError,
    TranscriptParsingError,
    YouTubeNetworkError,
)
from studynote.models import Transcript, TranscriptSegment, VideoMetadata

logger = logging.getLogger(__name__)

BASE_URL = "https://www.youtube.com"
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
)
PLAYER_RESPONSE_MARKER = "ytInitialPlayerResponse = "
TITLE_SUFFIX = " - YouTube"
PARAGRAPH_EVERY = 5
CACHE_TTL = 3600.0
CACHE_MAX_ENTRIES = 100

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_TITLE_RE = re.compile(r"<title>([^<]*)</title>")


def extract_video_id(url_or_id: str) -> str:
    """Return the 11-character video id from a YouTube URL or a bare id.

    Raises:
        InvalidVideoIdError: If no id can be found
    """
    value = (url_or_id or "").strip()
    if _VIDEO_ID_RE.match(value):
        return value

    parsed = urlparse(value if "://" in value else f"https://{value}")
    host = (parsed.hostname or "").lower()
    candidate = None
    if host.endswith("youtu.be"):
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif host.endswith("youtube.com") or host.endswith("youtube-nocookie.com"):
        if parsed.path == "/watch":
            candidate = (parse_qs(parsed.query).get("v") or [None])[0]
        else:
            parts = [p for p in parsed.path.split("/") if p]
            if len(parts) >= 2 and parts[0] in ("embed", "shorts", "v", "live"):
                candidate = parts[1]

    if candidate and _VIDEO_ID_RE.match(candidate):
        return candidate
    raise InvalidVideoIdError()


def extract_player_response(page: str) -> dict[str, Any]:
    """Pull the ``ytInitialPlayerResponse`` object out of a watch page.

    The object is located by brace matching; braces inside JSON string
    literals are ignored.

    Raises:
        TranscriptParsingError: If the marker is missing or the JSON is invalid
    """
    marker = page.find(PLAYER_RESPONSE_MARKER)
    if marker == -1:
        raise TranscriptParsingError("Could not find ytInitialPlayerResponse in page")
    start = page.find("{", marker + len(PLAYER_RESPONSE_MARKER))
    if start == -1:
        raise TranscriptParsingError("Player response has no JSON object")

    depth = 0
    in_string = False
    escaped = False
    end = -1
    for index in range(start, len(page)):
        char = page[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                end = index + 1
                break
    if end == -1:
        raise TranscriptParsingError("Player response JSON is truncated")

    try:
        data = json.loads(page[start:end])
    except json.JSONDecodeError as e:
        raise TranscriptParsingError(f"Failed to parse player response JSON: {e}") from e
    if not isinstance(data, dict):
        raise TranscriptParsingError("Player response is not a JSON object")
    return data


def select_caption_track(
    player_response: dict[str, Any], preferred_language: str | None = None
) -> tuple[str, str | None]:
    """Choose a caption track and return ``(base_url, language_code)``.

    Preference order: the requested language, a manually authored track
    (not ``asr``), then the first track listed.

    Raises:
        TranscriptNotAvailableError: If the video has no caption tracks
    """
    tracks = (
        player_response.get("captions", {})
        .get("playerCaptionsTracklistRenderer", {})
        .get("captionTracks")
    )
    tracks = [t for t in tracks or [] if isinstance(t, dict) and t.get("baseUrl")]
    if not tracks:
        raise TranscriptNotAvailableError()

    chosen = None
    if preferred_language:
        wanted = preferred_language.lower()
        chosen = next(
            (t for t in tracks if str(t.get("languageCode", "")).lower() == wanted), None
        )
        if chosen is None:
            # "en" also matches "en-US" style codes
            chosen = next(
                (
                    t
                    for t in tracks
                    if str(t.get("languageCode", "")).lower().split("-")[0] == wanted.split("-")[0]
                ),
                None,
            )
    if chosen is None:
        chosen = next((t for t in tracks if t.get("kind") != "asr"), tracks[0])

    return chosen["baseUrl"], chosen.get("languageCode")


def parse_timed_text(xml_text: str) -> list[TranscriptSegment]:
    """Parse timed-text XML into segments, skipping empty caption lines.

    Raises:
        TranscriptParsingError: If the XML is malformed
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise TranscriptParsingError(f"Malformed transcript XML: {e}") from e

    segments = []
    for node in root.iter("text"):
        raw = "".join(node.itertext())
        # The XML parser decodes one level; captions carry a second, e.g. "&amp;#39;"
        text = html.unescape(raw).replace("\n", " ").strip()
        if not text:
            continue
        try:
            start = float(node.get("start", 0))
            duration = float(node.get("dur", 0))
        except ValueError:
            start, duration = 0.0, 0.0
        segments.append(TranscriptSegment(text=text, start_time=start, end_time=start + duration))
    return segments


def format_transcript(parts: list[str]) -> str:
    """Join caption lines into punctuated paragraphs of five lines."""
    pieces = []
    for index, part in enumerate(parts):
        text = part if part.endswith((".", "!", "?")) else f"{part}."
        separator = "\n\n" if index % PARAGRAPH_EVERY == PARAGRAPH_EVERY - 1 else " "
        pieces.append(text + separator)
    return "".join(pieces).strip()


class ResponseCache:
    """Small TTL cache of fetched pages; the oldest entry is evicted when full."""

    def __init__(
        self,
        ttl: float = CACHE_TTL,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class YouTubeClient:
    """Fetches transcripts and basic metadata for YouTube videos.

    Example:
        with YouTubeClient() as youtube:
            transcript = youtube.get_transcript("https://youtu.be/dQw4w9WgXcQ")
            print(transcript.text)
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept-Language": "en-US,en;q=0.9"},
        )
        self._cache = cache if cache is not None else ResponseCache()

    def __enter__(self) -> YouTubeClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _fetch(self, url: str) -> str:
        cached = self._cache.get(url)
        if cached is not None:
            logger.debug(f"Cache hit for {url}")
            return cached
        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            raise YouTubeNetworkError(f"Network error: {e}") from e
        if response.status_code != 200:
            raise YouTubeNetworkError(
                f"Network error: server returned status code {response.status_code}"
            )
        text = response.text
        self._cache.set(url, text)
        return text

    def _watch_page(self, video_id: str) -> str:
        return self._fetch(f"{BASE_URL}/watch?v={video_id}")

    def get_transcript(self, video: str, preferred_language: str | None = None) -> Transcript:
        """Fetch and format the transcript of a video.

        Args:
            video: Video URL or id
            preferred_language: Language code to prefer when several tracks exist

        Raises:
            InvalidVideoIdError: If ``video`` is not a recognizable video
            TranscriptNotAvailableError: If the video has no captions
            TranscriptParsingError: If the page or captions cannot be parsed
            YouTubeNetworkError: On transport failures
        """
        video_id = extract_video_id(video)
        logger.info(f"Fetching transcript for video {video_id}")

        player_response = extract_player_response(self._watch_page(video_id))
        track_url, language = select_caption_track(player_response, preferred_language)
        logger.debug(f"Using caption track {language} for {video_id}")

        segments = parse_timed_text(self._fetch(track_url))
        if not segments:
            raise TranscriptNotAvailableError()
        text = format_transcript([segment.text for segment in segments])
        logger.info(f"Transcript for {video_id}: {len(segments)} segments, {len(text)} chars")
        return Transcript(
            video_id=video_id, text=text, language=language, segments=tuple(segments)
        )

    def get_video_metadata(self, video: str) -> VideoMetadata:
        """Read the title of a video from its watch page.

        Raises:
            YouTubeNetworkError: If the page cannot be fetched
            TranscriptParsingError: If the page has no title
        """
        video_id = extract_video_id(video)
        match = _TITLE_RE.search(self._watch_page(video_id))
        if not match:
            raise TranscriptParsingError("Failed to extract title")
        title = html.unescape(match.group(1)).strip()
        if title.endswith(TITLE_SUFFIX):
            title = title[: -len(TITLE_SUFFIX)]
        return VideoMetadata(
            video_id=video_id,
            title=title,
            thumbnail_url=f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg",
        )

    def close(self) -> None:
        self._client.close()
