"""Web article scraping for "web link" notes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup
from trafilatura import extract as trafilatura_extract

from studynote.exceptions import EmptyContentError, InvalidURLError, WebFetchError

logger = logging.getLogger(__name__)

# Min length for trafilatura output to be used without the soup fallbacks
MIN_CONTENT_LENGTH = 150
HTML_SNIPPET_LENGTH = 1000  # For logging
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
)

UNWANTED_SELECTORS = (
    "nav, header, footer, aside, script, style, noscript, svg, form, iframe, "
    ".ads, .comments, .sidebar"
)
MAIN_CONTENT_SELECTORS = "main, article, .content, .post, .entry, #content, #main, #post"


@dataclass(frozen=True)
class WebArticle:
    """Readable content extracted from a web page."""

    url: str
    title: str
    text: str
    description: str | None = None

    def to_markdown(self) -> str:
        """Render the article as the note source text."""
        parts = [f"# {self.title}", f"URL: {self.url}"]
        if self.description:
            parts.append(f"## Description\n{self.description}")
        parts.append(f"## Content\n\n{self.text}")
        return "\n\n".join(parts)


def validate_url(url: str) -> str:
    """Return the stripped URL, or raise InvalidURLError if it is not http(s)."""
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(f"Invalid or malformed URL: {url}")
    return candidate


def _trafilatura_content(page: str, url: str) -> dict[str, Any]:
    """Text and metadata from trafilatura's JSON output; empty dict on failure."""
    settings = {
        "output_format": "json",
        "with_metadata": True,
        "include_comments": False,
        "include_tables": True,
        "include_formatting": True,
        "favor_recall": True,
    }
    try:
        json_string_data = trafilatura_extract(page, **settings)
    except Exception as e:
        logger.error(f"Trafilatura extraction failed for {url}: {e}")
        return {}
    if not json_string_data:
        logger.warning(f"Trafilatura returned no data for {url}")
        return {}
    try:
        extracted = json.loads(json_string_data)
    except json.JSONDecodeError as e:
        logger.warning(
            f"Trafilatura JSON for {url} could not be parsed: {e}. "
            f"Data: {json_string_data[:HTML_SNIPPET_LENGTH]}"
        )
        return {}
    return extracted if isinstance(extracted, dict) else {}


def _soup_content(soup: BeautifulSoup) -> str:
    """Main text of a page using container, paragraph and body fallbacks."""
    for element in soup.select(UNWANTED_SELECTORS):
        element.decompose()

    containers = soup.select(MAIN_CONTENT_SELECTORS)
    text = " ".join(c.get_text(" ", strip=True) for c in containers).strip()
    if text:
        return text

    paragraphs = [p.get_text(" ", strip=True) for p in soup.find_all("p")]
    text = "\n\n".join(p for p in paragraphs if p).strip()
    if text:
        return text

    body = soup.body
    return body.get_text(" ", strip=True) if body else ""


def extract_article(page: str, url: str) -> WebArticle:
    """Extract the readable article from an HTML page.

    Raises:
        EmptyContentError: If no text can be found
    """
    soup = BeautifulSoup(page, "html.parser")
    page_title = soup.title.get_text(strip=True) if soup.title else ""
    meta = soup.find("meta", attrs={"name": "description"})
    meta_description = meta.get("content", "").strip() if meta else ""

    extracted = _trafilatura_content(page, url)
    text = (extracted.get("text") or "").strip()
    title = (extracted.get("title") or "").strip() or page_title
    description = (extracted.get("description") or "").strip() or meta_description

    if len(text) < MIN_CONTENT_LENGTH:
        reason = "no text" if not text else f"text too short ({len(text)})"
        logger.info(f"BeautifulSoup fallback for {url}: {reason}")
        fallback = _soup_content(soup)
        if len(fallback) > len(text):
            text = fallback

    if not text:
        raise EmptyContentError()

    logger.info(f"Extracted '{title}' from {url} ({len(text)} chars)")
    return WebArticle(url=url, title=title or url, text=text, description=description or None)


class WebScraper:
    """Fetches web pages and extracts their article text.

    Example:
        with WebScraper() as scraper:
            article = scraper.scrape("https://example.com/post")
            source = article.to_markdown()
    """

    def __init__(
        self, *, timeout: float = 30.0, transport: httpx.BaseTransport | None = None
    ) -> None:
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    def __enter__(self) -> WebScraper:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def fetch(self, url: str) -> str:
        """Fetch the HTML of a page.

        Raises:
            InvalidURLError: If the URL is not http(s)
            WebFetchError: On transport failures or non-2xx responses
        """
        url = validate_url(url)
        logger.info(f"Fetching {url}")
        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            raise WebFetchError(f"Network error: {e}") from e
        if not response.is_success:
            raise WebFetchError(f"Network error: server returned status code {response.status_code}")
        return response.text

    def scrape(self, url: str) -> WebArticle:
        """Fetch a page and extract its article."""
        url = validate_url(url)
        return extract_article(self.fetch(url), url)

    def close(self) -> None:
        self._client.close()
