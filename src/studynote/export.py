"""Export notes as styled standalone HTML documents."""

from __future__ import annotations

import html
import logging
from pathlib import Path

import markdown2

from studynote.models import Note

logger = logging.getLogger(__name__)

MARKDOWN_EXTRAS = ["fenced-code-blocks", "cuddled-lists", "tables", "strike"]

_NOTE_CSS = """
        body {
            font-family: -apple-system, "Helvetica Neue", sans-serif;
            line-height: 1.6;
            font-size: %(font_size)s;
            max-width: 48em;
            margin: 2em auto;
            padding: 0 1em;
        }
        h1, h2, h3, h4, h5, h6 {
            margin-top: 1.5em;
            margin-bottom: 0.5em;
            line-height: 1.3;
        }
        p {
            margin-bottom: 1em;
        }
        ul, ol {
            margin-bottom: 1em;
            padding-left: 2em;
        }
        li {
            margin-bottom: 0.3em;
        }
        blockquote {
            margin-left: 2em;
            padding-left: 1em;
            border-left: 3px solid #eee;
            color: #555;
        }
        pre {
            background-color: #f5f5f5;
            padding: 1em;
            overflow-x: auto;
            white-space: pre-wrap;
            word-wrap: break-word;
        }
        code {
            font-family: monospace;
            background-color: #f5f5f5;
            padding: 0.2em 0.4em;
            border-radius: 3px;
        }
        pre code {
            padding: 0;
            background-color: transparent;
            border-radius: 0;
        }
        table {
            border-collapse: collapse;
            width: 100%%;
            margin-bottom: 1em;
        }
        th, td {
            border: 1px solid #ddd;
            padding: 8px;
            text-align: left;
        }
        th {
            background-color: #f2f2f2;
        }
        .note-meta {
            color: #777;
            font-size: 0.85em;
            margin-bottom: 2em;
        }
"""


def markdown_to_html(markdown_string: str) -> str:
    """Convert Markdown to an HTML fragment."""
    if not markdown_string:
        return ""
    return str(markdown2.markdown(markdown_string, extras=MARKDOWN_EXTRAS))


def render_note_html(note: Note, font_size: str = "14pt") -> str:
    """Render a note's content as a complete HTML document.

    The AI-generated content is used when present, otherwise the original
    content or transcript.
    """
    fragment = markdown_to_html(note.content_text)
    title = html.escape(note.title)
    created = note.timestamp.strftime("%Y-%m-%d")
    meta = f"Created {created}"
    if note.source_url:
        url = html.escape(note.source_url, quote=True)
        meta += f' &middot; <a href="{url}">{url}</a>'
    if note.tags:
        meta += " &middot; " + html.escape(", ".join(note.tags))

    return f"""<!DOCTYPE html>
<html lang="{html.escape(note.language_code or 'en', quote=True)}">
    <head>
        <meta charset="UTF-8">
        <title>{title}</title>
        <style>{_NOTE_CSS % {"font_size": font_size}}</style>
    </head>
    <body>
        <h1>{title}</h1>
        <div class="note-meta">{meta}</div>
        {fragment}
    </body>
</html>
"""


def export_note(note: Note, out_path: Path | str, font_size: str = "14pt") -> Path:
    """Write a note as HTML to ``out_path`` and return the path."""
    path = Path(out_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_note_html(note, font_size), encoding="utf-8")
    logger.info(f"Exported note {note.id} to {path}")
    return path
