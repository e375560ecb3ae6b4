"""Command-line interface for studynote."""

from __future__ import annotations

import contextlib
import json
import logging
import sys
from pathlib import Path
from typing import Callable

import click

from studynote.backend import BackendClient
from studynote.config import Settings, get_config
from studynote.exceptions import (
    AuthenticationError,
    EmailConfirmationRequiredError,
    StudyNoteError,
)
from studynote.export import export_note
from studynote.generation import GeminiCompletionClient, GenerationService
from studynote.models import SOURCE_VIDEO, SOURCE_WEB, Note, QuizResult
from studynote.store import NoteStore
from studynote.sync.engine import SyncEngine
from studynote.sync.progress import SyncProgress
from studynote.web import WebScraper
from studynote.youtube import YouTubeClient, extract_video_id

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _load_last_email(cache_path: Path) -> str | None:
    """Load the last used email from the token cache."""
    if not cache_path.exists():
        return None
    try:
        data = json.loads(cache_path.read_text())
        return data.get("_last_email")
    except Exception:
        return None


def _save_last_email(cache_path: Path, email: str) -> None:
    """Save the last used email to the token cache."""
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        data = json.loads(cache_path.read_text()) if cache_path.exists() else {}
        data["_last_email"] = email
        cache_path.write_text(json.dumps(data, indent=2))
    except Exception as e:
        logger.debug(f"Could not remember last email: {e}")


def _fail(message: str) -> None:
    click.echo(click.style(message, fg="red"), err=True)
    sys.exit(1)


def get_backend(settings: Settings) -> tuple[BackendClient, str | None]:
    """Create a BackendClient, attempting to use the cached session.

    Returns (client, email) where email is the last email used to log in.
    """
    settings.require("backend_url", "backend_key")
    email = _load_last_email(settings.token_cache_path)
    client = BackendClient(
        settings.backend_url,  # type: ignore[arg-type]
        settings.backend_key,  # type: ignore[arg-type]
        email=email,
        auto_login=False,
        token_cache_path=settings.token_cache_path,
        timeout=settings.http_timeout,
    )
    if email:
        with contextlib.suppress(AuthenticationError):
            client.sign_in(email, "")
    return client, email


def get_generation_service(settings: Settings) -> GenerationService:
    settings.require("gemini_api_key")
    return GenerationService(GeminiCompletionClient(settings.gemini_api_key, settings.model))


def _load_note(store: NoteStore, note_id: str) -> Note:
    """Find a note by full id or unique id prefix."""
    note = store.find_note(note_id)
    if note is not None:
        return note
    matches = [n for n in store.notes() if n.id.startswith(note_id)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise click.BadParameter(f"ambiguous note id prefix: {note_id}")
    return store.get_note(note_id)


@click.group()
@click.version_option(package_name="studynote")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """StudyNote - Turn YouTube videos and web pages into AI study notes."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)


@main.command()
@click.option("--email", "-e", prompt=True, help="Account email")
@click.option("--password", "-p", prompt=True, hide_input=True, help="Account password")
@click.option("--signup", is_flag=True, help="Create a new account")
def login(email: str, password: str, signup: bool) -> None:
    """Sign in (or sign up) and cache the session."""
    try:
        settings = get_config()
        settings.require("backend_url", "backend_key")
        client = BackendClient(
            settings.backend_url,  # type: ignore[arg-type]
            settings.backend_key,  # type: ignore[arg-type]
            auto_login=False,
            token_cache_path=settings.token_cache_path,
            timeout=settings.http_timeout,
        )
        try:
            if signup:
                client.sign_up(email, password)
            else:
                client.sign_in(email, password)
            _save_last_email(settings.token_cache_path, email)
            click.echo(click.style("Login successful!", fg="green"))
        except EmailConfirmationRequiredError as e:
            click.echo("Email confirmation required. A code was sent to your email.")
            code = click.prompt("Enter confirmation code")
            client.verify_email(code, e.confirmation_context)
            _save_last_email(settings.token_cache_path, email)
            click.echo(click.style("Verification successful!", fg="green"))
        finally:
            client.close()
    except AuthenticationError as e:
        _fail(f"Login failed: {e}")
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


@main.command()
def logout() -> None:
    """Sign out and forget the cached session."""
    try:
        client, email = get_backend(get_config())
        if not email:
            click.echo("Not logged in.")
            return
        client.sign_out()
        client.close()
        click.echo(f"Logged out {email}.")
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


@main.command()
@click.argument("url")
@click.option("--language", "-l", default=None, help="Preferred caption language code")
@click.option("--segments", is_flag=True, help="Print timed segments instead of paragraphs")
def transcript(url: str, language: str | None, segments: bool) -> None:
    """Print the transcript of a YouTube video.

    URL: Video URL or 11-character video id
    """
    try:
        settings = get_config()
        with YouTubeClient(timeout=settings.http_timeout) as youtube:
            result = youtube.get_transcript(url, preferred_language=language)
        if segments:
            for segment in result.segments:
                click.echo(f"[{segment.start_time:8.2f}] {segment.text}")
        else:
            click.echo(result.text)
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


def _progress_printer(label: str) -> Callable[[float], None]:
    last = {"percent": -1}

    def report(progress: float) -> None:
        percent = int(progress * 100)
        if percent // 10 != last["percent"] // 10 or percent == 100:
            last["percent"] = percent
            click.echo(f"{label}: {percent}%", err=True)

    return report


@main.command()
@click.argument("url")
@click.option("--language", "-l", default=None, help="Preferred caption and note language")
@click.option("--folder", "folder_id", default=None, help="Folder id for the new note")
def youtube(url: str, language: str | None, folder_id: str | None) -> None:
    """Create a study note from a YouTube video."""
    try:
        settings = get_config()
        service = get_generation_service(settings)
        store = NoteStore(settings.store_path)
        video_id = extract_video_id(url)

        with YouTubeClient(timeout=settings.http_timeout) as client:
            result = client.get_transcript(video_id, preferred_language=language)
        click.echo(f"Fetched transcript ({len(result.text)} characters)", err=True)

        note = service.create_note_from_transcript(
            result.text,
            language=language or result.language,
            source_type=SOURCE_VIDEO,
            video_id=video_id,
            source_url=f"https://www.youtube.com/watch?v={video_id}",
            folder_id=folder_id,
            progress_callback=_progress_printer("Generating note"),
        )
        store.add_note(note)
        store.save()
        click.echo(click.style(f"Created note {note.id}: {note.title}", fg="green"))
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


@main.command()
@click.argument("url")
@click.option("--language", "-l", default=None, help="Note language")
@click.option("--folder", "folder_id", default=None, help="Folder id for the new note")
def web(url: str, language: str | None, folder_id: str | None) -> None:
    """Create a study note from a web article."""
    try:
        settings = get_config()
        service = get_generation_service(settings)
        store = NoteStore(settings.store_path)

        with WebScraper(timeout=settings.http_timeout) as scraper:
            article = scraper.scrape(url)
        click.echo(f"Scraped '{article.title}' ({len(article.text)} characters)", err=True)

        note = service.create_note_from_transcript(
            article.to_markdown(),
            language=language,
            source_type=SOURCE_WEB,
            source_url=article.url,
            folder_id=folder_id,
            progress_callback=_progress_printer("Generating note"),
        )
        store.add_note(note)
        store.save()
        click.echo(click.style(f"Created note {note.id}: {note.title}", fg="green"))
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


@main.command("notes")
@click.option("--folder", "folder_id", default=None, help="Only notes in this folder")
@click.option("--deleted", is_flag=True, help="Include soft-deleted notes")
def list_notes(folder_id: str | None, deleted: bool) -> None:
    """List notes in the local store, newest first."""
    try:
        store = NoteStore(get_config().store_path)
        notes = store.notes(include_deleted=deleted)
        if folder_id:
            notes = [n for n in notes if n.folder_id == folder_id]
        if not notes:
            click.echo("(no notes)")
            return
        for note in notes:
            flags = "*" if note.is_favorite else " "
            line = f"{flags} {note.id[:8]}  {note.last_modified:%Y-%m-%d}  {note.title}"
            if note.is_deleted:
                click.echo(click.style(f"{line}  (deleted)", fg="bright_black"))
            else:
                click.echo(line + click.style(f"  [{note.sync_status}]", fg="blue"))
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


@main.command()
@click.argument("note_id")
@click.option("--count", "-n", default=15, show_default=True, help="Minimum number of cards")
def flashcards(note_id: str, count: int) -> None:
    """Generate flashcards for a note."""
    try:
        settings = get_config()
        note = _load_note(NoteStore(settings.store_path), note_id)
        cards = get_generation_service(settings).generate_flashcards(
            note.content_text, note.title, count
        )
        for index, card in enumerate(cards, start=1):
            click.echo(click.style(f"{index}. {card.front}", bold=True))
            click.echo(f"   {card.back}\n")
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


@main.command()
@click.argument("note_id")
@click.option("--count", "-n", default=15, show_default=True, help="Minimum number of questions")
@click.option("--interactive", "-i", is_flag=True, help="Answer the questions and get a score")
def quiz(note_id: str, count: int, interactive: bool) -> None:
    """Generate a multiple-choice quiz for a note."""
    try:
        settings = get_config()
        note = _load_note(NoteStore(settings.store_path), note_id)
        questions = get_generation_service(settings).generate_quiz(
            note.content_text, note.title, count
        )
        results: list[QuizResult] = []
        for number, question in enumerate(questions, start=1):
            click.echo(click.style(f"{number}. {question.question}", bold=True))
            for index, option in enumerate(question.options):
                marker = "*" if not interactive and index == question.correct_answer else " "
                click.echo(f"  {marker} {index + 1}) {option}")
            if interactive:
                answer = click.prompt("Your answer", type=click.IntRange(1, len(question.options)))
                result = question.grade(answer - 1)
                results.append(result)
                if result.is_correct:
                    click.echo(click.style("Correct!", fg="green"))
                else:
                    correct = question.options[question.correct_answer]
                    click.echo(click.style(f"Incorrect. Answer: {correct}", fg="red"))
            if question.explanation:
                click.echo(f"    {question.explanation}")
            click.echo("")
        if interactive and results:
            score = sum(1 for r in results if r.is_correct)
            click.echo(f"Score: {score}/{len(results)} ({score / len(results):.0%})")
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


@main.command()
@click.argument("note_id")
@click.argument("question")
@click.option("--follow-up", "-f", is_flag=True, help="Keep asking follow-up questions")
def ask(note_id: str, question: str, follow_up: bool) -> None:
    """Ask a question about a note."""
    try:
        settings = get_config()
        note = _load_note(NoteStore(settings.store_path), note_id)
        service = get_generation_service(settings)
        history = service.chat(note, question)
        click.echo(history[-1].content)
        while follow_up:
            question = click.prompt("Follow-up (blank to finish)", default="", show_default=False)
            if not question.strip():
                break
            history = service.chat(note, question, history)
            click.echo(history[-1].content)
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


@main.command()
@click.argument("note_id")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file (default: <note id>.html)",
)
@click.option("--font-size", default="14pt", show_default=True, help="Body font size")
def export(note_id: str, output: Path | None, font_size: str) -> None:
    """Export a note as a styled HTML document."""
    try:
        note = _load_note(NoteStore(get_config().store_path), note_id)
        path = export_note(note, output or Path(f"{note.id}.html"), font_size)
        click.echo(click.style(f"Exported to {path}", fg="green"))
    except (StudyNoteError, ValueError, OSError) as e:
        _fail(f"Error: {e}")


@main.command()
@click.option("--binary", is_flag=True, help="Include note content blobs")
@click.option("--one-way", is_flag=True, help="Upload only; skip downloading remote changes")
@click.option("--fix-remote", is_flag=True, help="Mark remote rows stuck at pending as synced")
def sync(binary: bool, one_way: bool, fix_remote: bool) -> None:
    """Sync the local store with the backend."""
    try:
        settings = get_config()
        client, _ = get_backend(settings)
        if not client.is_authenticated:
            _fail("Not logged in. Run 'studynote login' first.")
        store = NoteStore(settings.store_path)
        engine = SyncEngine(store, client)

        def report(progress: SyncProgress) -> None:
            click.echo(f"[{progress.overall_progress:4.0%}] {progress.current_status}", err=True)

        try:
            if fix_remote:
                notes_fixed, folders_fixed = engine.fix_remote_sync_status()
                click.echo(f"Fixed {notes_fixed} notes and {folders_fixed} folders")
            progress = engine.sync(
                include_binary_data=binary, two_way=not one_way, progress_callback=report
            )
        finally:
            client.close()

        click.echo(
            f"Folders: {progress.synced_folders}/{progress.total_folders} uploaded, "
            f"Notes: {progress.synced_notes}/{progress.total_notes} uploaded"
        )
        if not one_way:
            click.echo(
                f"Downloaded {progress.downloaded_folders} folders and "
                f"{progress.downloaded_notes} notes; resolved {progress.resolved_conflicts} conflicts"
            )
        failed = progress.failed_notes + progress.failed_folders
        if failed:
            click.echo(click.style(f"{failed} record(s) failed to sync", fg="red"), err=True)
            sys.exit(1)
        click.echo(click.style("Sync complete!", fg="green"))
    except (StudyNoteError, ValueError) as e:
        _fail(f"Sync failed: {e}")


@main.command()
@click.option("--days", default=30, show_default=True, help="Age of soft-deleted notes to purge")
def purge(days: int) -> None:
    """Permanently remove notes deleted more than DAYS ago."""
    try:
        store = NoteStore(get_config().store_path)
        removed = store.purge_deleted_notes(days)
        store.save()
        click.echo(f"Purged {removed} note(s).")
    except (StudyNoteError, ValueError) as e:
        _fail(f"Error: {e}")


if __name__ == "__main__":
    main()
