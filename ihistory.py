#!/usr/bin/env python3
"""
ihistory.py - Interactive fuzzy search over your shell history.

Type to filter, move with the arrows, and pick a command:

  Enter    print the command (and copy it to the clipboard)
  Tab      print it and exit with status 10, asking the calling shell to run it
  Ctrl+D   hide the command from future searches
  Esc      leave without picking anything

The Textual UI only translates keys into session events and paints the
session's snapshot; loading, ranking and state live in histload, histsearch and
histsession. The TUI draws on stderr so `$(ihistory)` captures just the command.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

from pygments.lexers import BashLexer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.style import Style
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text as RichText
from rich.theme import Theme
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.message import Message
from textual.widgets import Footer, Static

from histload import (
    DEFAULT_LIMIT,
    Blocklist,
    EmptyHistoryError,
    HistoryNotFoundError,
    IHistoryError,
    default_blocklist_path,
    detect_history_file,
    load_history,
)
from histsearch import SearchResult
from histsession import (
    Backspace,
    Cancel,
    ClearQuery,
    CursorDown,
    CursorUp,
    DeleteSelected,
    Event,
    InsertChar,
    Outcome,
    PageDown,
    PageUp,
    Resize,
    SelectAndExecute,
    SelectConfirm,
    Session,
    SessionSnapshot,
)

__version__ = "0.1.0"

# ============================================================================
# CONFIGURATION & CONSTANTS
# ============================================================================

EXIT_CODE_EXECUTE = 10
NEWLINE_GLYPH = "↵"  # One character, so match offsets still line up

ACCENT = "#61AFEF"
MUTED = "#5C6370"
MATCH_STYLE = "bold #E5C07B"
SELECTED_ROW_STYLE = Style.parse("bold on #282C34")

CUSTOM_THEME = Theme({
    "info": "#61AFEF",
    "success": "#98C379",
    "warning": "#E5C07B",
    "error": "#E06C75",
})

console = Console(stderr=True, theme=CUSTOM_THEME)


# ============================================================================
# RENDERING HELPERS
# ============================================================================


def _console_print(string="", *args, **kwargs) -> None:
    """→ Safe console printing with fallback"""
    try:
        console.print(string, *args, **kwargs)
    except Exception:
        print(string, *args, file=sys.stderr)


def format_relative_time(timestamp: int | None, now: int) -> str | None:
    """→ Short, human-friendly age of a history entry ("5m ago", "yesterday", "Mar 04")"""
    if timestamp is None:
        return None
    seconds = now - timestamp
    if seconds < 0:
        return "future"

    minutes = seconds // 60
    hours = seconds // 3600
    days = seconds // 86400

    if seconds < 60:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days} days"
    if days < 30:
        weeks = days // 7
        return "last week" if weeks == 1 else f"{weeks} weeks"

    try:
        local = datetime.fromtimestamp(timestamp)
    except (OverflowError, OSError, ValueError):
        return None
    return local.strftime("%b %d" if days < 365 else "%b %Y")


def highlight_command(result: SearchResult) -> RichText:
    """→ Single-line rendering of a command with its matched characters highlighted"""
    text = RichText(result.entry.command.replace("\n", NEWLINE_GLYPH), style="#FCFCFA")
    for index in result.indices:
        text.stylize(MATCH_STYLE, index, index + 1)
    return text


def render_results(snapshot: SessionSnapshot, now: int) -> Table:
    """→ Table with one row per visible result: marker, command, relative time"""
    table = Table.grid(expand=True)
    table.add_column(width=2, no_wrap=True)
    table.add_column(ratio=1, no_wrap=True, overflow="ellipsis")
    table.add_column(justify="right", no_wrap=True, style=MUTED)

    for offset, result in enumerate(snapshot.visible_results):
        is_selected = snapshot.viewport_offset + offset == snapshot.selection_index
        marker = RichText("> " if is_selected else "  ", style=ACCENT if is_selected else MUTED)
        age = format_relative_time(result.entry.timestamp, now) or ""
        table.add_row(
            marker,
            highlight_command(result),
            age,
            style=SELECTED_ROW_STYLE if is_selected else None,
        )
    return table


# ============================================================================
# TEXTUAL UI
# ============================================================================


class QueryBar(Static):
    """The `> query_` input line."""

    DEFAULT_CSS = """
    QueryBar {
        height: 3;
        padding: 0 1;
        border: round #61AFEF;
        border-title-color: #61AFEF;
    }
    """

    def show(self, query: str) -> None:
        text = RichText()
        text.append("> ", style=ACCENT)
        text.append(query)
        text.append("_", style=MUTED)
        self.update(text)


class ResultList(Static):
    """Ranked results; its title shows the result count or a status message."""

    DEFAULT_CSS = """
    ResultList {
        height: 1fr;
        padding: 0 1;
        border: round #4B5263;
    }
    ResultList.error {
        border: round #E06C75;
        border-title-color: #E06C75;
    }
    """

    class Resized(Message):
        """Posted when the number of visible rows changes."""

        def __init__(self, visible_height: int) -> None:
            super().__init__()
            self.visible_height = visible_height

    def on_resize(self, event: events.Resize) -> None:
        height = self.content_size.height or event.size.height - 2
        self.post_message(self.Resized(max(1, height)))

    def show(self, snapshot: SessionSnapshot) -> None:
        if snapshot.status_message:
            self.border_title = f" {snapshot.status_message} "
        else:
            self.border_title = f" {len(snapshot.results)} results "
        self.set_class(bool(snapshot.status_message), "error")
        self.update(render_results(snapshot, int(time.time())))


class Preview(Static):
    """Full, syntax-highlighted text of the selected command."""

    DEFAULT_CSS = """
    Preview {
        height: 8;
        padding: 0 1;
        border: round #4B5263;
    }
    """

    def show(self, result: SearchResult | None) -> None:
        if result is None:
            self.update("")
            return
        self.update(
            Syntax(result.entry.command, BashLexer(), theme="monokai", word_wrap=True)
        )


class HistorySearchApp(App[Outcome | None]):
    """Paints a Session and feeds it key presses until the user picks or cancels."""

    TITLE = "ihistory"

    BINDINGS = [
        Binding("up,ctrl+p", "cursor_up", "Up", show=False, priority=True),
        Binding("down,ctrl+n", "cursor_down", "Down", show=False, priority=True),
        Binding("pageup", "page_up", "Page up", show=False, priority=True),
        Binding("pagedown", "page_down", "Page down", show=False, priority=True),
        Binding("backspace", "backspace", "Backspace", show=False, priority=True),
        Binding("ctrl+u", "clear_query", "Clear query", show=False, priority=True),
        Binding("enter", "select_command", "Select", priority=True),
        Binding("tab", "run_command", "Run", priority=True),
        Binding("ctrl+d", "delete_entry", "Delete", priority=True),
        Binding("escape,ctrl+c", "cancel_search", "Cancel", priority=True),
    ]

    def __init__(self, session: Session, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = session

    def compose(self) -> ComposeResult:
        query_bar = QueryBar()
        query_bar.border_title = " ihistory "
        yield query_bar
        yield ResultList()
        preview = Preview()
        preview.border_title = " Preview "
        yield preview
        yield Footer()

    def on_mount(self) -> None:
        self._paint(self.session.snapshot())

    def _paint(self, snapshot: SessionSnapshot) -> None:
        self.query_one(QueryBar).show(snapshot.query)
        self.query_one(ResultList).show(snapshot)
        self.query_one(Preview).show(snapshot.selected)

    def _dispatch(self, event: Event) -> None:
        if self.session.terminated:
            return
        snapshot = self.session.dispatch(event)
        if self.session.terminated:
            outcome = self.session.outcome
            if outcome is not None:
                self.copy_to_clipboard(outcome.command)
            self.exit(outcome)
            return
        self._paint(snapshot)

    def on_key(self, event: events.Key) -> None:
        if event.is_printable and event.character:
            event.stop()
            self._dispatch(InsertChar(event.character))

    def on_paste(self, event: events.Paste) -> None:
        # Bracketed paste arrives as one message; line breaks never reach the query
        event.stop()
        for char in event.text:
            if char.isprintable():
                self._dispatch(InsertChar(char))

    def on_result_list_resized(self, message: ResultList.Resized) -> None:
        self._dispatch(Resize(message.visible_height))

    def action_cursor_up(self) -> None:
        self._dispatch(CursorUp())

    def action_cursor_down(self) -> None:
        self._dispatch(CursorDown())

    def action_page_up(self) -> None:
        self._dispatch(PageUp())

    def action_page_down(self) -> None:
        self._dispatch(PageDown())

    def action_backspace(self) -> None:
        self._dispatch(Backspace())

    def action_clear_query(self) -> None:
        self._dispatch(ClearQuery())

    def action_select_command(self) -> None:
        self._dispatch(SelectConfirm())

    def action_run_command(self) -> None:
        self._dispatch(SelectAndExecute())

    def action_delete_entry(self) -> None:
        self._dispatch(DeleteSelected())

    def action_cancel_search(self) -> None:
        self._dispatch(Cancel())


# ============================================================================
# CLI
# ============================================================================


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="ih", description="A minimal, fast, fuzzy shell history search tool"
    )
    ap.add_argument("query", nargs="?", default="", help="Initial search query")
    ap.add_argument("-f", "--file", type=Path, help="Custom history file path")
    ap.add_argument(
        "-n",
        "--limit",
        type=int,
        default=DEFAULT_LIMIT,
        help=f"Max entries to load, 0 = unlimited (default: {DEFAULT_LIMIT})",
    )
    ap.add_argument(
        "--blocklist",
        type=Path,
        help="File recording deleted commands (default: <config dir>/deleted)",
    )
    ap.add_argument(
        "-v", "--verbose", action="count", default=0, help="More logging on stderr (-vv for debug)"
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap.parse_args(argv)


def configure_logging(verbosity: int) -> None:
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def prepare_session(args: argparse.Namespace) -> Session:
    """→ Startup: finds and loads the history, failing before any UI exists"""
    history_path = args.file or detect_history_file()
    if history_path is None:
        raise HistoryNotFoundError("Could not find history file. Please specify one with --file")

    blocklist = Blocklist(args.blocklist or default_blocklist_path())
    entries = load_history(history_path, args.limit, blocklist)
    if not entries:
        raise EmptyHistoryError("No history entries found")
    return Session(entries, blocklist, query=args.query)


def emit_outcome(outcome: Outcome | None) -> int:
    """→ Prints the picked command to stdout and returns the process exit status"""
    if outcome is None:
        return 0
    sys.stdout.write(outcome.command)
    sys.stdout.flush()
    return EXIT_CODE_EXECUTE if outcome.execute else 0


def main(argv: list[str] | None = None) -> None:
    """→ Main: load, search interactively, report the outcome"""
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        session = prepare_session(args)
    except IHistoryError as e:
        _console_print(f"[error]Error: {escape(str(e))}[/error]")
        sys.exit(1)
    except OSError as e:
        reason = escape(str(e.strerror or e))
        if e.filename is None:
            _console_print(f"[error]Error reading history: {reason}[/error]")
        else:
            _console_print(f"[error]Error reading '{escape(str(e.filename))}': {reason}[/error]")
        sys.exit(1)

    outcome = HistorySearchApp(session).run()
    sys.exit(emit_outcome(outcome))


if __name__ == "__main__":
    main()
