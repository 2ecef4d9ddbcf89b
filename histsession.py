"""
histsession.py - The interactive search session as a state machine.

A Session owns the live query, the ranked results, the selection and the
scroll window. The UI feeds it one event at a time; each event is resolved
completely into a new state before the next one is read, and the UI paints
the resulting SessionSnapshot. Nothing here touches the terminal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from histload import Blocklist, DeletionError, HistoryEntry
from histsearch import SearchResult, search

logger = logging.getLogger(__name__)

PAGE_SIZE = 20


# ============================================================================
# EVENTS
# ============================================================================


class Event:
    """Base class for everything the UI can feed into a Session."""


@dataclass(frozen=True)
class InsertChar(Event):
    char: str


@dataclass(frozen=True)
class Backspace(Event):
    pass


@dataclass(frozen=True)
class ClearQuery(Event):
    pass


@dataclass(frozen=True)
class CursorUp(Event):
    pass


@dataclass(frozen=True)
class CursorDown(Event):
    pass


@dataclass(frozen=True)
class PageUp(Event):
    pass


@dataclass(frozen=True)
class PageDown(Event):
    pass


@dataclass(frozen=True)
class SelectConfirm(Event):
    pass


@dataclass(frozen=True)
class SelectAndExecute(Event):
    pass


@dataclass(frozen=True)
class DeleteSelected(Event):
    pass


@dataclass(frozen=True)
class Cancel(Event):
    pass


@dataclass(frozen=True)
class Resize(Event):
    visible_height: int


# ============================================================================
# STATE
# ============================================================================


@dataclass(frozen=True)
class Outcome:
    """The command the user picked, and whether they asked to run it."""

    command: str
    execute: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a Session, everything the UI needs to paint."""

    query: str
    results: tuple[SearchResult, ...]
    selection_index: int
    viewport_offset: int
    visible_height: int
    status_message: str | None = None

    @property
    def selected(self) -> SearchResult | None:
        if not self.results:
            return None
        return self.results[self.selection_index]

    @property
    def visible_results(self) -> tuple[SearchResult, ...]:
        return self.results[self.viewport_offset : self.viewport_offset + self.visible_height]


def compute_viewport(
    selection_index: int, viewport_offset: int, result_count: int, visible_height: int
) -> int:
    """→ New scroll offset that keeps the selection on screen without over-scrolling"""
    offset = viewport_offset
    if selection_index < offset:
        offset = selection_index
    elif selection_index >= offset + visible_height:
        offset = selection_index - visible_height + 1
    return max(0, min(offset, max(0, result_count - visible_height)))


def _clamp_selection(index: int, result_count: int) -> int:
    return max(0, min(index, result_count - 1))


class Session:
    """Live query, selection and viewport over a canonical history list."""

    def __init__(
        self,
        entries: list[HistoryEntry],
        blocklist: Blocklist,
        visible_height: int = 1,
        query: str = "",
        page_size: int = PAGE_SIZE,
    ):
        self.entries = list(entries)
        self.blocklist = blocklist
        self.visible_height = max(1, visible_height)
        self.page_size = page_size
        self.query = query
        self.results: list[SearchResult] = search(self.entries, query)
        self.selection_index = 0
        self.viewport_offset = 0
        self.status_message: str | None = None
        self.outcome: Outcome | None = None
        self.terminated = False

        self._handlers = {
            InsertChar: self._insert_char,
            Backspace: self._backspace,
            ClearQuery: self._clear_query,
            CursorUp: lambda _: self._move_selection(-1),
            CursorDown: lambda _: self._move_selection(1),
            PageUp: lambda _: self._move_selection(-self.page_size),
            PageDown: lambda _: self._move_selection(self.page_size),
            SelectConfirm: lambda _: self._select(execute=False),
            SelectAndExecute: lambda _: self._select(execute=True),
            DeleteSelected: self._delete_selected,
            Cancel: self._cancel,
            Resize: self._resize,
        }

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            query=self.query,
            results=tuple(self.results),
            selection_index=self.selection_index,
            viewport_offset=self.viewport_offset,
            visible_height=self.visible_height,
            status_message=self.status_message,
        )

    def dispatch(self, event: Event) -> SessionSnapshot:
        """→ Applies one event and returns the resulting snapshot"""
        if self.terminated:
            return self.snapshot()
        self.status_message = None
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported session event: {event!r}")
        handler(event)
        self.viewport_offset = compute_viewport(
            self.selection_index, self.viewport_offset, len(self.results), self.visible_height
        )
        return self.snapshot()

    # --- Query ---

    def _requery(self) -> None:
        self.results = search(self.entries, self.query)
        self.selection_index = _clamp_selection(self.selection_index, len(self.results))
        # A new ranking makes the old scroll position meaningless
        self.viewport_offset = 0

    def _insert_char(self, event: InsertChar) -> None:
        self.query += event.char
        self._requery()

    def _backspace(self, event: Backspace) -> None:
        self.query = self.query[:-1]
        self._requery()

    def _clear_query(self, event: ClearQuery) -> None:
        self.query = ""
        self._requery()

    # --- Navigation ---

    def _move_selection(self, delta: int) -> None:
        self.selection_index = _clamp_selection(self.selection_index + delta, len(self.results))

    def _resize(self, event: Resize) -> None:
        self.visible_height = max(1, event.visible_height)

    # --- Deletion ---

    def _delete_selected(self, event: DeleteSelected) -> None:
        if not self.results:
            return
        command = self.results[self.selection_index].entry.command
        try:
            self.blocklist.add(command)
        except DeletionError as e:
            self.status_message = f"Delete failed: {e}"
            return

        self.entries = [entry for entry in self.entries if entry.command != command]
        self.results = search(self.entries, self.query)
        self.selection_index = _clamp_selection(self.selection_index, len(self.results))
        logger.debug("Deleted %r; %d result(s) remain", command, len(self.results))

    # --- Termination ---

    def _select(self, execute: bool) -> None:
        if self.results:
            command = self.results[self.selection_index].entry.command
            self.outcome = Outcome(command=command, execute=execute)
        self.terminated = True

    def _cancel(self, event: Cancel) -> None:
        self.terminated = True
