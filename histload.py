"""
histload.py - Shell history loading and normalization for ihistory.

Reads a raw history log (plain bash-style or zsh EXTENDED_HISTORY) into the
canonical entry list the search engine and the session work on:

  - one entry per distinct command text
  - ordered most-recent-first, where "recent" means the command's last
    position in the file, not its timestamp
  - commands the user deleted from view (the blocklist) filtered out
  - ihistory's own invocations filtered out

Format
------
zsh:   ": <epoch>:<duration>;command", with multi-line commands continued by a
       trailing backslash on every line but the last.
plain: one command per line.

The format is chosen from the path ("zsh" anywhere in it), never sniffed from
the contents.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS & PATTERNS
# ============================================================================

APP_NAME = "ihistory"
SELF_COMMANDS = ("ih", "ihistory")
BLOCKLIST_FILENAME = "deleted"
BLOCKLIST_SENTINEL = "\0"
DEFAULT_LIMIT = 50_000

ZSH_EXTENDED_PREFIX = ": "
CONTINUATION_MARKER = "\\"
EPOCH_RE = re.compile(r"^-?\d+$")


# ============================================================================
# ERRORS
# ============================================================================


class IHistoryError(Exception):
    """Base class for ihistory's own errors."""


class HistoryNotFoundError(IHistoryError):
    """No history file was given and none could be discovered."""


class EmptyHistoryError(IHistoryError):
    """Nothing is left to search once the history has been filtered."""


class DeletionError(IHistoryError):
    """The blocklist could not record a deleted command."""


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass(frozen=True)
class HistoryEntry:
    """A single canonical history command."""

    command: str
    timestamp: int | None = None
    raw_line: str | None = None

    @cached_property
    def folded(self) -> tuple[str, ...]:
        """→ Per-character lowercase of the command, one item per character"""
        return tuple(c.lower() for c in self.command)

    @cached_property
    def folded_text(self) -> str:
        return "".join(self.folded)


@dataclass
class _ParsedLine:
    command: str
    timestamp: int | None
    raw_line: str


class Blocklist:
    """Persisted record of commands the user deleted from view.

    One command per line; embedded newlines are stored as a NUL sentinel so a
    multi-line command stays on a single record. Writes only ever append.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"

    def load(self) -> set[str]:
        """→ Reads every recorded command. A missing file is an empty blocklist."""
        try:
            content = self.path.read_bytes()
        except FileNotFoundError:
            return set()
        text = content.decode("utf-8", errors="replace")
        commands = {
            line.replace(BLOCKLIST_SENTINEL, "\n") for line in text.split("\n") if line
        }
        logger.debug("Loaded %d blocklisted command(s) from %s", len(commands), self.path)
        return commands

    def add(self, command: str) -> None:
        """→ Appends one command, raising DeletionError if it cannot be written."""
        encoded = command.replace("\n", BLOCKLIST_SENTINEL)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(encoded + "\n")
        except OSError as e:
            logger.warning("Could not write to blocklist %s: %s", self.path, e)
            raise DeletionError(e.strerror or str(e)) from e
        logger.info("Blocklisted %r", command)


# ============================================================================
# LOCATIONS
# ============================================================================


def config_dir() -> Path:
    """→ Per-user configuration directory for ihistory"""
    if override := os.environ.get("IHISTORY_CONFIG_DIR"):
        return Path(override).expanduser()
    if xdg := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg).expanduser() / APP_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    return Path.home() / ".config" / APP_NAME


def default_blocklist_path() -> Path:
    return config_dir() / BLOCKLIST_FILENAME


def detect_history_file(home: Path | None = None, shell: str | None = None) -> Path | None:
    """→ Finds the user's history file, preferring the one matching $SHELL.

    Falls back to ~/.zsh_history, then ~/.bash_history. Only existing files count.
    """
    home = Path.home() if home is None else home
    shell = os.environ.get("SHELL", "") if shell is None else shell

    zsh_history = home / ".zsh_history"
    bash_history = home / ".bash_history"

    if "zsh" in shell and zsh_history.exists():
        return zsh_history
    if "bash" in shell and bash_history.exists():
        return bash_history

    for candidate in (zsh_history, bash_history):
        if candidate.exists():
            return candidate
    return None


# ============================================================================
# PARSING
# ============================================================================


def is_zsh_format(path: Path) -> bool:
    return "zsh" in str(path)


def is_self_command(command: str) -> bool:
    """→ True for ihistory's own invocations, which are never worth searching"""
    return any(
        command == name or command.startswith(f"{name} ") for name in SELF_COMMANDS
    )


def parse_zsh_line(line: str) -> _ParsedLine | None:
    """→ Parses one zsh line, extended (`: EPOCH:DURATION;command`) or plain"""
    if line.startswith(ZSH_EXTENDED_PREFIX):
        rest = line[len(ZSH_EXTENDED_PREFIX) :]
        meta, sep, command = rest.partition(";")
        if not sep:
            # Malformed extended entry; keep whatever follows the prefix
            if not rest.strip():
                return None
            return _ParsedLine(rest, None, line)
        if not command:
            return None
        epoch = meta.split(":", 1)[0]
        timestamp = int(epoch) if EPOCH_RE.match(epoch) else None
        return _ParsedLine(command, timestamp, line)

    # Whitespace-only lines are not commands, same as in plain histories
    if not line.strip():
        return None
    return _ParsedLine(line, None, line)


def parse_plain_line(line: str) -> str | None:
    """→ Parses one plain history line; blank lines yield None"""
    stripped = line.strip()
    return stripped or None


def _iter_zsh_records(lines: list[str]) -> list[_ParsedLine]:
    """→ Joins backslash-continued zsh lines into whole records, in file order"""
    records: list[_ParsedLine] = []
    pending: _ParsedLine | None = None

    for line in lines:
        if pending is not None:
            pending.command += "\n" + line
            pending.raw_line += "\n" + line
            if not line.endswith(CONTINUATION_MARKER):
                records.append(pending)
                pending = None
            continue

        parsed = parse_zsh_line(line)
        if parsed is None:
            continue
        if parsed.command.endswith(CONTINUATION_MARKER):
            pending = parsed
        else:
            records.append(parsed)

    if pending is not None:
        logger.debug("History ends inside a continued command; keeping it as-is")
        records.append(pending)
    return records


def _iter_plain_records(lines: list[str]) -> list[_ParsedLine]:
    records: list[_ParsedLine] = []
    for line in lines:
        if (command := parse_plain_line(line)) is not None:
            records.append(_ParsedLine(command, None, line))
    return records


def dedupe_most_recent_first(records: list[_ParsedLine]) -> list[HistoryEntry]:
    """→ Collapses repeats onto their last occurrence and reverses to most-recent-first"""
    latest: dict[str, _ParsedLine] = {}
    for record in records:
        # Re-inserting moves the command to the end of the insertion order
        latest.pop(record.command, None)
        latest[record.command] = record
    return [
        HistoryEntry(command=r.command, timestamp=r.timestamp, raw_line=r.raw_line)
        for r in reversed(latest.values())
    ]


def read_history_lines(path: Path) -> list[str]:
    """→ File I/O: Reads raw history bytes as newline-separated text lines"""
    content = Path(path).read_bytes()
    return content.decode("utf-8", errors="replace").split("\n")


def load_history(
    path: Path, limit: int = 0, blocklist: Blocklist | None = None
) -> list[HistoryEntry]:
    """→ Loads the canonical, deduplicated, most-recent-first history.

    Raises OSError when the history file (or an existing blocklist) can't be read.
    """
    path = Path(path)
    lines = read_history_lines(path)
    zsh = is_zsh_format(path)
    records = _iter_zsh_records(lines) if zsh else _iter_plain_records(lines)
    entries = dedupe_most_recent_first(records)
    logger.debug(
        "Parsed %d record(s) into %d unique command(s) from %s (%s format)",
        len(records),
        len(entries),
        path,
        "zsh" if zsh else "plain",
    )

    blocked = blocklist.load() if blocklist is not None else set()
    entries = [
        entry
        for entry in entries
        if entry.command not in blocked and not is_self_command(entry.command)
    ]

    if limit > 0:
        entries = entries[:limit]
    logger.info("Loaded %d history entries from %s", len(entries), path)
    return entries
