"""Tests for histload.py."""

from pathlib import Path

import pytest

from histload import (
    Blocklist,
    DeletionError,
    HistoryEntry,
    config_dir,
    default_blocklist_path,
    detect_history_file,
    is_self_command,
    load_history,
    parse_plain_line,
    parse_zsh_line,
)


def write_history(path: Path, lines: list[str]) -> Path:
    path.write_bytes(("\n".join(lines) + "\n").encode("utf-8"))
    return path


@pytest.fixture
def zsh_path(tmp_path: Path) -> Path:
    return tmp_path / ".zsh_history"


@pytest.fixture
def blocklist(tmp_path: Path) -> Blocklist:
    return Blocklist(tmp_path / "config" / "deleted")


def commands(entries: list[HistoryEntry]) -> list[str]:
    return [e.command for e in entries]


# --- Line parsing ---


def test_parse_zsh_line_extended() -> None:
    """Test parsing an extended history line."""
    parsed = parse_zsh_line(": 1706500000:0;git status")
    assert parsed is not None
    assert parsed.command == "git status"
    assert parsed.timestamp == 1706500000


def test_parse_zsh_line_plain() -> None:
    """Test a line without the extended prefix is a plain command."""
    parsed = parse_zsh_line("ls -la")
    assert parsed is not None
    assert parsed.command == "ls -la"
    assert parsed.timestamp is None


def test_parse_zsh_line_bad_epoch() -> None:
    """Test an unparsable epoch keeps the command without a timestamp."""
    parsed = parse_zsh_line(": abc:0;make test")
    assert parsed is not None
    assert parsed.command == "make test"
    assert parsed.timestamp is None


def test_parse_zsh_line_without_semicolon() -> None:
    """Test a malformed extended line falls back to the text after the prefix."""
    parsed = parse_zsh_line(": 1706500000:0")
    assert parsed is not None
    assert parsed.command == "1706500000:0"
    assert parsed.timestamp is None


def test_parse_zsh_line_empty_command() -> None:
    """Test an extended line with nothing after ';' is dropped."""
    assert parse_zsh_line(": 1706500000:0;") is None
    assert parse_zsh_line("") is None
    assert parse_zsh_line("   ") is None


def test_parse_plain_line() -> None:
    """Test plain lines are stripped and blank ones dropped."""
    assert parse_plain_line("  cd ~/projects  ") == "cd ~/projects"
    assert parse_plain_line("") is None
    assert parse_plain_line("   ") is None


def test_is_self_command() -> None:
    """Test ihistory's own invocations are recognized."""
    assert is_self_command("ih")
    assert is_self_command("ihistory")
    assert is_self_command("ih git")
    assert is_self_command("ihistory -n 10")
    assert not is_self_command("ihx")
    assert not is_self_command("git ih")


# --- Loading ---


def test_promotion_uses_last_occurrence(zsh_path: Path) -> None:
    """Test a repeated command moves to its last position, not its latest timestamp."""
    write_history(zsh_path, [": 100:0;git status", ": 200:0;git push", ": 100:0;git status"])
    entries = load_history(zsh_path)
    assert entries == [
        HistoryEntry("git status", 100, ": 100:0;git status"),
        HistoryEntry("git push", 200, ": 200:0;git push"),
    ]


def test_promotion_ignores_timestamps(zsh_path: Path) -> None:
    """Test position follows file order even when timestamps disagree."""
    write_history(zsh_path, [": 300:0;git status", ": 200:0;git push"])
    entries = load_history(zsh_path)
    assert commands(entries) == ["git push", "git status"]
    assert [e.timestamp for e in entries] == [200, 300]


def test_no_duplicate_commands(zsh_path: Path) -> None:
    """Test the canonical set never holds the same command twice."""
    write_history(zsh_path, [": 1:0;a", ": 2:0;b", ": 3:0;a", ": 4:0;c", ": 5:0;b", ": 6:0;a"])
    entries = load_history(zsh_path)
    assert commands(entries) == ["a", "b", "c"]
    assert [e.timestamp for e in entries] == [6, 5, 4]


def test_multiline_continuation(zsh_path: Path) -> None:
    """Test backslash-continued records join into one command with line breaks."""
    write_history(
        zsh_path,
        [
            ": 100:0;docker run \\",
            "  --rm \\",
            "  alpine",
            ": 200:0;ls",
        ],
    )
    entries = load_history(zsh_path)
    assert commands(entries) == ["ls", "docker run \\\n  --rm \\\n  alpine"]
    assert entries[1].timestamp == 100


def test_continuation_open_at_end_of_file(tmp_path: Path) -> None:
    """Test a continuation still open at EOF is kept instead of lost."""
    path = tmp_path / "zsh_history"
    path.write_bytes(b": 100:0;echo one \\\n  two \\")
    entries = load_history(path)
    assert commands(entries) == ["echo one \\\n  two \\"]


def test_plain_format(tmp_path: Path) -> None:
    """Test paths without 'zsh' use the plain parser."""
    path = write_history(tmp_path / ".bash_history", ["ls", "   ", "  git log  ", "ls", ""])
    entries = load_history(path)
    assert commands(entries) == ["ls", "git log"]
    assert all(e.timestamp is None for e in entries)


def test_plain_format_keeps_extended_looking_lines(tmp_path: Path) -> None:
    """Test format is chosen from the path, not the contents."""
    path = write_history(tmp_path / ".bash_history", [": 100:0;git status"])
    assert commands(load_history(path)) == [": 100:0;git status"]


def test_self_commands_dropped(zsh_path: Path) -> None:
    """Test ihistory's own invocations never reach the canonical set."""
    write_history(zsh_path, [": 1:0;ih", ": 2:0;ih git", ": 3:0;ihistory", ": 4:0;git status"])
    assert commands(load_history(zsh_path)) == ["git status"]


def test_limit_applies_after_filtering(zsh_path: Path, blocklist: Blocklist) -> None:
    """Test limit keeps the most recent entries that survive filtering."""
    write_history(zsh_path, [": 1:0;one", ": 2:0;two", ": 3:0;three", ": 4:0;ih"])
    blocklist.add("three")
    assert commands(load_history(zsh_path, 2, blocklist)) == ["two", "one"]
    assert commands(load_history(zsh_path, 0, blocklist)) == ["two", "one"]


def test_invalid_utf8_is_tolerated(tmp_path: Path) -> None:
    """Test undecodable bytes never make loading fail."""
    path = tmp_path / ".zsh_history"
    path.write_bytes(b": 1:0;echo \xff\xfe\n: 2:0;ls\n")
    entries = load_history(path)
    assert commands(entries)[0] == "ls"
    assert commands(entries)[1].startswith("echo ")


def test_missing_history_file_raises(tmp_path: Path) -> None:
    """Test an unreadable history file is an OSError."""
    with pytest.raises(OSError):
        load_history(tmp_path / "nope_zsh_history")


def test_loading_twice_is_identical(zsh_path: Path, blocklist: Blocklist) -> None:
    """Test reloading with an unchanged blocklist gives the same result."""
    write_history(zsh_path, [": 1:0;a", ": 2:0;b \\", "c", ": 3:0;a", "d"])
    blocklist.add("d")
    assert load_history(zsh_path, 0, blocklist) == load_history(zsh_path, 0, blocklist)


# --- Blocklist ---


def test_blocklist_missing_file_is_empty(blocklist: Blocklist) -> None:
    """Test a blocklist that was never written loads as empty."""
    assert blocklist.load() == set()


def test_blocklist_round_trips_multiline(zsh_path: Path, blocklist: Blocklist) -> None:
    """Test a multi-line command survives the sentinel encoding and is filtered on load."""
    write_history(zsh_path, [": 100:0;for f in *; do \\", "  echo $f \\", "done", ": 200:0;ls"])
    multiline = load_history(zsh_path)[1].command
    assert "\n" in multiline

    blocklist.add(multiline)

    assert blocklist.path.read_bytes().count(b"\n") == 1
    assert b"\0" in blocklist.path.read_bytes()
    assert blocklist.load() == {multiline}
    assert commands(load_history(zsh_path, 0, blocklist)) == ["ls"]


def test_blocklist_appends(blocklist: Blocklist) -> None:
    """Test every deletion adds a record instead of rewriting the file."""
    blocklist.add("one")
    blocklist.add("two")
    assert blocklist.path.read_text() == "one\ntwo\n"
    assert blocklist.load() == {"one", "two"}


def test_blocklist_write_failure(tmp_path: Path) -> None:
    """Test a failed write surfaces as DeletionError."""
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("")
    blocklist = Blocklist(not_a_dir / "deleted")
    with pytest.raises(DeletionError):
        blocklist.add("rm -rf /")


def test_blocklist_unreadable_raises(tmp_path: Path) -> None:
    """Test an existing but unreadable blocklist is an OSError."""
    path = tmp_path / "deleted"
    path.mkdir()
    with pytest.raises(OSError):
        Blocklist(path).load()


# --- Locations ---


def test_config_dir_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test IHISTORY_CONFIG_DIR wins over XDG_CONFIG_HOME."""
    monkeypatch.setenv("IHISTORY_CONFIG_DIR", str(tmp_path / "custom"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    assert config_dir() == tmp_path / "custom"
    assert default_blocklist_path() == tmp_path / "custom" / "deleted"


def test_config_dir_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test XDG_CONFIG_HOME is honored."""
    monkeypatch.delenv("IHISTORY_CONFIG_DIR", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    assert config_dir() == tmp_path / "xdg" / "ihistory"


def test_detect_prefers_shell_hint(tmp_path: Path) -> None:
    """Test $SHELL picks between two existing history files."""
    (tmp_path / ".zsh_history").write_text("")
    (tmp_path / ".bash_history").write_text("")
    assert detect_history_file(tmp_path, "/bin/bash") == tmp_path / ".bash_history"
    assert detect_history_file(tmp_path, "/usr/bin/zsh") == tmp_path / ".zsh_history"


def test_detect_falls_back(tmp_path: Path) -> None:
    """Test fallback order is zsh, then bash, then nothing."""
    assert detect_history_file(tmp_path, "/bin/fish") is None
    (tmp_path / ".bash_history").write_text("")
    assert detect_history_file(tmp_path, "/bin/zsh") == tmp_path / ".bash_history"
    (tmp_path / ".zsh_history").write_text("")
    assert detect_history_file(tmp_path, "/bin/fish") == tmp_path / ".zsh_history"
