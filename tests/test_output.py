"""Tests for the terminal message helpers."""

import io

from repline.output import (
    colorize,
    format_table,
    print_dim,
    print_error,
    print_info,
    print_warning,
    supports_color,
)


class _Terminal(io.StringIO):
    def isatty(self):
        return True


def test_diagnostics_go_to_stderr(capsys, monkeypatch):
    monkeypatch.delenv("NO_COLOR", raising=False)
    print_info("tally")
    print_error("[Error] broken")
    print_warning("[Warning] careful")
    captured = capsys.readouterr()
    assert captured.out == "tally\n"
    assert captured.err == "[Error] broken\n[Warning] careful\n"


def test_color_decided_per_stream(monkeypatch):
    monkeypatch.delenv("NO_COLOR", raising=False)
    terminal, pipe = _Terminal(), io.StringIO()
    assert supports_color(terminal)
    assert not supports_color(pipe)
    assert not supports_color(None)

    print_error("bad", file=terminal)
    print_dim("quiet", file=pipe)
    assert terminal.getvalue() == "\033[31mbad\033[0m\n"
    assert pipe.getvalue() == "quiet\n"


def test_no_color_wins(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    assert not supports_color(_Terminal())
    assert colorize("31", "plain", _Terminal()) == "plain"


def test_format_table():
    table = format_table([("r", 12), ("shell", 3)], ["partition", "count"])
    assert table.splitlines() == [
        "partition  count",
        "r          12",
        "shell      3",
    ]
