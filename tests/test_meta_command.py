"""Tests for meta-command parsing and dispatch."""

import os

import pytest

from repline.history import Partition
from repline.meta_command import (
    MetaCommandResult,
    MetaContext,
    is_meta_command,
    parse_meta_command,
    process_meta_command,
    suggest_command,
)
from repline.session import Mode


class _Formatter:
    name = "black"

    def __init__(self, available):
        self._available = available

    def available(self):
        return self._available


@pytest.fixture
def ctx(memory_store):
    return MetaContext(store=memory_store, confirm=lambda message: True)


def test_parse_meta_command():
    assert parse_meta_command(":history search plot") == ("history", "search plot")
    assert parse_meta_command("  :Reprex  ") == ("reprex", "")
    assert parse_meta_command("x = {'a': 1}") is None
    assert parse_meta_command(": not a command") is None
    assert parse_meta_command(":") is None
    assert is_meta_command(":quit")
    assert not is_meta_command("print(':quit')")


def test_mode_switch_leaves_reprex_alone(session, ctx):
    assert session.mode == Mode.INTERPRETER
    assert not session.flags.reprex

    assert process_meta_command(":shell", session, ctx) == MetaCommandResult.HANDLED
    assert session.mode == Mode.SHELL
    assert process_meta_command(":r", session, ctx) == MetaCommandResult.HANDLED
    assert session.mode == Mode.INTERPRETER
    assert session.flags.reprex is False


def test_reprex_toggle_survives_mode_switch(session, ctx):
    process_meta_command(":reprex", session, ctx)
    process_meta_command(":shell", session, ctx)
    process_meta_command(":repl", session, ctx)
    assert session.flags.reprex is True
    process_meta_command(":reprex", session, ctx)
    assert session.flags.reprex is False


def test_autoformat_requires_formatter(session, memory_store):
    missing = MetaContext(store=memory_store, formatter=_Formatter(False))
    process_meta_command(":autoformat", session, missing)
    assert session.flags.autoformat is False

    present = MetaContext(store=memory_store, formatter=_Formatter(True))
    process_meta_command(":format", session, present)
    assert session.flags.autoformat is True
    process_meta_command(":autoformat", session, present)
    assert session.flags.autoformat is False


def test_unknown_command_suggests(session, ctx, capsys):
    result = process_meta_command(":histroy", session, ctx)
    assert result == MetaCommandResult.UNKNOWN
    assert "Did you mean :history?" in capsys.readouterr().err


def test_suggest_command():
    assert suggest_command("restrat") == "restart"
    assert suggest_command("qwertyuiop") is None


def test_quit_and_alias(session, ctx):
    assert process_meta_command(":quit", session, ctx) == MetaCommandResult.EXIT
    assert process_meta_command(":exit", session, ctx) == MetaCommandResult.EXIT


def test_restart_asks_first(session, memory_store):
    declined = MetaContext(store=memory_store, confirm=lambda message: False)
    assert process_meta_command(":restart", session, declined) == MetaCommandResult.HANDLED
    accepted = MetaContext(store=memory_store, confirm=lambda message: True)
    assert process_meta_command(":restart", session, accepted) == MetaCommandResult.RESTART
    unasked = MetaContext(store=memory_store, confirm=lambda message: False,
                          confirm_destructive=False)
    assert process_meta_command(":restart", session, unasked) == MetaCommandResult.RESTART


def test_switch(session, memory_store, capsys):
    ctx = MetaContext(store=memory_store, find_python=lambda v: None)
    assert process_meta_command(":switch", session, ctx) == MetaCommandResult.HANDLED
    assert process_meta_command(":switch 3.99", session, ctx) == MetaCommandResult.HANDLED
    assert "No interpreter found" in capsys.readouterr().err

    ctx = MetaContext(store=memory_store, find_python=lambda v: f"/usr/bin/python{v}")
    assert process_meta_command(":switch 3.12", session, ctx) == MetaCommandResult.SWITCH
    assert ctx.switch_target == ("3.12", "/usr/bin/python3.12")


def test_system_defers_to_controller(session, ctx):
    assert process_meta_command(":system echo hi", session, ctx) == MetaCommandResult.SHELL_EXECUTED
    assert ctx.system_command == "echo hi"
    assert process_meta_command(":system", session, ctx) == MetaCommandResult.HANDLED


def test_cd_pushd_popd(session, ctx, tmp_path):
    first = tmp_path / "one"
    second = tmp_path / "two"
    first.mkdir()
    second.mkdir()

    process_meta_command(f":cd {first}", session, ctx)
    assert os.path.samefile(session.cwd, first)
    process_meta_command(f":pushd {second}", session, ctx)
    assert os.path.samefile(session.cwd, second)
    assert len(ctx.dirs) == 1
    process_meta_command(":popd", session, ctx)
    assert os.path.samefile(session.cwd, first)
    assert len(ctx.dirs) == 0


def test_cd_errors_leave_directory(session, ctx, tmp_path, capsys):
    before = session.cwd
    process_meta_command(f":cd {tmp_path / 'missing'}", session, ctx)
    assert session.cwd == before
    assert "no such directory" in capsys.readouterr().err
    process_meta_command(":popd", session, ctx)
    assert "stack empty" in capsys.readouterr().err


def test_history_search_uses_current_partition(session, ctx, memory_store, capsys):
    memory_store.append(Partition.R, "plot(data)")
    memory_store.append(Partition.SHELL, "plotter --help")

    process_meta_command(":history search plot", session, ctx)
    out = capsys.readouterr().out
    assert "plot(data)" in out
    assert "plotter" not in out

    session.mode = Mode.SHELL
    process_meta_command(":history search plot", session, ctx)
    assert "plotter --help" in capsys.readouterr().out


def test_history_clear(session, memory_store):
    memory_store.append(Partition.R, "a")
    memory_store.append(Partition.SHELL, "b")

    declined = MetaContext(store=memory_store, confirm=lambda message: False)
    process_meta_command(":history clear all", session, declined)
    assert memory_store.count(Partition.R) == 1

    accepted = MetaContext(store=memory_store, confirm=lambda message: True)
    process_meta_command(":history clear", session, accepted)
    assert memory_store.count(Partition.R) == 0
    assert memory_store.count(Partition.SHELL) == 1
    process_meta_command(":history clear all", session, accepted)
    assert memory_store.count(Partition.SHELL) == 0


def test_history_schema(session, ctx, capsys):
    process_meta_command(":history schema", session, ctx)
    out = capsys.readouterr().out
    assert "start_timestamp" in out
    assert "command_line" in out


def test_help_lookup(session, memory_store, capsys):
    ctx = MetaContext(store=memory_store, namespace=lambda: {"my_dataframe": object()})
    process_meta_command(":help datafr", session, ctx)
    assert "my_dataframe" in capsys.readouterr().out

    process_meta_command(":help len", session, ctx)
    assert "len" in capsys.readouterr().out


def test_info_and_commands(session, ctx, capsys):
    process_meta_command(":info", session, ctx)
    out = capsys.readouterr().out
    assert "in memory" in out
    assert "testhost" in out

    process_meta_command(":commands", session, ctx)
    out = capsys.readouterr().out
    assert ":reprex" in out
    assert ":history" in out
