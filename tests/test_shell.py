"""Tests for the interactive controller, driven with scripted input."""

import sys

import pytest

from repline.config import Config
from repline.history import Partition
from repline.meta_command import MetaCommandResult
from repline.session import Mode, Outcome, Session, SessionFlags
from repline.shell import ReplShell


class ScriptedInput:
    """Feeds lines to the console and records the prompts it was shown."""

    def __init__(self, lines):
        self.lines = list(lines)
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        if not self.lines:
            raise EOFError
        line = self.lines.pop(0)
        if isinstance(line, BaseException):
            raise line
        return line


@pytest.fixture
def config(tmp_path):
    return Config(config_dir=str(tmp_path / "config"))


def _shell(config, memory_store, lines, session=None, confirm=None):
    script = ScriptedInput(lines)
    shell = ReplShell(
        config,
        store=memory_store,
        session=session,
        input_func=script,
        confirm=confirm or (lambda message: True),
        use_prompt_toolkit=False,
    )
    return shell, script


def test_run_evaluates_and_exits_on_eof(config, memory_store):
    shell, script = _shell(config, memory_store, ["x = 40", "x + 2"])
    shell.run()
    assert memory_store.commands(Partition.R) == ["x = 40", "x + 2"]
    assert script.prompts[0] == ">>> "


def test_multiline_input_uses_continuation(config, memory_store):
    shell, script = _shell(config, memory_store, ["def f():", "    return 1", "", "f()"])
    shell.run()
    assert memory_store.commands(Partition.R) == ["def f():\n    return 1\n", "f()"]
    assert "... " in script.prompts


def test_prompt_reflects_failure(config, memory_store):
    shell, script = _shell(config, memory_store, ["1/0", "1"])
    shell.run()
    assert script.prompts[1].startswith("✗ ")
    assert script.prompts[2] == ">>> "


def test_ctrl_c_discards_line(config, memory_store):
    shell, _ = _shell(config, memory_store, [KeyboardInterrupt(), "1"])
    shell.run()
    assert memory_store.commands(Partition.R) == ["1"]


def test_ctrl_c_during_bookkeeping_keeps_session(config, memory_store, monkeypatch):
    shell, script = _shell(config, memory_store, ["1/0", "slow = 1", "after = 2"])
    real_append = memory_store.append
    calls = []

    def interrupted_once(*args, **kwargs):
        calls.append(args[1])
        if len(calls) == 2:
            raise KeyboardInterrupt
        return real_append(*args, **kwargs)

    monkeypatch.setattr(memory_store, "append", interrupted_once)
    shell.run()

    assert calls == ["1/0", "slow = 1", "after = 2"]
    assert memory_store.commands(Partition.R) == ["1/0", "after = 2"]
    # The prompt after the interrupted input shows no failure mark
    assert script.prompts[2] == ">>> "


def test_quit_stops_loop(config, memory_store):
    shell, _ = _shell(config, memory_store, [":quit", "never = 1"])
    shell.run()
    assert memory_store.count(Partition.R) == 0
    assert not shell.running


def test_shell_mode_routes_to_shell_partition(config, memory_store):
    shell, script = _shell(config, memory_store, [":shell", "true", ":r", "2"])
    shell.run()
    assert memory_store.commands(Partition.SHELL) == ["true"]
    assert memory_store.commands(Partition.R) == ["2"]
    assert any(p.endswith("$ ") for p in script.prompts)
    assert shell.session.mode == Mode.INTERPRETER
    assert shell.session.flags.reprex is False


def test_system_command_recorded_in_shell_partition(config, memory_store):
    shell, _ = _shell(config, memory_store, [":system exit 1"])
    shell.run()
    records = memory_store.records(Partition.SHELL)
    assert [r.command for r in records] == ["exit 1"]
    assert records[0].error is True
    assert shell.session.mode == Mode.INTERPRETER
    assert shell.session.last_outcome == Outcome.ERROR


def test_restart_keeps_mode_and_flags(config, memory_store):
    session = Session(flags=SessionFlags(reprex=True))
    shell, _ = _shell(config, memory_store, [], session=session)
    shell.handle_input("kept = 1")
    result = shell.handle_input(":restart")

    assert result == MetaCommandResult.RESTART
    assert shell.session.flags.reprex is True
    assert shell.session.mode == Mode.INTERPRETER
    assert shell.session.last_outcome == Outcome.UNKNOWN
    assert "kept" not in shell.bridge.interpreter.namespace
    shell.teardown()


def test_reprex_prompt_label(config, memory_store):
    shell, script = _shell(config, memory_store, [":reprex", "1"])
    shell.run()
    assert script.prompts[1] == "[reprex] >>> "


def test_forget_policy_runs_after_prompt(config, memory_store):
    config.set("history_forget", {"enabled": True, "delay": 1}, persist=False)
    shell, _ = _shell(config, memory_store, ["1/0", "2/0", "3/0"])
    shell.run()
    assert memory_store.commands(Partition.R) == ["3/0"]


def test_forget_policy_spares_imported_failures(config, memory_store):
    memory_store.append(Partition.R, "imported_fail()", error=True)
    memory_store.append(Partition.SHELL, "false", error=True)
    config.set("history_forget", {"enabled": True, "delay": 0}, persist=False)
    shell, _ = _shell(config, memory_store, ["1/0", "ok = 1"])
    shell.run()
    assert memory_store.commands(Partition.R) == ["imported_fail()", "ok = 1"]
    assert memory_store.commands(Partition.SHELL) == ["false"]


def test_teardown_is_idempotent_and_closes_bridge(config, memory_store):
    original = sys.excepthook
    shell, _ = _shell(config, memory_store, [])
    assert sys.excepthook is shell.bridge.hook_chain
    shell.teardown()
    shell.teardown()
    assert sys.excepthook is original


def test_switch_builds_relaunch_command(config, memory_store, monkeypatch):
    calls = []
    monkeypatch.setattr("repline.shell.os.execv", lambda exe, argv: calls.append((exe, argv)))
    session = Session(mode=Mode.SHELL, flags=SessionFlags(reprex=True))
    shell, _ = _shell(config, memory_store, [], session=session)

    shell.switch("3.12", "/usr/bin/python3.12")

    exe, argv = calls[0]
    assert exe == "/usr/bin/python3.12"
    assert argv[:5] == ["/usr/bin/python3.12", "-m", "repline", "--with-version", "3.12"]
    assert "--shell-mode" in argv
    assert "--reprex" in argv
    assert "--config-dir" in argv
