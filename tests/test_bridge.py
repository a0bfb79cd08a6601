"""Tests for the evaluation bridge and the CPython interpreter."""

import io
import os
import signal
import sys

import pytest

from repline.bridge import EvaluationBridge
from repline.errors import FatalInterpreterFault
from repline.history import Partition
from repline.interpreter import ERROR_OUTPUT_RE, PythonInterpreter
from repline.session import Session, SessionFlags


class _Stop:
    def __init__(self):
        self.calls = 0

    def start(self):
        pass

    def stop(self):
        self.calls += 1


@pytest.fixture
def streams():
    return io.StringIO(), io.StringIO()


@pytest.fixture
def bridge(memory_store, session, streams):
    out, err = streams
    b = EvaluationBridge(memory_store, session, stdout=out, stderr=err)
    yield b
    b.close()


def test_expression_value_is_echoed(bridge, streams):
    result = bridge.evaluate("1 + 1")
    assert not result.error_occurred
    assert result.output == "2\n"
    assert streams[0].getvalue() == "2\n"


def test_every_statement_echoes(bridge):
    result = bridge.evaluate("x = 3\nx\nx * 2")
    assert result.output == "3\n6\n"


def test_state_persists_between_evaluations(bridge):
    bridge.evaluate("import math\nvalue = math.sqrt(16)")
    assert bridge.evaluate("value").output == "4.0\n"


def test_exception_detected_and_recorded(bridge, memory_store):
    result = bridge.evaluate("1/0")
    assert result.error_occurred
    assert result.error.via_hook
    assert result.error.exc_type == "ZeroDivisionError"
    assert "ZeroDivisionError" in result.output

    record = memory_store.records(Partition.R)[-1]
    assert record.command == "1/0"
    assert record.error is True
    assert record.duration is not None


def test_syntax_error_detected(bridge):
    result = bridge.evaluate("def (:")
    assert result.error_occurred
    assert "SyntaxError" in result.output


def test_printed_error_report_detected(bridge):
    result = bridge.evaluate("print('ValueError: bad input')")
    assert result.error_occurred
    assert result.error.via_output
    assert not result.error.via_hook


def test_ordinary_output_is_not_an_error(bridge):
    result = bridge.evaluate("print('no Error here')")
    assert not result.error_occurred


def test_error_pattern():
    assert ERROR_OUTPUT_RE.match("Traceback (most recent call last):")
    assert ERROR_OUTPUT_RE.match("KeyError: 'a'")
    assert ERROR_OUTPUT_RE.match("requests.exceptions.HTTPError: 500")
    assert not ERROR_OUTPUT_RE.match("all good")


def test_user_hook_runs_after_detection(bridge):
    bridge.evaluate(
        "import sys\n"
        "seen = []\n"
        "def my_hook(t, v, tb):\n"
        "    seen.append(t.__name__)\n"
        "    print('custom hook')\n"
        "sys.excepthook = my_hook"
    )
    result = bridge.evaluate("raise KeyError('k')")

    assert result.error_occurred
    assert result.error.via_hook
    assert "custom hook" in result.output
    assert bridge.evaluate("seen").output == "['KeyError']\n"
    assert sys.excepthook is bridge.hook_chain


def test_failing_user_hook_still_flags_error(bridge):
    bridge.evaluate(
        "import sys\n"
        "def broken(t, v, tb):\n"
        "    raise RuntimeError('hook broke')\n"
        "sys.excepthook = broken"
    )
    result = bridge.evaluate("1/0")
    assert result.error_occurred
    assert "Error in sys.excepthook" in result.output
    assert "ZeroDivisionError" in result.output


def test_close_restores_user_hook(memory_store, session, streams):
    original = sys.excepthook
    b = EvaluationBridge(memory_store, session, stdout=streams[0], stderr=streams[1])
    assert sys.excepthook is b.hook_chain
    b.close()
    assert sys.excepthook is original


def test_indicator_stopped_on_first_output(memory_store, session, streams):
    indicators = []

    def factory():
        indicators.append(_Stop())
        return indicators[-1]

    b = EvaluationBridge(memory_store, session, indicator_factory=factory,
                         stdout=streams[0], stderr=streams[1])
    try:
        b.evaluate("print('a'); print('b')")
    finally:
        b.close()
    # Once on the first write, once after execution
    assert indicators[0].calls == 2


def test_reprex_prefixes_output_and_strips_pasted_output(memory_store, streams):
    session = Session(flags=SessionFlags(reprex=True))
    b = EvaluationBridge(memory_store, session, stdout=streams[0], stderr=streams[1])
    try:
        result = b.evaluate("x = [1, 2]\n#> old output\nprint(len(x))")
    finally:
        b.close()
    assert result.output == "#> 2\n"
    assert memory_store.commands(Partition.R)[-1] == "x = [1, 2]\nprint(len(x))"


def test_keyboard_interrupt_is_not_recorded(bridge, memory_store, streams):
    before = memory_store.count(Partition.R)
    result = bridge.evaluate("raise KeyboardInterrupt")
    assert result.interrupted
    assert result.record is None
    assert memory_store.count(Partition.R) == before
    assert "KeyboardInterrupt" in streams[1].getvalue()


def test_sigint_routed_to_interpreter(memory_store, session, streams):
    interrupts = []

    class Recording(PythonInterpreter):
        def interrupt(self):
            interrupts.append(True)
            super().interrupt()

    before = signal.getsignal(signal.SIGINT)
    b = EvaluationBridge(memory_store, session, interpreter_factory=Recording,
                         stdout=streams[0], stderr=streams[1])
    try:
        result = b.evaluate("import signal\nsignal.raise_signal(signal.SIGINT)\nreached = True")
        assert "reached" not in b.interpreter.namespace
    finally:
        b.close()
    assert interrupts == [True]
    assert result.interrupted
    assert signal.getsignal(signal.SIGINT) is before


def test_indicator_stopped_before_reading_input(memory_store, session, streams, monkeypatch):
    indicators = []
    stops_at_read = []

    class Keyboard(io.StringIO):
        def readline(self, size=-1):
            stops_at_read.append(indicators[-1].calls)
            return super().readline(size)

    def factory():
        indicators.append(_Stop())
        return indicators[-1]

    keyboard = Keyboard("typed\n")
    monkeypatch.setattr(sys, "stdin", keyboard)
    b = EvaluationBridge(memory_store, session, indicator_factory=factory,
                         stdout=streams[0], stderr=streams[1])
    try:
        b.evaluate("x = input()")
    finally:
        b.close()
    assert stops_at_read == [1]
    assert b.interpreter.namespace["x"] == "typed"
    assert sys.stdin is keyboard


def test_reprex_output_only_input_is_not_recorded(memory_store, streams):
    session = Session(flags=SessionFlags(reprex=True))
    b = EvaluationBridge(memory_store, session, stdout=streams[0], stderr=streams[1])
    try:
        result = b.evaluate("#> 1\n#> 2")
    finally:
        b.close()
    assert result.record is None
    assert not result.error_occurred
    assert memory_store.count(Partition.R) == 0


def test_system_exit_propagates(bridge):
    with pytest.raises(SystemExit):
        bridge.evaluate("raise SystemExit(3)")


def test_interpreter_fault_is_fatal(memory_store, session, streams):
    b = EvaluationBridge(memory_store, session, stdout=streams[0], stderr=streams[1])
    b.interpreter.close()
    try:
        with pytest.raises(FatalInterpreterFault):
            b.evaluate("1")
    finally:
        b.close()


def test_restart_gives_fresh_namespace(bridge):
    bridge.evaluate("secret = 42")
    old_chain = bridge.hook_chain
    bridge.restart()
    result = bridge.evaluate("secret")
    assert result.error_occurred
    assert "NameError" in result.output
    assert bridge.hook_chain is not old_chain


def test_is_complete():
    interp = PythonInterpreter()
    assert interp.is_complete("x = 1")
    assert not interp.is_complete("def f():")
    assert not interp.is_complete("if True:\n    pass")
    assert interp.is_complete("if True:\n    pass\n")
    assert interp.is_complete("def (:")


def test_shell_command_recorded(bridge, memory_store, tmp_path):
    result = bridge.run_shell("exit 3")
    assert result.error_occurred
    assert result.exit_code == 3
    record = memory_store.records(Partition.SHELL)[-1]
    assert record.command == "exit 3"
    assert record.error is True
    assert record.cwd == str(tmp_path)


def test_shell_cd_changes_session_directory(bridge, session, tmp_path):
    target = tmp_path / "sub"
    target.mkdir()
    result = bridge.run_shell(f"cd {target}")
    assert not result.error_occurred
    assert os.path.samefile(session.cwd, target)
