"""
Evaluation bridge: drives one interpreter call at a time.

For every input the bridge prepares the source (reprex cleanup and optional
formatting), runs the busy indicator around the blocking call, tees output
to the terminal, decides whether an error occurred and records the command
in history.
"""

import io
import logging
import signal
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Iterator, List, Optional, TextIO

from repline.errors import EvaluationError, FatalInterpreterFault
from repline.formatter import ExternalFormatter
from repline.history import CommandRecord, Partition
from repline.history.store import HistoryStore
from repline.interpreter import ErrorHookChain, Interpreter, PythonInterpreter
from repline.output import print_warning
from repline.reprex import DEFAULT_COMMENT, LinePrefixer, strip_output_lines
from repline.session import Session
from repline.shell_mode import run_shell_command
from repline.spinner import NullIndicator

logger = logging.getLogger(__name__)


@dataclass
class EvalResult:
    """What one evaluation produced."""

    output: str
    error_occurred: bool
    duration: timedelta
    interrupted: bool = False
    error: Optional[EvaluationError] = None
    record: Optional[CommandRecord] = None
    exit_code: Optional[int] = None


class _TeeWriter(io.TextIOBase):
    """Copies output to the terminal and a capture buffer."""

    def __init__(self, target: TextIO, capture: List[str], on_first_write: Callable[[], None],
                 prefixer: Optional[LinePrefixer] = None):
        self._target = target
        self._capture = capture
        self._on_first_write = on_first_write
        self._prefixer = prefixer
        self._written = False

    def write(self, text: str) -> int:
        if not text:
            return 0
        if not self._written:
            self._written = True
            # The spinner must be gone before the first byte of output
            self._on_first_write()
        shown = self._prefixer.feed(text) if self._prefixer else text
        self._capture.append(shown)
        self._target.write(shown)
        return len(text)

    def flush(self):
        self._target.flush()

    @property
    def encoding(self):
        return getattr(self._target, "encoding", None) or "utf-8"

    def writable(self) -> bool:
        return True

    def isatty(self) -> bool:
        return False


class _InputGuard(io.TextIOBase):
    """Stands in for ``sys.stdin`` and clears the spinner before every read."""

    def __init__(self, source: TextIO, on_read: Callable[[], None]):
        self._source = source
        self._on_read = on_read

    def read(self, size: int = -1) -> str:
        self._on_read()
        return self._source.read(size)

    def readline(self, size: int = -1) -> str:
        self._on_read()
        return self._source.readline(size)

    def readlines(self, hint: int = -1) -> List[str]:
        self._on_read()
        return self._source.readlines(hint)

    def readable(self) -> bool:
        return True

    def fileno(self) -> int:
        return self._source.fileno()

    def isatty(self) -> bool:
        return self._source.isatty()

    @property
    def encoding(self):
        return getattr(self._source, "encoding", None) or "utf-8"


class EvaluationBridge:
    """
    Runs interpreter and shell commands for the controller.

    Args:
        store: History store receiving a record per completed command
        session: Shared session (read only here, except ``cwd`` on ``cd``)
        interpreter_factory: Builds the interpreter, again on restart
        indicator_factory: Builds a busy indicator for each evaluation
        formatter: External formatter used when reprex and autoformat are on
        reprex_comment: Prefix for output lines in reprex mode
        shell: Shell executable for shell mode
    """

    def __init__(
        self,
        store: HistoryStore,
        session: Session,
        interpreter_factory: Callable[[], Interpreter] = PythonInterpreter,
        indicator_factory: Callable[[], object] = NullIndicator,
        formatter: Optional[ExternalFormatter] = None,
        reprex_comment: str = DEFAULT_COMMENT,
        shell: Optional[str] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.store = store
        self.session = session
        self._interpreter_factory = interpreter_factory
        self._indicator_factory = indicator_factory
        self.formatter = formatter
        self.reprex_comment = reprex_comment
        self.shell = shell
        self._stdout = stdout
        self._stderr = stderr
        self._clock = clock
        self._hook_fired = False
        self._hook_exc_type: Optional[str] = None
        self.interpreter: Interpreter = interpreter_factory()
        self._chain = ErrorHookChain(self.interpreter, self._on_error_hook)
        self._chain.install()

    @property
    def stdout(self) -> TextIO:
        return self._stdout or sys.stdout

    @property
    def stderr(self) -> TextIO:
        return self._stderr or sys.stderr

    @property
    def hook_chain(self) -> ErrorHookChain:
        return self._chain

    def _on_error_hook(self, exc_type, exc, tb):
        self._hook_fired = True
        self._hook_exc_type = getattr(exc_type, "__name__", None)

    # ── interpreter mode ───────────────────────────────────────────

    def prepare_source(self, text: str) -> str:
        """Apply reprex cleanup and formatting to raw input."""
        if not self.session.flags.reprex:
            return text
        source = strip_output_lines(text, self.reprex_comment)
        if self.session.flags.autoformat and self.formatter is not None:
            formatted = self.formatter.format(source)
            if formatted is None:
                print_warning(f"[Warning] {self.formatter.name} could not format the input; running it as typed")
            else:
                source = formatted
        return source

    def evaluate(self, text: str) -> EvalResult:
        """
        Evaluate *text* in the interpreter.

        Raises:
            FatalInterpreterFault: The interpreter failed outside user code
            SystemExit: User code asked to leave
        """
        source = self.prepare_source(text)
        if not source.strip():
            # Reprex input that held only pasted output lines
            return EvalResult("", False, timedelta(0))
        self._hook_fired = False
        self._hook_exc_type = None
        self.interpreter.reset_error_indicator()
        self._chain.resolve()

        captured: List[str] = []
        indicator = self._indicator_factory()
        prefixer = LinePrefixer(self.reprex_comment) if self.session.flags.reprex else None
        out = _TeeWriter(self.stdout, captured, indicator.stop, prefixer)
        err = _TeeWriter(self.stderr, captured, indicator.stop, prefixer)

        interrupted = False
        started = self._clock()
        indicator.start()
        try:
            with self._routed_interrupts(), self._guarded_stdin(indicator.stop):
                self.interpreter.execute(source, out, err)
        except KeyboardInterrupt:
            interrupted = True
        except SystemExit:
            raise
        except Exception as e:
            raise FatalInterpreterFault(f"Interpreter failed: {e}") from e
        finally:
            indicator.stop()
            duration = timedelta(seconds=self._clock() - started)

        via_output = self.interpreter.error_indicator
        self.interpreter.reset_error_indicator()
        error_occurred = self._hook_fired or via_output
        error = None
        if error_occurred:
            error = EvaluationError(via_hook=self._hook_fired, via_output=via_output,
                                    exc_type=self._hook_exc_type)
        output = "".join(captured)

        if interrupted:
            self.stderr.write("\nKeyboardInterrupt\n")
            self.stderr.flush()
            logger.debug("Evaluation interrupted after %s", duration)
            return EvalResult(output, error_occurred, duration, interrupted=True, error=error)

        record = self.store.append(
            Partition.R,
            source,
            duration=duration,
            error=error_occurred,
            cwd=self.session.cwd,
        )
        return EvalResult(output, error_occurred, duration, error=error, record=record)

    @contextmanager
    def _guarded_stdin(self, on_read: Callable[[], None]) -> Iterator[None]:
        """Stop the spinner before user code blocks on console input."""
        original = sys.stdin
        if original is None:
            yield
            return
        sys.stdin = _InputGuard(original, on_read)
        try:
            yield
        finally:
            sys.stdin = original

    @contextmanager
    def _routed_interrupts(self) -> Iterator[None]:
        """Route SIGINT to the interpreter's own cancellation while it runs."""
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        previous = signal.signal(signal.SIGINT, self._on_sigint)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous if previous is not None else signal.default_int_handler)

    def _on_sigint(self, signum, frame):
        logger.debug("SIGINT during evaluation")
        self.interpreter.interrupt()

    def is_complete(self, source: str) -> bool:
        return self.interpreter.is_complete(source)

    def restart(self):
        """Replace the interpreter with a fresh one from the factory."""
        self._chain.uninstall()
        self.interpreter.close()
        self.interpreter = self._interpreter_factory()
        self._chain = ErrorHookChain(self.interpreter, self._on_error_hook)
        self._chain.install()

    # ── shell mode ─────────────────────────────────────────────────

    def run_shell(self, text: str) -> EvalResult:
        """Run a shell command on the inherited terminal. No spinner."""
        cwd = self.session.cwd
        started = self._clock()
        outcome = run_shell_command(text, self.session, shell=self.shell)
        duration = timedelta(seconds=self._clock() - started)
        if outcome.interrupted:
            return EvalResult("", False, duration, interrupted=True, exit_code=outcome.exit_code)
        record = self.store.append(
            Partition.SHELL,
            text,
            duration=duration,
            error=outcome.failed,
            cwd=cwd,
        )
        return EvalResult("", outcome.failed, duration, record=record, exit_code=outcome.exit_code)

    def close(self):
        self._chain.uninstall()
        self.interpreter.close()
