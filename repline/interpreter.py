"""
Embedded interpreter interface and its CPython implementation.

Errors are detected two ways:

* the interpreter's error hook (``sys.excepthook``) fires; and
* printed output looks like an error report, which covers code that
  reports failure only by printing.

:class:`ErrorHookChain` owns the hook slot. It always runs the detection
handler first and then whatever hook user code had installed, so user
customisation keeps working but can never hide an error.
"""

import ast
import codeop
import code
import io
import logging
import platform
import re
import signal
import sys
import traceback
from abc import ABC, abstractmethod
from contextlib import redirect_stderr, redirect_stdout
from typing import Any, Callable, Dict, List, Optional, TextIO

logger = logging.getLogger(__name__)

ErrorHook = Callable[[type, BaseException, Any], None]

# Line starts that mark printed output as an error report
ERROR_OUTPUT_RE = re.compile(
    r"^(?:Traceback \(most recent call last\):|[A-Za-z_][\w.]*(?:Error|Exception)\b)"
)


class Interpreter(ABC):
    """An embedded, non-reentrant interpreter."""

    def __init__(self):
        self.error_indicator = False

    @abstractmethod
    def execute(self, source: str, stdout: TextIO, stderr: TextIO):
        """
        Evaluate *source*, writing all output to *stdout* / *stderr*.

        Errors in user code are reported through :attr:`error_hook` and
        never raised. ``KeyboardInterrupt`` and ``SystemExit`` propagate.
        """
        pass

    @abstractmethod
    def is_complete(self, source: str) -> bool:
        """True when *source* needs no continuation lines."""
        pass

    @property
    @abstractmethod
    def error_hook(self) -> Optional[ErrorHook]:
        pass

    @error_hook.setter
    @abstractmethod
    def error_hook(self, hook: Optional[ErrorHook]):
        pass

    @property
    @abstractmethod
    def default_error_hook(self) -> ErrorHook:
        pass

    @property
    def version(self) -> str:
        return ""

    @property
    def namespace(self) -> Dict[str, Any]:
        return {}

    def reset_error_indicator(self):
        self.error_indicator = False

    def interrupt(self):
        """Abort the evaluation in flight. Ignored by default."""
        pass

    def close(self):
        pass


class _ScanningWriter(io.TextIOBase):
    """Forwards writes and flags lines that look like error reports."""

    def __init__(self, target: TextIO, on_match: Callable[[], None]):
        self._target = target
        self._on_match = on_match
        self._partial = ""

    def write(self, text: str) -> int:
        if not text:
            return 0
        lines = (self._partial + text).split("\n")
        self._partial = lines.pop()
        for line in lines:
            if ERROR_OUTPUT_RE.match(line):
                self._on_match()
        self._target.write(text)
        return len(text)

    def flush(self):
        if self._partial and ERROR_OUTPUT_RE.match(self._partial):
            self._on_match()
        self._target.flush()

    def finish(self):
        self.flush()
        self._partial = ""

    @property
    def encoding(self):
        return getattr(self._target, "encoding", None) or "utf-8"

    def writable(self) -> bool:
        return True

    def isatty(self) -> bool:
        return False


class PythonInterpreter(Interpreter):
    """
    CPython's own interpreter, driven through ``code.InteractiveInterpreter``.

    All top-level statements of an input are compiled in ``single`` mode, so
    every expression statement echoes its value the way the stock console
    does for one-liners.
    """

    filename = "<repline>"

    def __init__(self, namespace: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._namespace = namespace if namespace is not None else {
            "__name__": "__main__",
            "__doc__": None,
        }
        self._console = code.InteractiveInterpreter(self._namespace)
        self._closed = False

    @property
    def namespace(self) -> Dict[str, Any]:
        return self._namespace

    @property
    def version(self) -> str:
        return platform.python_version()

    @property
    def error_hook(self) -> Optional[ErrorHook]:
        return sys.excepthook

    @error_hook.setter
    def error_hook(self, hook: Optional[ErrorHook]):
        sys.excepthook = hook or sys.__excepthook__

    @property
    def default_error_hook(self) -> ErrorHook:
        return sys.__excepthook__

    def _flag_error(self):
        self.error_indicator = True

    def is_complete(self, source: str) -> bool:
        try:
            return codeop.compile_command(source, self.filename, "single") is not None
        except (SyntaxError, ValueError, OverflowError):
            # Invalid input is complete; executing it reports the error
            return True

    def execute(self, source: str, stdout: TextIO, stderr: TextIO):
        if self._closed:
            raise RuntimeError("interpreter is closed")
        out = _ScanningWriter(stdout, self._flag_error)
        err = _ScanningWriter(stderr, self._flag_error)
        try:
            with redirect_stdout(out), redirect_stderr(err):
                self._run(source)
        finally:
            out.finish()
            err.finish()

    def _run(self, source: str):
        try:
            tree = ast.parse(source, self.filename, "exec")
            compiled = compile(ast.Interactive(body=tree.body), self.filename, "single")
        except (SyntaxError, ValueError, OverflowError):
            self._console.showsyntaxerror(self.filename)
            return
        try:
            exec(compiled, self._namespace)
        except (KeyboardInterrupt, SystemExit):
            raise
        except BaseException:
            self._console.showtraceback()

    def interrupt(self):
        # Runs inside the SIGINT handler, on the thread executing user code
        signal.default_int_handler(signal.SIGINT, None)

    def close(self):
        self._closed = True
        self._namespace.clear()


class ErrorHookChain:
    """
    Ordered handlers occupying the interpreter's error-hook slot.

    Order is fixed: the detection handler first, then the hook user code
    installed before us (or the default printer when there is none). The
    chain is re-resolved before every evaluation, so a hook installed by
    user code in the meantime is adopted as the new user hook and the chain
    takes the slot back.
    """

    def __init__(self, interpreter: Interpreter, on_error: ErrorHook):
        self.interpreter = interpreter
        self.on_error = on_error
        self.user_hook: Optional[ErrorHook] = None
        self._original: Optional[ErrorHook] = None
        self.installed = False

    def _adopt(self, hook: Optional[ErrorHook]):
        if hook is self:
            return
        if hook is None or hook is self.interpreter.default_error_hook:
            self.user_hook = None
        else:
            self.user_hook = hook

    def install(self):
        if self.installed:
            return
        self._original = self.interpreter.error_hook
        self._adopt(self._original)
        self.interpreter.error_hook = self
        self.installed = True

    def resolve(self):
        """Adopt any hook installed since the last call and reinstall the chain."""
        current = self.interpreter.error_hook
        if current is not self:
            self._adopt(current)
            self.interpreter.error_hook = self

    def handlers(self) -> List[ErrorHook]:
        return [self.on_error, self.user_hook or self._print_default]

    def _print_default(self, exc_type, exc, tb):
        traceback.print_exception(exc_type, exc, tb, file=sys.stderr)

    def __call__(self, exc_type, exc, tb):
        detect, display = self.handlers()
        detect(exc_type, exc, tb)
        if display is self._print_default:
            display(exc_type, exc, tb)
            return
        try:
            display(exc_type, exc, tb)
        except Exception as hook_error:
            logger.debug("User error hook raised %r", hook_error)
            print("Error in sys.excepthook:", file=sys.stderr)
            traceback.print_exception(type(hook_error), hook_error, hook_error.__traceback__,
                                      file=sys.stderr)
            print("\nOriginal exception was:", file=sys.stderr)
            self._print_default(exc_type, exc, tb)

    def uninstall(self):
        """Put the user's hook (or whatever was there before) back in the slot."""
        if not self.installed:
            return
        if self.interpreter.error_hook is self:
            self.interpreter.error_hook = self.user_hook or self._original
        self.installed = False
