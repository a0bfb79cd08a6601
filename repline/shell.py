"""
Interactive controller for repline.
Reads input, routes it to meta-commands or the evaluation bridge and feeds
the outcome back into the prompt.
"""

import logging
import os
import sys
from typing import Callable, Dict, List, Optional, Tuple

from repline import __version__
from repline.bridge import EvalResult, EvaluationBridge
from repline.config import Config
from repline.formatter import ExternalFormatter
from repline.history.forget import ForgetPolicy
from repline.history.store import HistoryStore
from repline.interpreter import Interpreter, PythonInterpreter
from repline.meta_command import (
    MetaCommandResult,
    MetaContext,
    is_meta_command,
    process_meta_command,
)
from repline.output import print_dim, print_error, print_header, print_info, print_warning
from repline.prompt import continuation_prompt, render_prompt
from repline.session import Mode, Outcome, Session
from repline.shell_mode import DirectoryStack
from repline.spinner import make_indicator

logger = logging.getLogger(__name__)


def _confirm_via_input(message: str) -> bool:
    try:
        answer = input(f"{message} (y/n): ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return answer in ("y", "yes")


class ReplShell:
    """Main repline console."""

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[HistoryStore] = None,
        session: Optional[Session] = None,
        interpreter_factory: Callable[[], Interpreter] = PythonInterpreter,
        confirm: Optional[Callable[[str], bool]] = None,
        input_func: Callable[[str], str] = input,
        with_version: Optional[str] = None,
        use_prompt_toolkit: bool = True,
    ):
        """
        Initialize the console.

        Args:
            config: Configuration object (creates default if None)
            store: History store (opened from config if None)
            session: Initial session (built from config if None)
            interpreter_factory: Builds the embedded interpreter
            confirm: Asks a yes/no question; defaults to ``input()``
            input_func: Line reader used when prompt_toolkit is unavailable
            with_version: Python version this process was launched for
            use_prompt_toolkit: Set False to always read with *input_func*
        """
        self.config = config or Config()
        self.session = session or Session.from_config(self.config)
        self.store = store or HistoryStore(
            self.config.get_history_dir(),
            on_warning=lambda msg: print_warning(f"[Warning] {msg}"),
        )
        self.forget = ForgetPolicy.from_config(self.config.section("history_forget"))
        self.prompt_config = self.config.section("prompt")
        self.with_version = with_version
        self.formatter = ExternalFormatter()
        self.dirs = DirectoryStack()
        self._input = input_func
        self._use_prompt_toolkit = use_prompt_toolkit
        self._confirm = confirm or _confirm_via_input

        spinner = self.config.section("spinner")
        self.bridge = EvaluationBridge(
            store=self.store,
            session=self.session,
            interpreter_factory=interpreter_factory,
            indicator_factory=lambda: make_indicator(spinner),
            formatter=self.formatter,
            reprex_comment=self.config.get("reprex_comment", "#> "),
            shell=self.config.get_shell(),
        )
        self.meta = MetaContext(
            store=self.store,
            dirs=self.dirs,
            confirm=self._confirm,
            confirm_destructive=bool(self.config.get("confirm_destructive", True)),
            formatter=self.formatter,
            namespace=lambda: self.bridge.interpreter.namespace,
            info=self._extra_info,
        )

        self.running = True
        self._torn_down = False
        self._prompt_sessions: Dict[Mode, object] = {}

    # ------------------------------------------------------------------
    # Banner and info
    # ------------------------------------------------------------------

    def print_banner(self):
        version = self.bridge.interpreter.version
        print_header(f"repline {__version__}  (Python {version})")
        print_dim("Type :commands for console commands, :quit to leave.")
        if not self.store.persistent:
            print_dim("History is kept in memory only.")
        if self.with_version and not version.startswith(self.with_version):
            print_warning(f"[Warning] Requested Python {self.with_version}, running {version}")

    def _extra_info(self) -> List[Tuple[str, str]]:
        return [
            ("python", self.bridge.interpreter.version),
            ("executable", sys.executable),
            ("repline", __version__),
        ]

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _create_prompt_session(self, mode: Mode):
        """
        Build a prompt_toolkit PromptSession for *mode*.

        Returns the session, or *None* when prompt_toolkit cannot drive
        the terminal (falls back to plain ``input()``).
        """
        if not self._use_prompt_toolkit or not sys.stdin.isatty() or not sys.stdout.isatty():
            return None
        try:
            from prompt_toolkit import PromptSession
            from prompt_toolkit.history import InMemoryHistory
            from prompt_toolkit.lexers import PygmentsLexer
            from prompt_toolkit.styles import merge_styles, Style as PTStyle
            from prompt_toolkit.styles.pygments import style_from_pygments_cls
            from repline.highlighting import (
                PROMPT_STYLE,
                PythonInputLexer,
                ReplineStyle,
                ShellLexer,
            )
            from repline.suggest import HistoryAutoSuggest

            # Seed arrow-up history from the matching partition
            pt_history = InMemoryHistory()
            for command in self.store.commands(mode.partition):
                pt_history.store_string(command)

            style = merge_styles([
                style_from_pygments_cls(ReplineStyle),
                PTStyle.from_dict(PROMPT_STYLE),
            ])
            lexer = PythonInputLexer if mode == Mode.INTERPRETER else ShellLexer

            return PromptSession(
                lexer=PygmentsLexer(lexer),
                style=style,
                history=pt_history,
                auto_suggest=HistoryAutoSuggest(self.store, lambda: mode.partition),
            )
        except Exception as e:
            logger.debug("prompt_toolkit unavailable: %s", e)
            return None

    def _prompt_session(self, mode: Mode):
        if mode not in self._prompt_sessions:
            self._prompt_sessions[mode] = self._create_prompt_session(mode)
        return self._prompt_sessions[mode]

    def _read_line(self, message: str, style_class: str) -> str:
        session = self._prompt_session(self.session.mode)
        if session is not None:
            return session.prompt([(f"class:{style_class}", message)])
        return self._input(message)

    def read_input(self) -> str:
        """
        Read one complete input.

        In interpreter mode, lines are collected until the source is
        complete; meta-commands and shell commands are always one line.
        """
        style = "prompt-error" if self.session.last_outcome == Outcome.ERROR else "prompt"
        first = self._read_line(render_prompt(self.session, self.prompt_config), style)
        if self.session.mode != Mode.INTERPRETER or is_meta_command(first) or not first.strip():
            return first
        lines = [first]
        while not self.bridge.is_complete("\n".join(lines)):
            lines.append(self._read_line(continuation_prompt(self.prompt_config), "continuation"))
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self):
        """Main console loop. Teardown always runs."""
        self.print_banner()
        try:
            while self.running:
                try:
                    text = self.read_input()
                except KeyboardInterrupt:
                    # Ctrl-C at the prompt discards the line
                    print()
                    continue
                except EOFError:
                    print()
                    break

                if not text.strip():
                    continue
                try:
                    self.handle_input(text)
                except KeyboardInterrupt:
                    # Ctrl-C outside user code; the outcome is unknown
                    print()
                    self.session.record_outcome(None, None)
        finally:
            self.teardown()

    def handle_input(self, text: str) -> Optional[MetaCommandResult]:
        """
        Route one input.

        Returns:
            The meta-command result, or None for evaluated input
        """
        if is_meta_command(text):
            result = process_meta_command(text, self.session, self.meta)
            self._apply_meta_result(result)
            return result

        if self.session.mode == Mode.SHELL:
            outcome = self.bridge.run_shell(text)
        else:
            outcome = self.bridge.evaluate(text)
            # User code may have changed directory
            self.session.cwd = os.getcwd()
        self._record(outcome)
        return None

    def _record(self, outcome: EvalResult):
        if outcome.interrupted:
            self.session.record_outcome(None, outcome.duration)
        else:
            self.session.record_outcome(outcome.error_occurred, outcome.duration)
        self.forget.track(outcome.record)
        self.forget.after_prompt(self.store)

    def _apply_meta_result(self, result: MetaCommandResult):
        if result == MetaCommandResult.EXIT:
            self.running = False
        elif result == MetaCommandResult.RESTART:
            self.restart()
        elif result == MetaCommandResult.SWITCH:
            version, executable = self.meta.switch_target
            self.switch(version, executable)
        elif result == MetaCommandResult.SHELL_EXECUTED:
            command = self.meta.system_command
            self.meta.system_command = None
            self._record(self.bridge.run_shell(command))

    # ------------------------------------------------------------------
    # Process-level transitions
    # ------------------------------------------------------------------

    def restart(self):
        """Fresh interpreter; mode and flags are kept."""
        self.bridge.restart()
        self.session.record_outcome(None, None)
        print_info("Interpreter restarted.")

    def switch(self, version: str, executable: str):
        """Replace this process with repline running on *executable*."""
        argv = [executable, "-m", "repline", "--with-version", version]
        if self.config.config_dir:
            argv += ["--config-dir", str(self.config.config_dir)]
        if self.session.mode == Mode.SHELL:
            argv.append("--shell-mode")
        if self.session.flags.reprex:
            argv.append("--reprex")
        self.teardown()
        sys.stdout.flush()
        sys.stderr.flush()
        logger.debug("Re-exec: %s", argv)
        try:
            os.execv(executable, argv)
        except OSError as e:
            print_error(f"[Error] Could not start {executable}: {e}")
            raise SystemExit(1)

    def teardown(self):
        """Forget-purge, restore the error hook and close history. Idempotent."""
        if self._torn_down:
            return
        self._torn_down = True
        try:
            self.forget.at_exit(self.store)
        finally:
            self.bridge.close()
            self.store.close()
