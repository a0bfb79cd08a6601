"""
Meta-commands: console commands starting with ``:``.

Each command maps onto one controller state transition. Commands that
need the controller itself (restart, version switch, running a shell
command) are reported back through :class:`MetaCommandResult` rather than
performed here.
"""

import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from thefuzz import fuzz, process

from repline.history import Partition
from repline.history.sqlite_backend import SCHEMA_DESCRIPTION
from repline.history.store import HistoryStore
from repline.formatter import ExternalFormatter
from repline.help_topics import HelpTopic, collect_help_topics, render_topic, search_help
from repline.output import (
    format_table,
    print_dim,
    print_error,
    print_header,
    print_info,
    print_success,
)
from repline.session import Mode, Session
from repline.shell_mode import DirectoryStack, change_directory


class MetaCommandResult(Enum):
    HANDLED = "handled"
    EXIT = "exit"
    UNKNOWN = "unknown"
    RESTART = "restart"
    SWITCH = "switch"
    SHELL_EXECUTED = "shell_executed"


@dataclass(frozen=True)
class MetaCommand:
    name: str
    summary: str
    usage: str = ""
    aliases: Tuple[str, ...] = ()


COMMANDS: List[MetaCommand] = [
    MetaCommand("reprex", "Toggle reproducible-example output"),
    MetaCommand("autoformat", "Toggle formatting of reprex input", aliases=("format",)),
    MetaCommand("shell", "Switch to shell mode"),
    MetaCommand("r", "Return to interpreter mode", aliases=("repl",)),
    MetaCommand("system", "Run one shell command", "<command>"),
    MetaCommand("cd", "Change directory", "<path>"),
    MetaCommand("pushd", "Change directory, remembering the current one", "<path>"),
    MetaCommand("popd", "Return to the last pushed directory"),
    MetaCommand("restart", "Restart the interpreter (mode and flags are kept)"),
    MetaCommand("switch", "Re-launch repline on another Python version", "<version>"),
    MetaCommand("history", "Search, clear or describe history", "search <query> | clear [r|shell|all] | schema"),
    MetaCommand("help", "Fuzzy-search help topics", "<query>"),
    MetaCommand("info", "Show session information", aliases=("session",)),
    MetaCommand("commands", "List meta-commands", aliases=("cmds",)),
    MetaCommand("quit", "Leave repline", aliases=("exit",)),
]

_BY_NAME: Dict[str, MetaCommand] = {}
for _command in COMMANDS:
    _BY_NAME[_command.name] = _command
    for _alias in _command.aliases:
        _BY_NAME[_alias] = _command


def find_python_executable(version: str) -> Optional[str]:
    """Locate ``python<version>`` on PATH."""
    version = version.strip()
    if not version or not all(part.isdigit() for part in version.split(".")):
        return None
    return shutil.which(f"python{version}")


@dataclass
class MetaContext:
    """Collaborators the meta-commands act on."""

    store: HistoryStore
    dirs: DirectoryStack = field(default_factory=DirectoryStack)
    confirm: Callable[[str], bool] = lambda message: True
    confirm_destructive: bool = True
    formatter: Optional[ExternalFormatter] = None
    namespace: Callable[[], Dict[str, Any]] = dict
    find_python: Callable[[str], Optional[str]] = find_python_executable
    info: Callable[[], List[Tuple[str, str]]] = list
    # Filled in for SWITCH and SHELL_EXECUTED results
    switch_target: Optional[Tuple[str, str]] = None
    system_command: Optional[str] = None

    def ask(self, message: str) -> bool:
        if not self.confirm_destructive:
            return True
        return self.confirm(message)


def parse_meta_command(line: str) -> Optional[Tuple[str, str]]:
    """Split ``:name args`` into (name, args); None when *line* is not a meta-command."""
    stripped = line.strip()
    if not stripped.startswith(":") or len(stripped) < 2 or stripped[1].isspace():
        return None
    name, _, args = stripped[1:].partition(" ")
    return name.lower(), args.strip()


def is_meta_command(line: str) -> bool:
    return parse_meta_command(line) is not None


def suggest_command(name: str) -> Optional[str]:
    """Closest known command name, for "did you mean" hints."""
    match = process.extractOne(name, list(_BY_NAME), scorer=fuzz.ratio, score_cutoff=60)
    return match[0] if match else None


def process_meta_command(line: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    """
    Execute one meta-command.

    Args:
        line: Raw input starting with ``:``
        session: Session to update
        ctx: Collaborators and result payloads

    Returns:
        What the controller has to do next
    """
    parsed = parse_meta_command(line)
    if parsed is None:
        return MetaCommandResult.UNKNOWN
    name, args = parsed
    command = _BY_NAME.get(name)
    if command is None:
        hint = suggest_command(name)
        suffix = f" Did you mean :{hint}?" if hint else " Type :commands for a list."
        print_error(f"[Error] Unknown command ':{name}'.{suffix}")
        return MetaCommandResult.UNKNOWN

    handler = _HANDLERS[command.name]
    return handler(args, session, ctx)


# ---------------------------------------------------------------------------
# Mode and flag commands
# ---------------------------------------------------------------------------

def _reprex(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    session.flags.reprex = not session.flags.reprex
    state = "on" if session.flags.reprex else "off"
    print_info(f"Reprex mode {state}")
    return MetaCommandResult.HANDLED


def _autoformat(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    if not session.flags.autoformat:
        if ctx.formatter is None or not ctx.formatter.available():
            name = ctx.formatter.name if ctx.formatter else "formatter"
            print_error(f"[Error] Cannot enable autoformat: '{name}' was not found on PATH")
            return MetaCommandResult.HANDLED
        session.flags.autoformat = True
        print_info("Autoformat on" + ("" if session.flags.reprex else " (applies in reprex mode)"))
    else:
        session.flags.autoformat = False
        print_info("Autoformat off")
    return MetaCommandResult.HANDLED


def _shell(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    session.mode = Mode.SHELL
    print_dim("Shell mode. Use :r to return.")
    return MetaCommandResult.HANDLED


def _interpreter(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    session.mode = Mode.INTERPRETER
    return MetaCommandResult.HANDLED


def _quit(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    return MetaCommandResult.EXIT


# ---------------------------------------------------------------------------
# Directories and shell
# ---------------------------------------------------------------------------

def _system(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    if not args:
        print_error("[Error] Usage: :system <command>")
        return MetaCommandResult.HANDLED
    ctx.system_command = args
    return MetaCommandResult.SHELL_EXECUTED


def _cd(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    problem = change_directory(session, args)
    if problem:
        print_error(f"[Error] {problem}")
    return MetaCommandResult.HANDLED


def _pushd(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    if not args:
        print_error("[Error] Usage: :pushd <path>")
        return MetaCommandResult.HANDLED
    problem = ctx.dirs.push(session, args)
    if problem:
        print_error(f"[Error] {problem}")
    else:
        print_dim(" ".join([session.cwd] + list(reversed(ctx.dirs.entries))))
    return MetaCommandResult.HANDLED


def _popd(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    problem = ctx.dirs.pop(session)
    if problem:
        print_error(f"[Error] {problem}")
    else:
        print_dim(session.cwd)
    return MetaCommandResult.HANDLED


# ---------------------------------------------------------------------------
# Process-level commands
# ---------------------------------------------------------------------------

def _restart(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    if not ctx.ask("Restart the interpreter? All variables will be lost."):
        print_dim("Cancelled.")
        return MetaCommandResult.HANDLED
    return MetaCommandResult.RESTART


def _switch(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    version = args.strip()
    if not version:
        print_error("[Error] Usage: :switch <version>   e.g. :switch 3.12")
        return MetaCommandResult.HANDLED
    executable = ctx.find_python(version)
    if executable is None:
        print_error(f"[Error] No interpreter found for Python {version} (looked for python{version} on PATH)")
        return MetaCommandResult.HANDLED
    if not ctx.ask(f"Restart repline with Python {version}? All variables will be lost."):
        print_dim("Cancelled.")
        return MetaCommandResult.HANDLED
    ctx.switch_target = (version, executable)
    return MetaCommandResult.SWITCH


# ---------------------------------------------------------------------------
# History, help and info
# ---------------------------------------------------------------------------

def _print_schema():
    print_header("History schema (one container per partition: r.db, shell.db; table 'history')")
    print(format_table(SCHEMA_DESCRIPTION, ("column", "type", "meaning")))


def _history(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    sub, _, rest = args.partition(" ")
    sub = sub.lower()
    rest = rest.strip()

    if sub == "search":
        partition = session.mode.partition
        results = ctx.store.search(partition, rest, limit=20)
        if not results:
            print_dim(f"No {partition.value} history matches '{rest}'.")
            return MetaCommandResult.HANDLED
        rows = []
        for record, _match in results:
            first_line = record.command.splitlines()[0] if record.command else ""
            more = " …" if "\n" in record.command else ""
            status = "✗" if record.error else ""
            rows.append((record.id, record.local_time(), status, first_line + more))
        print(format_table(rows, ("id", "time", "", "command")))
        return MetaCommandResult.HANDLED

    if sub == "clear":
        target = rest.lower() or session.mode.partition.value
        if target == "all":
            partition = None
        elif target in ("r", "shell"):
            partition = Partition(target)
        else:
            print_error("[Error] Usage: :history clear [r|shell|all]")
            return MetaCommandResult.HANDLED
        label = "all" if partition is None else f"the {partition.value}"
        if not ctx.ask(f"Delete {label} history? This cannot be undone."):
            print_dim("Cancelled.")
            return MetaCommandResult.HANDLED
        removed = ctx.store.clear(partition)
        print_success(f"Removed {removed} history entries.")
        return MetaCommandResult.HANDLED

    if sub == "schema":
        _print_schema()
        return MetaCommandResult.HANDLED

    print_error("[Error] Usage: :history search <query> | clear [r|shell|all] | schema")
    return MetaCommandResult.HANDLED


def _help(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    if not args:
        _commands("", session, ctx)
        return MetaCommandResult.HANDLED
    namespace = ctx.namespace()
    topics = collect_help_topics(namespace)
    results = search_help(args, topics)
    if not results:
        print_dim(f"No help topics match '{args}'.")
        return MetaCommandResult.HANDLED
    best: HelpTopic = results[0][0]
    if best.name == args:
        print(render_topic(best, namespace))
        return MetaCommandResult.HANDLED
    rows = [(topic.name, topic.kind, topic.summary[:60]) for topic, _match in results]
    print(format_table(rows, ("topic", "kind", "summary")))
    return MetaCommandResult.HANDLED


def _info(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    rows = [
        ("mode", session.mode.name.lower()),
        ("reprex", "on" if session.flags.reprex else "off"),
        ("autoformat", "on" if session.flags.autoformat else "off"),
        ("cwd", session.cwd),
        ("hostname", session.hostname),
        ("last outcome", session.last_outcome.value),
    ]
    for partition in Partition:
        path = ctx.store.path(partition)
        rows.append((f"{partition.value} history", str(path) if path else "in memory"))
    rows.extend(ctx.info())
    print(format_table(rows, ("", "")))
    return MetaCommandResult.HANDLED


def _commands(args: str, session: Session, ctx: MetaContext) -> MetaCommandResult:
    rows = []
    for command in COMMANDS:
        names = ", ".join(f":{n}" for n in (command.name,) + command.aliases)
        rows.append((names, command.usage, command.summary))
    print(format_table(rows, ("command", "arguments", "description")))
    return MetaCommandResult.HANDLED


_HANDLERS: Dict[str, Callable[[str, Session, MetaContext], MetaCommandResult]] = {
    "reprex": _reprex,
    "autoformat": _autoformat,
    "shell": _shell,
    "r": _interpreter,
    "system": _system,
    "cd": _cd,
    "pushd": _pushd,
    "popd": _popd,
    "restart": _restart,
    "switch": _switch,
    "history": _history,
    "help": _help,
    "info": _info,
    "commands": _commands,
    "quit": _quit,
}
