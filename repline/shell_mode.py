"""
Shell mode: run commands through the user's shell.

Commands inherit the terminal so interactive programs work. ``cd`` is
handled here instead: a child shell cannot change repline's own working
directory, so it is turned into ``os.chdir``.
"""

import os
import platform
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from repline.output import print_error
from repline.session import Session


@dataclass
class ShellOutcome:
    exit_code: Optional[int]
    interrupted: bool = False

    @property
    def failed(self) -> bool:
        return self.exit_code != 0


def change_directory(session: Session, target: str) -> Optional[str]:
    """
    Change the process and session working directory.

    Bare ``cd`` goes home and ``cd -`` returns to the previous directory.

    Returns:
        An error message, or None on success
    """
    target = target.strip()
    if len(target) >= 2 and target[0] == target[-1] and target[0] in "\"'":
        target = target[1:-1]
    if not target or target == "~":
        path = Path.home()
    elif target == "-":
        previous = os.environ.get("OLDPWD")
        if not previous:
            return "cd: OLDPWD not set"
        path = Path(previous)
    else:
        path = Path(os.path.expandvars(target)).expanduser()

    old = session.cwd
    try:
        os.chdir(path)
    except FileNotFoundError:
        return f"cd: no such directory: {target}"
    except NotADirectoryError:
        return f"cd: not a directory: {target}"
    except PermissionError:
        return f"cd: permission denied: {target}"
    except OSError as e:
        return f"cd: {e}"
    os.environ["OLDPWD"] = old
    session.cwd = os.getcwd()
    return None


class DirectoryStack:
    """Backing store for ``:pushd`` / ``:popd``."""

    def __init__(self):
        self._stack: List[str] = []

    def __len__(self):
        return len(self._stack)

    @property
    def entries(self) -> List[str]:
        return list(self._stack)

    def push(self, session: Session, target: str) -> Optional[str]:
        previous = session.cwd
        problem = change_directory(session, target)
        if problem is None:
            self._stack.append(previous)
        return problem

    def pop(self, session: Session) -> Optional[str]:
        if not self._stack:
            return "popd: directory stack empty"
        problem = change_directory(session, self._stack[-1])
        if problem is None:
            self._stack.pop()
        return problem


def _is_cd(command: str) -> bool:
    return command == "cd" or command.startswith(("cd ", "cd\t"))


def run_shell_command(text: str, session: Session, shell: Optional[str] = None) -> ShellOutcome:
    """Run *text* with *shell* in the session's working directory."""
    command = text.strip()
    if _is_cd(command):
        args = command[2:].strip()
        if args and platform.system() != "Windows":
            try:
                parts = shlex.split(args)
            except ValueError:
                parts = [args]
            args = parts[0] if parts else ""
        problem = change_directory(session, args)
        if problem:
            print_error(f"[Error] {problem}")
            return ShellOutcome(exit_code=1)
        return ShellOutcome(exit_code=0)

    cwd = session.cwd
    kwargs = {}
    if shell and platform.system() != "Windows":
        kwargs["executable"] = shell
    try:
        proc = subprocess.run(command, shell=True, cwd=cwd, **kwargs)
    except KeyboardInterrupt:
        return ShellOutcome(exit_code=None, interrupted=True)
    except OSError as e:
        print_error(f"[Error] {e}")
        return ShellOutcome(exit_code=127)
    return ShellOutcome(exit_code=proc.returncode)
