"""
Shared fixtures for repline tests.
Run with: python -m pytest tests/
"""

import os
import sys

import pytest

from repline.history.store import HistoryStore
from repline.session import Session


@pytest.fixture
def store(tmp_path):
    s = HistoryStore(tmp_path / "history", strict=True, hostname="testhost")
    yield s
    s.close()


@pytest.fixture
def memory_store():
    s = HistoryStore(None, hostname="testhost")
    yield s
    s.close()


@pytest.fixture
def session(tmp_path):
    return Session(cwd=str(tmp_path), hostname="testhost")


@pytest.fixture(autouse=True)
def restore_process_state():
    """Keep cwd and the error hook from leaking between tests."""
    cwd = os.getcwd()
    hook = sys.excepthook
    oldpwd = os.environ.get("OLDPWD")
    yield
    os.chdir(cwd)
    sys.excepthook = hook
    if oldpwd is None:
        os.environ.pop("OLDPWD", None)
    else:
        os.environ["OLDPWD"] = oldpwd
