"""Tests for unified history export."""

import sqlite3

import pytest

from repline.errors import HistoryJobError
from repline.history import Partition
from repline.history.exporter import export_history, validate_table_names


def _tables(path):
    conn = sqlite3.connect(str(path))
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    finally:
        conn.close()
    return {name for (name,) in rows}


def test_export_writes_both_tables(tmp_path, store):
    store.append(Partition.R, "x = 1")
    store.append(Partition.SHELL, "ls")
    store.append(Partition.SHELL, "pwd")

    result = export_history(store, tmp_path / "all.db", r_table="py_history", shell_table="sh_history")

    assert result.r_exported == 1
    assert result.shell_exported == 2
    assert result.exported == 3
    assert {"py_history", "sh_history"} <= _tables(result.path)


def test_export_keeps_ids(tmp_path, store):
    store.append(Partition.R, "a", error=True)
    second = store.append(Partition.R, "b", error=False)
    assert store.purge_failed(Partition.R, keep=0) == 1
    result = export_history(store, tmp_path / "all.db")

    conn = sqlite3.connect(str(result.path))
    try:
        ids = [row[0] for row in conn.execute("SELECT id FROM r ORDER BY id")]
    finally:
        conn.close()
    assert ids == [second.id]
    assert second.id == 2


def test_export_replaces_existing_file(tmp_path, store):
    destination = tmp_path / "all.db"
    destination.write_text("stale contents")
    store.append(Partition.R, "fresh")

    export_history(store, destination)

    assert {"r", "shell"} <= _tables(destination)
    leftovers = [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []


@pytest.mark.parametrize("r_table,shell_table", [
    ("r; DROP TABLE x", "shell"),
    ("1st", "shell"),
    ("", "shell"),
    ("same", "same"),
])
def test_invalid_table_names(r_table, shell_table):
    with pytest.raises(HistoryJobError):
        validate_table_names(r_table, shell_table)


def test_invalid_table_name_leaves_destination_alone(tmp_path, store):
    destination = tmp_path / "all.db"
    destination.write_text("keep me")
    with pytest.raises(HistoryJobError):
        export_history(store, destination, r_table="bad-name")
    assert destination.read_text() == "keep me"


def test_missing_directory(tmp_path, store):
    with pytest.raises(HistoryJobError):
        export_history(store, tmp_path / "missing" / "all.db")


def test_refuses_live_container(store):
    with pytest.raises(HistoryJobError):
        export_history(store, store.path(Partition.R))
    assert store.count(Partition.R) == 0


def test_failed_write_keeps_old_file(tmp_path, store, monkeypatch):
    destination = tmp_path / "all.db"
    destination.write_text("previous export")
    store.append(Partition.R, "x")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("repline.history.exporter.os.replace", broken_replace)
    with pytest.raises(HistoryJobError):
        export_history(store, destination)

    assert destination.read_text() == "previous export"
    assert [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")] == []
