"""Tests for the command-line entry point's history jobs."""

import pytest

from repline.history import Partition
from repline.history.store import HistoryStore
from repline.main import build_parser, main


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_parser_defaults():
    args = build_parser().parse_args(["history", "export", "--file", "out.db"])
    assert args.command == "history"
    assert args.history_command == "export"
    assert args.r_table == "r"
    assert args.shell_table == "shell"


def test_import_then_export(tmp_path, capsys):
    source = tmp_path / "python_history"
    source.write_text("import os\nos.getcwd()\n")
    base = ["--config-dir", str(tmp_path / "cfg"), "--history-dir", str(tmp_path / "hist")]

    assert _run(base + ["history", "import", "--from", "native", "--file", str(source)]) == 0
    assert "Imported 2 entries" in capsys.readouterr().out

    assert _run(base + ["history", "import", "--from", "native", "--file", str(source), "--dry-run"]) == 0
    out = capsys.readouterr().out
    assert "Would import 0 entries" in out
    assert "Skipped 2 duplicates" in out

    destination = tmp_path / "export.db"
    assert _run(base + ["history", "export", "--file", str(destination)]) == 0
    assert "Exported 2 r and 0 shell" in capsys.readouterr().out

    store = HistoryStore(tmp_path / "hist", strict=True)
    try:
        assert store.commands(Partition.R) == ["import os", "os.getcwd()"]
    finally:
        store.close()


def test_self_import_exits_nonzero(tmp_path, capsys):
    hist = tmp_path / "hist"
    store = HistoryStore(hist, strict=True)
    store.append(Partition.R, "x = 1")
    store.close()

    code = _run(["--config-dir", str(tmp_path / "cfg"), "--history-dir", str(hist),
                 "history", "import", "--from", "self", "--file", str(hist / "r.db")])
    assert code == 1
    assert "Refusing to import" in capsys.readouterr().err


def test_bad_table_name_exits_nonzero(tmp_path, capsys):
    code = _run(["--config-dir", str(tmp_path / "cfg"), "--history-dir", str(tmp_path / "hist"),
                 "history", "export", "--file", str(tmp_path / "x.db"), "--r-table", "no-dash"])
    assert code == 1
    assert "Invalid table name" in capsys.readouterr().err


def test_schema(tmp_path, capsys):
    assert _run(["--config-dir", str(tmp_path / "cfg"), "history", "schema"]) == 0
    assert "exit_status" in capsys.readouterr().out
