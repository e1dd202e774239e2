from __future__ import annotations

import json
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from geoimport import cli
from geoimport.ingest.workflows import DISTRICT_COLLECTION


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda level_name: None)


@pytest.fixture
def fake_db(monkeypatch, store):
    opened: list[str] = []

    @contextmanager
    def _connect(dsn):
        opened.append(dsn)
        yield MagicMock()

    monkeypatch.setattr(cli, "connect", _connect)
    monkeypatch.setattr(cli, "PostgresStore", lambda conn: store)
    return opened


def test_import_prints_summary(fake_db, source_dir, capsys) -> None:
    code = cli.main(["--dsn", "dbname=test", "import", "--dir", str(source_dir), "--no-progress"])

    assert code == 0
    assert fake_db == ["dbname=test"]
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "imported"
    assert [stage["stage"] for stage in payload["stages"]] == [
        "provinces",
        "cities",
        "districts",
        "villages_and_postal_codes",
    ]
    assert payload["totals"]["written"] == 4
    assert payload["totals"]["postal_codes_written"] == 1


def test_missing_file_exits_non_zero_without_connecting(fake_db, tmp_path, capsys) -> None:
    code = cli.main(["import", "--dir", str(tmp_path), "--no-progress"])

    assert code == 1
    assert fake_db == []
    payload = json.loads(capsys.readouterr().err)
    assert payload["status"] == "error"
    assert "prov.csv" in payload["error"]


def test_stage_failure_reports_stage(fake_db, store, source_dir, capsys) -> None:
    store.fail_on = DISTRICT_COLLECTION

    code = cli.main(["import", "--dir", str(source_dir), "--no-progress"])

    assert code == 1
    payload = json.loads(capsys.readouterr().err)
    assert payload["stage"] == "districts"
    assert "import_run_id" in payload
    assert store.foreign_key_checks is True


def test_truncate_flag_is_passed_through(fake_db, store, source_dir) -> None:
    store.tables["geo.province"] = {("99",): {"code": "99", "name": "Old"}}

    code = cli.main(["import", "--dir", str(source_dir), "--truncate", "--no-progress"])

    assert code == 0
    assert [row["code"] for row in store.rows("geo.province")] == ["11"]


@pytest.mark.parametrize(
    "argv",
    [
        ["import", "--batch", "0"],
        ["import", "--batch", "many"],
        ["import", "--delimiter", ";;"],
    ],
)
def test_invalid_arguments_exit_with_usage_error(argv) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)

    assert excinfo.value.code == 2


def test_migrate_reports_applied_count(fake_db, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "apply_migrations", lambda conn, path: 1)

    code = cli.main(["db", "migrate"])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"status": "ok", "migrations_applied": 1}
