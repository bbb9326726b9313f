import json

import pytest
from typer.testing import CliRunner

from shiprates import cli
from shiprates.models import Batch, BatchStatus

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_db(monkeypatch, engine, session_factory):
    monkeypatch.setattr(cli, "engine", engine)
    monkeypatch.setattr(cli, "SessionLocal", session_factory)
    monkeypatch.setattr(cli, "get_duty_estimator", lambda: None)


@pytest.fixture
def scrape_file(tmp_path):
    path = tmp_path / "de.json"
    path.write_text(json.dumps({"prices": [
        {"country": "DE", "weight": 1, "carrier": "UPS", "service": "Express", "price": "8,00", "transitDays": "2-4 days"},
        {"country": "DE", "weight": 2, "carrier": "UPS", "service": "Express", "price": "10,00"},
    ]}), encoding="utf-8")
    return path


def test_import_approve_and_quote(db, scrape_file) -> None:
    assert runner.invoke(cli.app, ["seed-services"]).exit_code == 0

    result = runner.invoke(cli.app, ["import-batch", "--file", str(scrape_file)])
    assert result.exit_code == 0, result.output
    assert "staged with 2 prices" in result.output
    batch_id = db.query(Batch).one().id

    result = runner.invoke(cli.app, ["approve-batch", str(batch_id), "--admin-id", "5"])
    assert result.exit_code == 0, result.output
    assert "2 prices activated" in result.output

    result = runner.invoke(cli.app, ["quote", "DE", "10", "10", "10", "1.5", "--multiplier", "1.5"])
    assert result.exit_code == 0, result.output
    assert "UPS Express" in result.output
    assert "15.00 USD" in result.output


def test_list_and_reject(db, scrape_file) -> None:
    runner.invoke(cli.app, ["import-batch", "--file", str(scrape_file)])
    batch_id = db.query(Batch).one().id

    result = runner.invoke(cli.app, ["reject-batch", str(batch_id), "--reason", "stale"])
    assert result.exit_code == 0
    db.expire_all()
    assert db.get(Batch, batch_id).status == BatchStatus.REJECTED

    result = runner.invoke(cli.app, ["list-batches", "--status", "rejected"])
    assert f"#{batch_id}" in result.output
    assert "1 of 1 batch(es)." in result.output


def test_approving_a_decided_batch_fails(db, scrape_file) -> None:
    runner.invoke(cli.app, ["import-batch", "--file", str(scrape_file)])
    batch_id = db.query(Batch).one().id
    runner.invoke(cli.app, ["reject-batch", str(batch_id)])

    result = runner.invoke(cli.app, ["approve-batch", str(batch_id)])

    assert result.exit_code == 1


def test_import_reports_bad_rows(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([{"country": "DE", "weight": 1, "carrier": "", "price": 5}]), encoding="utf-8")

    result = runner.invoke(cli.app, ["import-batch", "--file", str(path)])

    assert result.exit_code == 1


def test_missing_file(tmp_path) -> None:
    result = runner.invoke(cli.app, ["import-batch", "--file", str(tmp_path / "nope.json")])
    assert result.exit_code == 1


def test_stats(db) -> None:
    result = runner.invoke(cli.app, ["stats"])
    assert result.exit_code == 0
    assert "total_active: 0" in result.output
