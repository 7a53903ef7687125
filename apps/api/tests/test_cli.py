"""Tests for the command line interface."""

import csv
from datetime import datetime

import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from attest_api import cli as cli_module
from attest_api.ledger.export import EXPORT_HEADER
from attest_api.ledger.service import AttestationLedger


@pytest.fixture
def cli_engine(monkeypatch):
    """Point the CLI at a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    monkeypatch.setattr(cli_module, "engine", engine)
    monkeypatch.setattr(cli_module, "SessionLocal", sessionmaker(bind=engine, autoflush=False))
    yield engine
    engine.dispose()


@pytest.fixture
def runner():
    return CliRunner()


def _seed(engine, *rows):
    session = sessionmaker(bind=engine)()
    ledger = AttestationLedger(session)
    for n, overrides in enumerate(rows):
        fields = {
            "uid": f"PDF-cli-{n}",
            "tenant_id": 1,
            "user_id": 7,
            "username": "jdoe",
            "filename": f"file-{n}.pdf",
            "uploaded_at": datetime(2024, 5, 1 + n),
        }
        fields.update(overrides)
        ledger.insert(fields)
    ledger.commit()
    session.close()


def test_ensure_schema_is_idempotent(runner, cli_engine):
    first = runner.invoke(cli_module.cli, ["ensure-schema"])
    assert first.exit_code == 0
    assert "Created table pdf_attestations" in first.output

    second = runner.invoke(cli_module.cli, ["ensure-schema"])
    assert second.exit_code == 0
    assert "up to date" in second.output


def test_status_without_table(runner, cli_engine):
    result = runner.invoke(cli_module.cli, ["status"])
    assert result.exit_code == 1


def test_status_counts_records(runner, cli_engine):
    runner.invoke(cli_module.cli, ["ensure-schema"])
    _seed(cli_engine, {}, {})

    result = runner.invoke(cli_module.cli, ["status"])

    assert result.exit_code == 0
    assert "2 attestation(s)" in result.output


def test_export_to_file(runner, cli_engine, tmp_path):
    runner.invoke(cli_module.cli, ["ensure-schema"])
    _seed(cli_engine, {"tenant_id": 2}, {"tenant_id": 1})
    output = tmp_path / "audit.csv"

    result = runner.invoke(cli_module.cli, ["export", "--tenant-id", "2", "--output", str(output)])

    assert result.exit_code == 0, result.output
    rows = list(csv.reader(output.open(newline="")))
    assert tuple(rows[0]) == EXPORT_HEADER
    assert len(rows) == 2
    assert rows[1][1] == "Library"


def test_export_to_stdout(runner, cli_engine):
    runner.invoke(cli_module.cli, ["ensure-schema"])
    _seed(cli_engine, {"filename": "budget.pdf"}, {"filename": "minutes.pdf"})

    result = runner.invoke(cli_module.cli, ["export", "--search", "budget", "-o", "-"])

    assert result.exit_code == 0
    assert "budget.pdf" in result.output
    assert "minutes.pdf" not in result.output


def test_export_without_matches_fails(runner, cli_engine):
    runner.invoke(cli_module.cli, ["ensure-schema"])
    _seed(cli_engine, {})

    result = runner.invoke(cli_module.cli, ["export", "--date-from", "2030-01-01", "-o", "-"])

    assert result.exit_code == 1
    assert "PDF-cli" not in result.output


def test_export_rejects_bad_date(runner, cli_engine):
    runner.invoke(cli_module.cli, ["ensure-schema"])

    result = runner.invoke(cli_module.cli, ["export", "--date-from", "soon", "-o", "-"])

    assert result.exit_code == 1
