"""Tests for docgrid.cli.

Provider calls are never reached here: only the commands that touch the
row store, and the early exits of extract.
"""

import sys

import pytest

from docgrid import cli
from docgrid.pydantic_models import RowStatus
from docgrid.storage import SqlRowStore


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def seeded_db(db_url, invoice_table, uploaded_row):
    cli.init_db(db_url)
    store = SqlRowStore(db_url)
    store.insert_table(invoice_table)
    store.insert_row(uploaded_row)
    return db_url


def run_main(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["docgrid", *argv])
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    return exc_info.value.code


class TestCommands:
    def test_init_db(self, monkeypatch, db_url, capsys):
        assert run_main(monkeypatch, "init-db", "--db", db_url) == 0
        assert "[OK] Tables created" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_fail_stores_default_message(self, seeded_db):
        stored = await cli.fail(seeded_db, "r1", None)

        assert stored == "Upload/extraction failed"
        row = await SqlRowStore(seeded_db).get_row("r1", "t1")
        assert row.status == RowStatus.FAILED

    def test_fail_command_prints_json(self, monkeypatch, seeded_db, capsys):
        code = run_main(monkeypatch, "fail", "--db", seeded_db, "--row-id", "r1", "--message", "Upload timed out")

        assert code == 0
        assert '"error": "Upload timed out"' in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_extract_unknown_table_returns_none(self, seeded_db, tmp_path, capsys):
        result = await cli.extract(
            db_url=seeded_db,
            table_id="missing",
            row_id="r1",
            user_id="local",
            provider="chatpdf",
            documents_root=str(tmp_path),
            base_url="http://localhost/documents",
            secret="s",
        )

        assert result is None
        assert "[ERROR] Table not found" in capsys.readouterr().out

    def test_extract_requires_signing_secret(self, monkeypatch, seeded_db):
        monkeypatch.delenv("DOCGRID_SIGNING_SECRET", raising=False)
        code = run_main(monkeypatch, "extract", "--db", seeded_db, "--table-id", "t1", "--row-id", "r1")
        assert code == 1

    def test_unknown_provider_rejected(self, monkeypatch, seeded_db):
        code = run_main(
            monkeypatch, "extract", "--db", seeded_db,
            "--table-id", "t1", "--row-id", "r1", "--provider", "acme",
        )
        assert code == 2
