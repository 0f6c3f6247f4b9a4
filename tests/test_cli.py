"""Tests for the command-line interface."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from exactpilot.auth.token_store import TokenRecord, TokenStore
from exactpilot.cli import app
from exactpilot.errors import Cancelled
from exactpilot.fetcher import ProgressEvent
from exactpilot.models.records import Transaction
from exactpilot.pilot import ExactPilot
from tests.helpers import BASE

runner = CliRunner()


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    data_dir = tmp_path / "data"
    monkeypatch.setenv("EXACTPILOT_API", BASE)
    monkeypatch.setenv("EXACTPILOT_CLIENT_ID", "cli_client")
    monkeypatch.setenv("EXACTPILOT_CLIENT_SECRET", "cli_secret")
    monkeypatch.setenv("EXACTPILOT_REDIRECT_URI", "https://myapp.com/callback")
    monkeypatch.setenv("EXACTPILOT_DATA_DIR", str(data_dir))
    return data_dir


class TestCli:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "ExactPilot" in result.output

    def test_missing_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        for name in ("EXACTPILOT_API", "EXACTPILOT_CLIENT_ID", "EXACTPILOT_CLIENT_SECRET", "EXACTPILOT_REDIRECT_URI"):
            monkeypatch.delenv(name, raising=False)
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 2
        assert "Configuration error" in result.output

    def test_auth_url(self, env: Path) -> None:
        result = runner.invoke(app, ["auth-url"])
        assert result.exit_code == 0
        assert f"{BASE}/oauth2/auth?client_id=cli_client" in result.output

    def test_status_and_logout(self, env: Path) -> None:
        TokenStore(env).save(TokenRecord("a", "r", 0, 77))

        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "yes" in result.output
        assert "77" in result.output

        result = runner.invoke(app, ["logout"])
        assert result.exit_code == 0
        assert "Logged out" in result.output
        assert not (env / "tokens.json").exists()

    def test_transactions_export(self, env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_fetch(
            self: ExactPilot, divisions: list[int], filter: str | None = None, on_progress: Any = None
        ) -> list[Transaction]:
            assert divisions == [5]
            assert filter == "FinancialYear gt 2023"
            on_progress(ProgressEvent(1, 1, "Fetched 1 of 1 transactions...", "transaction-progress"))
            return [Transaction(data={"EntryNumber": 1})]

        monkeypatch.setattr(ExactPilot, "get_transactions_for_divisions", fake_fetch)

        result = runner.invoke(app, ["transactions", "5", "--filter", "FinancialYear gt 2023"])
        assert result.exit_code == 0, result.output
        assert (env.parent / "5-transactions.csv").exists()

    def test_transactions_for_several_divisions_with_rules(
        self, env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen: dict[str, Any] = {}

        async def fake_fetch(
            self: ExactPilot, divisions: list[int], filter: str | None = None, on_progress: Any = None
        ) -> list[Transaction]:
            seen["divisions"] = divisions
            seen["filter"] = filter
            return [Transaction(data={"EntryNumber": 1}), Transaction(data={"EntryNumber": 2})]

        monkeypatch.setattr(ExactPilot, "get_transactions_for_divisions", fake_fetch)

        result = runner.invoke(app, [
            "transactions", "5", "6",
            "--filter", "JournalCode eq '70' or JournalCode eq '80'",
            "--where", "FinancialYear ge 2023",
            "--where", "Description contains O'Brien",
        ])
        assert result.exit_code == 0, result.output
        assert seen["divisions"] == [5, 6]
        assert seen["filter"] == (
            "(JournalCode eq '70' or JournalCode eq '80') and "
            "FinancialYear ge 2023 and Description contains 'O''Brien'"
        )
        assert (env.parent / "multiple-divisions-transactions.csv").exists()

    def test_malformed_where_rule(self, env: Path) -> None:
        result = runner.invoke(app, ["transactions", "5", "--where", "FinancialYear"])
        assert result.exit_code == 2

    def test_cancelled_fetch_exit_code(self, env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        async def cancelled(self: ExactPilot, *args: Any, **kwargs: Any) -> list[Transaction]:
            raise Cancelled()

        monkeypatch.setattr(ExactPilot, "get_transactions_for_divisions", cancelled)

        result = runner.invoke(app, ["transactions", "5"])
        assert result.exit_code == 130
        assert "cancelled" in result.output
