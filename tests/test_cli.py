from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from relever import cli
from relever.errors import ErrorKind
from relever.journal import TradeJournal
from relever.strategy.calculator import AccountSnapshot, Action, Decision
from relever.strategy.records import Executed, TradeRecord

CREDENTIAL_VARS = ("OKX_API_KEY", "OKX_SECRET_KEY", "OKX_PASSPHRASE")


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in CREDENTIAL_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_missing_credentials_exit_with_config_error(clean_env):
    assert cli.run_cli(["rebalance"]) == 2


def test_missing_env_file_is_config_error(clean_env):
    assert cli.run_cli(["--env-file", str(clean_env / "nope.env"), "rebalance"]) == 2


def test_default_command_is_run():
    assert cli._parse_args([]).command == "run"


def test_summary_reads_journal(clean_env, capsys):
    journal = TradeJournal(str(clean_env / "logs"))
    journal.append(
        TradeRecord(
            timestamp=datetime(2024, 3, 1, 0, 5, tzinfo=timezone.utc),
            instrument="ETH-USDT-SWAP",
            snapshot=AccountSnapshot(equity=12000.0, price=2100.0, position=15.0),
            decision=Decision(target=17.1429, delta=2.1429, action=Action.BUY),
            outcome=Executed(order_id="1", size=2.1429),
        )
    )

    code = cli.run_cli(["summary", "--date", "2024-03-01", "--log-dir", str(clean_env / "logs")])

    assert code == 0
    out = capsys.readouterr().out
    assert "Trade summary for 2024-03-01" in out
    assert "Total bought:   2.1429" in out


def test_summary_rejects_bad_date(clean_env):
    assert cli.run_cli(["summary", "--date", "03/01/2024"]) == 2


def test_rebalance_exit_code_follows_record(clean_env, monkeypatch):
    for key in CREDENTIAL_VARS:
        monkeypatch.setenv(key, "x")
    record = TradeRecord.failure(
        datetime(2024, 3, 1, tzinfo=timezone.utc), "ETH-USDT-SWAP", "ticker down", ErrorKind.EXCHANGE
    )

    with patch.object(cli, "rebalance_and_publish", AsyncMock(return_value=record)) as mocked:
        assert cli.run_cli(["rebalance"]) == 1

    mocked.assert_awaited_once()
