import sys
from datetime import datetime, timezone

import pytest

import main
from storage.models import PositionRecord


class FakeRepository:
    def __init__(self, db_path=None):
        self.db_path = db_path

    async def fetch_positions(self, limit=None):
        return [
            PositionRecord(
                id=2,
                symbol="BONKZ",
                mint_address="MintB",
                bought_at=datetime(2024, 1, 1, 13, 0, tzinfo=timezone.utc),
                buy_price=0.00001234,
                sell_price=None,
            ),
            PositionRecord(
                id=1,
                symbol="PEPE2",
                mint_address="MintA",
                bought_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
                buy_price=1.0,
                sell_price=2.0,
                sold_at=datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc),
            ),
        ]

    async def close(self):
        pass


@pytest.fixture
def reset_sys_argv():
    original = sys.argv.copy()
    yield
    sys.argv = original


@pytest.mark.usefixtures("reset_sys_argv")
def test_show_holdings_cli_outputs_summary_and_table(monkeypatch, capsys):
    monkeypatch.setattr(main, "SQLiteRepository", FakeRepository)

    sys.argv = ["prog", "--show-holdings", "--holdings-limit", "5"]
    main.main()

    output = capsys.readouterr().out
    assert "Showing up to 5 holdings" in output
    assert "Starting Capital: $5.00" in output
    assert "Win Rate: 100.00% (1/1)" in output
    assert "PEPE2" in output
    assert "0.00001234" in output
    assert "100.00%" in output
    assert "2024-01-01 12:00:00" in output
    assert "Best Sell At" not in output


@pytest.mark.usefixtures("reset_sys_argv")
def test_show_holdings_cli_handles_empty_ledger(monkeypatch, capsys):
    class EmptyRepository(FakeRepository):
        async def fetch_positions(self, limit=None):
            return []

    monkeypatch.setattr(main, "SQLiteRepository", EmptyRepository)

    sys.argv = ["prog", "--show-holdings"]
    main.main()

    assert "No holdings found." in capsys.readouterr().out


@pytest.mark.usefixtures("reset_sys_argv")
def test_show_holdings_limit_only_trims_the_table(monkeypatch, capsys):
    monkeypatch.setattr(main, "SQLiteRepository", FakeRepository)

    sys.argv = ["prog", "--show-holdings", "--holdings-limit", "1"]
    main.main()

    output = capsys.readouterr().out
    assert "BONKZ" in output
    assert "PEPE2" not in output
    assert "Win Rate: 100.00% (1/1)" in output
