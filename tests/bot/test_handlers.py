from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from analysis.models import BestExitEnvelope, BestExitResult
from bot.handlers import bestexit_command, holdings_command, status_command
from storage.models import PositionRecord, TokenRecord


def _update():
    message = MagicMock()
    message.reply_text = AsyncMock()
    message.reply_html = AsyncMock()
    return SimpleNamespace(message=message)


def _context(bot_data, args=None):
    return SimpleNamespace(application=SimpleNamespace(bot_data=bot_data), args=args)


def _positions():
    return [
        PositionRecord(2, 'BONKZ', 'MintB', None, 0.5, None),
        PositionRecord(1, 'PEPE2', 'MintA', None, 1.0, 2.0),
    ]


@pytest.mark.asyncio
async def test_status_reports_ledger_counts():
    repository = MagicMock()
    repository.fetch_positions = AsyncMock(return_value=_positions())
    repository.fetch_open_positions = AsyncMock(return_value=_positions()[:1])
    repository.fetch_tokens = AsyncMock(return_value=[
        TokenRecord(3, 'WIF3', 'MintC', None),
        TokenRecord(2, 'BONKZ', 'MintB', None),
        TokenRecord(1, 'PEPE2', 'MintA', None),
    ])
    update = _update()

    await status_command(update, _context({'repository': repository, 'start_time': 0}))

    text = update.message.reply_html.await_args.args[0]
    assert "Holdings: <code>2</code>" in text
    assert "Open: <code>1</code>" in text
    assert "Tokens seen: <code>3</code>" in text
    assert "Latest token: <b>WIF3</b>" in text


@pytest.mark.asyncio
async def test_holdings_shows_summary_and_latest():
    repository = MagicMock()
    repository.fetch_positions = AsyncMock(return_value=_positions())
    config = SimpleNamespace(starting_capital=5.0, investment_per_coin=0.5)
    update = _update()

    await holdings_command(update, _context({'repository': repository, 'config': config}))

    text = update.message.reply_html.await_args.args[0]
    assert "Win rate: 100.00% (1/1)" in text
    assert "<b>BONKZ</b> buy 0.500000 → open" in text
    assert "<b>PEPE2</b> buy 1.0000 → 2.0000 (100.00%)" in text


@pytest.mark.asyncio
async def test_bestexit_requires_three_arguments():
    update = _update()

    await bestexit_command(update, _context({'best_exit_service': MagicMock()}, args=['Mint1']))

    update.message.reply_text.assert_awaited_once_with("Usage: /bestexit MINT BOUGHT_AT BUY_PRICE")


@pytest.mark.asyncio
async def test_bestexit_replies_with_result():
    service = MagicMock()
    service.query = AsyncMock(return_value=BestExitEnvelope(result=BestExitResult(
        best_sell_at='2024-01-01T01:00:00.000Z', best_sell_price=3.0, best_return_percent=200.0,
    )))
    update = _update()

    await bestexit_command(
        update,
        _context({'best_exit_service': service}, args=['Mint1', '2024-01-01T00:00:00Z', '1']),
    )

    service.query.assert_awaited_once_with('Mint1', '2024-01-01T00:00:00Z', 1.0)
    text = update.message.reply_html.await_args.args[0]
    assert "2024-01-01T01:00:00.000Z" in text
    assert "200.00%" in text


@pytest.mark.asyncio
async def test_bestexit_shows_warning_when_absent():
    service = MagicMock()
    service.query = AsyncMock(return_value=BestExitEnvelope(
        result=BestExitResult.absent(), warning='No pool found for Mint1',
    ))
    update = _update()

    await bestexit_command(
        update,
        _context({'best_exit_service': service}, args=['Mint1', '2024-01-01T00:00:00Z', '1']),
    )

    text = update.message.reply_html.await_args.args[0]
    assert "No best exit available" in text
    assert "No pool found for Mint1" in text
