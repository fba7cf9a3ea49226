"""Performance figures for the simulated holdings ledger."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional

from storage.models import PositionRecord


@dataclass
class PortfolioSummary:
    starting_capital: float
    investment_per_coin: float
    invested_positions: int
    invested_capital: float
    ending_capital: float
    total_gain_loss: float
    total_gain_loss_percent: float
    closed_positions: int
    winning_positions: int
    win_rate_percent: Optional[float]


def realised_return_percent(buy_price: float, sell_price: Optional[float]) -> Optional[float]:
    if sell_price is None or not buy_price:
        return None
    return (sell_price - buy_price) / buy_price * 100


def build_portfolio_summary(
    positions: Iterable[PositionRecord],
    *,
    starting_capital: float,
    investment_per_coin: float,
) -> PortfolioSummary:
    """Replay the ledger as if a fixed amount went into each priced buy.

    Positions are taken in the order given, skipping those bought at price 0,
    until the starting capital runs out. Open positions are valued at cost.
    """
    max_coins = math.floor(starting_capital / investment_per_coin) if investment_per_coin > 0 else 0
    invested: List[PositionRecord] = [p for p in positions if p.buy_price > 0][:max(max_coins, 0)]
    invested_capital = len(invested) * investment_per_coin
    uninvested_cash = starting_capital - invested_capital

    investment_value = 0.0
    for position in invested:
        if position.sell_price is None:
            investment_value += investment_per_coin
        else:
            investment_value += investment_per_coin * (position.sell_price / position.buy_price)

    ending_capital = uninvested_cash + investment_value
    total_gain_loss = ending_capital - starting_capital
    total_gain_loss_percent = 0.0 if starting_capital == 0 else total_gain_loss / starting_capital * 100

    closed = [p for p in invested if p.sell_price is not None]
    winners = sum(1 for p in closed if p.sell_price > p.buy_price)
    win_rate = None if not closed else winners / len(closed) * 100

    return PortfolioSummary(
        starting_capital=starting_capital,
        investment_per_coin=investment_per_coin,
        invested_positions=len(invested),
        invested_capital=invested_capital,
        ending_capital=ending_capital,
        total_gain_loss=total_gain_loss,
        total_gain_loss_percent=total_gain_loss_percent,
        closed_positions=len(closed),
        winning_positions=winners,
        win_rate_percent=win_rate,
    )


def format_token_price(value: Optional[float]) -> str:
    """Show tiny meme-coin prices without scientific notation or trailing zeros."""
    if value is None:
        return "-"
    if value == 0:
        return "0"
    if value >= 1:
        return f"{value:.4f}"
    if value >= 0.01:
        return f"{value:.6f}"
    return f"{value:.12f}".rstrip("0").rstrip(".")


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:.2f}%"


def format_usd(value: float) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_win_rate(summary: PortfolioSummary) -> str:
    if summary.win_rate_percent is None:
        return "-"
    return f"{summary.win_rate_percent:.2f}% ({summary.winning_positions}/{summary.closed_positions})"
