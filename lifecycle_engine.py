# lifecycle_engine.py
import asyncio
import sqlite3
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from analysis.models import DiscoveredToken, PassSummary
from config import AppConfig
from constants import C_BLUE, C_GREEN, C_RED, C_RESET, C_YELLOW
from services.http_client import UpstreamError
from storage import SQLiteRepository
from storage.models import NewPosition, PositionRecord

EXIT_TIMEOUT = 'holding_timeout'
EXIT_TAKE_PROFIT = 'take_profit'


def evaluate_exit(
    position: PositionRecord,
    current_price: Optional[float],
    now: datetime,
    *,
    profit_multiplier: float,
    holding_ceiling_seconds: float,
) -> Optional[str]:
    """Return why an open position should be sold now, or None to keep holding.

    The time ceiling applies to every position, including ones bought at a
    price of 0. The profit trigger needs a known buy price and is strict: a
    price of exactly ``buy_price * profit_multiplier`` does not sell.
    """
    if position.bought_at is not None:
        held_seconds = (now - position.bought_at).total_seconds()
        if held_seconds > holding_ceiling_seconds:
            return EXIT_TIMEOUT

    if position.buy_price <= 0 or current_price is None:
        return None
    if current_price > position.buy_price * profit_multiplier:
        return EXIT_TAKE_PROFIT
    return None


def select_new_tokens(tokens: List[DiscoveredToken], known_symbols: set) -> List[DiscoveredToken]:
    """Tokens whose symbol has never been recorded, first occurrence wins."""
    seen = set(known_symbols)
    fresh: List[DiscoveredToken] = []
    for token in tokens:
        if token.symbol in seen:
            continue
        seen.add(token.symbol)
        fresh.append(token)
    return fresh


class PositionLifecycleEngine:
    """One discovery → buy → exit-check → sell pass over the simulated ledger.

    Holds no state between passes: known symbols and open positions are read
    from the repository every time, so an external scheduler can call
    :meth:`run_pass` as often as it likes.
    """

    def __init__(
        self,
        config: AppConfig,
        discovery_client,
        price_client,
        repository: SQLiteRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.discovery_client = discovery_client
        self.price_client = price_client
        self.repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run_pass(self) -> PassSummary:
        summary = PassSummary()
        now = self._clock()
        print(f"{C_BLUE}Starting lifecycle pass at {now.isoformat()}{C_RESET}")

        await self._discover_and_open(now, summary)
        await self._evaluate_exits(now, summary)

        print(f"Pass complete. Opened {summary.opened}, closed {summary.closed}.")
        if summary.errors:
            print(f"{C_YELLOW}{len(summary.errors)} error(s) during pass.{C_RESET}")
        return summary

    async def _discover_and_open(self, now: datetime, summary: PassSummary) -> None:
        try:
            listed = await self.discovery_client.fetch_latest_tokens(self.config.discovery_count)
        except UpstreamError as exc:
            print(f"{C_RED}Discovery failed: {exc}{C_RESET}")
            summary.errors.append(f"discovery: {exc}")
            return

        try:
            known_symbols = await self.repository.fetch_known_symbols()
            new_tokens = select_new_tokens(listed, known_symbols)
            if not new_tokens:
                print("No new tokens in the discovery feed.")
                return

            print(f"Found {len(new_tokens)} new tokens. Processing buys...")
            await self.repository.insert_tokens(new_tokens, now)
        except sqlite3.Error as exc:
            print(f"{C_RED}Error recording new tokens: {exc}{C_RESET}")
            summary.errors.append(f"open: {exc}")
            return

        prices = await self.price_client.fetch_spot_prices({t.mint_address for t in new_tokens})
        positions: List[NewPosition] = []
        for token in new_tokens:
            price = prices.get(token.mint_address)
            if price is None:
                print(f"{C_YELLOW}No spot price for {token.symbol}; recording buy price 0.{C_RESET}")
            positions.append(NewPosition(
                symbol=token.symbol,
                mint_address=token.mint_address,
                bought_at=now,
                buy_price=price if price is not None else 0.0,
            ))

        try:
            summary.opened = await self.repository.insert_positions(positions)
        except sqlite3.Error as exc:
            print(f"{C_RED}Error inserting holdings: {exc}{C_RESET}")
            summary.errors.append(f"open: {exc}")
            return
        summary.new_symbols.extend(p.symbol for p in positions)

    async def _evaluate_exits(self, now: datetime, summary: PassSummary) -> None:
        try:
            open_positions = await self.repository.fetch_open_positions()
        except sqlite3.Error as exc:
            print(f"{C_RED}Error reading open holdings: {exc}{C_RESET}")
            summary.errors.append(f"exits: {exc}")
            return
        if not open_positions:
            return

        prices = await self.price_client.fetch_spot_prices({p.mint_address for p in open_positions})
        to_close: List[Tuple[PositionRecord, str]] = []
        for position in open_positions:
            reason = evaluate_exit(
                position,
                prices.get(position.mint_address),
                now,
                profit_multiplier=self.config.profit_multiplier,
                holding_ceiling_seconds=self.config.holding_ceiling_seconds,
            )
            if reason:
                to_close.append((position, reason))

        if not to_close:
            print(f"Checked {len(open_positions)} open holdings; nothing to sell.")
            return

        print(f"Found {len(to_close)} holdings ready to sell. Selling...")
        results = await asyncio.gather(
            *(self._close(position, prices, now) for position, _ in to_close),
            return_exceptions=True,
        )
        for (position, reason), outcome in zip(to_close, results):
            if isinstance(outcome, Exception):
                print(f"{C_RED}Failed to close {position.symbol} (#{position.id}): {outcome}{C_RESET}")
                summary.errors.append(f"close {position.symbol}: {outcome}")
            elif outcome:
                summary.closed += 1
                summary.closed_symbols.append(position.symbol)
                print(f"{C_GREEN}Sold {position.symbol} ({reason}).{C_RESET}")
            else:
                print(f"{C_YELLOW}{position.symbol} (#{position.id}) was already closed; skipping.{C_RESET}")

    async def _close(self, position: PositionRecord, prices: Dict[str, float], now: datetime) -> bool:
        sell_price = prices.get(position.mint_address, 0.0)
        return await self.repository.close_position(position.id, sell_price, now)
