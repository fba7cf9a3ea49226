#!/usr/bin/env python3
"""Retrospective best-exit analysis for a single purchase."""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from analysis.models import BestExitEnvelope, BestExitResult, Candle
from services.http_client import UpstreamError, log_error

_EPOCH_MS_THRESHOLD = 10 ** 12


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse a purchase time into an aware UTC datetime, or None if it is not one.

    Accepts datetimes, ISO-8601 strings (``Z`` or an offset; naive values are
    read as UTC) and epoch seconds or milliseconds as numbers or digit strings.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = _from_epoch(float(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = _from_epoch(float(text))
        except ValueError:
            if text.endswith(('Z', 'z')):
                text = text[:-1] + '+00:00'
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return None
    else:
        return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch(seconds: float) -> Optional[datetime]:
    if not math.isfinite(seconds):
        return None
    if abs(seconds) >= _EPOCH_MS_THRESHOLD:
        seconds /= 1000.0
    try:
        return datetime.fromtimestamp(seconds, timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def to_unix_seconds(value: Any) -> Optional[int]:
    """Purchase instant floored to whole seconds; None unless it is after the epoch."""
    instant = parse_instant(value)
    if instant is None:
        return None
    seconds = math.floor(instant.timestamp())
    return seconds if seconds > 0 else None


def _positive_price(value: Any) -> Optional[float]:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def format_timestamp(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z')


def compute_best_exit(buy_price: Any, bought_at: Any, candles: Iterable[Candle]) -> BestExitResult:
    """Highest high at or after the purchase, and the return it would have realised.

    Ties keep the earliest candle. Bad inputs or no post-purchase candles give
    the absent result; this never raises.
    """
    price = _positive_price(buy_price)
    if price is None:
        return BestExitResult.absent()

    bought_at_seconds = to_unix_seconds(bought_at)
    if bought_at_seconds is None:
        return BestExitResult.absent()

    best: Optional[Candle] = None
    for candle in candles:
        if candle.timestamp < bought_at_seconds:
            continue
        if best is None or candle.high > best.high:
            best = candle

    if best is None:
        return BestExitResult.absent()

    return BestExitResult(
        best_sell_at=format_timestamp(best.timestamp),
        best_sell_price=best.high,
        best_return_percent=(best.high - price) / price * 100,
    )


class BestExitService:
    """Pool lookup, candle history and best-exit maths behind one call."""

    def __init__(self, geckoterminal_client) -> None:
        self.geckoterminal_client = geckoterminal_client

    async def evaluate(self, mint_address: str, bought_at: Any, buy_price: Any) -> BestExitResult:
        """Run the full pipeline; upstream failures propagate as UpstreamError."""
        bought_at_seconds = to_unix_seconds(bought_at)
        if _positive_price(buy_price) is None or bought_at_seconds is None:
            return BestExitResult.absent()

        pool_address = await self.geckoterminal_client.resolve_top_pool(mint_address)
        candles = await self.geckoterminal_client.fetch_candles(
            pool_address, stop_before_timestamp=bought_at_seconds
        )
        return compute_best_exit(buy_price, bought_at, candles)

    async def query(self, mint_address: str, bought_at: Any, buy_price: Any) -> BestExitEnvelope:
        """Like :meth:`evaluate` but upstream trouble becomes an absent result plus a warning."""
        try:
            result = await self.evaluate(mint_address, bought_at, buy_price)
        except UpstreamError as exc:
            log_error(f"best-exit failed for {mint_address}: {exc}")
            return BestExitEnvelope(result=BestExitResult.absent(), warning=str(exc))
        return BestExitEnvelope(result=result)
