#!/usr/bin/env python3
"""Client helpers for GeckoTerminal REST API: pool lookup and minute candles."""
from __future__ import annotations

import asyncio
import math
from typing import Any, Dict, List, Optional

import aiohttp

from analysis.models import Candle
from constants import (
    CANDLE_INTERVAL_SECONDS,
    DEFAULT_NETWORK,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    GECKOTERMINAL_API_BASE_URL,
    OHLCV_MAX_PAGES,
    OHLCV_PAGE_LIMIT,
)
from services.http_client import PoolNotFoundError, fetch_json_with_retry


def _to_finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_candle_row(row: Any) -> Optional[Candle]:
    """Turn ``[timestamp, open, high, low, close, volume]`` into a Candle, or None if unusable."""
    if not isinstance(row, (list, tuple)) or len(row) < 3:
        return None
    timestamp = _to_finite(row[0])
    high = _to_finite(row[2])
    if timestamp is None or high is None or high <= 0:
        return None
    return Candle(timestamp=int(timestamp), high=high)


class GeckoTerminalClient:
    """Thin async wrapper for GeckoTerminal public endpoints."""

    BASE_URL = GECKOTERMINAL_API_BASE_URL

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        network: str = DEFAULT_NETWORK,
        rate_limit_delay: float = 0.25,
        page_limit: int = OHLCV_PAGE_LIMIT,
        max_pages: int = OHLCV_MAX_PAGES,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._session = session
        self.network = network
        self._rate_limit_delay = rate_limit_delay
        self._last_request_ts: float = 0.0
        self._lock = asyncio.Lock()
        self.page_limit = page_limit
        self.max_pages = max_pages
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.timeout = timeout

    async def _wait_for_rate_limit(self) -> None:
        async with self._lock:
            now = asyncio.get_running_loop().time()
            elapsed = now - self._last_request_ts
            if elapsed < self._rate_limit_delay:
                await asyncio.sleep(self._rate_limit_delay - elapsed)
            self._last_request_ts = asyncio.get_running_loop().time()

    async def _get(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
        await self._wait_for_rate_limit()
        return await fetch_json_with_retry(
            self._session,
            f"{self.BASE_URL}{path}",
            params=params,
            attempts=self.retry_attempts,
            backoff=self.retry_backoff,
            timeout=self.timeout,
        )

    async def resolve_top_pool(self, token_address: str) -> str:
        """Address of the highest-ranked pool for a token; raises PoolNotFoundError if there is none."""
        data = await self._get(f"/networks/{self.network}/tokens/{token_address}/pools", params={'page': 1})
        pools = data.get('data') if isinstance(data, dict) else None
        first = pools[0] if isinstance(pools, list) and pools else None
        attributes = first.get('attributes') if isinstance(first, dict) else None
        address = attributes.get('address') if isinstance(attributes, dict) else None
        if not address:
            raise PoolNotFoundError(f"No pool found for {token_address}")
        return address

    async def fetch_candle_page(self, pool_address: str, before_timestamp: Optional[int] = None) -> List[Any]:
        """One raw page of minute OHLCV rows, newest first as returned upstream."""
        params: Dict[str, Any] = {'aggregate': 1, 'limit': self.page_limit}
        if before_timestamp is not None:
            params['before_timestamp'] = before_timestamp
        data = await self._get(f"/networks/{self.network}/pools/{pool_address}/ohlcv/minute", params=params)
        try:
            rows = data['data']['attributes']['ohlcv_list']
        except (KeyError, TypeError):
            return []
        return rows if isinstance(rows, list) else []

    async def fetch_candles(self, pool_address: str, stop_before_timestamp: Optional[int] = None) -> List[Candle]:
        """Walk minute candles backwards from now and return them oldest first.

        Stops on an empty or fully invalid page, a short page, ``max_pages``, or
        once a page reaches back to ``stop_before_timestamp``. A timestamp seen on
        several pages keeps the value from the page fetched last. Any upstream
        error aborts the whole walk.
        """
        by_timestamp: Dict[int, Candle] = {}
        before_timestamp: Optional[int] = None
        page_count = 0

        while page_count < self.max_pages:
            rows = await self.fetch_candle_page(pool_address, before_timestamp)
            if not rows:
                break

            page_candles = [candle for candle in map(parse_candle_row, rows) if candle is not None]
            if not page_candles:
                break
            for candle in page_candles:
                by_timestamp[candle.timestamp] = candle

            page_count += 1
            oldest_timestamp = min(candle.timestamp for candle in page_candles)
            if stop_before_timestamp is not None and oldest_timestamp <= stop_before_timestamp:
                break
            if len(rows) < self.page_limit:
                break
            before_timestamp = oldest_timestamp - CANDLE_INTERVAL_SECONDS

        return [by_timestamp[ts] for ts in sorted(by_timestamp)]
