#!/usr/bin/env python3
import asyncio
import math
from typing import Dict, Iterable, List, Optional

import aiohttp

from constants import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    JUPITER_PRICE_API_URL,
    PRICE_BATCH_LIMIT,
)
from services.http_client import UpstreamError, fetch_json_with_retry, log_error


def chunk_identifiers(identifiers: Iterable[str], size: int = PRICE_BATCH_LIMIT) -> List[List[str]]:
    """Split identifiers into batches of at most ``size``, dropping blanks and repeats."""
    unique = list(dict.fromkeys(i for i in identifiers if i))
    return [unique[start:start + size] for start in range(0, len(unique), size)]


def _parse_usd_price(entry) -> Optional[float]:
    if not isinstance(entry, dict):
        return None
    try:
        price = float(entry.get('usdPrice'))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


class JupiterPriceClient:
    """Batch spot prices from the Jupiter price API.

    A failed batch is logged and simply contributes no entries, so callers must
    read a missing mint as "price unknown".
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str = JUPITER_PRICE_API_URL,
        batch_limit: int = PRICE_BATCH_LIMIT,
        retry_attempts: int = 1,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.session = session
        self.base_url = base_url
        self.batch_limit = min(batch_limit, PRICE_BATCH_LIMIT)
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.timeout = timeout

    async def _fetch_batch(self, mint_addresses: List[str]) -> Dict[str, float]:
        try:
            data = await fetch_json_with_retry(
                self.session,
                self.base_url,
                params={'ids': ','.join(mint_addresses)},
                attempts=self.retry_attempts,
                backoff=self.retry_backoff,
                timeout=self.timeout,
            )
        except UpstreamError as exc:
            log_error(f"Error fetching prices for {len(mint_addresses)} mints: {exc}")
            return {}

        if not isinstance(data, dict):
            log_error("Could not parse Jupiter price response.")
            return {}

        prices: Dict[str, float] = {}
        for mint in mint_addresses:
            price = _parse_usd_price(data.get(mint))
            if price is not None:
                prices[mint] = price
        return prices

    async def fetch_spot_prices(self, mint_addresses: Iterable[str]) -> Dict[str, float]:
        batches = chunk_identifiers(mint_addresses, self.batch_limit)
        if not batches:
            return {}
        results = await asyncio.gather(*(self._fetch_batch(batch) for batch in batches))
        merged: Dict[str, float] = {}
        for batch_prices in results:
            merged.update(batch_prices)
        return merged
