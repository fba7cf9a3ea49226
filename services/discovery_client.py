#!/usr/bin/env python3
from typing import List

import aiohttp

from analysis.models import DiscoveredToken
from constants import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DISCOVERY_API_DEFAULT_URL,
    DISCOVERY_USER_AGENT,
)
from services.http_client import UpstreamRejectedError, fetch_json_with_retry


class DiscoveryClient:
    """Reads the most recent token listings from the launchpad feed."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        url: str = DISCOVERY_API_DEFAULT_URL,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.session = session
        self.url = url
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.timeout = timeout

    async def fetch_latest_tokens(self, count: int) -> List[DiscoveredToken]:
        """Latest ``count`` listings in feed order; entries without symbol or mint are skipped."""
        params = {
            'count': count,
            'includeWithoutTopics': 'false',
            'skipTradeData': 'false',
        }
        data = await fetch_json_with_retry(
            self.session,
            self.url,
            params=params,
            headers={'User-Agent': DISCOVERY_USER_AGENT},
            attempts=self.retry_attempts,
            backoff=self.retry_backoff,
            timeout=self.timeout,
        )
        try:
            entries = data['data']['data']
        except (KeyError, TypeError):
            raise UpstreamRejectedError('Invalid discovery feed response') from None
        if not isinstance(entries, list):
            raise UpstreamRejectedError('Invalid discovery feed response')

        tokens: List[DiscoveredToken] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            symbol = entry.get('symbol')
            mint = entry.get('tokenMint')
            if not symbol or not mint:
                continue
            tokens.append(DiscoveredToken(symbol=str(symbol), mint_address=str(mint)))
        return tokens
