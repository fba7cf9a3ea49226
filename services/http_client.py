#!/usr/bin/env python3
"""Shared GET-with-retry helper and the upstream error taxonomy."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from constants import (
    C_RED,
    C_RESET,
    C_YELLOW,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    RETRYABLE_STATUS_CODES,
)


def log_error(message: str) -> None:
    """Centralized error logging."""
    print(f"{C_RED}{message}{C_RESET}")


def log_warning(message: str) -> None:
    print(f"{C_YELLOW}{message}{C_RESET}")


class UpstreamError(Exception):
    """Base class for failures talking to a market-data collaborator."""


class TransientUpstreamError(UpstreamError):
    """429, 5xx or timeout that survived every retry attempt."""


class UpstreamRejectedError(UpstreamError):
    """Non-retryable status or a payload missing what the caller needs."""


class PoolNotFoundError(UpstreamRejectedError):
    pass


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUS_CODES or status >= 500


async def fetch_json_with_retry(
    session: aiohttp.ClientSession,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
    backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
) -> Any:
    """GET ``url`` and decode JSON, retrying 429/5xx/timeouts with linear backoff.

    The wait before attempt ``n + 1`` is ``backoff * n`` seconds. Other non-2xx
    statuses raise :class:`UpstreamRejectedError` straight away; running out of
    attempts raises :class:`TransientUpstreamError`.
    """
    attempts = max(1, attempts)
    request_headers = {'Accept': 'application/json'}
    if headers:
        request_headers.update(headers)
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    last_error = 'no attempt made'

    for attempt in range(1, attempts + 1):
        try:
            async with session.get(url, params=params, headers=request_headers, timeout=client_timeout) as response:
                if 200 <= response.status < 300:
                    try:
                        return await response.json(content_type=None)
                    except ValueError as exc:
                        raise UpstreamRejectedError(f"Invalid JSON from {url}: {exc}") from exc
                if not is_retryable_status(response.status):
                    raise UpstreamRejectedError(f"Upstream {response.status} for {url}")
                last_error = f"Upstream {response.status} for {url}"
        except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
            last_error = f"Request to {url} failed: {exc or type(exc).__name__}"

        if attempt < attempts:
            log_warning(f"{last_error} (attempt {attempt}/{attempts}), retrying...")
            await asyncio.sleep(backoff * attempt)

    raise TransientUpstreamError(last_error)
