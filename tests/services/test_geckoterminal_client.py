import pytest

from analysis.models import Candle
from services.geckoterminal_client import GeckoTerminalClient, parse_candle_row
from services.http_client import PoolNotFoundError, TransientUpstreamError


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self._payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        return self._payload


class OhlcvSession:
    """Serves candle pages keyed by the ``before_timestamp`` query parameter."""

    def __init__(self, pages, status_overrides=None):
        self._pages = pages
        self._status_overrides = status_overrides or {}
        self.requested_cursors = []

    def get(self, url, params=None, headers=None, timeout=None):
        cursor = (params or {}).get('before_timestamp')
        self.requested_cursors.append(cursor)
        status = self._status_overrides.get(cursor)
        if status:
            return FakeResponse(status, None)
        rows = self._pages.get(cursor, [])
        return FakeResponse(200, {'data': {'attributes': {'ohlcv_list': rows}}})


class StaticSession:
    def __init__(self, payload, status=200):
        self._payload = payload
        self._status = status
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params))
        return FakeResponse(self._status, self._payload)


def _row(ts, high):
    return [ts, '1.0', str(high), '0.5', '1.0', '100']


def _client(session, **overrides):
    options = dict(rate_limit_delay=0, page_limit=3, max_pages=100, retry_attempts=3, retry_backoff=0)
    options.update(overrides)
    return GeckoTerminalClient(session, **options)


def test_parse_candle_row_filters_invalid_rows():
    assert parse_candle_row(_row(60, 2.5)) == Candle(timestamp=60, high=2.5)
    assert parse_candle_row(_row(60, 0)) is None
    assert parse_candle_row(_row(60, -1)) is None
    assert parse_candle_row(_row('abc', 1)) is None
    assert parse_candle_row(_row(60, 'nan')) is None
    assert parse_candle_row([60, 1]) is None
    assert parse_candle_row(None) is None


@pytest.mark.asyncio
async def test_fetch_candles_paginates_dedupes_and_sorts():
    session = OhlcvSession({
        None: [_row(400, 4), _row(340, 3), _row(280, 2)],
        220: [_row(280, 9), _row(220, 1), _row(160, 5)],
        100: [_row(100, 7)],
    })

    candles = await _client(session).fetch_candles('pool1')

    assert [c.timestamp for c in candles] == [100, 160, 220, 280, 340, 400]
    assert next(c for c in candles if c.timestamp == 280).high == 9
    assert session.requested_cursors == [None, 220, 100]


@pytest.mark.asyncio
async def test_fetch_candles_stops_on_short_page():
    session = OhlcvSession({
        None: [_row(400, 4), _row(340, 3)],
        280: [_row(280, 2)],
    })

    candles = await _client(session).fetch_candles('pool1')

    assert [c.timestamp for c in candles] == [340, 400]
    assert session.requested_cursors == [None]


@pytest.mark.asyncio
async def test_fetch_candles_stops_once_history_reaches_floor():
    session = OhlcvSession({
        None: [_row(400, 4), _row(340, 3), _row(280, 2)],
        220: [_row(220, 1), _row(160, 5), _row(100, 6)],
    })

    candles = await _client(session).fetch_candles('pool1', stop_before_timestamp=300)

    assert session.requested_cursors == [None]
    assert [c.timestamp for c in candles] == [280, 340, 400]


@pytest.mark.asyncio
async def test_fetch_candles_drops_invalid_rows_and_stops_on_empty_valid_page():
    session = OhlcvSession({
        None: [_row(400, 4), _row(340, 0), ['bad', 'x', 'y']],
        340: [_row(340, 0), _row(280, -1), ['x']],
    })

    candles = await _client(session).fetch_candles('pool1')

    assert candles == [Candle(timestamp=400, high=4.0)]
    assert session.requested_cursors == [None, 340]


@pytest.mark.asyncio
async def test_fetch_candles_respects_page_cap():
    pages = {}
    cursor = None
    newest = 10_000
    for page in range(5):
        rows = [_row(newest - 60 * i, 1 + i) for i in range(3)]
        pages[cursor] = rows
        cursor = newest - 60 * 2 - 60
        newest = cursor
    session = OhlcvSession(pages)

    candles = await _client(session, max_pages=2).fetch_candles('pool1')

    assert len(session.requested_cursors) == 2
    assert len(candles) == 6


@pytest.mark.asyncio
async def test_fetch_candles_failure_discards_partial_history():
    session = OhlcvSession(
        {None: [_row(400, 4), _row(340, 3), _row(280, 2)]},
        status_overrides={220: 503},
    )

    with pytest.raises(TransientUpstreamError):
        await _client(session).fetch_candles('pool1')


@pytest.mark.asyncio
async def test_resolve_top_pool_returns_first_pool():
    session = StaticSession({'data': [
        {'attributes': {'address': 'PoolA'}},
        {'attributes': {'address': 'PoolB'}},
    ]})

    pool = await _client(session).resolve_top_pool('Mint1')

    assert pool == 'PoolA'
    url, params = session.calls[0]
    assert url.endswith('/networks/solana/tokens/Mint1/pools')
    assert params == {'page': 1}


@pytest.mark.asyncio
async def test_resolve_top_pool_without_pools_is_a_failure():
    session = StaticSession({'data': []})

    with pytest.raises(PoolNotFoundError):
        await _client(session).resolve_top_pool('Mint1')
