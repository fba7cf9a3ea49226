import asyncio

import pytest

from services.http_client import (
    TransientUpstreamError,
    UpstreamRejectedError,
    fetch_json_with_retry,
    is_retryable_status,
)


class FakeResponse:
    def __init__(self, status, payload=None):
        self.status = status
        self._payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({'url': url, 'params': params, 'headers': headers})
        if not self._responses:
            raise AssertionError("No more fake responses configured")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_retryable_statuses():
    assert is_retryable_status(429)
    assert is_retryable_status(500)
    assert is_retryable_status(503)
    assert not is_retryable_status(404)
    assert not is_retryable_status(400)


@pytest.mark.asyncio
async def test_succeeds_on_third_attempt_after_two_server_errors():
    session = FakeSession([
        FakeResponse(500),
        FakeResponse(500),
        FakeResponse(200, {'ok': True}),
    ])

    payload = await fetch_json_with_retry(session, 'http://upstream/x', attempts=3, backoff=0)

    assert payload == {'ok': True}
    assert len(session.calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_attempt_budget():
    session = FakeSession([FakeResponse(503), FakeResponse(429), FakeResponse(500), FakeResponse(200, {})])

    with pytest.raises(TransientUpstreamError):
        await fetch_json_with_retry(session, 'http://upstream/x', attempts=3, backoff=0)

    assert len(session.calls) == 3


@pytest.mark.asyncio
async def test_non_retryable_status_fails_immediately():
    session = FakeSession([FakeResponse(404), FakeResponse(200, {})])

    with pytest.raises(UpstreamRejectedError) as excinfo:
        await fetch_json_with_retry(session, 'http://upstream/x', attempts=3, backoff=0)

    assert '404' in str(excinfo.value)
    assert len(session.calls) == 1


@pytest.mark.asyncio
async def test_timeout_is_retried_like_a_server_error():
    session = FakeSession([asyncio.TimeoutError(), FakeResponse(200, [1, 2])])

    payload = await fetch_json_with_retry(session, 'http://upstream/x', attempts=3, backoff=0)

    assert payload == [1, 2]
    assert len(session.calls) == 2


@pytest.mark.asyncio
async def test_invalid_json_is_rejected():
    session = FakeSession([FakeResponse(200, ValueError('bad json'))])

    with pytest.raises(UpstreamRejectedError):
        await fetch_json_with_retry(session, 'http://upstream/x', attempts=3, backoff=0)


@pytest.mark.asyncio
async def test_backoff_grows_linearly(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr('services.http_client.asyncio.sleep', fake_sleep)
    session = FakeSession([FakeResponse(500), FakeResponse(500), FakeResponse(500)])

    with pytest.raises(TransientUpstreamError):
        await fetch_json_with_retry(session, 'http://upstream/x', attempts=3, backoff=0.25)

    assert delays == [0.25, 0.5]
