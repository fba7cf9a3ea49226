"""HTTP surface for the on-demand best-exit query."""
from __future__ import annotations

import math

from aiohttp import web

from analysis.best_exit import BestExitService
from constants import C_GREEN, C_RESET
from services.http_client import UpstreamError, log_error

BEST_EXIT_SERVICE_KEY = web.AppKey("best_exit_service", BestExitService)
STRICT_ERRORS_KEY = web.AppKey("strict_upstream_errors", bool)

MISSING_PARAMS_ERROR = 'mintAddress, boughtAt, and buyPrice are required'


def _parse_buy_price(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


async def health(request: web.Request) -> web.Response:
    return web.json_response({'ok': True})


async def best_sell(request: web.Request) -> web.Response:
    if request.method != 'GET':
        return web.json_response({'error': 'Method not allowed'}, status=405)

    mint_address = request.query.get('mintAddress', '').strip()
    bought_at = request.query.get('boughtAt', '').strip()
    buy_price = _parse_buy_price(request.query.get('buyPrice'))

    if not mint_address or not bought_at or buy_price is None:
        return web.json_response({'error': MISSING_PARAMS_ERROR}, status=400)

    service = request.app[BEST_EXIT_SERVICE_KEY]
    if request.app[STRICT_ERRORS_KEY]:
        try:
            result = await service.evaluate(mint_address, bought_at, buy_price)
        except UpstreamError as exc:
            log_error(f"best-sell failed for {mint_address}: {exc}")
            return web.json_response({'error': str(exc)}, status=502)
        return web.json_response(result.to_payload())

    envelope = await service.query(mint_address, bought_at, buy_price)
    return web.json_response(envelope.to_payload())


def create_app(service: BestExitService, *, strict_upstream_errors: bool = False) -> web.Application:
    app = web.Application()
    app[BEST_EXIT_SERVICE_KEY] = service
    app[STRICT_ERRORS_KEY] = strict_upstream_errors
    app.router.add_get('/api/health', health)
    app.router.add_route('*', '/api/best-sell', best_sell)
    return app


async def start_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    print(f"{C_GREEN}API server listening on http://{host}:{port}{C_RESET}")
    return runner
