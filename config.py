#!/usr/bin/env python3
import os
import argparse
from typing import NamedTuple, Optional
import constants

class AppConfig(NamedTuple):
    """Typed configuration object."""
    run_once: bool
    serve: bool
    bot: bool
    show_holdings: bool
    best_exit_mint: str | None
    bought_at: str | None
    buy_price: float | None
    with_best_exit: bool
    holdings_limit: int
    db_path: str
    network: str
    discovery_url: str
    discovery_count: int
    profit_multiplier: float
    holding_hours: float
    page_limit: int
    max_pages: int
    retry_attempts: int
    retry_backoff: float
    request_timeout: float
    api_host: str
    api_port: int
    strict_upstream_errors: bool
    starting_capital: float
    investment_per_coin: float
    telegram_enabled: bool
    telegram_bot_token: str | None
    telegram_chat_id: str | None

    @property
    def holding_ceiling_seconds(self) -> float:
        return self.holding_hours * 3600.0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Simulate buying newly listed Solana tokens and selling them on a profit or time trigger.",
        epilog="Example: ./main.py --run-once --telegram-enabled"
    )
    # --- Modes ---
    parser.add_argument('--run-once', action='store_true', help='Run one discovery/buy/sell pass and exit (schedule externally).')
    parser.add_argument('--serve', action='store_true', help='Serve the best-exit query API over HTTP.')
    parser.add_argument('--bot', action='store_true', help='Run the Telegram command bot.')
    parser.add_argument('--show-holdings', action='store_true', help='Display the holdings ledger with a performance summary and exit.')
    parser.add_argument('--best-exit', metavar='MINT', help='Compute the best possible exit for one purchase and exit.')
    parser.add_argument('--bought-at', help='Purchase time for --best-exit (ISO-8601 or epoch seconds).')
    parser.add_argument('--buy-price', type=float, help='Purchase price in USD for --best-exit.')
    parser.add_argument('--with-best-exit', action='store_true', help='Add best-exit columns to --show-holdings (slow: fetches candle history).')
    parser.add_argument('--holdings-limit', type=int, default=50, help='Number of holdings to display (default: 50).')

    # --- Storage & Upstream ---
    parser.add_argument('--db-path', type=str, help=f'SQLite database path (default: ${constants.DB_PATH_ENV_VAR} or {constants.DEFAULT_DB_PATH}).')
    parser.add_argument('--network', type=str, default=constants.DEFAULT_NETWORK, help=f'GeckoTerminal network id (default: {constants.DEFAULT_NETWORK}).')
    parser.add_argument('--request-timeout', type=float, default=constants.DEFAULT_REQUEST_TIMEOUT_SECONDS, help='Per-request timeout in seconds (default: 10).')
    parser.add_argument('--retry-attempts', type=int, default=constants.DEFAULT_RETRY_ATTEMPTS, help='Attempts per upstream request on 429/5xx/timeout (default: 3).')
    parser.add_argument('--retry-backoff', type=float, default=constants.DEFAULT_RETRY_BACKOFF_SECONDS, help='Linear backoff base in seconds (default: 0.25).')
    parser.add_argument('--page-limit', type=int, default=constants.OHLCV_PAGE_LIMIT, help='Minute candles requested per page (default: 1000).')
    parser.add_argument('--max-pages', type=int, default=constants.OHLCV_MAX_PAGES, help='Hard cap on candle pages per series (default: 100).')

    # --- Strategy ---
    parser.add_argument('--discovery-count', type=int, default=constants.DEFAULT_DISCOVERY_COUNT, help='Latest listings requested per pass (default: 20).')
    parser.add_argument('--profit-multiplier', type=float, default=constants.DEFAULT_PROFIT_MULTIPLIER, help='Sell once price exceeds buy price times this (default: 1.5).')
    parser.add_argument('--holding-hours', type=float, default=constants.DEFAULT_HOLDING_HOURS, help='Sell once a position is older than this many hours (default: 16).')

    # --- API ---
    parser.add_argument('--api-host', type=str, default=constants.DEFAULT_API_HOST, help='Bind address for --serve (default: 127.0.0.1).')
    parser.add_argument('--api-port', type=int, help=f'Port for --serve (default: ${constants.API_PORT_ENV_VAR} or {constants.DEFAULT_API_PORT}).')
    parser.add_argument('--strict-upstream-errors', action='store_true', help='Answer 502 instead of an empty result with a warning when upstream data is unavailable.')

    # --- Report ---
    parser.add_argument('--starting-capital', type=float, default=constants.DEFAULT_STARTING_CAPITAL, help='Simulated starting capital in USD (default: 5).')
    parser.add_argument('--investment-per-coin', type=float, default=constants.DEFAULT_INVESTMENT_PER_COIN, help='Simulated USD invested per coin (default: 0.5).')

    # --- Notifications ---
    parser.add_argument('--telegram-enabled', action='store_true', help='Send a Telegram summary after --run-once.')
    return parser


def load_config(argv: Optional[list[str]] = None) -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    modes = [args.run_once, args.serve, args.bot, args.show_holdings, bool(args.best_exit)]
    if sum(1 for enabled in modes if enabled) != 1:
        parser.error('choose exactly one of --run-once, --serve, --bot, --show-holdings or --best-exit.')

    if args.best_exit and (not args.bought_at or args.buy_price is None):
        parser.error('--best-exit requires --bought-at and --buy-price.')

    if args.discovery_count <= 0:
        parser.error('--discovery-count must be positive.')
    if args.profit_multiplier <= 0:
        parser.error('--profit-multiplier must be positive.')
    if args.holding_hours <= 0:
        parser.error('--holding-hours must be positive.')
    if args.page_limit <= 0 or args.max_pages <= 0:
        parser.error('--page-limit and --max-pages must be positive.')
    if args.retry_attempts <= 0:
        parser.error('--retry-attempts must be at least 1.')
    if args.investment_per_coin <= 0:
        parser.error('--investment-per-coin must be positive.')

    # Load from environment
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    telegram_chat_id = os.environ.get(constants.TELEGRAM_CHAT_ID_ENV_VAR)
    discovery_url = os.environ.get(constants.DISCOVERY_API_URL_ENV_VAR) or constants.DISCOVERY_API_DEFAULT_URL
    db_path = args.db_path or os.environ.get(constants.DB_PATH_ENV_VAR) or constants.DEFAULT_DB_PATH

    api_port = args.api_port
    if api_port is None:
        env_port = os.environ.get(constants.API_PORT_ENV_VAR)
        try:
            api_port = int(env_port) if env_port else constants.DEFAULT_API_PORT
        except ValueError:
            parser.error(f'{constants.API_PORT_ENV_VAR} must be an integer.')

    if args.telegram_enabled and not (telegram_bot_token and telegram_chat_id):
        print(f"{constants.C_RED}Telegram is enabled, but {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} or {constants.TELEGRAM_CHAT_ID_ENV_VAR} are not set.{constants.C_RESET}")
        exit(1)

    if args.bot and not telegram_bot_token:
        print(f"{constants.C_RED}--bot requires the {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} environment variable.{constants.C_RESET}")
        exit(1)

    return AppConfig(
        run_once=args.run_once,
        serve=args.serve,
        bot=args.bot,
        show_holdings=args.show_holdings,
        best_exit_mint=args.best_exit,
        bought_at=args.bought_at,
        buy_price=args.buy_price,
        with_best_exit=args.with_best_exit,
        holdings_limit=args.holdings_limit,
        db_path=db_path,
        network=args.network,
        discovery_url=discovery_url,
        discovery_count=args.discovery_count,
        profit_multiplier=args.profit_multiplier,
        holding_hours=args.holding_hours,
        page_limit=args.page_limit,
        max_pages=args.max_pages,
        retry_attempts=args.retry_attempts,
        retry_backoff=args.retry_backoff,
        request_timeout=args.request_timeout,
        api_host=args.api_host,
        api_port=api_port,
        strict_upstream_errors=args.strict_upstream_errors,
        starting_capital=args.starting_capital,
        investment_per_coin=args.investment_per_coin,
        telegram_enabled=args.telegram_enabled,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
    )
