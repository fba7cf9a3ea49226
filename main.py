#!/usr/bin/env python3
import asyncio
import json
import time
from datetime import datetime

import aiohttp
from telegram import BotCommand
from telegram.ext import Application, CommandHandler
from telegram.error import TimedOut, TelegramError

import constants
from analysis.best_exit import BestExitService
from analysis.models import BestExitResult
from api.server import create_app, start_server
from bot.handlers import (
    bestexit_command,
    help_command,
    holdings_command,
    status_command,
)
from bot.notifications import send_pass_summary
from config import AppConfig, load_config
from lifecycle_engine import PositionLifecycleEngine
from reports.portfolio_summary import (
    build_portfolio_summary,
    format_percent,
    format_token_price,
    format_usd,
    format_win_rate,
    realised_return_percent,
)
from services.discovery_client import DiscoveryClient
from services.geckoterminal_client import GeckoTerminalClient
from services.jupiter_client import JupiterPriceClient
from storage import SQLiteRepository


def create_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession(headers={'User-Agent': constants.HTTP_USER_AGENT})


def build_geckoterminal_client(session: aiohttp.ClientSession, config: AppConfig) -> GeckoTerminalClient:
    return GeckoTerminalClient(
        session,
        network=config.network,
        page_limit=config.page_limit,
        max_pages=config.max_pages,
        retry_attempts=config.retry_attempts,
        retry_backoff=config.retry_backoff,
        timeout=config.request_timeout,
    )


def build_engine(session: aiohttp.ClientSession, config: AppConfig, repository: SQLiteRepository) -> PositionLifecycleEngine:
    discovery_client = DiscoveryClient(
        session,
        url=config.discovery_url,
        retry_attempts=config.retry_attempts,
        retry_backoff=config.retry_backoff,
        timeout=config.request_timeout,
    )
    price_client = JupiterPriceClient(session, timeout=config.request_timeout)
    return PositionLifecycleEngine(config, discovery_client, price_client, repository)


async def run_lifecycle_pass(config: AppConfig) -> dict:
    repository = SQLiteRepository(config.db_path)
    try:
        async with create_session() as session:
            engine = build_engine(session, config, repository)
            summary = await engine.run_pass()
    finally:
        await repository.close()

    if config.telegram_enabled:
        await send_pass_summary(config.telegram_bot_token, config.telegram_chat_id, summary)
    return summary.to_payload()


async def run_best_exit_query(config: AppConfig) -> dict:
    async with create_session() as session:
        service = BestExitService(build_geckoterminal_client(session, config))
        envelope = await service.query(config.best_exit_mint, config.bought_at, config.buy_price)
    return envelope.to_payload()


async def serve_api(config: AppConfig) -> None:
    async with create_session() as session:
        service = BestExitService(build_geckoterminal_client(session, config))
        app = create_app(service, strict_upstream_errors=config.strict_upstream_errors)
        runner = await start_server(app, config.api_host, config.api_port)
        try:
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()


async def load_holdings_report(config: AppConfig) -> tuple[list, dict]:
    """The whole ledger plus, when requested, best exits for the displayed holdings."""
    repository = SQLiteRepository(config.db_path)
    try:
        positions = await repository.fetch_positions()
    finally:
        await repository.close()

    best_exits: dict[int, BestExitResult] = {}
    if config.with_best_exit and positions:
        async with create_session() as session:
            service = BestExitService(build_geckoterminal_client(session, config))
            for position in positions[:config.holdings_limit]:
                envelope = await service.query(position.mint_address, position.bought_at, position.buy_price)
                best_exits[position.id] = envelope.result
    return positions, best_exits


async def post_init_hook(application: Application) -> None:
    """A hook that runs after the bot is initialized to set up shared clients."""
    session = create_session()
    application.bot_data['http_session'] = session

    config = application.bot_data['config']
    application.bot_data['best_exit_service'] = BestExitService(build_geckoterminal_client(session, config))

    commands = [
        BotCommand("status", "Check bot status"),
        BotCommand("holdings", "Performance summary and latest holdings"),
        BotCommand("bestexit", "Best possible exit for a purchase"),
        BotCommand("help", "Show help message"),
    ]
    try:
        await application.bot.set_my_commands(commands)
    except (TimedOut, TelegramError) as exc:
        print(
            f"{constants.C_YELLOW}Warning: unable to set Telegram bot commands ({exc})."
            f" Continuing startup without updating commands.{constants.C_RESET}"
        )

async def post_shutdown_hook(application: Application) -> None:
    """A hook that runs on application shutdown to clean up resources."""
    session = application.bot_data.get('http_session')
    if session:
        await session.close()
    repository = application.bot_data.get('repository')
    if repository:
        await repository.close()


def run_bot(config: AppConfig) -> None:
    application = (
        Application.builder()
        .token(config.telegram_bot_token)
        .post_init(post_init_hook)
        .post_shutdown(post_shutdown_hook)
        .build()
    )

    application.bot_data['config'] = config
    application.bot_data['start_time'] = time.time()
    application.bot_data['repository'] = SQLiteRepository(config.db_path)

    application.add_handler(CommandHandler("start", help_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("status", status_command))
    application.add_handler(CommandHandler("holdings", holdings_command))
    application.add_handler(CommandHandler("bestexit", bestexit_command))

    application.run_polling()


def main() -> None:
    """The main synchronous entry point for the application."""
    config = load_config()

    if config.run_once:
        payload = asyncio.run(run_lifecycle_pass(config))
        print(json.dumps(payload, indent=2))
        return

    if config.best_exit_mint:
        payload = asyncio.run(run_best_exit_query(config))
        print(json.dumps(payload, indent=2))
        return

    if config.show_holdings:
        positions, best_exits = asyncio.run(load_holdings_report(config))
        _print_holdings(positions, best_exits, config)
        return

    if config.serve:
        try:
            asyncio.run(serve_api(config))
        except KeyboardInterrupt:
            print("API server stopped.")
        return

    if config.bot:
        run_bot(config)


def _print_holdings(positions: list, best_exits: dict, config: AppConfig) -> None:
    heading = f"Showing up to {config.holdings_limit} holdings"
    print(heading)
    print("=" * len(heading))

    if not positions:
        print("No holdings found.")
        return

    summary = build_portfolio_summary(
        positions,
        starting_capital=config.starting_capital,
        investment_per_coin=config.investment_per_coin,
    )
    print(
        f"Starting Capital: {format_usd(summary.starting_capital)}  "
        f"Investment / Coin: {format_usd(summary.investment_per_coin)}  "
        f"Ending Capital: {format_usd(summary.ending_capital)}"
    )
    gl_color = constants.C_GREEN if summary.total_gain_loss >= 0 else constants.C_RED
    print(
        f"Total G/L: {gl_color}{format_usd(summary.total_gain_loss)} "
        f"({format_percent(summary.total_gain_loss_percent)}){constants.C_RESET}  "
        f"Win Rate: {format_win_rate(summary)}"
    )
    print()

    headers = ["Symbol", "Mint Address", "Bought At (UTC)", "Buy Price", "Sell Price", "P/L %"]
    if config.with_best_exit:
        headers += ["Best Sell At", "Best Sell Price", "Best P/L %"]

    def _format_time(value: datetime | None) -> str:
        return value.strftime("%Y-%m-%d %H:%M:%S") if value else "N/A"

    def _format_row(position) -> list[str]:
        row = [
            position.symbol,
            position.mint_address,
            _format_time(position.bought_at),
            format_token_price(position.buy_price),
            format_token_price(position.sell_price),
            format_percent(realised_return_percent(position.buy_price, position.sell_price)),
        ]
        if config.with_best_exit:
            best = best_exits.get(position.id) or BestExitResult.absent()
            row += [
                best.best_sell_at or "-",
                format_token_price(best.best_sell_price),
                format_percent(best.best_return_percent),
            ]
        return row

    rows = [_format_row(position) for position in positions[:config.holdings_limit]]
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    def _format_line(row: list[str]) -> str:
        return "  ".join(cell.ljust(widths[idx]) for idx, cell in enumerate(row))

    print(_format_line(headers))
    print("  ".join('-' * w for w in widths))
    for row in rows:
        print(_format_line(row))


if __name__ == "__main__":
    main()
