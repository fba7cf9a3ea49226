# bot/handlers.py
import html
import time

from telegram import Update
from telegram.ext import ContextTypes

from analysis.best_exit import BestExitService
from reports.portfolio_summary import (
    build_portfolio_summary,
    format_percent,
    format_token_price,
    format_usd,
    format_win_rate,
    realised_return_percent,
)
from storage import SQLiteRepository

HOLDINGS_PREVIEW = 10

# --- Command Handlers ---

async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Displays a help message with all available commands."""
    help_text = """
    <b>Welcome to the Meme Trade Simulator!</b>

    This bot reports on simulated buys of newly listed Solana tokens.

    <b><u>Available Commands:</u></b>
    /status - Bot uptime and ledger size
    /holdings - Performance summary and latest holdings
    /bestexit MINT BOUGHT_AT BUY_PRICE - Best possible exit after a purchase
    /help - Show this help message
    """
    await update.message.reply_html(help_text)

async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Reports uptime, tokens seen and the number of open positions."""
    repository: SQLiteRepository = context.application.bot_data['repository']
    start_time = context.application.bot_data.get('start_time', 0)

    uptime_seconds = time.time() - start_time
    uptime_str = time.strftime('%H:%M:%S', time.gmtime(uptime_seconds))

    try:
        open_positions = await repository.fetch_open_positions()
        positions = await repository.fetch_positions()
        tokens = await repository.fetch_tokens()
    except Exception as e:
        print(f"Error in /status command: {e}")
        await update.message.reply_text("Could not read the holdings ledger.")
        return

    status_text = (
        f"<b>🤖 Bot Status</b>\n"
        f"Uptime: <code>{uptime_str}</code>\n\n"
        f"<b>📒 Ledger</b>\n"
        f"Holdings: <code>{len(positions)}</code>\n"
        f"Open: <code>{len(open_positions)}</code>\n"
        f"Tokens seen: <code>{len(tokens)}</code>\n"
    )
    if tokens:
        status_text += f"Latest token: <b>{html.escape(tokens[0].symbol)}</b>\n"
    await update.message.reply_html(status_text)

async def holdings_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Shows the portfolio summary followed by the most recent holdings."""
    config = context.application.bot_data['config']
    repository: SQLiteRepository = context.application.bot_data['repository']

    try:
        positions = await repository.fetch_positions()
    except Exception as e:
        print(f"Error in /holdings command: {e}")
        await update.message.reply_text("Could not read the holdings ledger.")
        return

    if not positions:
        await update.message.reply_text("No holdings recorded yet.")
        return

    summary = build_portfolio_summary(
        positions,
        starting_capital=config.starting_capital,
        investment_per_coin=config.investment_per_coin,
    )
    lines = [
        "<b>📈 Simulated Performance</b>",
        f"Starting: {format_usd(summary.starting_capital)} | Per coin: {format_usd(summary.investment_per_coin)}",
        f"Ending: {format_usd(summary.ending_capital)} | G/L: {format_usd(summary.total_gain_loss)} ({format_percent(summary.total_gain_loss_percent)})",
        f"Win rate: {format_win_rate(summary)}",
        "",
        "<b>Latest Holdings</b>",
    ]
    for position in positions[:HOLDINGS_PREVIEW]:
        state = "open" if position.is_open else format_token_price(position.sell_price)
        pl = format_percent(realised_return_percent(position.buy_price, position.sell_price))
        lines.append(
            f"<b>{html.escape(position.symbol)}</b> buy {format_token_price(position.buy_price)} → {state} ({pl})"
        )
    await update.message.reply_html("\n".join(lines))

async def bestexit_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Computes the best possible exit for a purchase: /bestexit MINT BOUGHT_AT BUY_PRICE."""
    args = context.args or []
    if len(args) != 3:
        await update.message.reply_text("Usage: /bestexit MINT BOUGHT_AT BUY_PRICE")
        return

    mint_address, bought_at, raw_price = args
    try:
        buy_price = float(raw_price)
    except ValueError:
        await update.message.reply_text("BUY_PRICE must be a number.")
        return

    service: BestExitService = context.application.bot_data['best_exit_service']
    await update.message.reply_text("Fetching candle history from GeckoTerminal...")
    envelope = await service.query(mint_address, bought_at, buy_price)

    result = envelope.result
    if result.is_absent:
        response = f"No best exit available for <code>{html.escape(mint_address)}</code>."
        if envelope.warning:
            response += f"\n<i>{html.escape(envelope.warning)}</i>"
    else:
        response = (
            f"<b>🎯 Best Exit</b>\n"
            f"Mint: <code>{html.escape(mint_address)}</code>\n"
            f"At: <code>{result.best_sell_at}</code>\n"
            f"Price: {format_token_price(result.best_sell_price)}\n"
            f"Return: {format_percent(result.best_return_percent)}"
        )
    await update.message.reply_html(response)
