# bot/notifications.py
import html

from telegram import Bot
from telegram.error import TelegramError

from analysis.models import PassSummary
from constants import C_RED, C_RESET


def format_pass_summary_message(summary: PassSummary) -> str:
    lines = [
        "<b>🔁 Trade Simulation Pass</b>",
        f"<b>Bought:</b> {summary.opened}",
        f"<b>Sold:</b> {summary.closed}",
    ]
    if summary.new_symbols:
        lines.append(f"<b>New:</b> {html.escape(', '.join(summary.new_symbols))}")
    if summary.closed_symbols:
        lines.append(f"<b>Closed:</b> {html.escape(', '.join(summary.closed_symbols))}")
    if summary.errors:
        lines.append(f"<b>Errors:</b> {len(summary.errors)}")
        lines.append(f"<pre>{html.escape(summary.errors[0])}</pre>")
    return "\n".join(lines)


async def send_pass_summary(bot_token: str, chat_id: str, summary: PassSummary) -> bool:
    """Post the pass summary to Telegram. Delivery problems are logged, not raised."""
    bot = Bot(token=bot_token)
    try:
        async with bot:
            await bot.send_message(
                chat_id=chat_id,
                text=format_pass_summary_message(summary),
                parse_mode='HTML',
            )
    except TelegramError as exc:
        print(f"{C_RED}Failed to send Telegram summary: {exc}{C_RESET}")
        return False
    return True
