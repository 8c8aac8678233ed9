"""Telegram notifications for completed rebalance attempts."""

from __future__ import annotations

import html
import logging
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from .config import TelegramConfig
from .strategy.calculator import Action
from .strategy.records import TradeRecord

logger = logging.getLogger(__name__)


def format_trade_message(record: TradeRecord, symbol: str) -> str:
    """HTML message body for a trade record."""
    status_emoji = "✅" if record.success else "❌"
    action_emoji = {"buy": "📈", "sell": "📉"}.get(record.action.value, "⏸️")
    snapshot = record.snapshot
    decision = record.decision
    symbol = html.escape(symbol)

    header = "🧪 <b>DRY RUN</b> - " if record.dry_run else ""
    lines = [
        f"{header}<b>{symbol} rebalance</b>",
        "",
        f"{status_emoji} <b>Status:</b> {'Success' if record.success else 'Failed'}",
        f"📊 <b>Instrument:</b> {html.escape(record.instrument)}",
        f"💰 <b>Price:</b> ${snapshot.price:,.4f}",
        f"💼 <b>Equity:</b> ${snapshot.equity:,.2f}",
        "",
        "📍 <b>Positions:</b>",
        f"   Current: {snapshot.position:.4f} {symbol}",
        f"   Target: {decision.target:.4f} {symbol}",
        f"   Delta: {decision.delta:+.4f} {symbol}",
        "",
    ]

    if record.action is not Action.HOLD and record.order_size:
        title = "Would execute" if record.dry_run else "Order"
        lines.append(f"{action_emoji} <b>{title}:</b>")
        lines.append(f"   Action: {record.action.value.upper()}")
        lines.append(f"   Size: {record.order_size:.4f} {symbol}")
        if record.order_id:
            lines.append(f"   Order ID: {html.escape(record.order_id)}")
    elif record.success:
        lines.append("⏸️ <b>No action needed</b>")
        lines.append("   Position within target range")

    if record.error:
        lines.append("")
        lines.append(f"❌ <b>Error:</b> {html.escape(record.error)}")

    lines.append("")
    lines.append(f"⏰ <b>Time:</b> {record.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}")
    return "\n".join(lines)


class TelegramNotifier:
    """Sends one message per trade record. Disabled or failing sends never raise."""

    def __init__(self, config: TelegramConfig, *, symbol: str, bot: Optional[Bot] = None) -> None:
        self.config = config
        self.symbol = symbol
        self.bot = bot
        if self.bot is None and self.is_configured:
            self.bot = Bot(token=config.bot_token)

    @property
    def is_configured(self) -> bool:
        return bool(self.config.enabled and self.config.bot_token and self.config.chat_id)

    async def send(self, message: str) -> bool:
        if not self.is_configured or self.bot is None:
            return False
        try:
            await self.bot.send_message(
                chat_id=self.config.chat_id,
                text=message,
                parse_mode="HTML",
            )
        except TelegramError as exc:
            logger.error("Failed to send Telegram notification: %s", exc)
            return False
        logger.info("Telegram notification sent to chat %s", self.config.chat_id)
        return True

    async def publish(self, record: TradeRecord) -> None:
        await self.send(format_trade_message(record, self.symbol))


__all__ = ["TelegramNotifier", "format_trade_message"]
