from __future__ import annotations

from telegram.error import TelegramError

from .config import logger
from .formatting import fmt_join_alert, fmt_watch_alert
from .models import CycleEvents
from .state import TenantConfig


class TelegramDispatcher:
    """Turns per-cycle events into Telegram messages."""

    def __init__(self, bot) -> None:
        self._bot = bot

    async def dispatch(self, cfg: TenantConfig, events: CycleEvents) -> int:
        """Send every join and watch alert to the tenant's alert chat.

        A failed send is logged and the remaining messages are still attempted.
        Returns the number of messages delivered.
        """
        if cfg.alert_chat_id is None:
            return 0

        messages = [fmt_join_alert(e, cfg.ping_mention) for e in events.joins]
        messages += [fmt_watch_alert(e, cfg.ping_mention) for e in events.fired]

        sent = 0
        for text in messages:
            try:
                await self._bot.send_message(cfg.alert_chat_id, text, parse_mode="HTML")
                sent += 1
            except TelegramError as e:
                logger.error(f"Failed to send alert to {cfg.alert_chat_id} (tenant {cfg.tenant_id}): {e}")
        return sent

    async def repost_summary(self, cfg: TenantConfig, text: str) -> None:
        """Delete the previous auto-refresh post and publish a new one."""
        chat = cfg.auto_refresh_chat_id
        if chat is None:
            return

        if cfg.auto_refresh_message_id is not None:
            try:
                await self._bot.delete_message(chat_id=chat, message_id=cfg.auto_refresh_message_id)
            except TelegramError as e:
                # Already gone or no permission; keep going
                logger.debug(f"Could not delete summary {cfg.auto_refresh_message_id} in {chat}: {e}")
            cfg.auto_refresh_message_id = None

        sent = await self._bot.send_message(chat, text, parse_mode="HTML")
        cfg.auto_refresh_message_id = sent.message_id
