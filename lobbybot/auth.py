from __future__ import annotations

from typing import Optional, Tuple

from telegram import ChatMember, Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from .config import logger

GROUP_CHAT_TYPES = ("group", "supergroup")
ADMIN_STATUSES: Tuple[str, ...] = (ChatMember.ADMINISTRATOR, ChatMember.OWNER)
MEMBER_STATUSES: Tuple[str, ...] = (ChatMember.MEMBER,) + ADMIN_STATUSES


async def _member_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[str]:
    try:
        member = await context.bot.get_chat_member(update.effective_chat.id, update.effective_user.id)
    except TelegramError as e:
        logger.warning(f"Could not look up member {update.effective_user.id} in {update.effective_chat.id}: {e}")
        return None
    return member.status


async def _is_authorized(update: Update, context: ContextTypes.DEFAULT_TYPE, allowed: Tuple[str, ...]) -> bool:
    """Private chats manage themselves; groups check the caller's member status."""
    chat = update.effective_chat
    if not chat or not update.effective_user:
        return False
    if chat.type == "private":
        return True
    if chat.type not in GROUP_CHAT_TYPES:
        return False
    return await _member_status(update, context) in allowed


async def is_authorized_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    return await _is_authorized(update, context, ADMIN_STATUSES)


async def is_authorized_read(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    return await _is_authorized(update, context, MEMBER_STATUSES)


async def guard_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    if not await is_authorized_admin(update, context):
        if update.effective_chat:
            await context.bot.send_message(update.effective_chat.id, "❌ Only group admins can change bot settings.")
        return False
    return True


async def guard_read(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    return await is_authorized_read(update, context)
