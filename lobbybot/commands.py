from __future__ import annotations

from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from .auth import guard_admin, guard_read
from .config import ACTIVE_SIZE_THRESHOLD, MAX_WATCH_MINUTES, MAX_WATCH_THRESHOLD, logger
from .formatting import (
    escape_html,
    fmt_alert_list,
    fmt_alert_status,
    fmt_config,
    fmt_leaderboard,
    fmt_watch_list,
)
from .leaderboard import LeaderboardPage, page_callback_data, parse_page_callback, render_leaderboard
from .lobbies import ConfigurationError, get_lobby, parse_lobby_args, parse_positive_int, parse_region
from .state import ChatRef
from .watchers import PollScheduler

NO_DATA_MSG = (
    "❌ Could not load lobby data right now. The game server might be offline "
    "or unreachable. Please try again in a moment."
)
NO_API_MSG = "No API for this server."


def _scheduler(context: ContextTypes.DEFAULT_TYPE) -> PollScheduler:
    return context.application.bot_data["scheduler"]


async def _reply(update: Update, text: str, reply_markup=None) -> None:
    await update.message.reply_text(text, parse_mode="HTML", reply_markup=reply_markup)


def parse_chat_ref(raw: str) -> ChatRef:
    raw = raw.strip()
    if raw.startswith("@") and len(raw) > 1:
        return raw
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError("Chat must be a numeric chat id or an @channel username.") from None


def leaderboard_keyboard(page: LeaderboardPage) -> Optional[InlineKeyboardMarkup]:
    buttons: List[InlineKeyboardButton] = []
    if page.has_prev:
        buttons.append(InlineKeyboardButton("◀", callback_data=page_callback_data(page.lobby_key, page.page - 1)))
    if page.has_next:
        buttons.append(InlineKeyboardButton("▶", callback_data=page_callback_data(page.lobby_key, page.page + 1)))
    return InlineKeyboardMarkup([buttons]) if buttons else None


async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_read(update, context):
        return
    await _reply(
        update,
        "🤖 <b>Lobby Watch Bot</b>\n\n"
        "/lb &lt;lobby&gt; [region] - Lobby leaderboard\n"
        "/alert channel|on|off|list|status - Join alerts\n"
        "/watch add|list|remove|clear - Player-count watches\n"
        "/config [default-region|setrole] - Settings\n"
        "/autorefresh on|off [chat] - Auto-posted lobby overview\n\n"
        "Lobby: 1, 5 or 20 · Region: us or eu\n"
        f"Players with size ≤ {ACTIVE_SIZE_THRESHOLD} are ignored.\n\n"
        + _scheduler(context).oracle.status_line(),
    )


async def lb_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_read(update, context):
        return
    scheduler = _scheduler(context)
    cfg = scheduler.tenants.get_or_create(update.effective_chat.id)

    try:
        lobby = parse_lobby_args(context.args or [], cfg.default_region)
    except ConfigurationError as e:
        await _reply(update, f"❌ {e}\nUsage: <code>/lb &lt;lobby&gt; &lt;region&gt;</code>\nExample: <code>/lb 5 us</code>")
        return

    if not lobby.supported:
        await _reply(update, f"<b>{lobby.label}</b>\n{NO_API_MSG}")
        return

    snapshot = await scheduler.cache.get_snapshot(lobby.key)
    if snapshot is None or snapshot.unsupported:
        await _reply(update, NO_DATA_MSG)
        return

    page = render_leaderboard(snapshot, 0)
    text = fmt_leaderboard(lobby, snapshot, page, scheduler.oracle.status_line())
    await _reply(update, text, reply_markup=leaderboard_keyboard(page))


async def lb_page_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Re-render a leaderboard page from a fresh cache read."""
    query = update.callback_query
    parsed = parse_page_callback(query.data)
    lobby = get_lobby(parsed[0]) if parsed else None
    if lobby is None or not lobby.supported:
        await query.answer(NO_API_MSG, show_alert=True)
        return

    scheduler = _scheduler(context)
    snapshot = await scheduler.cache.get_snapshot(lobby.key)
    if snapshot is None or snapshot.unsupported:
        await query.answer("Could not load lobby data right now. Please try again in a moment.", show_alert=True)
        return

    page = render_leaderboard(snapshot, parsed[1])
    text = fmt_leaderboard(lobby, snapshot, page, scheduler.oracle.status_line())
    await query.answer()
    await query.edit_message_text(text, parse_mode="HTML", reply_markup=leaderboard_keyboard(page))


async def alert_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    args = context.args or []
    sub = args[0].lower() if args else ""
    if sub in ("", "list", "status"):
        if not await guard_read(update, context):
            return
    elif not await guard_admin(update, context):
        return

    scheduler = _scheduler(context)
    cfg = scheduler.tenants.get_or_create(update.effective_chat.id)

    if not sub:
        await _reply(
            update,
            "🔔 <b>Join Alert Commands</b>\n"
            "/alert on &lt;lobby&gt; &lt;region&gt;\n"
            "/alert off &lt;lobby&gt; &lt;region&gt;\n"
            "/alert channel [chat]\n"
            "/alert list\n"
            "/alert status\n\n"
            "<i>Alerts ping when someone joins that lobby</i>",
        )
        return

    if sub == "list":
        await _reply(update, fmt_alert_list(cfg))
        return

    if sub == "status":
        await _reply(update, fmt_alert_status(cfg))
        return

    if sub == "channel":
        try:
            chat = parse_chat_ref(args[1]) if len(args) > 1 else update.effective_chat.id
        except ConfigurationError as e:
            await _reply(update, f"❌ {e}")
            return
        cfg.set_alert_chat(chat)
        scheduler.save()
        await _reply(update, f"✅ Alert chat set to <code>{chat}</code>.\nJoin and watch alerts will be sent there.")
        return

    if sub in ("on", "off"):
        try:
            lobby = parse_lobby_args(args[1:], cfg.default_region)
        except ConfigurationError as e:
            await _reply(update, f"❌ {e}\nExample: <code>/alert on 20 us</code>")
            return
        if not lobby.supported:
            await _reply(update, f"<b>{lobby.label}</b>\n{NO_API_MSG}")
            return

        if sub == "on":
            if cfg.alert_chat_id is None:
                await _reply(update, "❌ Alert chat not set. Use <code>/alert channel</code> first.")
                return
            cfg.enable_alerts(lobby.key)
            scheduler.save()
            await _reply(update, f"✅ Join alerts enabled for {lobby.label} lobby in <code>{cfg.alert_chat_id}</code>.")
        else:
            if not cfg.disable_alerts(lobby.key):
                await _reply(update, f"Join alerts are already disabled for {lobby.label} lobby.")
                return
            scheduler.save()
            await _reply(update, f"✅ Join alerts disabled for {lobby.label} lobby.")
        return

    await _reply(update, "Usage: /alert on|off &lt;lobby&gt; &lt;region&gt;, /alert channel, /alert list, /alert status")


async def watch_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    args = context.args or []
    sub = args[0].lower() if args else ""
    if sub in ("", "list"):
        if not await guard_read(update, context):
            return
    elif not await guard_admin(update, context):
        return

    scheduler = _scheduler(context)
    cfg = scheduler.tenants.get_or_create(update.effective_chat.id)

    if not sub:
        await _reply(
            update,
            "👀 <b>Lobby Watchers</b>\n"
            "/watch add &lt;lobby&gt; &lt;region&gt; &lt;threshold&gt; &lt;minutes&gt;\n"
            "/watch list\n"
            "/watch remove &lt;id&gt;\n"
            "/watch clear\n\n"
            "Example: <code>/watch add 5 us 6 2</code>",
        )
        return

    if sub == "add":
        if len(args) < 5:
            await _reply(update, "Usage: <code>/watch add &lt;lobby&gt; &lt;region&gt; &lt;threshold&gt; &lt;minutes&gt;</code>")
            return
        try:
            lobby = parse_lobby_args(args[1:3])
            threshold = parse_positive_int(args[3], "Threshold", MAX_WATCH_THRESHOLD)
            minutes = parse_positive_int(args[4], "Minutes", MAX_WATCH_MINUTES)
        except ConfigurationError as e:
            await _reply(update, f"❌ {e}\nExample: <code>/watch add 5 us 6 2</code>")
            return
        if not lobby.supported:
            await _reply(update, f"<b>{lobby.label}</b>\n{NO_API_MSG}")
            return
        watch = cfg.add_watch(lobby.key, threshold, minutes)
        scheduler.save()
        logger.info(f"Tenant {cfg.tenant_id} added watch {watch.id} on {lobby.key}")
        await _reply(
            update,
            f"✅ <b>Watch created</b> (ID {watch.id})\n"
            f"Lobby: {lobby.label}\n"
            f"Threshold: {threshold} players\n"
            f"Interval: {minutes} minute(s)",
        )
        return

    if sub == "list":
        await _reply(update, fmt_watch_list(cfg))
        return

    if sub == "remove":
        try:
            watch_id = int(args[1]) if len(args) > 1 else None
        except ValueError:
            watch_id = None
        if watch_id is None:
            await _reply(update, "Usage: <code>/watch remove &lt;id&gt;</code>")
            return
        if cfg.remove_watch(watch_id) is None:
            await _reply(update, f"Watch not found: no watch with ID {watch_id}.\nUse /watch list to see all active watches.")
            return
        scheduler.save()
        await _reply(update, f"✅ Watch {watch_id} removed.")
        return

    if sub == "clear":
        if cfg.clear_watches() == 0:
            await _reply(update, "There are no watches to clear.")
            return
        scheduler.save()
        await _reply(update, "✅ All watches have been cleared for this chat.")
        return

    await _reply(update, "Usage: /watch add, /watch list, /watch remove, /watch clear")


async def config_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    args = context.args or []
    sub = args[0].lower() if args else ""
    if not sub:
        if not await guard_read(update, context):
            return
    elif not await guard_admin(update, context):
        return

    scheduler = _scheduler(context)
    cfg = scheduler.tenants.get_or_create(update.effective_chat.id)

    if not sub:
        await _reply(update, fmt_config(cfg))
        return

    if sub == "default-region":
        try:
            region = parse_region(args[1] if len(args) > 1 else None)
        except ConfigurationError as e:
            await _reply(update, f"❌ {e}\nExample: <code>/config default-region us</code>")
            return
        cfg.set_default_region(region)
        scheduler.save()
        await _reply(update, f"✅ Default region set to {region.value.upper()}.")
        return

    if sub == "setrole":
        mention = " ".join(args[1:]).strip() or None
        cfg.set_ping_mention(mention)
        scheduler.save()
        if mention is None:
            await _reply(update, "✅ Ping mention cleared.")
        else:
            await _reply(update, f"✅ Ping mention set to {escape_html(mention)}.")
        return

    await _reply(update, "Usage: /config default-region &lt;us|eu&gt;, /config setrole &lt;@mention&gt;")


async def autorefresh_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_admin(update, context):
        return
    args = context.args or []
    sub = args[0].lower() if args else ""
    scheduler = _scheduler(context)
    cfg = scheduler.tenants.get_or_create(update.effective_chat.id)

    if sub == "on":
        try:
            chat = parse_chat_ref(args[1]) if len(args) > 1 else update.effective_chat.id
        except ConfigurationError as e:
            await _reply(update, f"❌ {e}")
            return
        cfg.set_auto_refresh(chat)
        scheduler.save()
        await _reply(update, f"✅ Lobby overview will be reposted in <code>{chat}</code> every minute.")
        return

    if sub == "off":
        cfg.set_auto_refresh(None)
        scheduler.save()
        await _reply(update, "✅ Auto-refresh disabled.")
        return

    await _reply(update, "Usage: <code>/autorefresh on [chat]</code> or <code>/autorefresh off</code>")
