from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from .config import ACTIVE_SIZE_THRESHOLD
from .leaderboard import LeaderboardPage
from .lobbies import LOBBIES, LobbyDefinition, Region, get_lobby, lobbies_in_region
from .models import JoinEvent, Snapshot, WatchFiredEvent
from .state import ChatRef, TenantConfig


def escape_html(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _label(lobby_key: str) -> str:
    lobby = get_lobby(lobby_key)
    return lobby.label if lobby else lobby_key


def _chat_text(chat: Optional[ChatRef]) -> str:
    return f"<code>{escape_html(str(chat))}</code>" if chat is not None else "not set"


def _with_mention(message: str, mention: Optional[str]) -> str:
    if mention:
        return f"{escape_html(mention)}\n{message}"
    return message


def fmt_leaderboard(lobby: LobbyDefinition, snapshot: Snapshot, page: LeaderboardPage, price_status: str) -> str:
    header = (
        f"🏆 <b>{escape_html(lobby.label)} Lobby Leaderboard</b>\n"
        f"Lobby: ${lobby.tier}   Region: {lobby.region.value.upper()}\n"
        f"Players in lobby: {snapshot.player_count}\n"
        f"{escape_html(price_status)}\n"
        f"Data pulled: {snapshot.fetched_at.isoformat()}\n"
        f"Page {page.page + 1}/{page.total_pages}"
    )

    if not page.entries:
        return header + f"\n\n<i>No active players with size &gt; {ACTIVE_SIZE_THRESHOLD}.</i>"

    lines: List[str] = []
    for entry in page.entries:
        lines.append(
            f"<b>#{entry.rank} {escape_html(entry.name)}</b>\n"
            f"Size: {entry.size} · USD: {escape_html(entry.usd)}"
        )
    footer = f"<i>Players with size ≤ {ACTIVE_SIZE_THRESHOLD} are hidden</i>"
    return header + "\n\n" + "\n\n".join(lines) + "\n\n" + footer


def fmt_join_alert(event: JoinEvent, mention: Optional[str] = None) -> str:
    lobby = get_lobby(event.lobby_key)
    where = f"{lobby.region.value.upper()} ${lobby.tier}" if lobby else event.lobby_key
    if len(event.players) == 1:
        name = escape_html(event.players[0].display_name)
        body = (
            "🚪 <b>Lobby Join</b>\n"
            f"{name} joined {where} lobby.\n"
            f"Lobby players: {event.active_count}."
        )
    else:
        names = "\n".join(f"• {escape_html(p.display_name)}" for p in event.players)
        body = (
            "🚪 <b>Lobby Joins</b>\n"
            f"New joins in {where} lobby:\n"
            f"{names}\n"
            f"Lobby players: {event.active_count}."
        )
    return _with_mention(body, mention)


def fmt_watch_alert(event: WatchFiredEvent, mention: Optional[str] = None) -> str:
    lobby = get_lobby(event.lobby_key)
    where = f"{lobby.region.value.upper()} ${lobby.tier}" if lobby else event.lobby_key
    watch = event.watch
    body = (
        "👀 <b>Lobby Watch Alert</b>\n"
        f"{where} lobby has {event.active_count} players.\n"
        f"Threshold: {watch.threshold}. Interval: {watch.interval_minutes} minute(s)."
    )
    return _with_mention(body, mention)


def fmt_summary(snapshots: Dict[str, Optional[Snapshot]], price_status: str, now: datetime) -> str:
    """Compact all-lobby overview used by the auto-refresh post."""
    lines = ["📋 <b>Lobby Overview</b>", ""]
    for region in Region:
        lines.append(f"<b>{region.value.upper()}</b>")
        for lobby in lobbies_in_region(region):
            snapshot = snapshots.get(lobby.key)
            if not lobby.supported:
                lines.append(f"${lobby.tier} - NO API")
            elif snapshot is None:
                lines.append(f"${lobby.tier} - no data")
            else:
                active = snapshot.active_players()
                line = f"${lobby.tier} - {len(active)} active"
                if active:
                    top = max(active, key=lambda p: p.size)
                    line += f" · top: {escape_html(top.display_name)} ({round(top.size)})"
                lines.append(line)
        lines.append("")
    lines.append(escape_html(price_status))
    lines.append(f"<i>Updated at {now.strftime('%Y-%m-%d %H:%M:%S')} UTC</i>")
    return "\n".join(lines)


def fmt_alert_list(cfg: TenantConfig) -> str:
    lines = ["🔔 <b>Join Alert Status</b>", f"Alert chat: {_chat_text(cfg.alert_chat_id)}", ""]
    for region in Region:
        lines.append(f"<b>{region.value.upper()} lobbies</b>")
        for lobby in lobbies_in_region(region):
            if not lobby.supported:
                state = "NO API"
            else:
                state = "ON" if cfg.alert_enabled.get(lobby.key) else "OFF"
            lines.append(f"${lobby.tier}  - {state}")
        lines.append("")
    lines.append("<i>Use /alert on|off &lt;lobby&gt; &lt;region&gt; to change</i>")
    return "\n".join(lines)


def fmt_alert_status(cfg: TenantConfig) -> str:
    enabled = [
        f"${lobby.tier} {lobby.region.value.upper()}"
        for lobby in LOBBIES
        if lobby.supported and cfg.alert_enabled.get(lobby.key)
    ]
    return (
        "🔔 <b>Alert Status</b>\n"
        f"Alert chat: {_chat_text(cfg.alert_chat_id)}\n"
        "Join alerts enabled on:\n"
        f"  {', '.join(enabled) if enabled else 'none'}"
    )


def fmt_watch_list(cfg: TenantConfig) -> str:
    if not cfg.watches:
        return (
            "<b>No active watches</b>\n"
            "Use <code>/watch add &lt;lobby&gt; &lt;region&gt; &lt;threshold&gt; &lt;minutes&gt;</code> to create one."
        )
    lines = ["👀 <b>Active Lobby Watches</b>", f"Alert chat: {_chat_text(cfg.alert_chat_id)}", ""]
    for watch_id, watch in cfg.watches.items():
        last = watch.last_alert_at.isoformat() if watch.last_alert_at else "never"
        lines.append(
            f"<b>{escape_html(_label(watch.lobby_key))} (ID {watch_id})</b>\n"
            f"Threshold: {watch.threshold} players\n"
            f"Interval: {watch.interval_minutes} minute(s)\n"
            f"Last alert: {last}"
        )
    return "\n".join(lines)


def fmt_config(cfg: TenantConfig) -> str:
    mention = escape_html(cfg.ping_mention) if cfg.ping_mention else "No ping mention given"
    return (
        "⚙️ <b>Bot Configuration</b>\n"
        f"Default region: {cfg.default_region or 'not set'}\n"
        f"Alert chat: {_chat_text(cfg.alert_chat_id)}\n"
        f"Ping mention: {mention}\n"
        f"Auto-refresh chat: {_chat_text(cfg.auto_refresh_chat_id)}\n\n"
        "<b>Commands:</b>\n"
        "/config default-region &lt;us|eu&gt;\n"
        "/config setrole &lt;@mention&gt;\n"
        "/alert channel [chat]\n"
        "/autorefresh on|off [chat]"
    )
