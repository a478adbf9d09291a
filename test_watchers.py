"""Tests for the poll scheduler and Telegram dispatcher."""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import BadRequest, Forbidden

from lobbybot.http import FetchError
from lobbybot.lobbies import get_lobby
from lobbybot.models import CycleEvents, JoinEvent
from lobbybot.notifications import TelegramDispatcher
from lobbybot.price import PriceOracle
from lobbybot.snapshots import SnapshotCache
from lobbybot.state import TenantRegistry, Watch
from lobbybot.watchers import PollScheduler, collect_tenant_events

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_scheduler(fake_timer, dispatcher=None, persist=None, clock=lambda: NOW):
    oracle = PriceOracle(MagicMock())
    cache = SnapshotCache(MagicMock(), oracle, timer=fake_timer)
    return PollScheduler(cache, oracle, TenantRegistry(), dispatcher=dispatcher, persist=persist, clock=clock)


def players(*ids, size=10):
    return [{"privyId": pid, "name": pid.upper(), "size": size} for pid in ids]


def fetch_by_url(responses):
    """Build a fetch_json stand-in answering per lobby key."""
    by_url = {get_lobby(key).url: value for key, value in responses.items()}

    async def fake_fetch(session, url):
        value = by_url.get(url, {"success": True, "players": []})
        if isinstance(value, Exception):
            raise value
        return value

    return fake_fetch


@pytest.mark.asyncio
async def test_cycle_reports_joins_and_fired_watches(fake_timer, payload_factory):
    dispatcher = MagicMock()
    dispatcher.dispatch = AsyncMock()
    persist = MagicMock()
    scheduler = make_scheduler(fake_timer, dispatcher, persist)
    cfg = scheduler.tenants.get_or_create(1)
    cfg.set_alert_chat(1)
    cfg.enable_alerts("us-5")
    watch = cfg.add_watch("us-5", 2, 1)

    responses = {"us-5": payload_factory(players("a", "b"))}
    with patch("lobbybot.snapshots.fetch_json", new=AsyncMock(side_effect=fetch_by_url(responses))):
        produced = await scheduler.run_cycle()

    assert len(produced) == 1
    events = produced[0]
    assert {p.identifier for p in events.joins[0].players} == {"a", "b"}
    assert events.joins[0].active_count == 2
    assert events.fired[0].watch is watch
    assert watch.last_alert_at == NOW
    dispatcher.dispatch.assert_awaited_once_with(cfg, events)
    persist.assert_called_once()


@pytest.mark.asyncio
async def test_failed_lobby_does_not_block_others(fake_timer, payload_factory):
    scheduler = make_scheduler(fake_timer)
    cfg = scheduler.tenants.get_or_create(1)
    cfg.set_alert_chat(1)
    cfg.enable_alerts("us-1")
    cfg.enable_alerts("us-20")

    responses = {
        "us-1": FetchError("HTTP 503"),
        "us-20": payload_factory(players("z")),
    }
    with patch("lobbybot.snapshots.fetch_json", new=AsyncMock(side_effect=fetch_by_url(responses))):
        produced = await scheduler.run_cycle()

    assert [e.lobby_key for e in produced[0].joins] == ["us-20"]
    assert scheduler.cache.peek("us-1") is None


@pytest.mark.asyncio
async def test_tenant_without_alert_chat_is_skipped(fake_timer, payload_factory):
    scheduler = make_scheduler(fake_timer)
    cfg = scheduler.tenants.get_or_create(1)
    cfg.alert_enabled["us-5"] = True
    watch = cfg.add_watch("us-5", 1, 1)

    responses = {"us-5": payload_factory(players("a"))}
    with patch("lobbybot.snapshots.fetch_json", new=AsyncMock(side_effect=fetch_by_url(responses))):
        produced = await scheduler.run_cycle()

    assert produced == []
    assert watch.last_alert_at is None
    assert cfg.last_seen.get("us-5", set()) == set()


@pytest.mark.asyncio
async def test_dispatch_failure_does_not_stop_other_tenants(fake_timer, payload_factory):
    dispatcher = MagicMock()
    dispatcher.dispatch = AsyncMock(side_effect=[RuntimeError("boom"), 1])
    scheduler = make_scheduler(fake_timer, dispatcher)
    for tenant_id in (1, 2):
        cfg = scheduler.tenants.get_or_create(tenant_id)
        cfg.set_alert_chat(tenant_id)
        cfg.enable_alerts("us-5")

    responses = {"us-5": payload_factory(players("a"))}
    with patch("lobbybot.snapshots.fetch_json", new=AsyncMock(side_effect=fetch_by_url(responses))):
        produced = await scheduler.run_cycle()

    assert [e.tenant_id for e in produced] == [1, 2]
    assert dispatcher.dispatch.await_count == 2


def test_collect_uses_only_current_cycle_snapshots(snapshot_factory, player_factory):
    registry = TenantRegistry()
    cfg = registry.get_or_create(1)
    cfg.set_alert_chat(1)
    cfg.enable_alerts("us-5")
    cfg.add_watch("us-20", 1, 1)

    events = collect_tenant_events(cfg, {"us-5": None, "us-20": None}, NOW)

    assert not events
    assert cfg.watches[1].last_alert_at is None


def test_watch_refires_each_interval_while_threshold_met(snapshot_factory, player_factory):
    cfg = TenantRegistry().get_or_create(1)
    cfg.set_alert_chat(1)
    cfg.add_watch("us-5", 1, 2)
    snapshots = {"us-5": snapshot_factory([player_factory("a")])}

    fired_at = []
    for minute in range(0, 7):
        now = NOW + timedelta(minutes=minute)
        if collect_tenant_events(cfg, snapshots, now).fired:
            fired_at.append(minute)

    assert fired_at == [0, 2, 4, 6]


def test_broken_watch_does_not_drop_joins(snapshot_factory, player_factory):
    cfg = TenantRegistry().get_or_create(1)
    cfg.set_alert_chat(1)
    cfg.enable_alerts("us-5")
    cfg.last_seen["us-5"] = {"a"}
    # Restored from an old settings file, bypassing add_watch bounds
    cfg.watches[1] = Watch(id=1, lobby_key="us-5", threshold=1, interval_minutes=99999999999999, last_alert_at=NOW)
    cfg.watches[2] = Watch(id=2, lobby_key="us-5", threshold=1, interval_minutes=1)
    snapshots = {"us-5": snapshot_factory([player_factory("a"), player_factory("b")])}

    events = collect_tenant_events(cfg, snapshots, NOW + timedelta(minutes=1))

    assert [p.identifier for p in events.joins[0].players] == ["b"]
    assert [e.watch.id for e in events.fired] == [2]


class TestTelegramDispatcher:

    @pytest.mark.asyncio
    async def test_dispatch_sends_with_mention(self, player_factory):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        cfg = TenantRegistry().get_or_create(1)
        cfg.set_alert_chat(-100)
        cfg.set_ping_mention("@hunters")
        events = CycleEvents(tenant_id=1, joins=[JoinEvent("us-5", [player_factory("a", name="Alice")], 3)])

        sent = await TelegramDispatcher(bot).dispatch(cfg, events)

        assert sent == 1
        chat, text = bot.send_message.await_args.args
        assert chat == -100
        assert text.startswith("@hunters")
        assert "Alice joined US $5 lobby." in text
        assert "Lobby players: 3." in text

    @pytest.mark.asyncio
    async def test_repost_swallows_delete_errors(self):
        bot = MagicMock()
        bot.delete_message = AsyncMock(side_effect=BadRequest("Message to delete not found"))
        bot.send_message = AsyncMock(return_value=MagicMock(message_id=77))
        cfg = TenantRegistry().get_or_create(1)
        cfg.set_auto_refresh(-200)
        cfg.auto_refresh_message_id = 76

        await TelegramDispatcher(bot).repost_summary(cfg, "summary")

        bot.delete_message.assert_awaited_once_with(chat_id=-200, message_id=76)
        bot.send_message.assert_awaited_once_with(-200, "summary", parse_mode="HTML")
        assert cfg.auto_refresh_message_id == 77


@pytest.mark.asyncio
async def test_auto_refresh_isolates_tenant_failures(fake_timer, payload_factory):
    bot = MagicMock()
    bot.delete_message = AsyncMock()

    async def send(chat, text, parse_mode=None):
        if chat == 1:
            raise Forbidden("bot was kicked")
        return MagicMock(message_id=500)

    bot.send_message = AsyncMock(side_effect=send)
    persist = MagicMock()
    scheduler = make_scheduler(fake_timer, TelegramDispatcher(bot), persist)
    broken = scheduler.tenants.get_or_create(1)
    broken.set_auto_refresh(1)
    healthy = scheduler.tenants.get_or_create(2)
    healthy.set_auto_refresh(2)
    healthy.auto_refresh_message_id = 499

    responses = {"us-5": payload_factory(players("a", "b"))}
    with patch("lobbybot.snapshots.fetch_json", new=AsyncMock(side_effect=fetch_by_url(responses))):
        posted = await scheduler.run_auto_refresh()

    assert posted == 1
    assert healthy.auto_refresh_message_id == 500
    assert broken.auto_refresh_message_id is None
    text = bot.send_message.await_args.args[1]
    assert "$5 - 2 active" in text
    assert "NO API" in text
    persist.assert_called_once()


@pytest.mark.asyncio
async def test_start_and_stop_loops(fake_timer):
    scheduler = make_scheduler(fake_timer)
    scheduler.run_cycle = AsyncMock(return_value=[])
    scheduler.run_auto_refresh = AsyncMock(return_value=0)
    scheduler.oracle.refresh = AsyncMock(return_value=True)
    # Short intervals so each loop runs several times
    scheduler._poll_secs = scheduler._price_secs = scheduler._auto_refresh_secs = 0.01

    scheduler.start()
    await asyncio.sleep(0.05)
    assert scheduler.running
    await scheduler.stop()

    assert not scheduler.running
    assert scheduler.run_cycle.await_count >= 2
    assert scheduler.oracle.refresh.await_count >= 2


@pytest.mark.asyncio
async def test_loop_survives_exceptions(fake_timer):
    scheduler = make_scheduler(fake_timer)
    scheduler.run_cycle = AsyncMock(side_effect=RuntimeError("boom"))
    scheduler.run_auto_refresh = AsyncMock(return_value=0)
    scheduler.oracle.refresh = AsyncMock(return_value=True)
    scheduler._poll_secs = scheduler._price_secs = scheduler._auto_refresh_secs = 0.01

    scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert scheduler.run_cycle.await_count >= 2
