from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from .config import AUTO_REFRESH_SECS, POLL_SECS, PRICE_REFRESH_SECS, logger
from .formatting import fmt_summary
from .models import CycleEvents, JoinEvent, Snapshot, WatchFiredEvent
from .price import PriceOracle
from .snapshots import SnapshotCache
from .state import TenantConfig, TenantRegistry
from .tracking import compute_new_joins, evaluate_watch


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def collect_tenant_events(
    cfg: TenantConfig,
    snapshots: Dict[str, Optional[Snapshot]],
    now: datetime,
) -> CycleEvents:
    """Run join detection and watch evaluation for one tenant.

    Only lobbies with a snapshot from this cycle are considered. A tenant
    without an alert chat is skipped entirely, so its tracking state does
    not advance while nobody would be notified.
    """
    events = CycleEvents(tenant_id=cfg.tenant_id)
    if cfg.alert_chat_id is None:
        return events

    for lobby_key in cfg.enabled_lobbies():
        snapshot = snapshots.get(lobby_key)
        if snapshot is None or snapshot.unsupported:
            continue
        try:
            joins = compute_new_joins(cfg, lobby_key, snapshot)
        except Exception:
            logger.exception(f"Join detection failed for tenant {cfg.tenant_id} lobby {lobby_key}")
            continue
        if joins:
            events.joins.append(JoinEvent(lobby_key, joins, snapshot.active_count()))

    for watch in list(cfg.watches.values()):
        snapshot = snapshots.get(watch.lobby_key)
        try:
            fired = evaluate_watch(watch, snapshot, now)
        except Exception:
            logger.exception(f"Watch {watch.id} evaluation failed for tenant {cfg.tenant_id}")
            continue
        if fired:
            events.fired.append(WatchFiredEvent(watch.lobby_key, watch, snapshot.active_count()))

    return events


class PollScheduler:
    """Owns the periodic poll, price and auto-refresh loops."""

    def __init__(
        self,
        cache: SnapshotCache,
        oracle: PriceOracle,
        tenants: TenantRegistry,
        dispatcher=None,
        persist: Optional[Callable[[], None]] = None,
        poll_secs: float = POLL_SECS,
        price_secs: float = PRICE_REFRESH_SECS,
        auto_refresh_secs: float = AUTO_REFRESH_SECS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.oracle = oracle
        self.tenants = tenants
        self.dispatcher = dispatcher
        self._persist = persist
        self._poll_secs = poll_secs
        self._price_secs = price_secs
        self._auto_refresh_secs = auto_refresh_secs
        self._clock = clock
        self._tasks: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self) -> List[CycleEvents]:
        """Fetch every lobby once, then evaluate and dispatch per tenant."""
        snapshots = await self.cache.refresh_all()
        failed = [key for key, snap in snapshots.items() if snap is None]
        if failed:
            logger.debug(f"Poll cycle: no fresh data for {', '.join(failed)}")

        now = self._clock()
        produced: List[CycleEvents] = []
        for tenant_id, cfg in self.tenants.items():
            try:
                events = collect_tenant_events(cfg, snapshots, now)
            except Exception:
                logger.exception(f"Failed to evaluate tenant {tenant_id}")
                continue
            if not events:
                continue
            produced.append(events)
            if self.dispatcher is not None:
                try:
                    await self.dispatcher.dispatch(cfg, events)
                except Exception:
                    logger.exception(f"Failed to dispatch notifications for tenant {tenant_id}")

        if any(e.fired for e in produced):
            self.save()
        return produced

    async def run_auto_refresh(self) -> int:
        """Repost the lobby overview for every tenant that asked for it."""
        targets = [cfg for _, cfg in self.tenants.items() if cfg.auto_refresh_chat_id is not None]
        if not targets or self.dispatcher is None:
            return 0

        keys = [lobby.key for lobby in self.cache.lobbies]
        results = await asyncio.gather(*[self.cache.get_snapshot(k) for k in keys], return_exceptions=True)
        snapshots = {
            key: (None if isinstance(result, BaseException) else result)
            for key, result in zip(keys, results)
        }
        text = fmt_summary(snapshots, self.oracle.status_line(), self._clock())

        posted = 0
        for cfg in targets:
            try:
                await self.dispatcher.repost_summary(cfg, text)
                posted += 1
            except Exception as e:
                logger.error(f"Auto-refresh failed for tenant {cfg.tenant_id}: {e}")
        if posted:
            self.save()
        return posted

    def save(self) -> None:
        if self._persist is None:
            return
        try:
            self._persist()
        except Exception as e:
            logger.error(f"Could not persist tenant settings: {e}")

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def _run_every(self, name: str, interval: float, body: Callable[[], Awaitable]) -> None:
        loop = asyncio.get_running_loop()
        logger.info(f"Starting {name} loop every {interval}s")
        while True:
            started = loop.time()
            try:
                await body()
            except Exception:
                logger.exception(f"Error in {name} loop")
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, interval - elapsed))

    def start(self) -> None:
        if self._tasks:
            return
        loops = {
            "price": (self._price_secs, self.oracle.refresh),
            "poll": (self._poll_secs, self.run_cycle),
            "auto-refresh": (self._auto_refresh_secs, self.run_auto_refresh),
        }
        for name, (interval, body) in loops.items():
            self._tasks[name] = asyncio.create_task(self._run_every(name, interval, body), name=f"lobbybot-{name}")

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Background loops stopped")

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())
