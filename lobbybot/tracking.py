from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from .models import Player, Snapshot
from .state import TenantConfig, Watch


def compute_new_joins(tenant: TenantConfig, lobby_key: str, snapshot: Snapshot) -> List[Player]:
    """Return active players that were not present in the previous cycle.

    The stored set is replaced on every call, so a join is reported once.
    An empty lobby resets the stored set so a later refill is compared
    against nothing rather than an old roster.
    """
    active = snapshot.active_players()
    current_ids = {p.identifier for p in active if p.identifier}

    if not current_ids:
        tenant.last_seen[lobby_key] = set()
        return []

    last_ids = tenant.last_seen.get(lobby_key, set())
    new_ids = current_ids - last_ids

    new_joins: List[Player] = []
    reported = set()
    # Snapshot order, one entry per identifier
    for player in active:
        pid = player.identifier
        if pid in new_ids and pid not in reported:
            new_joins.append(player)
            reported.add(pid)

    tenant.last_seen[lobby_key] = current_ids
    return new_joins


def evaluate_watch(watch: Watch, snapshot: Optional[Snapshot], now: datetime) -> bool:
    """Cooldown gate: fire while the threshold is met, at most once per interval."""
    if snapshot is None or snapshot.unsupported:
        return False

    if snapshot.active_count() < watch.threshold:
        return False

    if watch.last_alert_at is not None:
        if now - watch.last_alert_at < timedelta(minutes=watch.interval_minutes):
            return False

    watch.last_alert_at = now
    return True
