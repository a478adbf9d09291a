"""Tests for join detection and watch cooldowns."""
from datetime import datetime, timedelta, timezone

from lobbybot.state import TenantConfig, Watch
from lobbybot.tracking import compute_new_joins, evaluate_watch

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def ids(players):
    return {p.identifier for p in players}


class TestComputeNewJoins:

    def test_reports_only_new_identities(self, player_factory, snapshot_factory):
        tenant = TenantConfig(tenant_id=1)
        tenant.last_seen["us-5"] = {"A", "B"}
        snapshot = snapshot_factory([player_factory("B"), player_factory("C")])

        joins = compute_new_joins(tenant, "us-5", snapshot)

        assert ids(joins) == {"C"}
        assert tenant.last_seen["us-5"] == {"B", "C"}

    def test_same_roster_is_not_reported_twice(self, player_factory, snapshot_factory):
        tenant = TenantConfig(tenant_id=1)
        snapshot = snapshot_factory([player_factory("A")])

        assert ids(compute_new_joins(tenant, "us-5", snapshot)) == {"A"}
        assert compute_new_joins(tenant, "us-5", snapshot) == []

    def test_empty_lobby_resets_last_seen(self, player_factory, snapshot_factory):
        tenant = TenantConfig(tenant_id=1)
        tenant.last_seen["us-5"] = {"A", "B"}

        assert compute_new_joins(tenant, "us-5", snapshot_factory([])) == []
        assert tenant.last_seen["us-5"] == set()

        # A returning after the lobby emptied is a new join
        joins = compute_new_joins(tenant, "us-5", snapshot_factory([player_factory("A")]))
        assert ids(joins) == {"A"}

    def test_inactive_players_are_ignored(self, player_factory, snapshot_factory):
        tenant = TenantConfig(tenant_id=1)
        snapshot = snapshot_factory([
            player_factory("small", size=3),
            player_factory("zero", size=0),
            player_factory("missing", size=None),
            player_factory("big", size=3.5),
        ])

        joins = compute_new_joins(tenant, "us-5", snapshot)

        assert ids(joins) == {"big"}
        assert tenant.last_seen["us-5"] == {"big"}

    def test_only_inactive_players_counts_as_empty(self, player_factory, snapshot_factory):
        tenant = TenantConfig(tenant_id=1)
        tenant.last_seen["us-5"] = {"A"}

        assert compute_new_joins(tenant, "us-5", snapshot_factory([player_factory("A", size=1)])) == []
        assert tenant.last_seen["us-5"] == set()

    def test_lobbies_are_tracked_independently(self, player_factory, snapshot_factory):
        tenant = TenantConfig(tenant_id=1)
        compute_new_joins(tenant, "us-5", snapshot_factory([player_factory("A")]))

        joins = compute_new_joins(tenant, "us-20", snapshot_factory([player_factory("A")], lobby_key="us-20"))

        assert ids(joins) == {"A"}


class TestEvaluateWatch:

    def test_cooldown_sequence(self, player_factory, snapshot_factory):
        watch = Watch(id=1, lobby_key="us-5", threshold=5, interval_minutes=2)
        five = snapshot_factory([player_factory(str(i)) for i in range(5)])
        six = snapshot_factory([player_factory(str(i)) for i in range(6)])

        assert evaluate_watch(watch, five, T0) is True
        assert watch.last_alert_at == T0

        assert evaluate_watch(watch, six, T0 + timedelta(seconds=30)) is False
        assert watch.last_alert_at == T0

        later = T0 + timedelta(minutes=2, seconds=1)
        assert evaluate_watch(watch, five, later) is True
        assert watch.last_alert_at == later

    def test_fires_exactly_at_interval_boundary(self, player_factory, snapshot_factory):
        watch = Watch(id=1, lobby_key="us-5", threshold=1, interval_minutes=1, last_alert_at=T0)
        snapshot = snapshot_factory([player_factory("A")])

        assert evaluate_watch(watch, snapshot, T0 + timedelta(minutes=1)) is True

    def test_below_threshold_changes_nothing(self, player_factory, snapshot_factory):
        watch = Watch(id=1, lobby_key="us-5", threshold=3, interval_minutes=5, last_alert_at=T0)
        snapshot = snapshot_factory([player_factory("A"), player_factory("B"), player_factory("C", size=2)])

        assert evaluate_watch(watch, snapshot, T0 + timedelta(hours=1)) is False
        assert watch.last_alert_at == T0

    def test_missing_or_unsupported_snapshot_is_skipped(self, player_factory, snapshot_factory):
        watch = Watch(id=1, lobby_key="eu-5", threshold=1, interval_minutes=1)

        assert evaluate_watch(watch, None, T0) is False
        assert evaluate_watch(watch, snapshot_factory([], lobby_key="eu-5", unsupported=True), T0) is False
        assert watch.last_alert_at is None
