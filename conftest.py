"""Shared pytest fixtures for lobby bot tests."""
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from lobbybot.models import Player, Snapshot


class FakeTimer:
    """Monotonic clock the tests can move forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_player(
    pid: str,
    size: Optional[float] = 10.0,
    name: Optional[str] = None,
    usd_value: Optional[float] = None,
) -> Player:
    return Player(
        privy_id=pid,
        player_id=None,
        name=name if name is not None else f"player-{pid}",
        size=size,
        monetary_value=None,
        usd_value=usd_value,
    )


def create_snapshot(players: List[Player], lobby_key: str = "us-5", unsupported: bool = False) -> Snapshot:
    return Snapshot(
        lobby_key=lobby_key,
        server_id=lobby_key,
        player_count=len(players),
        players=players,
        timestamp=0,
        fetched_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        unsupported=unsupported,
    )


def lobby_payload(players: List[dict], **extra) -> dict:
    body = {"success": True, "serverId": "srv-1", "players": players}
    body.update(extra)
    return body


@pytest.fixture
def fake_timer():
    return FakeTimer()


@pytest.fixture
def player_factory():
    return create_player


@pytest.fixture
def snapshot_factory():
    return create_snapshot


@pytest.fixture
def payload_factory():
    return lobby_payload
