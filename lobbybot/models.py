"""Data models for lobby occupancy snapshots."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .config import ACTIVE_SIZE_THRESHOLD


@dataclass
class Player:
    """One player record inside a snapshot."""
    privy_id: Optional[str]
    player_id: Optional[str]
    name: Optional[str]
    size: Optional[float]
    monetary_value: Optional[float] = None
    usd_value: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.size is not None and self.size > ACTIVE_SIZE_THRESHOLD

    @property
    def identifier(self) -> Optional[str]:
        return first_present(self, IDENTIFIER_CHAIN)

    @property
    def display_name(self) -> str:
        return first_present(self, DISPLAY_NAME_CHAIN) or "Unknown"


@dataclass
class Snapshot:
    """Most recent occupancy state for one lobby."""
    lobby_key: str
    server_id: str
    player_count: int
    players: List[Player]
    timestamp: int  # upstream epoch millis
    fetched_at: datetime
    unsupported: bool = False
    sequence: int = 0

    def active_players(self) -> List[Player]:
        return [p for p in self.players if p.is_active]

    def active_count(self) -> int:
        return sum(1 for p in self.players if p.is_active)


@dataclass
class PriceRate:
    rate: float
    as_of: datetime


@dataclass
class JoinEvent:
    lobby_key: str
    players: List[Player]
    active_count: int


@dataclass
class WatchFiredEvent:
    lobby_key: str
    watch: Any  # state.Watch
    active_count: int


@dataclass
class CycleEvents:
    """Notifications produced for one tenant during one poll cycle."""
    tenant_id: int
    joins: List[JoinEvent] = field(default_factory=list)
    fired: List[WatchFiredEvent] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.joins or self.fired)


def _non_empty(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# Ordered accessors: the first one returning a value wins.
IDENTIFIER_CHAIN: Sequence[Callable[[Player], Any]] = (
    lambda p: p.privy_id,
    lambda p: p.player_id,
)
DISPLAY_NAME_CHAIN: Sequence[Callable[[Player], Any]] = (
    lambda p: p.name,
    lambda p: p.privy_id,
    lambda p: p.player_id,
)


def first_present(player: Player, accessors: Iterable[Callable[[Player], Any]]) -> Optional[str]:
    for accessor in accessors:
        value = _non_empty(accessor(player))
        if value is not None:
            return value
    return None


def _as_number(value: Any) -> Optional[float]:
    # bool is an int subclass but never a valid magnitude
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def player_from_record(record: dict, rate: Optional[float]) -> Player:
    """Normalize one upstream player record, deriving USD from the current rate."""
    monetary_value = _as_number(record.get("monetaryValue"))
    usd_value = None
    if monetary_value is not None and rate is not None and rate > 0:
        usd_value = monetary_value * rate
    return Player(
        privy_id=_non_empty(record.get("privyId")),
        player_id=_non_empty(record.get("id")),
        name=_non_empty(record.get("name")),
        size=_as_number(record.get("size")),
        monetary_value=monetary_value,
        usd_value=usd_value,
    )
