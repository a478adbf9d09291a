from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

from .config import LB_PAGE_SIZE
from .models import Snapshot

PRICE_UNAVAILABLE = "(price unavailable)"


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    name: str
    size: int
    usd: str


@dataclass(frozen=True)
class LeaderboardPage:
    lobby_key: str
    entries: List[LeaderboardEntry]
    page: int
    total_pages: int
    active_count: int

    @property
    def has_prev(self) -> bool:
        return self.page > 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages - 1


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_usd(value: Optional[float]) -> str:
    if value is None:
        return PRICE_UNAVAILABLE
    return f"${value:.2f}"


def render_leaderboard(snapshot: Snapshot, page: int, page_size: int = LB_PAGE_SIZE) -> LeaderboardPage:
    """Rank active players by size and cut out one page.

    Pure function of its inputs; the requested page is clamped into range.
    """
    # sorted() is stable, so equal sizes keep upstream order
    ranked = sorted(snapshot.active_players(), key=lambda p: -p.size)
    total_pages = max(1, math.ceil(len(ranked) / page_size))
    page = min(max(page, 0), total_pages - 1)

    start = page * page_size
    entries = [
        LeaderboardEntry(
            rank=start + offset + 1,
            name=player.display_name,
            size=_round_half_up(player.size),
            usd=format_usd(player.usd_value),
        )
        for offset, player in enumerate(ranked[start:start + page_size])
    ]
    return LeaderboardPage(
        lobby_key=snapshot.lobby_key,
        entries=entries,
        page=page,
        total_pages=total_pages,
        active_count=len(ranked),
    )


def page_callback_data(lobby_key: str, page: int) -> str:
    return f"lb|{lobby_key}|{page}"


def parse_page_callback(data: str) -> Optional[tuple]:
    """Decode ``lb|<lobby_key>|<page>`` into ``(lobby_key, page)``."""
    parts = (data or "").split("|")
    if len(parts) != 3 or parts[0] != "lb":
        return None
    try:
        return parts[1], int(parts[2])
    except ValueError:
        return None
