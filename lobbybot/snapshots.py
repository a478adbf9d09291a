from __future__ import annotations

import asyncio
import itertools
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional

import aiohttp
from cachetools import TTLCache

from .config import FRESHNESS_SECS, logger
from .http import FetchError, fetch_json
from .lobbies import LOBBIES, LobbyDefinition, get_lobby
from .models import Snapshot, player_from_record
from .price import PriceOracle


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotCache:
    """Latest snapshot per lobby, with a short freshness window.

    Snapshots are only replaced by a fetch that started later than the one
    that produced the cached entry; failed fetches never clear an entry.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        oracle: PriceOracle,
        lobbies: Iterable[LobbyDefinition] = LOBBIES,
        freshness_secs: float = FRESHNESS_SECS,
        timer: Callable[[], float] = time.monotonic,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session = session
        self._oracle = oracle
        self._lobbies = tuple(lobbies)
        self._clock = clock
        self._snapshots: Dict[str, Snapshot] = {}
        # key -> True while the stored snapshot is inside the freshness window
        self._fresh: TTLCache = TTLCache(maxsize=max(len(self._lobbies), 1), ttl=freshness_secs, timer=timer)
        self._inflight: Dict[str, asyncio.Future] = {}
        self._sequence = itertools.count(1)

    @property
    def lobbies(self):
        return self._lobbies

    def peek(self, key: str) -> Optional[Snapshot]:
        """Return whatever is cached for *key*, fresh or not, without fetching."""
        return self._snapshots.get(key)

    async def get_snapshot(self, key: str) -> Optional[Snapshot]:
        lobby = get_lobby(key)
        if lobby is None:
            raise ValueError(f"Unknown lobby key: {key}")

        cached = self._snapshots.get(key)
        if cached is not None and key in self._fresh:
            return cached

        inflight = self._inflight.get(key)
        if inflight is not None:
            logger.debug(f"[LOBBY] Joining in-flight fetch for {lobby.label}")
            return await asyncio.shield(inflight)

        return await self.fetch(lobby)

    async def fetch(self, lobby: LobbyDefinition) -> Optional[Snapshot]:
        """Always perform one real fetch for *lobby*, bypassing freshness."""
        task = asyncio.ensure_future(self._fetch(lobby))
        self._inflight[lobby.key] = task

        def _clear(done: asyncio.Future) -> None:
            if self._inflight.get(lobby.key) is done:
                del self._inflight[lobby.key]

        task.add_done_callback(_clear)
        return await asyncio.shield(task)

    async def refresh_all(self) -> Dict[str, Optional[Snapshot]]:
        results = await asyncio.gather(
            *[self.fetch(lobby) for lobby in self._lobbies],
            return_exceptions=True,
        )
        out: Dict[str, Optional[Snapshot]] = {}
        for lobby, result in zip(self._lobbies, results):
            if isinstance(result, BaseException):
                logger.error(f"[LOBBY] Unexpected error fetching {lobby.label}: {result!r}")
                out[lobby.key] = None
            else:
                out[lobby.key] = result
        return out

    async def _fetch(self, lobby: LobbyDefinition) -> Optional[Snapshot]:
        sequence = next(self._sequence)

        if not lobby.supported:
            return self._store(Snapshot(
                lobby_key=lobby.key,
                server_id=lobby.key,
                player_count=0,
                players=[],
                timestamp=int(time.time() * 1000),
                fetched_at=self._clock(),
                unsupported=True,
                sequence=sequence,
            ))

        try:
            data = await fetch_json(self._session, lobby.url)
        except (FetchError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"[LOBBY] Failed to fetch {lobby.label}: {e or type(e).__name__}")
            return None

        if not isinstance(data, dict) or not data.get("success"):
            logger.error(f"[LOBBY] Failed to fetch {lobby.label}: API returned non-success")
            return None

        raw_players = data.get("players")
        if not isinstance(raw_players, list):
            raw_players = []
        rate = self._oracle.current_rate()
        players = [player_from_record(r, rate) for r in raw_players if isinstance(r, dict)]

        player_count = data.get("playerCount")
        if isinstance(player_count, bool) or not isinstance(player_count, int):
            player_count = len(players)

        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            timestamp = time.time() * 1000

        return self._store(Snapshot(
            lobby_key=lobby.key,
            server_id=str(data.get("serverId") or lobby.key),
            player_count=player_count,
            players=players,
            timestamp=int(timestamp),
            fetched_at=self._clock(),
            unsupported=False,
            sequence=sequence,
        ))

    def _store(self, snapshot: Snapshot) -> Snapshot:
        current = self._snapshots.get(snapshot.lobby_key)
        if current is not None and current.sequence > snapshot.sequence:
            logger.debug(
                f"[LOBBY] Discarding out-of-order result for {snapshot.lobby_key} "
                f"(seq {snapshot.sequence} < {current.sequence})"
            )
            return current
        self._snapshots[snapshot.lobby_key] = snapshot
        self._fresh[snapshot.lobby_key] = True
        return snapshot
