from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import aiohttp

from .config import PRICE_API_URL, PRICE_REFRESH_SECS, logger
from .http import FetchError, fetch_json
from .models import PriceRate


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(raw) -> Optional[datetime]:
    """Accept an ISO-8601 string or epoch milliseconds."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        try:
            return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(raw, str) or not raw:
        return None
    try:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class PriceOracle:
    """Latest SOL→USD conversion rate, refreshed on a timer.

    Everything else only reads it; ``None`` means unavailable, never zero.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str = PRICE_API_URL,
        refresh_secs: int = PRICE_REFRESH_SECS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session = session
        self._url = url
        self._refresh_secs = refresh_secs
        self._clock = clock
        self._price: Optional[PriceRate] = None

    @property
    def price(self) -> Optional[PriceRate]:
        return self._price

    def current_rate(self) -> Optional[float]:
        return self._price.rate if self._price else None

    async def refresh(self) -> bool:
        try:
            data = await fetch_json(self._session, self._url)
        except (FetchError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"[SOL] Failed to refresh price: {e}")
            return False

        if not isinstance(data, dict) or not data.get("success"):
            logger.warning("[SOL] Unexpected response from price endpoint")
            return False
        price = data.get("price")
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            logger.warning("[SOL] Price endpoint returned a non-numeric price")
            return False

        as_of = _parse_timestamp(data.get("lastUpdated")) or self._clock()
        # Single assignment so readers never see a rate paired with the wrong timestamp
        self._price = PriceRate(rate=float(price), as_of=as_of)
        logger.info(f"[SOL] Price updated: ${price} at {as_of.isoformat()}")
        return True

    def is_stale(self) -> bool:
        if self._price is None:
            return True
        return self._clock() - self._price.as_of > timedelta(seconds=self._refresh_secs * 3)

    def status_line(self) -> str:
        if self._price is None:
            return f"SOL price: unavailable (will retry every {self._refresh_secs}s)"
        line = f"SOL price: ${self._price.rate:.2f} (cached at {self._price.as_of.isoformat()})"
        if self.is_stale():
            line += " [stale]"
        return line
