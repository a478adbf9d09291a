from __future__ import annotations

import aiohttp
from typing import Any, Dict

from .config import REQUEST_TIMEOUT_SECS, logger


class FetchError(Exception):
    """Raised when an upstream endpoint answers with a non-success status."""


def build_headers() -> Dict[str, str]:
    return {
        "accept": "application/json",
        "user-agent": "lobbybot/1.0",
        "pragma": "no-cache",
        "cache-control": "no-cache",
    }


def make_session() -> aiohttp.ClientSession:
    timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECS)
    return aiohttp.ClientSession(
        timeout=timeout,
        headers=build_headers(),
        trust_env=True,
    )


async def fetch_json(session: aiohttp.ClientSession, url: str, params: Dict[str, str] | None = None) -> Any:
    logger.debug(f"API request: {url}")
    async with session.get(url, params=params) as r:
        if r.status != 200:
            txt = await r.text()
            error_msg = f"HTTP {r.status} for {url} :: {txt[:300]}"
            logger.error(f"API error for {url}: {r.status}")
            raise FetchError(error_msg)
        logger.debug(f"API success: {url}")
        return await r.json(content_type=None)
