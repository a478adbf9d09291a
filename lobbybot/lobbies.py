from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple


class ConfigurationError(ValueError):
    """Invalid lobby, region, threshold or interval supplied by a tenant."""


class Region(Enum):
    US = "us"
    EU = "eu"


TIERS: Tuple[int, ...] = (1, 5, 20)


@dataclass(frozen=True)
class LobbyDefinition:
    key: str
    region: Region
    tier: int
    label: str
    url: Optional[str] = None

    @property
    def supported(self) -> bool:
        return self.url is not None


def lobby_key(region: Region, tier: int) -> str:
    return f"{region.value}-{tier}"


def _lobby(region: Region, tier: int, url: Optional[str]) -> LobbyDefinition:
    return LobbyDefinition(
        key=lobby_key(region, tier),
        region=region,
        tier=tier,
        label=f"{region.value.upper()} ${tier}",
        url=url,
    )


_SERVER_URL = "https://damnbruh-game-server-instance-{tier}-{region}.onrender.com/players"

LOBBIES: Tuple[LobbyDefinition, ...] = (
    _lobby(Region.US, 1, _SERVER_URL.format(tier=1, region="us")),
    _lobby(Region.US, 5, _SERVER_URL.format(tier=5, region="us")),
    _lobby(Region.US, 20, _SERVER_URL.format(tier=20, region="us")),
    _lobby(Region.EU, 1, _SERVER_URL.format(tier=1, region="eu")),
    # No API is published for this server
    _lobby(Region.EU, 5, None),
    _lobby(Region.EU, 20, _SERVER_URL.format(tier=20, region="eu")),
)

_BY_KEY = {lobby.key: lobby for lobby in LOBBIES}


def get_lobby(key: str) -> Optional[LobbyDefinition]:
    return _BY_KEY.get(key)


def find_lobby(region: Region, tier: int) -> Optional[LobbyDefinition]:
    return _BY_KEY.get(lobby_key(region, tier))


def lobbies_in_region(region: Region) -> List[LobbyDefinition]:
    return [lobby for lobby in LOBBIES if lobby.region == region]


def parse_region(raw: Optional[str]) -> Region:
    try:
        return Region((raw or "").strip().lower())
    except ValueError:
        raise ConfigurationError('Region must be "us" or "eu".') from None


def parse_tier(raw: Optional[str]) -> int:
    try:
        tier = int((raw or "").strip().lstrip("$"))
    except ValueError:
        tier = None
    if tier not in TIERS:
        raise ConfigurationError("Lobby must be 1, 5, or 20.")
    return tier


def parse_positive_int(raw: Optional[str], what: str, maximum: Optional[int] = None) -> int:
    try:
        value = int((raw or "").strip())
    except ValueError:
        value = 0
    if value < 1:
        raise ConfigurationError(f"{what} must be a whole number and at least 1.")
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"{what} must be at most {maximum}.")
    return value


def parse_lobby_args(args: Sequence[str], default_region: Optional[str] = None) -> LobbyDefinition:
    """Resolve ``<tier> [region]`` command arguments into a lobby definition.

    The region falls back to the tenant's default region when omitted.
    Raises ConfigurationError for anything that does not name a catalogued lobby.
    """
    if not args:
        raise ConfigurationError("Missing lobby. Lobby must be 1, 5, or 20.")
    tier = parse_tier(args[0])
    raw_region = args[1] if len(args) > 1 else default_region
    if not raw_region:
        raise ConfigurationError("Missing region and no default region is set.")
    region = parse_region(raw_region)
    lobby = find_lobby(region, tier)
    if lobby is None:
        raise ConfigurationError("Could not find that lobby definition.")
    return lobby
