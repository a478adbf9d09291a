"""Lobby Watch Bot package.

Modules:
- config: environment and constants
- http: session and request helpers
- lobbies: static lobby catalog and argument parsing
- models: snapshot and player records
- price: SOL price oracle
- snapshots: snapshot cache and lobby fetcher
- state: tenant configuration and watches
- tracking: join detection and watch cooldowns
- leaderboard: paginated ranking view
- formatting: message building utilities
- storage: persistence of tenant settings
- notifications: Telegram dispatch of alerts and summaries
- watchers: poll, price and auto-refresh loops
- auth: access control helpers
- commands: telegram command handlers
- app: application bootstrap and wiring
"""

from .config import Config, BOT_TOKEN, POLL_SECS, PRICE_API_URL, ACTIVE_SIZE_THRESHOLD, LB_PAGE_SIZE
from .http import make_session, fetch_json, build_headers, FetchError
from .lobbies import (
    LOBBIES,
    LobbyDefinition,
    Region,
    ConfigurationError,
    find_lobby,
    get_lobby,
    parse_lobby_args,
)
from .models import Player, Snapshot, PriceRate, JoinEvent, WatchFiredEvent, CycleEvents
from .price import PriceOracle
from .snapshots import SnapshotCache
from .state import TenantConfig, TenantRegistry, Watch
from .tracking import compute_new_joins, evaluate_watch
from .leaderboard import LeaderboardEntry, LeaderboardPage, render_leaderboard
from .storage import load_tenant_settings, save_tenant_settings
from .watchers import PollScheduler, collect_tenant_events
from .app import main

__all__ = [
    # Config / HTTP
    "Config", "BOT_TOKEN", "POLL_SECS", "PRICE_API_URL", "ACTIVE_SIZE_THRESHOLD", "LB_PAGE_SIZE",
    "make_session", "fetch_json", "build_headers", "FetchError",
    # Lobbies / models
    "LOBBIES", "LobbyDefinition", "Region", "ConfigurationError", "find_lobby", "get_lobby", "parse_lobby_args",
    "Player", "Snapshot", "PriceRate", "JoinEvent", "WatchFiredEvent", "CycleEvents",
    # Core
    "PriceOracle", "SnapshotCache", "TenantConfig", "TenantRegistry", "Watch",
    "compute_new_joins", "evaluate_watch",
    "LeaderboardEntry", "LeaderboardPage", "render_leaderboard",
    "load_tenant_settings", "save_tenant_settings",
    "PollScheduler", "collect_tenant_events",
    "main",
]
