from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Union

from .config import MAX_WATCH_MINUTES, MAX_WATCH_THRESHOLD
from .lobbies import Region, get_lobby

ChatRef = Union[int, str]


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


def _from_iso(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    return datetime.fromisoformat(raw)


@dataclass
class Watch:
    id: int
    lobby_key: str
    threshold: int
    interval_minutes: int
    last_alert_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "lobby_key": self.lobby_key,
            "threshold": self.threshold,
            "interval_minutes": self.interval_minutes,
            "last_alert_at": _iso(self.last_alert_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Watch":
        return cls(
            id=int(data["id"]),
            lobby_key=data["lobby_key"],
            threshold=int(data["threshold"]),
            interval_minutes=int(data["interval_minutes"]),
            last_alert_at=_from_iso(data.get("last_alert_at")),
        )


@dataclass
class TenantConfig:
    """Per-chat configuration and join-tracking state."""

    tenant_id: int
    alert_chat_id: Optional[ChatRef] = None
    alert_enabled: Dict[str, bool] = field(default_factory=dict)
    # Runtime only, never persisted
    last_seen: Dict[str, Set[str]] = field(default_factory=dict)
    watches: Dict[int, Watch] = field(default_factory=dict)
    next_watch_id: int = 1
    ping_mention: Optional[str] = None
    default_region: Optional[str] = None
    auto_refresh_chat_id: Optional[ChatRef] = None
    auto_refresh_message_id: Optional[int] = None

    # --- join alerts -----------------------------------------------------

    def set_alert_chat(self, chat: ChatRef) -> None:
        self.alert_chat_id = chat

    def enable_alerts(self, lobby_key: str) -> None:
        lobby = get_lobby(lobby_key)
        if lobby is None or not lobby.supported:
            raise ValueError(f"Cannot enable alerts for {lobby_key}")
        if self.alert_chat_id is None:
            raise ValueError("Alert chat must be set before enabling alerts")
        self.alert_enabled[lobby_key] = True
        self.last_seen.setdefault(lobby_key, set())

    def disable_alerts(self, lobby_key: str) -> bool:
        """Turn join alerts off. Returns False when they were already off."""
        if not self.alert_enabled.get(lobby_key):
            return False
        self.alert_enabled[lobby_key] = False
        self.last_seen[lobby_key] = set()
        return True

    def enabled_lobbies(self) -> List[str]:
        return [key for key, on in self.alert_enabled.items() if on]

    # --- watches ---------------------------------------------------------

    def add_watch(self, lobby_key: str, threshold: int, interval_minutes: int) -> Watch:
        lobby = get_lobby(lobby_key)
        if lobby is None or not lobby.supported:
            raise ValueError(f"Cannot watch {lobby_key}")
        if not 1 <= threshold <= MAX_WATCH_THRESHOLD:
            raise ValueError(f"threshold must be between 1 and {MAX_WATCH_THRESHOLD}")
        if not 1 <= interval_minutes <= MAX_WATCH_MINUTES:
            raise ValueError(f"interval must be between 1 and {MAX_WATCH_MINUTES} minutes")
        watch = Watch(
            id=self.next_watch_id,
            lobby_key=lobby_key,
            threshold=threshold,
            interval_minutes=interval_minutes,
        )
        self.next_watch_id += 1
        self.watches[watch.id] = watch
        return watch

    def remove_watch(self, watch_id: int) -> Optional[Watch]:
        return self.watches.pop(watch_id, None)

    def clear_watches(self) -> int:
        count = len(self.watches)
        self.watches.clear()
        return count

    # --- misc settings ---------------------------------------------------

    def set_default_region(self, region: Region) -> None:
        self.default_region = region.value

    def set_ping_mention(self, mention: Optional[str]) -> None:
        self.ping_mention = mention or None

    def set_auto_refresh(self, chat: Optional[ChatRef]) -> None:
        self.auto_refresh_chat_id = chat
        if chat is None:
            self.auto_refresh_message_id = None

    # --- persistence -----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_chat_id": self.alert_chat_id,
            "alert_enabled": dict(self.alert_enabled),
            "watches": [w.to_dict() for w in self.watches.values()],
            "next_watch_id": self.next_watch_id,
            "ping_mention": self.ping_mention,
            "default_region": self.default_region,
            "auto_refresh_chat_id": self.auto_refresh_chat_id,
            "auto_refresh_message_id": self.auto_refresh_message_id,
        }

    @classmethod
    def from_dict(cls, tenant_id: int, data: Dict[str, Any]) -> "TenantConfig":
        watches = [Watch.from_dict(w) for w in data.get("watches", [])]
        next_id = int(data.get("next_watch_id", 1))
        if watches:
            next_id = max(next_id, max(w.id for w in watches) + 1)
        return cls(
            tenant_id=tenant_id,
            alert_chat_id=data.get("alert_chat_id"),
            alert_enabled={k: bool(v) for k, v in data.get("alert_enabled", {}).items()},
            watches={w.id: w for w in watches},
            next_watch_id=next_id,
            ping_mention=data.get("ping_mention"),
            default_region=data.get("default_region"),
            auto_refresh_chat_id=data.get("auto_refresh_chat_id"),
            auto_refresh_message_id=data.get("auto_refresh_message_id"),
        )


class TenantRegistry:
    """Process-wide map of tenant id -> TenantConfig."""

    def __init__(self) -> None:
        self._tenants: Dict[int, TenantConfig] = {}

    def __len__(self) -> int:
        return len(self._tenants)

    def __contains__(self, tenant_id: int) -> bool:
        return tenant_id in self._tenants

    def get(self, tenant_id: int) -> Optional[TenantConfig]:
        return self._tenants.get(tenant_id)

    def get_or_create(self, tenant_id: int) -> TenantConfig:
        cfg = self._tenants.get(tenant_id)
        if cfg is None:
            cfg = TenantConfig(tenant_id=tenant_id)
            self._tenants[tenant_id] = cfg
        return cfg

    def items(self) -> Iterator[Tuple[int, TenantConfig]]:
        # Copy so tenants created mid-cycle do not break iteration
        return iter(list(self._tenants.items()))

    def dump(self) -> Dict[str, Dict[str, Any]]:
        return {str(tid): cfg.to_dict() for tid, cfg in self._tenants.items()}

    def restore(self, data: Dict[str, Dict[str, Any]]) -> None:
        self._tenants = {int(tid): TenantConfig.from_dict(int(tid), raw) for tid, raw in data.items()}
