# models.py — validators, risk verdicts, session aggregate and connection stats.
# License: MIT
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Set


class RiskLevel(str, Enum):
    SAFE = "SAFE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskDimension(str, Enum):
    WIFI = "wifi"
    LOCATION = "location"


class SessionState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    PROVISIONING = "provisioning"
    ACTIVATING = "activating"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    TERMINATED = "terminated"
    FAILED = "failed"
    PANIC = "panic"


TERMINAL_STATES = frozenset({SessionState.TERMINATED, SessionState.FAILED, SessionState.PANIC})

# Allowed moves; FAILED is reachable from every pre-connected state.
TRANSITIONS = {
    SessionState.IDLE: {SessionState.SELECTING, SessionState.FAILED},
    SessionState.SELECTING: {SessionState.PROVISIONING, SessionState.FAILED},
    SessionState.PROVISIONING: {SessionState.ACTIVATING, SessionState.FAILED},
    SessionState.ACTIVATING: {SessionState.CONNECTED, SessionState.FAILED},
    SessionState.CONNECTED: {SessionState.DISCONNECTING, SessionState.PANIC},
    SessionState.DISCONNECTING: {SessionState.TERMINATED},
}


class SessionEvent(str, Enum):
    TICK = "tick"
    DISCONNECT = "disconnect"
    INTERRUPT = "interrupt"
    PANIC = "panic"
    REFRESH = "refresh"


@dataclass(frozen=True)
class Validator:
    id: str
    endpoint_address: str
    location_label: str = ""

    @property
    def base_url(self) -> str:
        addr = self.endpoint_address.strip().rstrip("/")
        if "://" in addr:
            return addr
        return f"http://{addr}"


@dataclass(frozen=True)
class LocationDetail:
    country: str
    city: Optional[str] = None


@dataclass(frozen=True)
class RiskVerdict:
    dimension: RiskDimension
    level: RiskLevel
    reason: str
    location: Optional[LocationDetail] = None

    @property
    def is_high(self) -> bool:
        return self.level == RiskLevel.HIGH


@dataclass(frozen=True)
class WifiAssociation:
    ssid: str
    security: Optional[str] = None

    @property
    def is_open(self) -> bool:
        sec = (self.security or "").strip().lower()
        return sec in ("", "--", "none", "open")


@dataclass
class DriverResult:
    ok: bool
    changed: bool = True
    detail: str = ""


@dataclass
class ConnectionStats:
    total_connections: int = 0
    total_protected_seconds: int = 0
    countries_visited: Set[str] = field(default_factory=set)

    @property
    def protected_minutes(self) -> int:
        return round(self.total_protected_seconds / 60)


@dataclass
class Session:
    validator: Optional[Validator] = None
    region: Optional[str] = None
    duration_seconds: int = 0
    elapsed_seconds: int = 0
    config_path: Optional[Path] = None
    state: SessionState = SessionState.IDLE
    started_at: Optional[str] = None

    @property
    def remaining_seconds(self) -> int:
        return max(0, self.duration_seconds - self.elapsed_seconds)

    @property
    def expired(self) -> bool:
        return self.duration_seconds > 0 and self.elapsed_seconds >= self.duration_seconds
