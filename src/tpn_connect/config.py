# config.py — environment settings and validated per-run session options.
# License: MIT
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import InvalidDuration, InvalidRegionBucket

# Policy constants, replaceable through the environment.
DEFAULT_TRUSTED_SSIDS = ["MyHomeNetwork", "MyWorkNetwork"]
DEFAULT_HIGH_RISK_COUNTRIES = ["CN", "RU", "IR", "SA", "VN", "CU"]

REGION_BUCKETS = {
    "US": ["US", "CA"],
    "EU": ["DE", "FR", "GB", "IT", "ES"],
    "ASIA": ["JP", "KR", "SG", "IN"],
}
FALLBACK_REGIONS = ["US", "GB", "DE", "FR", "JP"]
DEFAULT_LEASE_MINUTES = 30


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if not raw:
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass
class Settings:
    validators_file: str = "validators.json"
    log_dir: str = "logs"
    config_path: Optional[str] = None
    trusted_ssids: List[str] = field(default_factory=lambda: list(DEFAULT_TRUSTED_SSIDS))
    high_risk_countries: List[str] = field(default_factory=lambda: list(DEFAULT_HIGH_RISK_COUNTRIES))
    geo_url: str = "http://ip-api.com/json/{ip}"
    public_ip_url: str = "https://api.ipify.org?format=json"
    http_timeout: float = 30.0
    tick_interval: float = 1.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            validators_file=os.environ.get("TPN_VALIDATORS", "validators.json"),
            log_dir=os.environ.get("TPN_LOG_DIR", "logs"),
            config_path=os.environ.get("TPN_CONFIG_PATH") or None,
            trusted_ssids=_env_list("TPN_TRUSTED_SSIDS", DEFAULT_TRUSTED_SSIDS),
            high_risk_countries=[c.upper() for c in _env_list("TPN_HIGH_RISK_COUNTRIES", DEFAULT_HIGH_RISK_COUNTRIES)],
            geo_url=os.environ.get("TPN_GEO_URL", "http://ip-api.com/json/{ip}"),
            public_ip_url=os.environ.get("TPN_PUBLIC_IP_URL", "https://api.ipify.org?format=json"),
            http_timeout=float(os.environ.get("TPN_HTTP_TIMEOUT", "30")),
            tick_interval=float(os.environ.get("TPN_TICK_INTERVAL", "1.0")),
        )


def parse_duration(value) -> int:
    """Lease length in whole minutes; anything non-positive or non-numeric is rejected."""
    try:
        minutes = int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidDuration(f"Lease time must be a positive number, got {value!r}") from None
    if minutes <= 0:
        raise InvalidDuration(f"Lease time must be a positive number, got {minutes}")
    return minutes


def parse_bucket(value: str) -> str:
    bucket = (value or "").strip().upper()
    if bucket not in REGION_BUCKETS:
        raise InvalidRegionBucket(f"Invalid region {value!r}. Please use {', '.join(REGION_BUCKETS)}.")
    return bucket


@dataclass
class SessionOptions:
    validator_id: Optional[str] = None
    region: Optional[str] = None
    time: Optional[str] = None
    quiet: bool = False
    debug: bool = False
    # filled by validate()
    bucket: Optional[str] = None
    duration_minutes: Optional[int] = None

    @classmethod
    def from_args(cls, ns) -> "SessionOptions":
        return cls(
            validator_id=ns.validator,
            region=ns.region,
            time=ns.time,
            quiet=bool(ns.quiet),
            debug=bool(ns.debug),
        )

    @property
    def interactive(self) -> bool:
        return not self.quiet

    def validate(self) -> "SessionOptions":
        if self.validator_id is not None:
            self.validator_id = str(self.validator_id).strip()
        if self.time is not None:
            self.duration_minutes = parse_duration(self.time)
        if self.region is not None:
            self.bucket = parse_bucket(self.region)
        return self
