# risk.py — WiFi and IP-location risk verdicts over opaque scan/geolocation oracles.
# License: MIT
from __future__ import annotations

import logging
import re
import sys
from typing import Dict, Iterable, List, Optional

import requests

from .driver import Runner, run_command
from .errors import RiskOracleUnavailable
from .models import LocationDetail, RiskDimension, RiskLevel, RiskVerdict, WifiAssociation

log = logging.getLogger("tpn_connect.risk")

# Heuristic only: no captive-portal or rogue-AP detection behind it.
PUBLIC_SSID_PATTERN = re.compile(r"public|guest|hotel|airport|cafe|free", re.IGNORECASE)

_AIRPORT = "/System/Library/PrivateFrameworks/Apple80211.framework/Versions/Current/Resources/airport"


def _split_nmcli(line: str) -> List[str]:
    parts = re.split(r"(?<!\\):", line)
    return [p.replace("\\:", ":") for p in parts]


class WifiScanner:
    def __init__(self, runner: Optional[Runner] = None, platform: Optional[str] = None):
        self.run = runner or run_command
        self.platform = platform or sys.platform

    def current(self) -> Optional[WifiAssociation]:
        if self.platform.startswith("linux"):
            return self._nmcli()
        if self.platform == "darwin":
            return self._airport()
        raise RiskOracleUnavailable(f"WiFi scan not supported on {self.platform}")

    def _nmcli(self) -> Optional[WifiAssociation]:
        rc, out, err = self.run(["nmcli", "-t", "-f", "ACTIVE,SSID,SECURITY", "dev", "wifi"])
        if rc != 0:
            raise RiskOracleUnavailable(f"nmcli failed: {err or out}")
        for line in out.splitlines():
            fields = _split_nmcli(line)
            if len(fields) >= 2 and fields[0] == "yes":
                security = fields[2] if len(fields) > 2 else ""
                return WifiAssociation(ssid=fields[1], security=security)
        return None

    def _airport(self) -> Optional[WifiAssociation]:
        rc, out, err = self.run([_AIRPORT, "-I"])
        if rc != 0:
            raise RiskOracleUnavailable(f"airport failed: {err or out}")
        info: Dict[str, str] = {}
        for line in out.splitlines():
            if ":" in line:
                k, v = line.split(":", 1)
                info[k.strip()] = v.strip()
        if info.get("AirPort") == "Off" or not info.get("SSID"):
            return None
        return WifiAssociation(ssid=info["SSID"], security=info.get("link auth", ""))


class GeoLocator:
    def __init__(self, url_template: str = "http://ip-api.com/json/{ip}", timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.url_template = url_template
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup(self, ip: str) -> Optional[LocationDetail]:
        if not ip or ip == "unknown":
            return None
        try:
            r = self.session.get(self.url_template.format(ip=ip), timeout=self.timeout)
            r.raise_for_status()
            js = r.json()
        except (requests.RequestException, ValueError) as e:
            raise RiskOracleUnavailable(f"geolocation lookup failed: {e}") from e
        if not isinstance(js, dict):
            raise RiskOracleUnavailable(f"geolocation reply is not an object: {type(js).__name__}")
        if js.get("status") == "fail":
            return None
        country = js.get("countryCode") or js.get("country_code") or js.get("country")
        if not country:
            return None
        return LocationDetail(country=str(country).upper(), city=js.get("city"))


def public_ip(url: str = "https://api.ipify.org?format=json", timeout: float = 15.0,
              session: Optional[requests.Session] = None) -> str:
    s = session or requests
    try:
        r = s.get(url, timeout=timeout)
        r.raise_for_status()
        js = r.json()
    except (requests.RequestException, ValueError) as e:
        log.warning(f"Could not fetch public IP: {e}")
        return "unknown"
    if not isinstance(js, dict):
        log.warning(f"Unexpected public IP reply: {js!r}")
        return "unknown"
    return str(js.get("ip") or "unknown")


class RiskOracle:
    def __init__(self, scanner: WifiScanner, geo: GeoLocator,
                 trusted_ssids: Iterable[str] = (), high_risk_countries: Iterable[str] = ()):
        self.scanner = scanner
        self.geo = geo
        self.trusted_ssids = set(trusted_ssids)
        self.high_risk_countries = {c.upper() for c in high_risk_countries}

    def assess_wifi(self) -> RiskVerdict:
        try:
            assoc = self.scanner.current()
        except RiskOracleUnavailable as e:
            log.warning(f"Failed to check WiFi security: {e}")
            return RiskVerdict(RiskDimension.WIFI, RiskLevel.MEDIUM, "Unable to determine network security")
        if assoc is None:
            return RiskVerdict(RiskDimension.WIFI, RiskLevel.MEDIUM, "Not connected to WiFi")
        if assoc.ssid in self.trusted_ssids:
            return RiskVerdict(RiskDimension.WIFI, RiskLevel.SAFE, "Connected to known network")
        if assoc.is_open:
            return RiskVerdict(RiskDimension.WIFI, RiskLevel.HIGH, "Connected to unsecured network")
        if PUBLIC_SSID_PATTERN.search(assoc.ssid):
            return RiskVerdict(RiskDimension.WIFI, RiskLevel.MEDIUM, "Connected to public network")
        return RiskVerdict(RiskDimension.WIFI, RiskLevel.LOW, "Connected to secured network")

    def assess_location(self, ip: str) -> RiskVerdict:
        try:
            loc = self.geo.lookup(ip)
        except RiskOracleUnavailable as e:
            log.warning(f"Failed to check location security: {e}")
            return RiskVerdict(RiskDimension.LOCATION, RiskLevel.MEDIUM, "Unable to determine location security")
        if loc is None:
            return RiskVerdict(RiskDimension.LOCATION, RiskLevel.MEDIUM, "Unable to determine location")
        if loc.country in self.high_risk_countries:
            return RiskVerdict(RiskDimension.LOCATION, RiskLevel.HIGH,
                               f"Located in high-risk country: {loc.country}", location=loc)
        return RiskVerdict(RiskDimension.LOCATION, RiskLevel.LOW, "Located in standard-risk country", location=loc)
