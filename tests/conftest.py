"""Shared fakes: HTTP session, command runner, provisioning, driver and risk oracle."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
import requests

from tpn_connect.config import SessionOptions
from tpn_connect.controller import SessionController
from tpn_connect.directory import EndpointDirectory
from tpn_connect.errors import ProvisioningFailed, RegionFetchFailed
from tpn_connect.models import (
    DriverResult,
    LocationDetail,
    RiskDimension,
    RiskLevel,
    RiskVerdict,
    Validator,
)


class FakeResponse:
    def __init__(self, status: int = 200, json_data=None, text: str = ""):
        self.status_code = status
        self._json = json_data
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json


class FakeHTTP:
    """Routes GET calls by URL to canned responses or exceptions."""

    def __init__(self, routes: Dict[str, object]):
        self.routes = routes
        self.calls: List[Tuple[str, Optional[dict]]] = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        r = self.routes[url]
        if isinstance(r, Exception):
            raise r
        return r


class FakeRunner:
    """Command runner returning queued (rc, out, err) per program+verb."""

    def __init__(self, results: Optional[Dict[Tuple[str, ...], List[Tuple[int, str, str]]]] = None):
        self.results = results or {}
        self.calls: List[List[str]] = []

    def __call__(self, args: List[str]) -> Tuple[int, str, str]:
        self.calls.append(list(args))
        for key, queue in self.results.items():
            if tuple(args[: len(key)]) == key and queue:
                return queue.pop(0) if len(queue) > 1 else queue[0]
        return 0, "", ""


class FakeProvisioning:
    def __init__(self, catalog=None, regions_error=False, config_error=False, artifact="[Interface]\nPrivateKey = x\n"):
        self.catalog = ["US", "GB", "DE"] if catalog is None else catalog
        self.regions_error = regions_error
        self.config_error = config_error
        self.artifact = artifact
        self.calls: List[tuple] = []

    def list_regions(self, validator):
        self.calls.append(("list_regions", validator.id))
        if self.regions_error:
            raise RegionFetchFailed("connection refused")
        return list(self.catalog)

    def request_config(self, validator, region, duration_minutes):
        self.calls.append(("request_config", validator.id, region, duration_minutes))
        if self.config_error:
            raise ProvisioningFailed("Config request failed: 502")
        return self.artifact


class FakeDriver:
    def __init__(self, config_path: Path, activate_ok=True, deactivate_ok=True, flush_error=None):
        self.config_path = config_path
        self.activate_ok = activate_ok
        self.deactivate_ok = deactivate_ok
        self.flush_error = flush_error
        self.calls: List[str] = []

    def write_config(self, artifact: str) -> Path:
        self.calls.append("write")
        self.config_path.write_text(artifact)
        return self.config_path

    def activate(self, path):
        self.calls.append("activate")
        return DriverResult(ok=self.activate_ok, detail="" if self.activate_ok else "RTNETLINK answers: Operation not permitted")

    def deactivate(self, path):
        self.calls.append("deactivate")
        return DriverResult(ok=self.deactivate_ok, changed=False, detail="" if self.deactivate_ok else "device busy")

    def flush_dns(self):
        self.calls.append("flush")
        if self.flush_error:
            raise self.flush_error
        return DriverResult(ok=True)

    @property
    def deactivations(self) -> int:
        return self.calls.count("deactivate")


class FakeOracle:
    def __init__(self, wifi=RiskLevel.LOW, location_country="DE"):
        self.wifi_level = wifi
        self.location_country = location_country
        self.calls: List[str] = []

    def assess_wifi(self):
        self.calls.append("wifi")
        return RiskVerdict(RiskDimension.WIFI, self.wifi_level, "Connected to secured network")

    def assess_location(self, ip):
        self.calls.append("location")
        if self.location_country is None:
            return RiskVerdict(RiskDimension.LOCATION, RiskLevel.MEDIUM, "Unable to determine location")
        return RiskVerdict(RiskDimension.LOCATION, RiskLevel.LOW, "Located in standard-risk country",
                           location=LocationDetail(self.location_country, "Berlin"))


class FakePrompter:
    def __init__(self, validator_index=0, region=None, minutes=15):
        self.validator_index = validator_index
        self.region = region
        self.minutes = minutes
        self.asked: List[str] = []

    def choose_validator(self, validators):
        self.asked.append("validator")
        return validators[self.validator_index]

    def choose_region(self, catalog):
        self.asked.append("region")
        return self.region or catalog[-1]

    def ask_duration(self, default=30):
        self.asked.append("duration")
        return self.minutes


class NullSignal:
    def __init__(self):
        self.started = 0
        self.stopped = 0

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1


class IpLookup:
    def __init__(self, ip="203.0.113.7"):
        self.ip = ip
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.ip


@pytest.fixture
def validators() -> List[Validator]:
    return [
        Validator("0", "10.0.0.1:3000", "Amsterdam"),
        Validator("4", "10.0.0.4:3000", "Frankfurt"),
        Validator("7", "http://10.0.0.7:3000", "Tokyo"),
    ]


@pytest.fixture
def make_controller(tmp_path, validators):
    def factory(options=None, provisioning=None, driver=None, oracle=None, prompter=None, ip=None):
        opts = options or SessionOptions(validator_id="4", region="EU", time="60", quiet=True)
        ctl = SessionController(
            opts,
            EndpointDirectory(validators),
            provisioning or FakeProvisioning(),
            driver or FakeDriver(tmp_path / "tpn-connect.conf"),
            oracle or FakeOracle(),
            ip_lookup=ip or IpLookup(),
            prompter=prompter or FakePrompter(),
            out=io.StringIO(),
            ticker=NullSignal(),
            key_listener=NullSignal(),
            show_progress=False,
        )
        return ctl

    return factory
