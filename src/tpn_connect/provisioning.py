# provisioning.py — region catalog and tunnel config requests against a validator.
# License: MIT
from __future__ import annotations

import logging
from typing import Dict, List, Optional

import requests

from .config import REGION_BUCKETS
from .errors import NoRegionInBucket, ProvisioningFailed, RegionFetchFailed
from .models import Validator

log = logging.getLogger("tpn_connect.provisioning")

_USER_AGENT = "tpn-connect/1.0"


def select_region(bucket: str, catalog: List[str]) -> str:
    """First catalog entry, in catalog order, that belongs to ``bucket``."""
    members = set(REGION_BUCKETS[bucket])
    for code in catalog:
        if code in members:
            return code
    raise NoRegionInBucket(bucket)


class ProvisioningClient:
    def __init__(self, timeout: float = 30.0, session: Optional[requests.Session] = None,
                 headers: Optional[Dict[str, str]] = None):
        self.timeout = timeout
        self.headers = {"User-Agent": _USER_AGENT}
        self.headers.update(headers or {})
        self._session = session

    def session(self) -> requests.Session:
        if self._session is None:
            s = requests.Session()
            s.headers.update(self.headers)
            self._session = s
        return self._session

    def list_regions(self, validator: Validator) -> List[str]:
        url = f"{validator.base_url}/api/config/countries"
        log.debug(f"Fetching regions from {url}")
        try:
            r = self.session().get(url, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise RegionFetchFailed(f"Failed to fetch regions from {validator.endpoint_address}: {e}") from e
        if not isinstance(data, list):
            raise RegionFetchFailed(f"Unexpected countries payload from {validator.endpoint_address}: {data!r}")
        regions = [str(c).strip().upper() for c in data if str(c).strip()]
        log.debug(f"Available regions: {regions}")
        return regions

    def request_config(self, validator: Validator, region: str, duration_minutes: int) -> str:
        url = f"{validator.base_url}/api/config/new"
        params = {"format": "text", "geo": region, "lease_minutes": duration_minutes}
        log.debug(f"Request URL: {url} params={params}")
        try:
            r = self.session().get(url, params=params, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise ProvisioningFailed(f"Config request to {validator.endpoint_address} failed: {e}") from e
        artifact = r.text
        if not artifact or not artifact.strip():
            raise ProvisioningFailed(f"Validator {validator.id} returned an empty configuration")
        log.debug(f"Got peer config (first 100 chars): {artifact[:100]}...")
        return artifact
