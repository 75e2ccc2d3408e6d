# diagnostics.py — environment self-check behind `tpn-connect --check`.
# License: MIT
from __future__ import annotations

import platform
import sys
from pathlib import Path
from typing import Callable, List, Optional, TextIO, Tuple

from .config import Settings
from .directory import EndpointDirectory
from .driver import TunnelDriver
from .errors import DirectoryUnavailable, RegionFetchFailed
from .provisioning import ProvisioningClient

Check = Tuple[str, bool, str]


def run_diagnostics(settings: Settings, driver: TunnelDriver, client: ProvisioningClient,
                    ip_lookup: Callable[[], str], out: Optional[TextIO] = None) -> List[Check]:
    out = out or sys.stdout
    checks: List[Check] = []

    def record(name: str, ok: bool, detail: str):
        checks.append((name, ok, detail))
        print(f"[{'+' if ok else '!'}] {name}: {detail}", file=out)

    record("python", True, f"{platform.python_version()} on {sys.platform}")

    vf = Path(settings.validators_file)
    directory = None
    if not vf.exists():
        record("validators", False, f"{vf} does not exist")
    else:
        try:
            directory = EndpointDirectory.load(str(vf))
            record("validators", True, f"{vf} lists {len(directory)} validators")
        except DirectoryUnavailable as e:
            record("validators", False, str(e))

    record("wireguard", driver.available(),
           f"{driver.tool} found" if driver.available() else f"{driver.tool} not on PATH; install wireguard-tools")

    ip = ip_lookup()
    record("connectivity", ip != "unknown", f"public IP {ip}")

    if directory is not None:
        first = directory.list_validators()[0]
        try:
            regions = client.list_regions(first)
            record("validator", True, f"UID {first.id} ({first.endpoint_address}) offers {len(regions)} regions")
        except RegionFetchFailed as e:
            record("validator", False, str(e))

    return checks
