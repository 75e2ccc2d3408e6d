# driver.py — idempotent wg-quick up/down around a config artifact on disk.
# License: MIT
from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
import sys
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .models import DriverResult

log = logging.getLogger("tpn_connect.driver")

Runner = Callable[[List[str]], Tuple[int, str, str]]

ELEVATED_CONFIG_PATH = Path("/etc/wireguard/tpn-connect.conf")
LOCAL_CONFIG_PATH = Path("tpn-connect.conf")

# wg-quick stderr fragments meaning "nothing to bring down"
_NOT_ACTIVE_MARKERS = (
    "is not a WireGuard interface",
    "does not exist",
    "Cannot find device",
    "No such device",
)


def _is_root() -> bool:
    return os.geteuid() == 0 if hasattr(os, "geteuid") else False


def run_command(args: List[str], timeout: float = 60) -> Tuple[int, str, str]:
    try:
        p = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
        return p.returncode, p.stdout.strip(), p.stderr.strip()
    except Exception as e:
        return 127, "", str(e)


def default_config_path(override: Optional[str] = None) -> Path:
    if override:
        return Path(override)
    return ELEVATED_CONFIG_PATH if _is_root() else LOCAL_CONFIG_PATH


class TunnelDriver:
    def __init__(self, config_path: Optional[Path] = None, runner: Optional[Runner] = None,
                 tool: str = "wg-quick"):
        self.config_path = Path(config_path) if config_path else default_config_path()
        self.run = runner or run_command
        self.tool = tool

    def available(self) -> bool:
        return shutil.which(self.tool) is not None

    def write_config(self, artifact: str) -> Path:
        path = self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(artifact, encoding="utf-8")
        # the artifact carries a private key
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
        log.info(f"Configuration saved to {path}")
        return path

    def activate(self, path: Path) -> DriverResult:
        rc, out, err = self.run([self.tool, "up", str(path)])
        if rc == 0:
            log.info(f"Tunnel up: {path}")
            return DriverResult(ok=True, changed=True, detail=out)
        log.warning(f"{self.tool} up failed: {err or out}")
        return DriverResult(ok=False, changed=False, detail=err or out or f"exit code {rc}")

    def deactivate(self, path: Path) -> DriverResult:
        rc, out, err = self.run([self.tool, "down", str(path)])
        if rc == 0:
            log.info(f"Tunnel down: {path}")
            return DriverResult(ok=True, changed=True, detail=out)
        if any(m in err for m in _NOT_ACTIVE_MARKERS):
            log.debug(f"No active tunnel for {path}; nothing to bring down")
            return DriverResult(ok=True, changed=False, detail=err)
        log.warning(f"{self.tool} down failed: {err or out}")
        return DriverResult(ok=False, changed=False, detail=err or out or f"exit code {rc}")

    def flush_dns(self) -> DriverResult:
        if sys.platform == "darwin":
            cmds = [["killall", "-HUP", "mDNSResponder"]]
        elif sys.platform.startswith("linux"):
            cmds = [["resolvectl", "flush-caches"], ["systemd-resolve", "--flush-caches"]]
        else:
            return DriverResult(ok=False, changed=False, detail=f"unsupported platform {sys.platform}")
        last = ""
        for args in cmds:
            if not _is_root():
                args = ["sudo", "-n"] + args
            rc, out, err = self.run(args)
            if rc == 0:
                log.info("DNS cache flushed")
                return DriverResult(ok=True, detail=out)
            last = err or out or f"exit code {rc}"
        return DriverResult(ok=False, changed=False, detail=last)
