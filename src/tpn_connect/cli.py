# cli.py — `tpn-connect` entry point: flags, logging, wiring and exit codes.
# License: MIT
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import REGION_BUCKETS, SessionOptions, Settings
from .controller import SessionController
from .diagnostics import run_diagnostics
from .directory import EndpointDirectory
from .driver import TunnelDriver, default_config_path
from .errors import DirectoryUnavailable
from .provisioning import ProvisioningClient
from .risk import GeoLocator, RiskOracle, WifiScanner, public_ip

BANNER = r"""
 _____ ____  _   _    ____                            _
|_   _|  _ \| \ | |  / ___|___  _ __  _ __   ___  ___| |_
  | | | |_) |  \| | | |   / _ \| '_ \| '_ \ / _ \/ __| __|
  | | |  __/| |\  | | |__| (_) | | | | | | |  __/ (__| |_
  |_| |_|   |_| \_|  \____\___/|_| |_|_| |_|\___|\___|\__|
  Simple and Secure Decentralized VPN Connection
"""


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tpn-connect", description="Simple CLI tool to connect to TPN VPN")
    p.add_argument("-v", "--validator", metavar="UID", help="Validator UID")
    p.add_argument("-r", "--region", metavar="REGION", help=f"Exit region ({', '.join(REGION_BUCKETS)})")
    p.add_argument("-t", "--time", metavar="MINUTES", help="Connection time in minutes")
    p.add_argument("-q", "--quiet", action="store_true", help="Run without prompts; defaults or random choice")
    p.add_argument("-d", "--debug", action="store_true", help="Show debug information")
    p.add_argument("--check", action="store_true", help="Run environment diagnostics and exit")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def init_logging(log_dir: str, debug: bool = False) -> logging.Logger:
    d = Path(log_dir); d.mkdir(parents=True, exist_ok=True)
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    logfile = d / f"session_{ts}.log"
    stream = logging.StreamHandler()
    stream.setLevel(logging.DEBUG if debug else logging.WARNING)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.FileHandler(logfile, encoding="utf-8"), stream],
    )
    log = logging.getLogger("tpn_connect")
    log.info(f"Log file: {logfile}")
    return log


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    log = init_logging(settings.log_dir, args.debug)
    log.debug(f"Command line options: {vars(args)}")

    client = ProvisioningClient(timeout=settings.http_timeout)
    driver = TunnelDriver(config_path=default_config_path(settings.config_path))
    ip_lookup = partial(public_ip, settings.public_ip_url, settings.http_timeout)

    if args.check:
        checks = run_diagnostics(settings, driver, client, ip_lookup)
        return 0 if all(ok for _, ok, _ in checks) else 1

    print(BANNER)
    if not driver.available():
        print(f"[!] {driver.tool} not found. Please install wireguard-tools and try again.", file=sys.stderr)
        return 1

    try:
        directory = EndpointDirectory.load(settings.validators_file)
    except DirectoryUnavailable as e:
        print(f"[!] {e}", file=sys.stderr)
        print("[!] Make sure validators.json exists (or point TPN_VALIDATORS at it)", file=sys.stderr)
        return 1
    log.debug(f"Found {len(directory)} validators")

    oracle = RiskOracle(
        WifiScanner(),
        GeoLocator(settings.geo_url, timeout=settings.http_timeout),
        trusted_ssids=settings.trusted_ssids,
        high_risk_countries=settings.high_risk_countries,
    )
    controller = SessionController(
        SessionOptions.from_args(args),
        directory,
        client,
        driver,
        oracle,
        ip_lookup=ip_lookup,
        tick_interval=settings.tick_interval,
    )
    try:
        return controller.run()
    except KeyboardInterrupt:
        print("\n[!] Interrupted by user", file=sys.stderr)
        return controller.abort("interrupt")
    except Exception as e:
        log.exception("Unhandled error")
        print(f"[!] An error occurred: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
