# controller.py — session state machine: select, provision, activate, then arbitrate termination.
# License: MIT
from __future__ import annotations

import logging
import queue
import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, List, Optional, TextIO

from tqdm import tqdm

from .config import DEFAULT_LEASE_MINUTES, FALLBACK_REGIONS, SessionOptions
from .dashboard import DashboardPresenter
from .directory import EndpointDirectory
from .driver import TunnelDriver
from .errors import (
    DriverActivationFailed,
    DriverDeactivationFailed,
    NoRegionInBucket,
    ProvisioningFailed,
    RegionFetchFailed,
    SessionInterrupted,
    TPNError,
)
from .models import (
    TERMINAL_STATES,
    TRANSITIONS,
    ConnectionStats,
    RiskVerdict,
    Session,
    SessionEvent,
    SessionState,
)
from .prompts import ConsolePrompter
from .provisioning import ProvisioningClient, select_region
from .risk import RiskOracle
from .signals import KeyListener, Ticker

log = logging.getLogger("tpn_connect.controller")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionController:
    def __init__(
        self,
        options: SessionOptions,
        directory: EndpointDirectory,
        provisioning: ProvisioningClient,
        driver: TunnelDriver,
        oracle: RiskOracle,
        ip_lookup: Callable[[], str],
        prompter: Optional[ConsolePrompter] = None,
        out: Optional[TextIO] = None,
        tick_interval: float = 1.0,
        ticker: Optional[Ticker] = None,
        key_listener: Optional[KeyListener] = None,
        show_progress: bool = True,
    ):
        self.options = options
        self.directory = directory
        self.provisioning = provisioning
        self.driver = driver
        self.oracle = oracle
        self.ip_lookup = ip_lookup
        self.prompter = prompter or ConsolePrompter()
        self.out = out or sys.stdout

        self.session = Session()
        self.stats = ConnectionStats()
        self.dashboard = DashboardPresenter(self.stats, out=self.out)
        self.catalog: List[str] = []
        self.wifi_verdict: Optional[RiskVerdict] = None
        self.location_verdict: Optional[RiskVerdict] = None
        self.error: Optional[TPNError] = None

        self.events: "queue.SimpleQueue[SessionEvent]" = queue.SimpleQueue()
        self.ticker = ticker or Ticker(self.events, interval=tick_interval)
        self.key_listener = key_listener or KeyListener(self.events)
        self.show_progress = show_progress
        self._progress = None
        self._refresh_pool: Optional[ThreadPoolExecutor] = None
        self._prev_sigint = None

        self._term_lock = Lock()
        self._termination_requested = False
        self.termination_reason: Optional[str] = None

    # --- Helpers -------------------------------------------------------------

    def _say(self, msg: str) -> None:
        print(msg, file=self.out, flush=True)

    def _transition(self, new: SessionState) -> None:
        cur = self.session.state
        if new not in TRANSITIONS.get(cur, ()):
            raise RuntimeError(f"illegal session transition {cur.value} -> {new.value}")
        log.debug(f"Session state {cur.value} -> {new.value}")
        self.session.state = new

    def _fail(self, err: TPNError) -> None:
        self.error = err
        if self.session.state not in TERMINAL_STATES:
            self._transition(SessionState.FAILED)
        log.error(f"Session failed: {err}")
        self._say(f"[!] {err}")

    # --- Setup path ----------------------------------------------------------

    def _select_validator(self) -> None:
        opts = self.options
        if opts.validator_id:
            v = self.directory.find_by_id(opts.validator_id)
        elif opts.interactive:
            v = self.prompter.choose_validator(self.directory.list_validators())
        else:
            v = self.directory.pick_random()
        self.session.validator = v
        self._transition(SessionState.SELECTING)
        self._say(f"[*] Using validator: {v.endpoint_address} ({v.location_label})")

    def _fetch_catalog(self) -> List[str]:
        v = self.session.validator
        try:
            catalog = self.provisioning.list_regions(v)
            self._say(f"[+] Found {len(catalog)} available regions")
        except RegionFetchFailed as e:
            log.warning(str(e))
            self._say(f"[!] {e}\n[!] Using fallback region list...")
            catalog = list(FALLBACK_REGIONS)
        if not catalog:
            log.warning(f"Validator {v.id} returned an empty region catalog")
            self._say("[!] Validator offers no regions. Using fallback region list...")
            catalog = list(FALLBACK_REGIONS)
        return catalog

    def _resolve_region(self, catalog: List[str]) -> str:
        opts = self.options
        if opts.bucket:
            try:
                return select_region(opts.bucket, catalog)
            except NoRegionInBucket as e:
                log.debug(f"Bucket {opts.bucket} vs catalog {catalog}")
                self._say(f"[!] {e}. Falling back to {catalog[0]}")
                return catalog[0]
        if opts.interactive:
            return self.prompter.choose_region(catalog)
        return catalog[0]

    def _resolve_duration(self) -> int:
        if self.options.duration_minutes:
            return self.options.duration_minutes
        if self.options.interactive:
            return self.prompter.ask_duration(DEFAULT_LEASE_MINUTES)
        return DEFAULT_LEASE_MINUTES

    def _resolve_plan(self) -> None:
        self.catalog = self._fetch_catalog()
        region = self._resolve_region(self.catalog)
        minutes = self._resolve_duration()
        self.session.region = region
        self.session.duration_seconds = minutes * 60
        self._transition(SessionState.PROVISIONING)
        self._say(f"[*] Selected region: {region}")
        self._say(f"[*] Connection time: {minutes} minutes")

    def assess_risk(self, connected: bool) -> None:
        ip = self.ip_lookup()
        self._say(f"[*] Current IP: {ip}")
        self.wifi_verdict = self.oracle.assess_wifi()
        self.location_verdict = self.oracle.assess_location(ip)
        self.dashboard.show(connected, self.wifi_verdict, self.location_verdict)
        if self.wifi_verdict.is_high or self.location_verdict.is_high:
            self.dashboard.warn_high_risk()

    def _provision(self) -> None:
        s = self.session
        self._say(f"[*] Requesting tunnel configuration ({s.region})...")
        artifact = self.provisioning.request_config(s.validator, s.region, s.duration_seconds // 60)
        try:
            s.config_path = self.driver.write_config(artifact)
        except OSError as e:
            raise ProvisioningFailed(f"Failed to write config file: {e}") from e
        self._transition(SessionState.ACTIVATING)

    def _activate(self) -> None:
        path = self.session.config_path
        self._say(f"[*] Activating TPN VPN connection to {self.session.region}")
        stale = self.driver.deactivate(path)
        if not stale.ok:
            log.warning(f"Cleanup error (continuing anyway): {stale.detail}")
        elif stale.changed:
            self._say("[*] Cleaned up existing connection")
        result = self.driver.activate(path)
        if not result.ok:
            raise DriverActivationFailed(f"Failed to start WireGuard: {result.detail}")
        self.session.started_at = _now_iso()
        self._transition(SessionState.CONNECTED)
        self.stats.total_connections += 1
        if self.location_verdict and self.location_verdict.location:
            self.stats.countries_visited.add(self.location_verdict.location.country)

    def connect(self) -> Optional[int]:
        """Drive the session from IDLE to CONNECTED; returns an exit code on failure."""
        try:
            self.options.validate()
            self._select_validator()
            self._resolve_plan()
            self.assess_risk(connected=False)
            self._provision()
            self._activate()
        except TPNError as e:
            self._fail(e)
            return 1
        self._say(f"[+] New IP: {self.ip_lookup()}")
        self._say("[+] Connection established! You are now connected to TPN VPN.")
        self._say("[*] Keys: [D] disconnect  [P] panic  [R] refresh  [Q]/Ctrl+C quit")
        return None

    # --- Termination arbitration ---------------------------------------------

    def request_termination(self, reason: str) -> bool:
        """Atomic check-and-set; only the first caller may tear the tunnel down."""
        with self._term_lock:
            if self._termination_requested:
                log.debug(f"Termination ({reason}) ignored; already requested ({self.termination_reason})")
                return False
            self._termination_requested = True
            self.termination_reason = reason
            return True

    @property
    def terminating(self) -> bool:
        with self._term_lock:
            return self._termination_requested

    def disconnect(self, reason: str) -> Optional[int]:
        if not self.request_termination(reason):
            return None
        self._drain_refresh()
        self._transition(SessionState.DISCONNECTING)
        self._close_progress()
        if reason == "expired":
            self._say("\n[*] Connection time expired. Disconnecting...")
        else:
            self._say("\n[*] Disconnecting from TPN VPN...")
        result = self.driver.deactivate(self.session.config_path)
        self._transition(SessionState.TERMINATED)
        if result.ok:
            self._say("[+] Successfully disconnected")
            return 0
        err = DriverDeactivationFailed(f"Failed to disconnect: {result.detail}")
        self.error = err
        log.error(str(err))
        self._say(f"[!] {err}")
        return 1

    def panic(self) -> Optional[int]:
        if not self.request_termination("panic"):
            return None
        self._drain_refresh()
        self._transition(SessionState.PANIC)
        self._close_progress()
        self._say("\n[!] PANIC BUTTON ACTIVATED - Disconnecting and securing...")
        result = self.driver.deactivate(self.session.config_path)
        if not result.ok:
            self.error = DriverDeactivationFailed(f"Failed to disconnect: {result.detail}")
            log.error(str(self.error))
            self._say(f"[!] {self.error}")
        try:
            flushed = self.driver.flush_dns()
            if not flushed.ok:
                log.warning(f"DNS cache flush failed: {flushed.detail}")
        except Exception as e:
            log.warning(f"DNS cache flush failed: {e}")
        self._say("[*] Consider clearing your browser cache manually")
        if result.ok:
            self._say("[+] Panic mode completed - Connection terminated securely")
            return 0
        return 1

    def abort(self, reason: str = "interrupt") -> int:
        """Unwind after an interrupt that arrived outside the event loop."""
        state = self.session.state
        if state == SessionState.CONNECTED:
            return self.disconnect(reason) or 0
        if state not in TRANSITIONS or SessionState.FAILED not in TRANSITIONS[state]:
            return 1
        path = self.session.config_path
        if path is not None:
            # wg-quick up may have completed before the interrupt landed
            result = self.driver.deactivate(path)
            if not result.ok:
                log.warning(f"Cleanup after interrupt failed: {result.detail}")
        self._fail(SessionInterrupted(f"Interrupted while {state.value}; no connection established"))
        return 1

    # --- Connected loop ------------------------------------------------------

    def refresh_dashboard(self) -> bool:
        if self.session.state != SessionState.CONNECTED or self.terminating:
            return False
        ip = self.ip_lookup()
        wifi = self.oracle.assess_wifi()
        loc = self.oracle.assess_location(ip)
        if self.terminating:
            return False
        self.dashboard.show(True, wifi, loc)
        return True

    def _refresh_job(self) -> None:
        try:
            self.refresh_dashboard()
        except Exception as e:
            log.warning(f"Dashboard refresh failed: {e}")

    def _tick(self) -> Optional[int]:
        if self.terminating:
            return None
        s = self.session
        s.elapsed_seconds += 1
        self.stats.total_protected_seconds += 1
        if self._progress is not None:
            self._progress.update(1)
        if s.expired:
            return self.disconnect("expired")
        return None

    def handle_event(self, ev: SessionEvent) -> Optional[int]:
        if ev == SessionEvent.TICK:
            return self._tick()
        if ev == SessionEvent.DISCONNECT:
            return self.disconnect("disconnect")
        if ev == SessionEvent.INTERRUPT:
            return self.disconnect("interrupt")
        if ev == SessionEvent.PANIC:
            return self.panic()
        if ev == SessionEvent.REFRESH:
            if not self.terminating and self._refresh_pool is not None:
                self._refresh_pool.submit(self._refresh_job)
            return None
        log.debug(f"Unhandled event {ev!r}")
        return None

    def _on_sigint(self, signum, frame):
        self.events.put(SessionEvent.INTERRUPT)

    def _start_listeners(self) -> None:
        self._refresh_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dashboard-refresh")
        if threading.current_thread() is threading.main_thread():
            self._prev_sigint = signal.signal(signal.SIGINT, self._on_sigint)
        self._progress = tqdm(total=self.session.duration_seconds, desc="Connection time", unit="s",
                              disable=not self.show_progress)
        self.ticker.start()
        self.key_listener.start()

    def _stop_listeners(self) -> None:
        self.ticker.stop()
        self.key_listener.stop()
        self._close_progress()
        if self._prev_sigint is not None:
            signal.signal(signal.SIGINT, self._prev_sigint)
            self._prev_sigint = None
        self._drain_refresh()

    def _drain_refresh(self) -> None:
        pool, self._refresh_pool = self._refresh_pool, None
        if pool is not None:
            pool.shutdown(wait=True)

    def _close_progress(self) -> None:
        if self._progress is not None:
            self._progress.close()
            self._progress = None

    def serve(self) -> int:
        if self.session.state != SessionState.CONNECTED:
            raise RuntimeError(f"serve() requires a connected session, state is {self.session.state.value}")
        self._start_listeners()
        try:
            while True:
                code = self.handle_event(self.events.get())
                if code is not None:
                    return code
        finally:
            self._stop_listeners()

    def run(self) -> int:
        code = self.connect()
        if code is not None:
            return code
        return self.serve()
