# dashboard.py — read-only rendering of connection status, risk verdicts and stats.
# License: MIT
from __future__ import annotations

import sys
from typing import Optional, TextIO

from .models import ConnectionStats, RiskVerdict

_RULE = "=" * 61
_COMMANDS = "  [D] Disconnect    [P] Panic Button    [R] Refresh    [Q] Quit"


class DashboardPresenter:
    def __init__(self, stats: ConnectionStats, out: Optional[TextIO] = None, clear: Optional[bool] = None):
        self.stats = stats
        self.out = out or sys.stdout
        self.clear = self.out.isatty() if clear is None else clear

    def render(self, connected: bool, wifi: RiskVerdict, location: RiskVerdict) -> str:
        st = self.stats
        lines = [
            _RULE,
            "DIGITAL NOMAD SECURITY SUITE".center(61),
            _RULE,
            "",
            f"■ VPN STATUS: {'CONNECTED' if connected else 'DISCONNECTED'}",
            "",
            f"▸ WiFi Security: {wifi.level.value} - {wifi.reason}",
            f"▸ Location Security: {location.level.value} - {location.reason}",
        ]
        if location.location:
            lines.append(f"  Location: {location.location.country}, {location.location.city or '?'}")
        lines += [
            "",
            "▸ Security Statistics:",
            f"  Total protected connections: {st.total_connections}",
            f"  Total protected time: {st.protected_minutes} minutes",
            f"  Countries visited: {', '.join(sorted(st.countries_visited)) or 'None'}",
            "",
            "▸ Quick Commands:",
            _COMMANDS,
            "",
        ]
        return "\n".join(lines)

    def show(self, connected: bool, wifi: RiskVerdict, location: RiskVerdict) -> None:
        if self.clear:
            self.out.write("\033[2J\033[H")
        self.out.write(self.render(connected, wifi, location) + "\n")
        self.out.flush()

    def warn_high_risk(self) -> None:
        self.out.write("\n[!] HIGH SECURITY RISK DETECTED! VPN STRONGLY RECOMMENDED\n\n")
        self.out.flush()
