# tpn_connect — time-boxed WireGuard sessions through TPN validators, with WiFi/location risk checks.
# License: MIT
__version__ = "1.0.0"
