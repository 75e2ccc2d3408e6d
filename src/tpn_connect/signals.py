# signals.py — producers feeding the session event queue: a ticker and a keyboard listener.
# License: MIT
from __future__ import annotations

import logging
import os
import queue
import select
import sys
import threading
from contextlib import suppress
from typing import Dict, Optional, TextIO

from .models import SessionEvent

log = logging.getLogger("tpn_connect.signals")

KEYMAP: Dict[str, SessionEvent] = {
    "d": SessionEvent.DISCONNECT,
    "q": SessionEvent.INTERRUPT,
    "\x03": SessionEvent.INTERRUPT,
    "p": SessionEvent.PANIC,
    "r": SessionEvent.REFRESH,
}


def event_for_key(key: str) -> Optional[SessionEvent]:
    return KEYMAP.get(key.lower()) if key else None


class Ticker:
    def __init__(self, events: "queue.SimpleQueue[SessionEvent]", interval: float = 1.0):
        self.events = events
        self.interval = interval
        self._stop = threading.Event()
        self._thr: Optional[threading.Thread] = None

    def _loop(self):
        while not self._stop.wait(self.interval):
            self.events.put(SessionEvent.TICK)

    def start(self):
        if self._thr is None:
            self._stop.clear()
            self._thr = threading.Thread(target=self._loop, name="session-ticker", daemon=True)
            self._thr.start()

    def stop(self):
        if self._thr:
            self._stop.set()
            self._thr.join(timeout=3)
            self._thr = None


class KeyListener:
    """Reads single key presses from a terminal and queues the mapped events.

    The terminal is switched to cbreak mode while listening and restored on
    stop(). Without a tty the listener stays idle and only SIGINT and the
    ticker can end the session.
    """

    def __init__(self, events: "queue.SimpleQueue[SessionEvent]", stream: Optional[TextIO] = None,
                 poll_interval: float = 0.2):
        self.events = events
        self.stream = stream or sys.stdin
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thr: Optional[threading.Thread] = None
        self._saved_attrs = None

    def _enter_cbreak(self) -> bool:
        try:
            import termios
            import tty
            fd = self.stream.fileno()
            if not os.isatty(fd):
                return False
            self._saved_attrs = termios.tcgetattr(fd)
            tty.setcbreak(fd)
            return True
        except (ImportError, OSError, ValueError) as e:
            log.debug(f"Keyboard listener disabled: {e}")
            return False

    def _restore(self):
        if self._saved_attrs is None:
            return
        with suppress(Exception):
            import termios
            termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._saved_attrs)
        self._saved_attrs = None

    def _loop(self):
        fd = self.stream.fileno()
        while not self._stop.is_set():
            ready, _, _ = select.select([fd], [], [], self.poll_interval)
            if not ready:
                continue
            ch = os.read(fd, 1).decode("utf-8", "ignore")
            if not ch:
                return
            ev = event_for_key(ch)
            if ev is not None:
                log.debug(f"Key {ch!r} -> {ev.value}")
                self.events.put(ev)

    def start(self) -> bool:
        if self._thr is not None or not self._enter_cbreak():
            return False
        self._stop.clear()
        self._thr = threading.Thread(target=self._loop, name="key-listener", daemon=True)
        self._thr.start()
        return True

    def stop(self):
        if self._thr:
            self._stop.set()
            self._thr.join(timeout=1)
            self._thr = None
        self._restore()
