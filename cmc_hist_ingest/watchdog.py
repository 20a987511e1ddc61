"""
Inactivity watchdog for cmc-hist-ingest.

Fires when no snapshot has completed within ``timeout`` seconds.  On
firing it sets ``fired`` and runs ``on_fire`` (the coordinator passes
``BrowserSession.close``) on the timer thread, which breaks any driver
call the main thread is blocked in.  The coordinator checks ``fired``
after every step and restarts the session for the same date.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class Watchdog:
    """Resettable one-shot timer."""

    def __init__(self, timeout: float, on_fire: Callable[[], None] | None = None) -> None:
        self.timeout = timeout
        self.on_fire = on_fire
        self._fired = threading.Event()
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    @property
    def fired(self) -> bool:
        return self._fired.is_set()

    def start(self) -> None:
        """(Re)arm the timer and clear the fired flag."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._fired.clear()
            self._timer = threading.Timer(self.timeout, self.fire)
            self._timer.daemon = True
            self._timer.start()

    reset = start

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def fire(self) -> None:
        """Trip the watchdog now (called by the timer thread)."""
        logger.warning(
            "No snapshot completed in %.0fs; tearing down browser session", self.timeout
        )
        self._fired.set()
        if self.on_fire is not None:
            self.on_fire()

    def __enter__(self) -> Watchdog:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()
