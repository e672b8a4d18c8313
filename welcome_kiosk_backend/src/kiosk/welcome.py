"""
Welcome screen interactions: greeting, hidden admin tap gesture and the
confirmation screen's return-to-home timer.

Timers go through a scheduler with a single method,
schedule(delay, callback) -> handle with cancel(), so tests can drive them
by hand.
"""

import logging
import threading
import time
from typing import Callable, NamedTuple, Optional

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def greeting_for(hour: int) -> str:
    if 0 <= hour <= 11:
        return "Good morning"
    if 12 <= hour <= 17:
        return "Good afternoon"
    return "Good evening"


# PUBLIC_INTERFACE
class ThreadingScheduler:
    """Runs callbacks on daemon threading.Timer threads."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class TapState(NamedTuple):
    """count == 0 means idle; otherwise counting until deadline."""
    count: int = 0
    deadline: Optional[float] = None

    @property
    def is_idle(self) -> bool:
        return self.count == 0


IDLE = TapState()


# PUBLIC_INTERFACE
class TapGestureDetector:
    """
    Tells "N quick taps" (admin) from a single tap (guest).

    Each tap cancels the pending guest action. The Nth tap inside the window
    fires on_admin and returns to idle; otherwise a guest action is scheduled
    for when the window runs out, fires once and returns to idle.
    """

    def __init__(self, scheduler, on_guest: Callable[[], None], on_admin: Callable[[], None],
                 required_taps: int = 5, window: float = 0.3, clock: Callable[[], float] = time.monotonic):
        self.scheduler = scheduler
        self.on_guest = on_guest
        self.on_admin = on_admin
        self.required_taps = required_taps
        self.window = window
        self.clock = clock
        self.state = IDLE
        self._pending = None
        self._generation = 0
        self._lock = threading.Lock()

    def tap(self):
        with self._lock:
            self._cancel_pending()
            count = self.state.count + 1
            if count >= self.required_taps:
                self.state = IDLE
                fire_admin = True
            else:
                self.state = TapState(count, self.clock() + self.window)
                generation = self._generation
                self._pending = self.scheduler.schedule(self.window, lambda: self._expire(generation))
                fire_admin = False
        if fire_admin:
            logger.info("Admin gesture detected")
            self.on_admin()

    def _expire(self, generation: int):
        with self._lock:
            # A later tap already replaced this timer.
            if generation != self._generation or self.state.is_idle:
                return
            self._pending = None
            self._generation += 1
            self.state = IDLE
        self.on_guest()

    def _cancel_pending(self):
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


# PUBLIC_INTERFACE
class ConfirmationTimer:
    """Returns the kiosk to the welcome screen once, after a delay."""

    def __init__(self, scheduler, on_timeout: Callable[[], None], delay: float = 5.0):
        self.scheduler = scheduler
        self.on_timeout = on_timeout
        self.delay = delay
        self._handle = None
        self._fired = False
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self._handle is None and not self._fired:
                self._handle = self.scheduler.schedule(self.delay, self._fire)

    def cancel(self):
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None

    def _fire(self):
        with self._lock:
            if self._handle is None or self._fired:
                return
            self._fired = True
            self._handle = None
        self.on_timeout()
