"""Idle-timeout policy and the timer-driven guard that enforces it.

``IdlePolicy`` is the arithmetic shared by the HTTP layer (which only has
timestamps) and ``IdleSessionGuard`` (which owns live event-loop timers for a
connected client).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Client-side signals that count as user activity
ACTIVITY_EVENTS = ("mousedown", "mousemove", "keypress", "scroll", "click", "touchstart")


class IdlePolicy:
    def __init__(self, timeout_seconds: float | None = None, warning_seconds: float | None = None) -> None:
        self.timeout = float(settings.SESSION_IDLE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds)
        self.warning_before = float(settings.SESSION_WARNING_SECONDS if warning_seconds is None else warning_seconds)
        if not 0 < self.warning_before < self.timeout:
            raise ValueError("warning window must be shorter than the idle timeout")

    @property
    def warning_after(self) -> float:
        return self.timeout - self.warning_before

    def remaining(self, last_activity: float, now: float) -> float:
        return max(0.0, self.timeout - (now - last_activity))

    def in_warning(self, remaining: float) -> bool:
        return 0 < remaining <= self.warning_before

    def is_expired(self, remaining: float) -> bool:
        return remaining <= 0


class IdleSessionGuard:
    """Owns the warning/expiry timer pair for one authenticated session.

    Every reset cancels both pending handles before scheduling new ones, so a
    stale expiry can never fire after activity.
    """

    def __init__(
        self,
        policy: IdlePolicy,
        *,
        on_warning: Callable[[float], None],
        on_expire: Callable[[], None],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policy = policy
        self.on_warning = on_warning
        self.on_expire = on_expire
        self.clock = clock

        self.last_activity: float | None = None
        self.warning = False
        self.running = False
        self._warning_handle: asyncio.Handle | None = None
        self._expiry_handle: asyncio.Handle | None = None

    @property
    def remaining(self) -> float:
        if not self.running or self.last_activity is None:
            return 0.0
        return self.policy.remaining(self.last_activity, self.clock())

    def start(self, last_activity: float | None = None) -> None:
        """Begin guarding; ``last_activity`` restores a persisted clock."""
        self.running = True
        self.warning = False
        self.last_activity = self.clock() if last_activity is None else last_activity
        self._schedule()

    def activity(self) -> None:
        if not self.running:
            return
        self.last_activity = self.clock()
        self.warning = False
        self._schedule()

    def stop(self) -> None:
        self._cancel()
        self.running = False
        self.warning = False

    def _cancel(self) -> None:
        for handle in (self._warning_handle, self._expiry_handle):
            if handle is not None:
                handle.cancel()
        self._warning_handle = None
        self._expiry_handle = None

    def _schedule(self) -> None:
        self._cancel()
        loop = asyncio.get_running_loop()
        remaining = self.remaining

        if self.policy.is_expired(remaining):
            self._expiry_handle = loop.call_soon(self._expire)
            return

        until_warning = remaining - self.policy.warning_before
        if until_warning <= 0:
            self._warning_handle = loop.call_soon(self._warn)
        else:
            self._warning_handle = loop.call_later(until_warning, self._warn)
        self._expiry_handle = loop.call_later(remaining, self._expire)

    def _warn(self) -> None:
        self._warning_handle = None
        if not self.running or self.warning:
            return
        self.warning = True
        self.on_warning(self.remaining)

    def _expire(self) -> None:
        self._expiry_handle = None
        if not self.running:
            return
        self.stop()
        logger.info("Session expired due to inactivity")
        self.on_expire()
