"""Client-side countdown for the assessment time limit."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

logger = logging.getLogger(__name__)

WARNING_THRESHOLDS = (300, 60)
PERSIST_EVERY_TICKS = 10


class TimerState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"
    EXPIRED = "expired"


class TimerStateStore(Protocol):
    """Where the remaining time is persisted for crash recovery."""

    def save_remaining(self, remaining: int) -> None:
        """Persist the remaining seconds."""

    def load_remaining(self) -> int | None:
        """Return the last persisted remaining seconds, if any."""


@dataclass
class TimerController:
    """Cooperative one-second countdown.

    Stopped -> Running -> Expired or Stopped. Warnings fire once per threshold
    reached while running, including the one a countdown starts on;
    ``on_expire`` fires exactly once, when the countdown reaches zero. The
    remaining time is persisted every ``persist_every`` ticks, so a restore may
    lag by up to that many seconds.
    """

    on_expire: Callable[[], None]
    on_warning: Callable[[int], None] | None = None
    state_store: TimerStateStore | None = None
    warning_thresholds: tuple[int, ...] = WARNING_THRESHOLDS
    persist_every: int = PERSIST_EVERY_TICKS
    state: TimerState = field(default=TimerState.STOPPED, init=False)
    remaining: int = field(default=0, init=False)
    _ticks: int = field(default=0, init=False)
    _warned: set[int] = field(default_factory=set, init=False)
    _expire_fired: bool = field(default=False, init=False)

    def start(self, duration_seconds: int) -> None:
        """Start counting down from ``duration_seconds``."""
        if self.state != TimerState.STOPPED:
            return
        self.remaining = max(0, duration_seconds)
        self._ticks = 0
        self._warned = {
            threshold
            for threshold in self.warning_thresholds
            if threshold >= self.remaining
        }
        self.state = TimerState.RUNNING
        self._persist()
        if self.remaining == 0:
            self._expire()
        elif self.remaining in self.warning_thresholds:
            self._warn(self.remaining)

    def restore(self, default_duration_seconds: int) -> int:
        """Start from the last persisted remaining time, else the default."""
        stored = self.state_store.load_remaining() if self.state_store else None
        duration = stored if stored is not None else default_duration_seconds
        self.start(duration)
        return self.remaining

    def tick(self) -> TimerState:
        """Advance the countdown by one second."""
        if self.state != TimerState.RUNNING:
            return self.state
        self.remaining = max(0, self.remaining - 1)
        self._ticks += 1
        crossed = self.remaining in self.warning_thresholds
        if crossed and self.remaining not in self._warned:
            self._warned.add(self.remaining)
            self._warn(self.remaining)
        if self.remaining == 0:
            self._expire()
        elif self._ticks % self.persist_every == 0:
            self._persist()
        return self.state

    def stop(self) -> None:
        """Stop the countdown; calling it again or after expiry does nothing."""
        if self.state != TimerState.RUNNING:
            return
        self.state = TimerState.STOPPED
        self._persist()

    async def run(
        self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ) -> TimerState:
        """Tick once per second until stopped or expired."""
        while self.state == TimerState.RUNNING:
            await sleep(1)
            self.tick()
        return self.state

    def _warn(self, remaining: int) -> None:
        logger.info("Time warning: %s seconds remaining", remaining)
        if self.on_warning is None:
            return
        try:
            self.on_warning(remaining)
        except Exception:
            logger.exception("Timer warning callback failed")

    def _expire(self) -> None:
        self.state = TimerState.EXPIRED
        self._persist()
        if self._expire_fired:
            return
        self._expire_fired = True
        try:
            self.on_expire()
        except Exception:
            logger.exception("Timer expiry callback failed")

    def _persist(self) -> None:
        if self.state_store is None:
            return
        try:
            self.state_store.save_remaining(self.remaining)
        except Exception:
            logger.exception("Failed to persist timer state")
