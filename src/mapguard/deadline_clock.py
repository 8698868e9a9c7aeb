from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Protocol

from mapguard.invariants import never


class DeadlineClock(Protocol):
    def consume(self, ticks: int = 1) -> None:
        """Consume logical progress units."""

    def get_mark(self) -> int:
        """Return the current monotonic mark."""


class DeadlineClockExhausted(RuntimeError):
    """Raised by logical clocks when available ticks are exhausted."""


@dataclass(frozen=True)
class MonotonicClock:
    """Wall-clock marks only; used when no logical clock is injected."""

    def consume(self, ticks: int = 1) -> None:
        return

    def get_mark(self) -> int:
        return time.monotonic_ns()


@dataclass
class GasMeter:
    """Deterministic logical clock shared by every worker of one pass.

    Each deadline check burns one tick; the meter is exhausted once
    ``current`` reaches ``limit``.
    """

    limit: int
    current: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.limit = int(self.limit)
        self.current = int(self.current)
        if self.limit <= 0:
            never("gas meter limit must be positive", limit=self.limit)
        if self.current < 0:
            never("gas meter cannot start below zero", current=self.current)

    def consume(self, ticks: int = 1) -> None:
        if int(ticks) <= 0:
            never("gas meter ticks must be positive", ticks=ticks)
        with self._lock:
            self.current += int(ticks)
            spent = self.current
        if spent >= self.limit:
            raise DeadlineClockExhausted(f"Gas exhausted: {spent}/{self.limit}")

    def get_mark(self) -> int:
        return self.current
