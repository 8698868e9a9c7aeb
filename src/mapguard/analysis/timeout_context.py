from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TypeVar

from mapguard.deadline_clock import (
    DeadlineClock,
    DeadlineClockExhausted,
    MonotonicClock,
)
from mapguard.invariants import never

_LoopItem = TypeVar("_LoopItem")


class TimeoutExceeded(TimeoutError):
    def __init__(self, reason: str = "Analysis timed out.") -> None:
        super().__init__(reason)
        self.reason = reason


class AnalysisCancelled(RuntimeError):
    """Raised at a deadline check once the host has requested cancellation."""


_SYSTEM_CLOCK = MonotonicClock()


@dataclass(frozen=True)
class Deadline:
    deadline_ns: int | None

    @classmethod
    def from_timeout_ticks(cls, ticks: int, tick_ns: int) -> "Deadline":
        ticks_value = int(ticks)
        tick_ns_value = int(tick_ns)
        if ticks_value < 0:
            never("invalid timeout ticks", ticks=ticks)
        if tick_ns_value <= 0:
            never("invalid timeout tick_ns", tick_ns=tick_ns)
        total_ns = ticks_value * tick_ns_value
        return cls(deadline_ns=_SYSTEM_CLOCK.get_mark() + total_ns)

    @classmethod
    def from_timeout_ms(cls, milliseconds: int) -> "Deadline":
        return cls.from_timeout_ticks(milliseconds, 1_000_000)

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(deadline_ns=None)

    def expired(self) -> bool:
        if self.deadline_ns is None:
            return False
        return _SYSTEM_CLOCK.get_mark() >= self.deadline_ns

    def check(self) -> None:
        if self.expired():
            raise TimeoutExceeded()


@dataclass
class CancellationToken:
    """Host-owned cancellation flag, safe to signal from any thread."""

    _event: threading.Event = field(default_factory=threading.Event, repr=False)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled("Analysis cancelled.")


_deadline_var: ContextVar[object] = ContextVar("mapguard_deadline", default=None)
_deadline_clock_var: ContextVar[object] = ContextVar(
    "mapguard_deadline_clock", default=None
)
_cancellation_var: ContextVar[object] = ContextVar(
    "mapguard_cancellation", default=None
)


def set_deadline(deadline: Deadline):
    if deadline is None:
        never("deadline carrier missing")
    return _deadline_var.set(deadline)


def reset_deadline(token) -> None:
    _deadline_var.reset(token)


def get_deadline() -> Deadline:
    deadline = _deadline_var.get()
    if deadline is None:
        never("deadline carrier missing")
    return deadline


def set_deadline_clock(clock: DeadlineClock):
    if clock is None:
        never("deadline clock missing")
    return _deadline_clock_var.set(clock)


def reset_deadline_clock(token) -> None:
    _deadline_clock_var.reset(token)


@contextmanager
def deadline_scope(deadline: Deadline):
    if deadline is None:
        never("deadline carrier missing")
    token = set_deadline(deadline)
    try:
        yield
    finally:
        reset_deadline(token)


@contextmanager
def deadline_clock_scope(clock: DeadlineClock):
    token = set_deadline_clock(clock)
    try:
        yield
    finally:
        reset_deadline_clock(token)


@contextmanager
def cancellation_scope(cancellation: CancellationToken):
    token = _cancellation_var.set(cancellation)
    try:
        yield
    finally:
        _cancellation_var.reset(token)


def current_cancellation() -> CancellationToken | None:
    cancellation = _cancellation_var.get()
    if cancellation is None:
        return None
    return cancellation


def check_deadline(deadline: Deadline | None = None) -> None:
    """Honor host cancellation, the active deadline, and the logical clock.

    Raises AnalysisCancelled, TimeoutExceeded, or NeverThrown when called
    outside of a deadline scope.
    """
    if deadline is None:
        deadline = get_deadline()
    cancellation = _cancellation_var.get()
    if cancellation is not None:
        cancellation.raise_if_cancelled()
    deadline.check()
    consume_deadline_ticks()


def deadline_loop_iter(values: Iterable[_LoopItem]) -> Iterator[_LoopItem]:
    for value in values:
        check_deadline()
        yield value


def consume_deadline_ticks(ticks: int = 1) -> None:
    clock = _deadline_clock_var.get()
    if clock is None:
        never("deadline clock missing")
    try:
        clock.consume(ticks)
    except DeadlineClockExhausted as exc:
        raise TimeoutExceeded(str(exc)) from exc
