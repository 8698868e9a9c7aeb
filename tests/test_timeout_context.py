from __future__ import annotations

import pytest

from mapguard.analysis.timeout_context import (
    AnalysisCancelled,
    CancellationToken,
    Deadline,
    TimeoutExceeded,
    cancellation_scope,
    check_deadline,
    current_cancellation,
    deadline_clock_scope,
    deadline_loop_iter,
    deadline_scope,
)
from mapguard.deadline_clock import GasMeter
from mapguard.exceptions import NeverThrown


def test_gas_meter_exhaustion_times_out() -> None:
    with deadline_clock_scope(GasMeter(limit=3)):
        check_deadline()
        check_deadline()
        with pytest.raises(TimeoutExceeded):
            check_deadline()


def test_expired_deadline_times_out() -> None:
    with deadline_scope(Deadline(deadline_ns=0)):
        with pytest.raises(TimeoutExceeded):
            check_deadline()


def test_unbounded_deadline_never_expires() -> None:
    assert Deadline.unbounded().expired() is False


def test_cancellation_is_checked_before_the_deadline() -> None:
    token = CancellationToken()
    with cancellation_scope(token):
        assert current_cancellation() is token
        check_deadline()
        token.cancel()
        assert token.cancelled
        with pytest.raises(AnalysisCancelled):
            check_deadline(Deadline(deadline_ns=0))
    assert current_cancellation() is None


def test_loop_iter_checks_each_item() -> None:
    with deadline_clock_scope(GasMeter(limit=3)):
        with pytest.raises(TimeoutExceeded):
            list(deadline_loop_iter(range(5)))


def test_invalid_inputs_are_invariant_failures() -> None:
    with pytest.raises(NeverThrown):
        GasMeter(limit=0)
    with pytest.raises(NeverThrown):
        Deadline.from_timeout_ticks(-1, 1)
