from __future__ import annotations

import pytest

from mapguard.exceptions import NeverRaise, NeverThrown
from mapguard.invariants import never, proof_mode, proof_mode_scope, require_not_none


def test_never_carries_reason_and_env() -> None:
    with pytest.raises(NeverThrown) as excinfo:
        never("unreachable branch", kind="lambda", depth=2)
    assert isinstance(excinfo.value, NeverRaise)
    assert excinfo.value.marker_payload_dict == {
        "reason": "unreachable branch",
        "env": {"depth": "2", "kind": "lambda"},
    }


def test_require_not_none_is_lenient_outside_proof_mode() -> None:
    assert proof_mode() is False
    assert require_not_none(None, reason="missing") is None
    assert require_not_none(3) == 3
    with pytest.raises(NeverThrown):
        require_not_none(None, strict=True)


def test_proof_mode_scopes_nest_and_restore() -> None:
    with proof_mode_scope(True):
        assert proof_mode() is True
        with pytest.raises(NeverThrown):
            require_not_none(None, reason="missing")
        with proof_mode_scope(False):
            assert require_not_none(None) is None
        assert proof_mode() is True
    assert proof_mode() is False
