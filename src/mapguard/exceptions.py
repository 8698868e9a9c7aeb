"""Exception protocol markers for mapguard analysis."""

from __future__ import annotations


class NeverRaise(RuntimeError):
    """Sentinel exception that should be statically unreachable.

    Raising this exception signals an internal defect: a code path the
    analyzer assumes cannot be reached was reached anyway. It is never used
    for ordinary "not found" outcomes, which are modeled as ``None``.
    """

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.reason = message
        self.env = dict(env or {})

    @property
    def marker_payload_dict(self) -> dict[str, object]:
        return {
            "reason": self.reason,
            "env": {key: str(value) for key, value in sorted(self.env.items())},
        }


class NeverThrown(NeverRaise):
    """Alias for NeverRaise used by the explicit never() marker."""
