"""Invariant markers for mapguard analysis."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import NoReturn, TypeVar

from mapguard.exceptions import NeverThrown

_PROOF_MODE: ContextVar[bool] = ContextVar("mapguard_proof_mode", default=False)

T = TypeVar("T")


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as intentionally unreachable.

    The optional env payload is metadata only; it travels with the raised
    NeverThrown so the failing site can be diagnosed.
    """
    raise NeverThrown(reason or "never() marker reached", env=env)


def proof_mode() -> bool:
    return _PROOF_MODE.get()


@contextmanager
def proof_mode_scope(enabled: bool):
    token = _PROOF_MODE.set(bool(enabled))
    try:
        yield
    finally:
        _PROOF_MODE.reset(token)


def require_not_none(
    value: T | None,
    *,
    reason: str = "",
    strict: bool | None = None,
    **env: object,
) -> T | None:
    if value is None:
        if strict is None:
            strict = proof_mode()
        if strict:
            never(reason or "required value is None", **env)
    return value
