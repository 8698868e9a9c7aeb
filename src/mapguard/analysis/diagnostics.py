from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TypeAlias

from mapguard.analysis.model import SourceLocation

HELP_LINK = "https://aka.ms/aspnet/analyzers"


class DiagnosticSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class DiagnosticDescriptor:
    id: str
    title: str
    message_format: str
    category: str
    severity: DiagnosticSeverity
    enabled_by_default: bool = True
    help_link: str = HELP_LINK


@dataclass(frozen=True)
class Diagnostic:
    descriptor: DiagnosticDescriptor
    location: SourceLocation
    arguments: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def message(self) -> str:
        return self.descriptor.message_format.format(*self.arguments)

    def render(self) -> str:
        return (
            f"{self.location.render()}: {self.descriptor.id} "
            f"{self.descriptor.severity.value}: {self.message}"
        )


DiagnosticSink: TypeAlias = Callable[[Diagnostic], None]


DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS = DiagnosticDescriptor(
    id="ASP0003",
    title="Do not use model binding attributes with Map actions",
    message_format="{0} should not be specified for a {1} delegate parameter",
    category="Usage",
    severity=DiagnosticSeverity.WARNING,
)

DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS = DiagnosticDescriptor(
    id="ASP0004",
    title="Do not use action results with Map actions",
    message_format=(
        "ActionResult instances should not be returned from a {0} delegate parameter. "
        "Consider returning an equivalent result from minimal.http.Results."
    ),
    category="Usage",
    severity=DiagnosticSeverity.WARNING,
)


class DiagnosticBag:
    """Thread-safe collecting sink."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: list[Diagnostic] = []

    def __call__(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self._items.append(diagnostic)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def snapshot(self) -> tuple[Diagnostic, ...]:
        with self._lock:
            return tuple(self._items)

    def sorted(self) -> list[Diagnostic]:
        return sorted(self.snapshot(), key=diagnostic_sort_key)

    def counts(self) -> Counter[str]:
        return Counter(item.id for item in self.snapshot())


def diagnostic_sort_key(diagnostic: Diagnostic) -> tuple[str, int, int, str, tuple[str, ...]]:
    location = diagnostic.location
    return (str(location.path), location.line, location.column, diagnostic.id, diagnostic.arguments)
