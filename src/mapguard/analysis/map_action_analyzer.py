from __future__ import annotations

import logging
from dataclasses import dataclass

from mapguard.analysis.checks import check_parameter_bindings, check_return_shapes
from mapguard.analysis.delegate_resolution import resolve_delegate
from mapguard.analysis.diagnostics import (
    DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS,
    DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS,
    DiagnosticDescriptor,
    DiagnosticSink,
)
from mapguard.analysis.invocation import Invocation, is_map_action_invocation
from mapguard.analysis.program import CompiledProgram
from mapguard.analysis.well_known_types import WellKnownTypeNames, WellKnownTypes
from mapguard.invariants import require_not_none

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgramAnalysis:
    """Per-program context: the resolved well-known types, shared read-only."""

    program: CompiledProgram
    well_known_types: WellKnownTypes

    def analyze_invocation(self, invocation: Invocation, report: DiagnosticSink) -> bool:
        """Run both checks on ``invocation``; return whether it was a Map call."""
        if not is_map_action_invocation(invocation, self.well_known_types):
            return False
        target = resolve_delegate(invocation, self.program)
        if target is None:
            return True
        check_parameter_bindings(target, invocation, self.well_known_types, self.program, report)
        check_return_shapes(target, invocation, self.well_known_types, self.program, report)
        return True


class MapActionAnalyzer:
    supported_diagnostics: tuple[DiagnosticDescriptor, ...] = (
        DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS,
        DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS,
    )

    def __init__(self, names: WellKnownTypeNames | None = None) -> None:
        self.names = names or WellKnownTypeNames()

    def start_program(self, program: CompiledProgram) -> ProgramAnalysis | None:
        well_known_types = require_not_none(
            WellKnownTypes.try_create(program, self.names),
            reason="one or more well-known types could not be found",
            names=self.names,
        )
        if well_known_types is None:
            logger.debug("well-known types unresolved; Map action analysis disabled")
            return None
        return ProgramAnalysis(program=program, well_known_types=well_known_types)
