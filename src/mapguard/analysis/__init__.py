"""Static analysis subpackage for mapguard."""

from .diagnostics import (
    DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS,
    DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS,
    Diagnostic,
    DiagnosticBag,
    DiagnosticDescriptor,
    DiagnosticSeverity,
)
from .driver import AnalysisResult, analyze_paths, analyze_program
from .map_action_analyzer import MapActionAnalyzer, ProgramAnalysis
from .program import CompiledProgram
from .well_known_types import WellKnownTypeNames, WellKnownTypes

__all__ = [
    "AnalysisResult",
    "CompiledProgram",
    "DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS",
    "DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS",
    "Diagnostic",
    "DiagnosticBag",
    "DiagnosticDescriptor",
    "DiagnosticSeverity",
    "MapActionAnalyzer",
    "ProgramAnalysis",
    "WellKnownTypeNames",
    "WellKnownTypes",
    "analyze_paths",
    "analyze_program",
]
