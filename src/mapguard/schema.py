from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from mapguard.analysis.diagnostics import Diagnostic, DiagnosticDescriptor
from mapguard.analysis.driver import AnalysisResult
from mapguard.ingest import ParseFailureWitness


class DiagnosticDTO(BaseModel):
    id: str
    severity: str
    message: str
    path: str
    line: int
    column: int
    end_line: Optional[int] = None
    end_column: Optional[int] = None
    arguments: List[str] = []

    @classmethod
    def from_diagnostic(cls, diagnostic: Diagnostic) -> "DiagnosticDTO":
        location = diagnostic.location
        return cls(
            id=diagnostic.id,
            severity=diagnostic.descriptor.severity.value,
            message=diagnostic.message,
            path=str(location.path),
            line=location.line,
            column=location.column + 1,
            end_line=location.end_line,
            end_column=None if location.end_column is None else location.end_column + 1,
            arguments=list(diagnostic.arguments),
        )


class ParseFailureDTO(BaseModel):
    path: str
    stage: str
    error: str

    @classmethod
    def from_witness(cls, witness: ParseFailureWitness) -> "ParseFailureDTO":
        return cls(path=str(witness.path), stage=witness.stage, error=witness.error)


class AnalysisStatsDTO(BaseModel):
    modules: int = 0
    invocations: int = 0
    matched: int = 0
    failures: int = 0
    diagnostics: int = 0


class AnalysisResponseDTO(BaseModel):
    enabled: bool = True
    cancelled: bool = False
    timed_out: bool = False
    diagnostics: List[DiagnosticDTO] = []
    parse_failures: List[ParseFailureDTO] = []
    stats: AnalysisStatsDTO = AnalysisStatsDTO()

    @classmethod
    def from_result(cls, result: AnalysisResult) -> "AnalysisResponseDTO":
        return cls(
            enabled=result.enabled,
            cancelled=result.cancelled,
            timed_out=result.timed_out,
            diagnostics=[DiagnosticDTO.from_diagnostic(item) for item in result.diagnostics],
            parse_failures=[
                ParseFailureDTO.from_witness(item) for item in result.parse_failures
            ],
            stats=AnalysisStatsDTO(
                modules=result.modules,
                invocations=result.invocations,
                matched=result.matched,
                failures=result.failures,
                diagnostics=len(result.diagnostics),
            ),
        )


class RuleDTO(BaseModel):
    id: str
    title: str
    message_format: str
    category: str
    severity: str
    enabled_by_default: bool = True
    help_link: str

    @classmethod
    def from_descriptor(cls, descriptor: DiagnosticDescriptor) -> "RuleDTO":
        return cls(
            id=descriptor.id,
            title=descriptor.title,
            message_format=descriptor.message_format,
            category=descriptor.category,
            severity=descriptor.severity.value,
            enabled_by_default=descriptor.enabled_by_default,
            help_link=descriptor.help_link,
        )
