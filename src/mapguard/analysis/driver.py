"""Host side of the analyzer: one start hook per program, one hook per call.

The driver resolves the well-known types once, then analyzes every call
expression of the program, inline or on a thread pool. Diagnostics of one
invocation are buffered and only published once that invocation completes,
so a cancelled or failing invocation contributes nothing.
"""

from __future__ import annotations

import ast
import contextvars
import logging
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from contextlib import ExitStack
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Iterable

from mapguard.analysis.diagnostics import Diagnostic, DiagnosticBag, DiagnosticSink
from mapguard.analysis.invocation import Invocation
from mapguard.analysis.map_action_analyzer import MapActionAnalyzer, ProgramAnalysis
from mapguard.analysis.program import CompiledProgram, ModuleUnit
from mapguard.analysis.timeout_context import (
    AnalysisCancelled,
    CancellationToken,
    Deadline,
    TimeoutExceeded,
    cancellation_scope,
    check_deadline,
    deadline_clock_scope,
    deadline_scope,
)
from mapguard.deadline_clock import DeadlineClock, MonotonicClock
from mapguard.exceptions import NeverThrown
from mapguard.ingest import IngestConfig, ParseFailureWitness, ingest_paths

logger = logging.getLogger(__name__)


class InvocationOutcome(Enum):
    SKIPPED = "skipped"
    MATCHED = "matched"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class AnalysisResult:
    diagnostics: tuple[Diagnostic, ...] = ()
    enabled: bool = True
    invocations: int = 0
    matched: int = 0
    failures: int = 0
    cancelled: bool = False
    timed_out: bool = False
    modules: int = 0
    parse_failures: tuple[ParseFailureWitness, ...] = ()

    @property
    def completed(self) -> bool:
        return not (self.cancelled or self.timed_out)


@dataclass
class _Tally:
    invocations: int = 0
    matched: int = 0
    failures: int = 0
    cancelled: bool = False
    timed_out: bool = False

    def record(self, outcome: InvocationOutcome) -> None:
        self.invocations += 1
        if outcome is InvocationOutcome.MATCHED:
            self.matched += 1
        elif outcome is InvocationOutcome.FAILED:
            self.failures += 1
        elif outcome is InvocationOutcome.CANCELLED:
            self.cancelled = True
        elif outcome is InvocationOutcome.TIMED_OUT:
            self.timed_out = True

    @property
    def stopped(self) -> bool:
        return self.cancelled or self.timed_out


def _analyze_one(
    analysis: ProgramAnalysis,
    unit: ModuleUnit,
    call: ast.Call,
    report: DiagnosticSink,
) -> InvocationOutcome:
    buffered: list[Diagnostic] = []
    try:
        check_deadline()
        invocation = Invocation.from_call(analysis.program, unit, call)
        matched = analysis.analyze_invocation(invocation, buffered.append)
    except AnalysisCancelled:
        return InvocationOutcome.CANCELLED
    except TimeoutExceeded:
        return InvocationOutcome.TIMED_OUT
    except NeverThrown as exc:
        logger.error(
            "invariant violated at %s:%s: %s",
            unit.path,
            getattr(call, "lineno", "?"),
            exc.marker_payload_dict,
            exc_info=True,
        )
        return InvocationOutcome.FAILED
    except Exception:
        logger.warning(
            "dropping invocation at %s:%s",
            unit.path,
            getattr(call, "lineno", "?"),
            exc_info=True,
        )
        return InvocationOutcome.FAILED
    for diagnostic in buffered:
        report(diagnostic)
    return InvocationOutcome.MATCHED if matched else InvocationOutcome.SKIPPED


def _run_serial(
    analysis: ProgramAnalysis,
    calls: list[tuple[ModuleUnit, ast.Call]],
    report: DiagnosticSink,
    tally: _Tally,
) -> None:
    for unit, call in calls:
        tally.record(_analyze_one(analysis, unit, call, report))
        if tally.stopped:
            return


def _run_pool(
    analysis: ProgramAnalysis,
    calls: list[tuple[ModuleUnit, ast.Call]],
    report: DiagnosticSink,
    tally: _Tally,
    *,
    workers: int,
) -> None:
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mapguard") as pool:
        futures = [
            pool.submit(contextvars.copy_context().run, _analyze_one, analysis, unit, call, report)
            for unit, call in calls
        ]
        pending = set(futures)
        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                tally.record(future.result())
            if tally.stopped:
                for future in pending:
                    future.cancel()
                break


def analyze_program(
    program: CompiledProgram,
    *,
    analyzer: MapActionAnalyzer | None = None,
    sink: DiagnosticSink | None = None,
    workers: int = 1,
    deadline: Deadline | None = None,
    cancellation: CancellationToken | None = None,
    clock: DeadlineClock | None = None,
) -> AnalysisResult:
    analyzer = analyzer or MapActionAnalyzer()
    bag = DiagnosticBag()

    def report(diagnostic: Diagnostic) -> None:
        bag(diagnostic)
        if sink is not None:
            sink(diagnostic)

    tally = _Tally()
    with ExitStack() as stack:
        stack.enter_context(deadline_scope(deadline or Deadline.unbounded()))
        stack.enter_context(deadline_clock_scope(clock or MonotonicClock()))
        stack.enter_context(cancellation_scope(cancellation or CancellationToken()))
        analysis = analyzer.start_program(program)
        if analysis is None:
            return AnalysisResult(enabled=False)
        calls = list(program.iter_calls())
        logger.debug("analyzing %d call expressions with %d worker(s)", len(calls), workers)
        if workers <= 1:
            _run_serial(analysis, calls, report, tally)
        else:
            _run_pool(analysis, calls, report, tally, workers=workers)
    if tally.stopped:
        logger.info(
            "analysis stopped after %d of %d invocations (%s)",
            tally.invocations,
            len(calls),
            "timed out" if tally.timed_out else "cancelled",
        )
    return AnalysisResult(
        diagnostics=tuple(bag.sorted()),
        enabled=True,
        invocations=tally.invocations,
        matched=tally.matched,
        failures=tally.failures,
        cancelled=tally.cancelled,
        timed_out=tally.timed_out,
    )


def analyze_paths(
    paths: Iterable[str | Path],
    *,
    config: IngestConfig | None = None,
    stub_paths: Iterable[str | Path] = (),
    analyzer: MapActionAnalyzer | None = None,
    sink: DiagnosticSink | None = None,
    workers: int = 1,
    deadline: Deadline | None = None,
    cancellation: CancellationToken | None = None,
    clock: DeadlineClock | None = None,
) -> AnalysisResult:
    """Ingest ``paths`` (plus ``stub_paths``) as one program and analyze it."""
    deadline = deadline or Deadline.unbounded()
    cancellation = cancellation or CancellationToken()
    clock = clock or MonotonicClock()
    with ExitStack() as stack:
        stack.enter_context(deadline_scope(deadline))
        stack.enter_context(deadline_clock_scope(clock))
        stack.enter_context(cancellation_scope(cancellation))
        try:
            ingested = ingest_paths(
                paths,
                config=config or IngestConfig(),
                stub_paths=stub_paths,
                check_deadline=check_deadline,
            )
        except AnalysisCancelled:
            return AnalysisResult(cancelled=True)
        except TimeoutExceeded:
            return AnalysisResult(timed_out=True)
    program = CompiledProgram(ingested.modules)
    result = analyze_program(
        program,
        analyzer=analyzer,
        sink=sink,
        workers=workers,
        deadline=deadline,
        cancellation=cancellation,
        clock=clock,
    )
    return replace(
        result,
        modules=len(ingested.modules),
        parse_failures=ingested.parse_failures,
    )
