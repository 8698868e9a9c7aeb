"""The two Map action checks: parameter binding metadata and return shapes."""

from __future__ import annotations

import ast
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from mapguard.analysis.delegate_resolution import (
    BlockBody,
    DelegateTarget,
    ExpressionBody,
    MethodReference,
)
from mapguard.analysis.diagnostics import (
    DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS,
    DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS,
    Diagnostic,
    DiagnosticSink,
)
from mapguard.analysis.invocation import Invocation
from mapguard.analysis.model import ClassSymbol, FunctionSymbol
from mapguard.analysis.program import CompiledProgram, all_arguments
from mapguard.analysis.timeout_context import check_deadline, deadline_loop_iter
from mapguard.analysis.well_known_types import WellKnownTypes

_TERMINATORS = (ast.Return, ast.Raise, ast.Break, ast.Continue)
_NESTED_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)


@dataclass(frozen=True)
class ParameterSite:
    parameter: ast.arg
    attributes: tuple[tuple[ClassSymbol, ast.AST], ...]


@dataclass(frozen=True)
class ReturnSite:
    expression: ast.expr
    static_type: ClassSymbol | None


def _callee_name(invocation: Invocation) -> str:
    callee: FunctionSymbol | None = invocation.callee
    return callee.name if callee is not None else ""


def iter_parameter_sites(
    target: DelegateTarget,
    program: CompiledProgram,
) -> Iterator[ParameterSite]:
    scope = target.annotation_scope
    for parameter in deadline_loop_iter(all_arguments(target.arguments)):
        attributes: list[tuple[ClassSymbol, ast.AST]] = []
        for metadata, anchor in program.iter_annotated_metadata(parameter.annotation):
            attribute_type = program.metadata_type(metadata, scope)
            if attribute_type is not None:
                attributes.append((attribute_type, anchor))
        yield ParameterSite(parameter=parameter, attributes=tuple(attributes))


def check_parameter_bindings(
    target: DelegateTarget,
    invocation: Invocation,
    well_known_types: WellKnownTypes,
    program: CompiledProgram,
    report: DiagnosticSink,
) -> None:
    for site in iter_parameter_sites(target, program):
        for attribute_type, anchor in site.attributes:
            if not (
                program.implements(attribute_type, well_known_types.binder_type_provider_metadata)
                or attribute_type is well_known_types.bind_attribute
            ):
                continue
            report(
                Diagnostic(
                    descriptor=DO_NOT_USE_MODEL_BINDING_ATTRIBUTES_ON_MAP_ACTION_PARAMETERS,
                    location=program.location(_anchor_module(target, invocation), anchor),
                    arguments=(attribute_type.name, _callee_name(invocation)),
                )
            )


def _anchor_module(target: DelegateTarget, invocation: Invocation) -> str:
    if isinstance(target, MethodReference):
        return target.symbol.module
    return invocation.module


def iter_return_expressions(statements: Iterable[ast.stmt]) -> Iterator[ast.expr]:
    """Yield the value of every syntactically reachable ``return``.

    Statements after an unconditional return/raise/break/continue in the same
    block are unreachable. Nested functions, lambdas and classes are skipped.
    """
    for stmt in statements:
        check_deadline()
        if isinstance(stmt, _NESTED_SCOPES):
            continue
        if isinstance(stmt, ast.Return):
            if stmt.value is not None:
                yield stmt.value
            return
        for field_name in ("body", "orelse", "finalbody"):
            nested = getattr(stmt, field_name, None)
            if isinstance(nested, list):
                yield from iter_return_expressions(nested)
        for handler in getattr(stmt, "handlers", ()):
            yield from iter_return_expressions(handler.body)
        for case in getattr(stmt, "cases", ()):
            yield from iter_return_expressions(case.body)
        if isinstance(stmt, _TERMINATORS):
            return


def iter_return_sites(
    target: DelegateTarget,
    program: CompiledProgram,
) -> Iterator[ReturnSite]:
    body = target.body
    if body is None:
        return
    if isinstance(body, ExpressionBody):
        expressions: Iterable[ast.expr] = (body.expression,)
    elif isinstance(body, BlockBody):
        expressions = iter_return_expressions(body.statements)
    else:
        return
    scope = target.scope
    for expression in expressions:
        yield ReturnSite(expression=expression, static_type=program.static_type(expression, scope))


def is_disallowed_return_type(
    return_type: ClassSymbol,
    well_known_types: WellKnownTypes,
    program: CompiledProgram,
) -> bool:
    # The expected result type wins over the action-result capabilities.
    if program.is_subtype(return_type, well_known_types.result):
        return False
    if program.is_subtype(return_type, well_known_types.action_result):
        return True
    return program.is_subtype(return_type, well_known_types.convert_to_action_result)


def check_return_shapes(
    target: DelegateTarget,
    invocation: Invocation,
    well_known_types: WellKnownTypes,
    program: CompiledProgram,
    report: DiagnosticSink,
) -> None:
    module = _anchor_module(target, invocation)
    for site in iter_return_sites(target, program):
        if site.static_type is None:
            continue
        if not is_disallowed_return_type(site.static_type, well_known_types, program):
            continue
        report(
            Diagnostic(
                descriptor=DO_NOT_RETURN_ACTION_RESULTS_FROM_MAP_ACTIONS,
                location=program.location(module, site.expression),
                arguments=(_callee_name(invocation),),
            )
        )
