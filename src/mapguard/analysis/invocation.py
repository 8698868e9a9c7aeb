from __future__ import annotations

import ast
from dataclasses import dataclass

from mapguard.analysis.model import ClassSymbol, FunctionSymbol, Scope, SourceLocation
from mapguard.analysis.program import CompiledProgram, ModuleUnit
from mapguard.analysis.well_known_types import WellKnownTypes

MAP_PREFIX = "Map"
MAP_ACTION_ARITY = 3


@dataclass(frozen=True)
class Invocation:
    unit: ModuleUnit
    node: ast.Call
    scope: Scope
    callee: FunctionSymbol | None
    # None when `*args`/`**kwargs` unpacking hides the arity.
    arguments: tuple[ast.expr, ...] | None

    @property
    def module(self) -> str:
        return self.unit.name

    @property
    def location(self) -> SourceLocation:
        return SourceLocation.from_node(self.unit.path, self.node)

    @classmethod
    def from_call(
        cls,
        program: CompiledProgram,
        unit: ModuleUnit,
        call: ast.Call,
    ) -> "Invocation":
        scope = program.scope_for(unit, call)
        callee = program.resolve_expression(call.func, scope)
        bound = False
        if callee is None and isinstance(call.func, ast.Attribute):
            receiver = program.static_type(call.func.value, scope)
            if receiver is not None:
                callee = program.member(receiver, call.func.attr)
                bound = True
        function = callee if isinstance(callee, FunctionSymbol) else None
        return cls(
            unit=unit,
            node=call,
            scope=scope,
            callee=function,
            arguments=ordered_arguments(call, function, bound=bound),
        )


def _implicit_first_parameter(callee: FunctionSymbol, *, bound: bool) -> bool:
    if callee.is_classmethod:
        return True
    return bound and not callee.is_staticmethod


def ordered_arguments(
    call: ast.Call,
    callee: FunctionSymbol | None,
    *,
    bound: bool = False,
) -> tuple[ast.expr, ...] | None:
    """Arguments in parameter order: positional first, then keywords.

    Keywords follow the callee's declared parameter order; names the callee
    does not declare keep their source order at the end.
    """
    if any(isinstance(arg, ast.Starred) for arg in call.args):
        return None
    if any(keyword.arg is None for keyword in call.keywords):
        return None
    ordered: list[ast.expr] = list(call.args)
    if not call.keywords:
        return tuple(ordered)
    names: tuple[str, ...] = ()
    if callee is not None:
        names = callee.parameter_names
        if names and _implicit_first_parameter(callee, bound=bound):
            names = names[1:]
    rank = {name: index for index, name in enumerate(names)}
    keywords = sorted(
        enumerate(call.keywords),
        key=lambda item: (rank.get(item[1].arg or "", len(rank)), item[0]),
    )
    ordered.extend(keyword.value for _, keyword in keywords)
    return tuple(ordered)


def is_map_action_invocation(
    invocation: Invocation,
    well_known_types: WellKnownTypes,
) -> bool:
    callee = invocation.callee
    if callee is None:
        return False
    if not callee.name.startswith(MAP_PREFIX):
        return False
    container: ClassSymbol | None = callee.container
    if container is not well_known_types.route_extensions:
        return False
    return invocation.arguments is not None and len(invocation.arguments) == MAP_ACTION_ARITY
