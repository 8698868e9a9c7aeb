from __future__ import annotations

import ast
from collections.abc import Iterator
from dataclasses import dataclass

from mapguard.analysis.invocation import Invocation
from mapguard.analysis.model import FunctionSymbol, Scope
from mapguard.analysis.program import CompiledProgram
from mapguard.analysis.timeout_context import check_deadline

DELEGATE_ARGUMENT_INDEX = 2


@dataclass(frozen=True)
class BlockBody:
    statements: tuple[ast.stmt, ...]


@dataclass(frozen=True)
class ExpressionBody:
    expression: ast.expr


Body = BlockBody | ExpressionBody


@dataclass(frozen=True)
class AnonymousFunction:
    node: ast.Lambda
    scope: Scope
    body: ExpressionBody

    @property
    def arguments(self) -> ast.arguments:
        return self.node.args

    @property
    def annotation_scope(self) -> Scope:
        return self.scope


@dataclass(frozen=True)
class MethodReference:
    symbol: FunctionSymbol
    node: ast.expr
    # None when no declaration with a body is visible (stub-only functions).
    body: Body | None

    @property
    def arguments(self) -> ast.arguments:
        return self.symbol.arguments

    @property
    def scope(self) -> Scope:
        return self.symbol.body_scope

    @property
    def annotation_scope(self) -> Scope:
        return self.symbol.scope


DelegateTarget = AnonymousFunction | MethodReference


@dataclass(frozen=True)
class DelegateCreation:
    node: ast.expr
    symbol: FunctionSymbol | None = None


def iter_delegate_creations(
    expr: ast.expr,
    scope: Scope,
    program: CompiledProgram,
) -> Iterator[DelegateCreation]:
    """Depth-first, pre-order walk yielding every delegate-creating node.

    A lambda creates a delegate; so does a load of a name or attribute that
    resolves to a function, unless it is being called on the spot.
    """
    stack: list[ast.AST] = [expr]
    called: set[int] = set()
    while stack:
        check_deadline()
        node = stack.pop()
        if isinstance(node, ast.Lambda):
            yield DelegateCreation(node=node)
            continue
        if (
            isinstance(node, (ast.Name, ast.Attribute))
            and isinstance(node.ctx, ast.Load)
            and id(node) not in called
        ):
            symbol = program.resolve_expression(node, scope)
            if isinstance(symbol, FunctionSymbol):
                yield DelegateCreation(node=node, symbol=symbol)
                continue
        if isinstance(node, ast.Call):
            called.add(id(node.func))
        stack.extend(reversed(list(ast.iter_child_nodes(node))))


def first_delegate_creation(
    expr: ast.expr,
    scope: Scope,
    program: CompiledProgram,
) -> DelegateCreation | None:
    return next(iter_delegate_creations(expr, scope, program), None)


def declared_body(symbol: FunctionSymbol) -> Body | None:
    """Body of the first declaration site, if one is visible."""
    for declaration in symbol.declarations[:1]:
        check_deadline()
        if isinstance(declaration, ast.Lambda):
            return ExpressionBody(declaration.body)
        if isinstance(declaration, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return BlockBody(tuple(declaration.body))
    return None


def resolve_delegate(
    invocation: Invocation,
    program: CompiledProgram,
) -> DelegateTarget | None:
    arguments = invocation.arguments
    if arguments is None or len(arguments) <= DELEGATE_ARGUMENT_INDEX:
        return None
    creation = first_delegate_creation(
        arguments[DELEGATE_ARGUMENT_INDEX],
        invocation.scope,
        program,
    )
    if creation is None:
        return None
    if isinstance(creation.node, ast.Lambda):
        return AnonymousFunction(
            node=creation.node,
            scope=invocation.scope.enter_lambda(creation.node),
            body=ExpressionBody(creation.node.body),
        )
    if creation.symbol is None:
        return None
    return MethodReference(
        symbol=creation.symbol,
        node=creation.node,
        body=declared_body(creation.symbol),
    )
