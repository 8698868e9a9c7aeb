"""Semantic model of one analyzed Python program.

``CompiledProgram`` indexes every class, function and import of the parsed
modules once, then answers read-only queries: symbol lookup by dotted name,
expression resolution in a lexical scope, subtype tests, and the small amount
of static type inference the checks need. Nothing is mutated after
construction, so one instance can be queried from many worker threads.
"""

from __future__ import annotations

import ast
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

from mapguard.analysis.model import (
    ClassSymbol,
    FunctionKind,
    FunctionSymbol,
    ModuleRef,
    Scope,
    SourceLocation,
    Symbol,
    SymbolTable,
)
from mapguard.analysis.visitors import DeclarationVisitor, ImportVisitor, ParentAnnotator
from mapguard.ingest import ParsedModule

logger = logging.getLogger(__name__)

_ANNOTATED = "Annotated"
_UNION_WRAPPERS = frozenset({"Optional", "Union"})
_MAX_INFERENCE_DEPTH = 8
_NESTED_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)


@dataclass(frozen=True)
class ModuleUnit:
    parsed: ParsedModule
    parents: Mapping[ast.AST, ast.AST]

    @property
    def name(self) -> str:
        return self.parsed.module_name

    @property
    def path(self) -> Path:
        return self.parsed.path

    @property
    def is_package(self) -> bool:
        return self.parsed.path.stem == "__init__"


def terminal_name(node: ast.AST) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def iter_statements(body: Iterable[ast.stmt]) -> Iterator[ast.stmt]:
    """Yield statements in source order without entering nested scopes."""
    for stmt in body:
        yield stmt
        if isinstance(stmt, _NESTED_SCOPES):
            continue
        for field_name in ("body", "orelse", "finalbody"):
            nested = getattr(stmt, field_name, None)
            if isinstance(nested, list):
                yield from iter_statements(nested)
        for handler in getattr(stmt, "handlers", ()):
            yield from iter_statements(handler.body)
        for case in getattr(stmt, "cases", ()):
            yield from iter_statements(case.body)


def all_arguments(arguments: ast.arguments) -> list[ast.arg]:
    params = [*arguments.posonlyargs, *arguments.args]
    if arguments.vararg is not None:
        params.append(arguments.vararg)
    params.extend(arguments.kwonlyargs)
    if arguments.kwarg is not None:
        params.append(arguments.kwarg)
    return params


def _bound_names(node: ast.AST) -> Iterator[str]:
    if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
        yield node.id
    elif isinstance(node, ast.NamedExpr) and isinstance(node.target, ast.Name):
        yield node.target.id
    elif isinstance(node, ast.ExceptHandler) and node.name:
        yield node.name
    elif isinstance(node, (ast.Import, ast.ImportFrom)):
        for alias in node.names:
            if alias.name != "*":
                yield alias.asname or alias.name.split(".")[0]
    elif isinstance(node, (ast.MatchAs, ast.MatchStar)) and node.name:
        yield node.name
    elif isinstance(node, ast.MatchMapping) and node.rest:
        yield node.rest


@lru_cache(maxsize=1024)
def local_bindings(node: ast.AST | None) -> frozenset[str]:
    """Variable names bound directly by a function or lambda.

    Parameters, assignment and loop targets, ``with``/``except`` aliases,
    imports and ``:=`` targets count; nested ``def``/``class`` names do not,
    they are indexed as declarations. Comprehension variables stay inside the
    comprehension and ``global``/``nonlocal`` names belong to an outer scope.
    """
    if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda)):
        return frozenset()
    names = {arg.arg for arg in all_arguments(node.args)}
    if isinstance(node, ast.Lambda):
        return frozenset(names)
    outer: set[str] = set()
    hidden: set[int] = set()
    stack: list[ast.AST] = list(reversed(node.body))
    while stack:
        current = stack.pop()
        if isinstance(current, (ast.Global, ast.Nonlocal)):
            outer.update(current.names)
            continue
        if isinstance(current, ast.comprehension):
            hidden.update(id(sub) for sub in ast.walk(current.target))
        if id(current) not in hidden:
            names.update(_bound_names(current))
        if isinstance(current, _NESTED_SCOPES):
            # Decorators, defaults and annotations still evaluate here.
            children: list[ast.AST] = list(getattr(current, "decorator_list", ()))
            if isinstance(current, ast.ClassDef):
                children.extend(current.bases)
            else:
                children.extend(current.args.defaults)
                children.extend(item for item in current.args.kw_defaults if item is not None)
        else:
            children = list(ast.iter_child_nodes(current))
        stack.extend(reversed(children))
    return frozenset(names - outer)


def _parse_string_annotation(node: ast.Constant) -> ast.expr | None:
    try:
        return ast.parse(node.value, mode="eval").body
    except SyntaxError:
        return None


class CompiledProgram:
    def __init__(self, modules: Iterable[ParsedModule]) -> None:
        units: dict[str, ModuleUnit] = {}
        for parsed in modules:
            annotator = ParentAnnotator()
            annotator.visit(parsed.tree)
            units[parsed.module_name] = ModuleUnit(
                parsed=parsed,
                parents=MappingProxyType(annotator.parents),
            )
        self._modules: Mapping[str, ModuleUnit] = MappingProxyType(units)
        self._package_prefixes = frozenset(
            ".".join(name.split(".")[:end])
            for name in units
            for end in range(1, name.count(".") + 1)
        )

        table = SymbolTable()
        classes: dict[str, ClassSymbol] = {}
        functions: dict[str, FunctionSymbol] = {}
        overload_only: set[str] = set()

        def _on_function(symbol: FunctionSymbol, is_overload: bool) -> None:
            if is_overload:
                if symbol.qualname not in functions:
                    functions[symbol.qualname] = symbol
                    overload_only.add(symbol.qualname)
                return
            functions[symbol.qualname] = symbol
            overload_only.discard(symbol.qualname)

        def _on_class(symbol: ClassSymbol) -> None:
            classes[symbol.qualname] = symbol

        for unit in units.values():
            ImportVisitor(unit.name, table, is_package=unit.is_package).visit(unit.parsed.tree)
            DeclarationVisitor(
                unit.name,
                is_stub=unit.parsed.is_stub,
                on_class=_on_class,
                on_function=_on_function,
            ).visit(unit.parsed.tree)

        # Overloads without an implementation have no body to inspect.
        for qualname in overload_only:
            functions[qualname] = replace(functions[qualname], declarations=())

        self.symbol_table = table
        self._classes: Mapping[str, ClassSymbol] = MappingProxyType(classes)
        self._functions: Mapping[str, FunctionSymbol] = MappingProxyType(functions)

        members: dict[ClassSymbol, dict[str, Symbol]] = {cls: {} for cls in classes.values()}
        for function in functions.values():
            if function.container is not None and function.container in members:
                members[function.container][function.name] = function
        for cls in classes.values():
            owner = classes.get(cls.qualname.rsplit(".", 1)[0]) if "." in cls.qualname else None
            if owner is not None and cls.node in owner.node.body:
                members[owner][cls.name] = cls
        self._members: Mapping[ClassSymbol, Mapping[str, Symbol]] = MappingProxyType(
            {cls: MappingProxyType(entries) for cls, entries in members.items()}
        )

        bases: dict[ClassSymbol, tuple[ClassSymbol, ...]] = {}
        self._bases: Mapping[ClassSymbol, tuple[ClassSymbol, ...]] = bases
        for cls in classes.values():
            bases[cls] = self._resolve_bases(cls)
        self._bases = MappingProxyType(bases)
        logger.debug(
            "indexed %d modules, %d classes, %d functions",
            len(units),
            len(classes),
            len(functions),
        )

    # -- construction helpers -------------------------------------------------

    def _resolve_bases(self, cls: ClassSymbol) -> tuple[ClassSymbol, ...]:
        resolved: list[ClassSymbol] = []
        for base in cls.node.bases:
            if isinstance(base, ast.Subscript):
                base = base.value
            symbol = self.resolve_expression(base, cls.scope)
            if isinstance(symbol, ClassSymbol) and symbol is not cls:
                resolved.append(symbol)
        return tuple(resolved)

    # -- modules --------------------------------------------------------------

    @property
    def modules(self) -> tuple[ModuleUnit, ...]:
        return tuple(self._modules.values())

    def module(self, name: str) -> ModuleUnit | None:
        return self._modules.get(name)

    def location(self, module: str, node: ast.AST) -> SourceLocation:
        unit = self._modules.get(module)
        path = unit.path if unit is not None else Path(module.replace(".", "/"))
        return SourceLocation.from_node(path, node)

    # -- symbol lookup ----------------------------------------------------------

    def get_type_by_name(self, qualname: str) -> ClassSymbol | None:
        symbol = self.lookup_qualified_name(qualname)
        return symbol if isinstance(symbol, ClassSymbol) else None

    def get_function_by_name(self, qualname: str) -> FunctionSymbol | None:
        symbol = self.lookup_qualified_name(qualname)
        return symbol if isinstance(symbol, FunctionSymbol) else None

    def lookup_qualified_name(
        self,
        qualname: str,
        _seen: frozenset[str] = frozenset(),
    ) -> Symbol | None:
        if qualname in self._classes:
            return self._classes[qualname]
        if qualname in self._functions:
            return self._functions[qualname]
        if qualname in self._modules or qualname in self._package_prefixes:
            return ModuleRef(qualname)
        if "." not in qualname:
            return None
        owner_name, attr = qualname.rsplit(".", 1)
        owner = self.lookup_qualified_name(owner_name, _seen)
        if isinstance(owner, ModuleRef):
            # Follow re-exports such as `from .builder import X` in a package.
            target = self.symbol_table.imports.get((owner.name, attr))
            if target is None or target in _seen:
                return None
            return self.lookup_qualified_name(target, _seen | {qualname})
        if owner is None:
            return None
        return self.member(owner, attr)

    def member(self, owner: Symbol, attr: str) -> Symbol | None:
        if isinstance(owner, ModuleRef):
            return self.lookup_qualified_name(f"{owner.name}.{attr}")
        if isinstance(owner, ClassSymbol):
            for cls in self.iter_mro(owner):
                found = self._members.get(cls, {}).get(attr)
                if found is not None:
                    return found
        return None

    def _local_declaration(self, name: str, scope: Scope) -> Symbol | None:
        if isinstance(scope.node, ast.Lambda) or not scope.function_path:
            return None
        candidate = f"{scope.function_path[-1]}.{name}"
        return self._classes.get(candidate) or self._functions.get(candidate)

    def resolve_name(self, name: str, scope: Scope) -> Symbol | None:
        """Resolve ``name`` the way Python would at run time.

        Enclosing functions are searched innermost first. A level that binds
        ``name`` as a plain variable hides every outer declaration, so the name
        is unresolved unless that level also declares it with ``def``/``class``.
        """
        current: Scope | None = scope
        while current is not None and current.nodes:
            local = self._local_declaration(name, current)
            if local is not None:
                return local
            if name in local_bindings(current.node):
                return None
            current = current.parent()
        global_name = f"{scope.module}.{name}" if scope.module else name
        found = self._classes.get(global_name) or self._functions.get(global_name)
        if found is not None:
            return found
        imported = self.symbol_table.imports.get((scope.module, name))
        if imported is not None:
            return self.lookup_qualified_name(imported)
        return None

    def resolve_expression(self, expr: ast.AST, scope: Scope) -> Symbol | None:
        if isinstance(expr, ast.Name):
            return self.resolve_name(expr.id, scope)
        if isinstance(expr, ast.Attribute):
            owner = self.resolve_expression(expr.value, scope)
            if owner is None:
                return None
            return self.member(owner, expr.attr)
        return None

    # -- type relations ---------------------------------------------------------

    def iter_mro(self, cls: ClassSymbol) -> Iterator[ClassSymbol]:
        seen: set[ClassSymbol] = set()
        stack = [cls]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            yield current
            stack.extend(reversed(self._bases.get(current, ())))

    def is_subtype(self, cls: ClassSymbol, base: ClassSymbol) -> bool:
        return any(candidate is base for candidate in self.iter_mro(cls))

    def implements(self, cls: ClassSymbol, capability: ClassSymbol) -> bool:
        return cls is not capability and self.is_subtype(cls, capability)

    # -- static types ---------------------------------------------------------

    def annotation_type(self, annotation: ast.AST | None, scope: Scope) -> ClassSymbol | None:
        if annotation is None:
            return None
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            return self.annotation_type(_parse_string_annotation(annotation), scope)
        if isinstance(annotation, ast.Subscript):
            if terminal_name(annotation.value) == _ANNOTATED:
                inner = annotation.slice
                if isinstance(inner, ast.Tuple) and inner.elts:
                    inner = inner.elts[0]
                return self.annotation_type(inner, scope)
            annotation = annotation.value
        symbol = self.resolve_expression(annotation, scope)
        return symbol if isinstance(symbol, ClassSymbol) else None

    def iter_annotated_metadata(
        self,
        annotation: ast.AST | None,
        *,
        anchor: ast.AST | None = None,
    ) -> Iterator[tuple[ast.expr, ast.AST]]:
        """Yield ``(metadata, location_node)`` for every ``Annotated`` extra.

        Metadata parsed out of a string annotation reports the string literal
        as its location.
        """
        if annotation is None:
            return
        if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
            parsed = _parse_string_annotation(annotation)
            yield from self.iter_annotated_metadata(parsed, anchor=anchor or annotation)
            return
        if isinstance(annotation, ast.BinOp) and isinstance(annotation.op, ast.BitOr):
            yield from self.iter_annotated_metadata(annotation.left, anchor=anchor)
            yield from self.iter_annotated_metadata(annotation.right, anchor=anchor)
            return
        if not isinstance(annotation, ast.Subscript):
            return
        wrapper = terminal_name(annotation.value)
        elements = (
            list(annotation.slice.elts)
            if isinstance(annotation.slice, ast.Tuple)
            else [annotation.slice]
        )
        if wrapper == _ANNOTATED and elements:
            yield from self.iter_annotated_metadata(elements[0], anchor=anchor)
            for metadata in elements[1:]:
                yield metadata, anchor or metadata
        elif wrapper in _UNION_WRAPPERS:
            for element in elements:
                yield from self.iter_annotated_metadata(element, anchor=anchor)

    def metadata_type(self, metadata: ast.expr, scope: Scope) -> ClassSymbol | None:
        target = metadata.func if isinstance(metadata, ast.Call) else metadata
        symbol = self.resolve_expression(target, scope)
        return symbol if isinstance(symbol, ClassSymbol) else None

    def function_return_type(self, function: FunctionSymbol, _depth: int = 0) -> ClassSymbol | None:
        if function.returns is not None:
            return self.annotation_type(function.returns, function.scope)
        if function.kind is FunctionKind.LAMBDA_BINDING and function.declarations:
            lambda_node = function.declarations[0]
            if isinstance(lambda_node, ast.Lambda):
                return self.static_type(
                    lambda_node.body,
                    function.scope.enter_lambda(lambda_node),
                    _depth + 1,
                )
        return None

    def static_type(self, expr: ast.AST, scope: Scope, _depth: int = 0) -> ClassSymbol | None:
        """Best-effort static type of ``expr``; ``None`` means unknown."""
        if _depth > _MAX_INFERENCE_DEPTH:
            return None
        if isinstance(expr, (ast.Await, ast.NamedExpr)):
            return self.static_type(expr.value, scope, _depth + 1)
        if isinstance(expr, ast.IfExp):
            body = self.static_type(expr.body, scope, _depth + 1)
            orelse = self.static_type(expr.orelse, scope, _depth + 1)
            return body if body is orelse else None
        if isinstance(expr, ast.Call):
            return self._call_result_type(expr, scope, _depth)
        if isinstance(expr, ast.Name):
            return self._local_type(expr.id, scope, _depth)
        return None

    def _call_result_type(self, call: ast.Call, scope: Scope, depth: int) -> ClassSymbol | None:
        callee = self.resolve_expression(call.func, scope)
        if callee is None and isinstance(call.func, ast.Attribute):
            receiver = self.static_type(call.func.value, scope, depth + 1)
            if receiver is not None:
                callee = self.member(receiver, call.func.attr)
        if isinstance(callee, ClassSymbol):
            return callee
        if isinstance(callee, FunctionSymbol):
            return self.function_return_type(callee, depth + 1)
        return None

    def _local_type(self, name: str, scope: Scope, depth: int) -> ClassSymbol | None:
        current: Scope | None = scope
        while current is not None and current.nodes:
            if self._local_declaration(name, current) is not None:
                return None
            if name in local_bindings(current.node):
                return self._binding_type(name, current, depth)
            current = current.parent()
        return None

    def _binding_type(self, name: str, scope: Scope, depth: int) -> ClassSymbol | None:
        node = scope.node
        if node is None:
            return None
        binding: tuple[str, ast.AST | None] | None = None
        for arg in all_arguments(node.args):
            if arg.arg == name:
                binding = ("annotation", arg.annotation)
        if not isinstance(node, ast.Lambda):
            for stmt in iter_statements(node.body):
                if (
                    isinstance(stmt, ast.Assign)
                    and len(stmt.targets) == 1
                    and isinstance(stmt.targets[0], ast.Name)
                    and stmt.targets[0].id == name
                ):
                    binding = ("value", stmt.value)
                elif (
                    isinstance(stmt, ast.AnnAssign)
                    and isinstance(stmt.target, ast.Name)
                    and stmt.target.id == name
                ):
                    binding = ("annotation", stmt.annotation)
        if binding is None:
            return None
        kind, value = binding
        if kind == "annotation":
            return self.annotation_type(value, scope)
        return self.static_type(value, scope, depth + 1)

    # -- invocation sites -------------------------------------------------------

    def scope_for(self, unit: ModuleUnit, node: ast.AST) -> Scope:
        """Lexical scope in effect at ``node``."""
        chain: list[ast.AST] = []
        child = node
        parent = unit.parents.get(child)
        while parent is not None:
            if isinstance(parent, (ast.FunctionDef, ast.AsyncFunctionDef)):
                if any(child is stmt for stmt in parent.body):
                    chain.append(parent)
            elif isinstance(parent, ast.Lambda):
                if child is parent.body:
                    chain.append(parent)
            elif isinstance(parent, ast.ClassDef):
                if any(child is stmt for stmt in parent.body):
                    chain.append(parent)
            child = parent
            parent = unit.parents.get(child)
        scope = Scope(module=unit.name)
        parts = [unit.name] if unit.name else []
        for scope_node in reversed(chain):
            if isinstance(scope_node, ast.ClassDef):
                parts.append(scope_node.name)
            elif isinstance(scope_node, ast.Lambda):
                scope = scope.enter_lambda(scope_node)
            else:
                parts.append(scope_node.name)
                scope = scope.enter(".".join(parts), scope_node)
        return scope

    def iter_calls(self) -> Iterator[tuple[ModuleUnit, ast.Call]]:
        for unit in self._modules.values():
            for node in ast.walk(unit.parsed.tree):
                if isinstance(node, ast.Call):
                    yield unit, node
