from __future__ import annotations

import ast
from typing import Callable

from mapguard.analysis.model import (
    ClassSymbol,
    FunctionKind,
    FunctionSymbol,
    Scope,
    SymbolTable,
)

_STATICMETHOD = "staticmethod"
_CLASSMETHOD = "classmethod"
_OVERLOAD = "overload"


class ParentAnnotator(ast.NodeVisitor):
    def __init__(self) -> None:
        self.parents: dict[ast.AST, ast.AST] = {}

    def generic_visit(self, node: ast.AST) -> None:
        for child in ast.iter_child_nodes(node):
            self.parents[child] = node
            self.visit(child)


class ImportVisitor(ast.NodeVisitor):
    def __init__(self, module_name: str, table: SymbolTable, *, is_package: bool = False) -> None:
        self.module = module_name
        self.table = table
        self.is_package = is_package

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            local = alias.asname or alias.name
            self.table.imports[(self.module, local)] = alias.name
            if alias.asname is None and "." in alias.name:
                # `import a.b` binds `a` as well.
                head = alias.name.split(".")[0]
                self.table.imports.setdefault((self.module, head), head)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        if not node.module and node.level == 0:
            return
        if node.level > 0:
            parts = self.module.split(".") if self.module else []
            # A package's own name is the anchor for level-1 imports.
            level = node.level - 1 if self.is_package else node.level
            if level > len(parts):
                return
            base = parts[: len(parts) - level]
            if node.module:
                base.append(node.module)
            source = ".".join(base)
        else:
            source = node.module or ""
        for alias in node.names:
            if alias.name == "*":
                continue
            local = alias.asname or alias.name
            fqn = f"{source}.{alias.name}" if source else alias.name
            self.table.imports[(self.module, local)] = fqn


def decorator_name(node: ast.AST) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Call):
        return decorator_name(node.func)
    return None


class DeclarationVisitor(ast.NodeVisitor):
    """Collect class, function and lambda-binding declarations of one module.

    Qualified names follow the lexical nesting without ``<locals>`` markers:
    ``pkg.mod.Class.method`` and ``pkg.mod.outer.inner``.
    """

    def __init__(
        self,
        module_name: str,
        *,
        is_stub: bool,
        on_class: Callable[[ClassSymbol], None],
        on_function: Callable[[FunctionSymbol, bool], None],
    ) -> None:
        self.module = module_name
        self.is_stub = is_stub
        self.on_class = on_class
        self.on_function = on_function
        self._qual_parts: list[str] = [module_name] if module_name else []
        self._scope = Scope(module=module_name)
        self._class: ClassSymbol | None = None

    def _qualname(self, name: str) -> str:
        return ".".join([*self._qual_parts, name])

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        symbol = ClassSymbol(
            qualname=self._qualname(node.name),
            name=node.name,
            module=self.module,
            node=node,
            scope=self._scope,
            is_stub=self.is_stub,
        )
        self.on_class(symbol)
        outer_class = self._class
        self._class = symbol
        self._qual_parts.append(node.name)
        for stmt in node.body:
            self.visit(stmt)
        self._qual_parts.pop()
        self._class = outer_class

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        decorators = {decorator_name(deco) for deco in node.decorator_list}
        qualname = self._qualname(node.name)
        if self._class is not None:
            kind = FunctionKind.METHOD
        elif self._scope.function_path:
            kind = FunctionKind.LOCAL_FUNCTION
        else:
            kind = FunctionKind.METHOD
        symbol = FunctionSymbol(
            qualname=qualname,
            name=node.name,
            module=self.module,
            kind=kind,
            arguments=node.args,
            returns=node.returns,
            scope=self._scope,
            container=self._class,
            declarations=() if self.is_stub else (node,),
            is_classmethod=_CLASSMETHOD in decorators,
            is_staticmethod=_STATICMETHOD in decorators,
        )
        self.on_function(symbol, _OVERLOAD in decorators)
        outer_scope, outer_class = self._scope, self._class
        self._scope = self._scope.enter(qualname, node)
        self._class = None
        self._qual_parts.append(node.name)
        for stmt in node.body:
            self.visit(stmt)
        self._qual_parts.pop()
        self._scope, self._class = outer_scope, outer_class

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def _visit_binding(self, target: ast.AST, value: ast.AST | None) -> None:
        if self._scope.function_path:
            return
        if not isinstance(target, ast.Name) or not isinstance(value, ast.Lambda):
            return
        symbol = FunctionSymbol(
            qualname=self._qualname(target.id),
            name=target.id,
            module=self.module,
            kind=FunctionKind.LAMBDA_BINDING,
            arguments=value.args,
            returns=None,
            scope=self._scope,
            container=self._class,
            declarations=() if self.is_stub else (value,),
        )
        self.on_function(symbol, False)

    def visit_Assign(self, node: ast.Assign) -> None:
        if len(node.targets) == 1:
            self._visit_binding(node.targets[0], node.value)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self._visit_binding(node.target, node.value)

    def generic_visit(self, node: ast.AST) -> None:
        # Compound statements (if/try/with/...) can hold declarations.
        for child in ast.iter_child_nodes(node):
            if isinstance(child, (ast.stmt, ast.excepthandler, ast.match_case)):
                self.visit(child)
