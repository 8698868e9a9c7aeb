from __future__ import annotations

import ast
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


@dataclass
class SymbolTable:
    imports: dict[tuple[str, str], str] = field(default_factory=dict)
    # Map: (module_name, local_name) -> fully_qualified_name


@dataclass(frozen=True)
class ModuleRef:
    name: str


@dataclass(frozen=True)
class Scope:
    """Lexical position used for name lookup.

    ``function_path`` lists the qualified names of the enclosing functions,
    outermost first. ``nodes`` holds the enclosing function and lambda nodes
    in the same order; a function without a visible body contributes ``None``.
    """

    module: str
    function_path: tuple[str, ...] = ()
    nodes: tuple[ast.AST | None, ...] = ()

    @property
    def node(self) -> ast.AST | None:
        """Innermost function or lambda whose bindings are visible."""
        return self.nodes[-1] if self.nodes else None

    def enter(self, qualname: str, node: ast.AST | None) -> "Scope":
        return Scope(
            module=self.module,
            function_path=(*self.function_path, qualname),
            nodes=(*self.nodes, node),
        )

    def enter_lambda(self, node: ast.Lambda) -> "Scope":
        return Scope(
            module=self.module,
            function_path=self.function_path,
            nodes=(*self.nodes, node),
        )

    def parent(self) -> "Scope | None":
        """Scope of the enclosing function or lambda; ``None`` at module level."""
        if not self.nodes:
            return None
        if isinstance(self.nodes[-1], ast.Lambda):
            return Scope(self.module, self.function_path, self.nodes[:-1])
        return Scope(self.module, self.function_path[:-1], self.nodes[:-1])


# Symbols compare by identity: one object exists per declaration in a program.
@dataclass(frozen=True, eq=False)
class ClassSymbol:
    qualname: str
    name: str
    module: str
    node: ast.ClassDef
    scope: Scope
    is_stub: bool = False

    def __repr__(self) -> str:
        return f"ClassSymbol({self.qualname!r})"


class FunctionKind(Enum):
    METHOD = "method"
    LOCAL_FUNCTION = "local_function"
    LAMBDA_BINDING = "lambda_binding"


@dataclass(frozen=True, eq=False)
class FunctionSymbol:
    qualname: str
    name: str
    module: str
    kind: FunctionKind
    arguments: ast.arguments
    returns: ast.expr | None
    scope: Scope
    container: ClassSymbol | None = None
    declarations: tuple[ast.AST, ...] = ()
    is_classmethod: bool = False
    is_staticmethod: bool = False

    @property
    def parameter_names(self) -> tuple[str, ...]:
        args = self.arguments
        return tuple(arg.arg for arg in [*args.posonlyargs, *args.args, *args.kwonlyargs])

    @property
    def body_scope(self) -> Scope:
        node = self.declarations[0] if self.declarations else None
        return self.scope.enter(self.qualname, node)

    def __repr__(self) -> str:
        return f"FunctionSymbol({self.qualname!r})"


Symbol = ClassSymbol | FunctionSymbol | ModuleRef


@dataclass(frozen=True)
class SourceLocation:
    path: Path
    line: int
    column: int
    end_line: int | None = None
    end_column: int | None = None

    @classmethod
    def from_node(cls, path: Path, node: ast.AST) -> "SourceLocation":
        return cls(
            path=path,
            line=getattr(node, "lineno", 0),
            column=getattr(node, "col_offset", 0),
            end_line=getattr(node, "end_lineno", None),
            end_column=getattr(node, "end_col_offset", None),
        )

    def render(self) -> str:
        return f"{self.path}:{self.line}:{self.column + 1}"
