from __future__ import annotations

import ast
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".py"
STUB_SUFFIX = ".pyi"


def _default_deadline() -> None:
    return None


@dataclass(frozen=True)
class ParseFailureWitness:
    path: Path
    stage: str
    error: str


@dataclass(frozen=True)
class SourceFile:
    root: Path
    path: Path

    @property
    def is_stub(self) -> bool:
        return self.path.suffix == STUB_SUFFIX


@dataclass(frozen=True)
class ParsedModule:
    path: Path
    module_name: str
    tree: ast.Module
    is_stub: bool = False


@dataclass(frozen=True)
class IngestResult:
    modules: tuple[ParsedModule, ...]
    parse_failures: tuple[ParseFailureWitness, ...] = ()


@dataclass
class IngestConfig:
    exclude_dirs: set[str] = field(default_factory=set)

    def is_ignored_path(self, path: Path) -> bool:
        parts = set(path.parts)
        return bool(self.exclude_dirs & parts)


def module_name(path: Path, root: Path | None = None) -> str:
    rel = path.with_suffix("")
    if root is not None:
        try:
            rel = rel.relative_to(root)
        except ValueError:
            pass
    parts = list(rel.parts)
    if parts and parts[0] == "src":
        parts = parts[1:]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def iter_python_paths(
    paths: Iterable[str | Path],
    *,
    config: IngestConfig,
    suffixes: tuple[str, ...] = (SOURCE_SUFFIX, STUB_SUFFIX),
    check_deadline: Callable[[], None] = _default_deadline,
) -> list[SourceFile]:
    """Expand input paths to python files, pruning ignored directories early."""
    check_deadline()
    out: list[SourceFile] = []
    for p in paths:
        check_deadline()
        path = Path(p)
        if path.is_dir():
            for root, dirnames, filenames in os.walk(path, topdown=True):
                check_deadline()
                if config.exclude_dirs:
                    dirnames[:] = [d for d in dirnames if d not in config.exclude_dirs]
                dirnames[:] = sorted(dirnames)
                for filename in sorted(filenames):
                    if not filename.endswith(suffixes):
                        continue
                    candidate = Path(root) / filename
                    if config.is_ignored_path(candidate.relative_to(path)):
                        continue
                    out.append(SourceFile(root=path, path=candidate))
        else:
            if config.is_ignored_path(path):
                continue
            if path.suffix not in suffixes:
                continue
            out.append(SourceFile(root=path.parent, path=path))
    return sorted(out, key=lambda item: str(item.path))


def parse_source(
    name: str,
    source: str,
    *,
    path: Path | None = None,
    is_stub: bool = False,
) -> ParsedModule:
    """Parse in-memory source as a module; raises SyntaxError on bad input."""
    filename = path if path is not None else Path(name.replace(".", "/") + SOURCE_SUFFIX)
    tree = ast.parse(source, filename=str(filename))
    return ParsedModule(path=filename, module_name=name, tree=tree, is_stub=is_stub)


def parse_source_file(source_file: SourceFile) -> ParsedModule | ParseFailureWitness:
    path = source_file.path
    try:
        source = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return ParseFailureWitness(path=path, stage="read", error=str(exc))
    try:
        return parse_source(
            module_name(path, source_file.root),
            source,
            path=path,
            is_stub=source_file.is_stub,
        )
    except SyntaxError as exc:
        return ParseFailureWitness(path=path, stage="parse", error=str(exc))


def ingest_paths(
    paths: Iterable[str | Path],
    *,
    config: IngestConfig,
    stub_paths: Iterable[str | Path] = (),
    check_deadline: Callable[[], None] = _default_deadline,
) -> IngestResult:
    """Parse every module under ``paths`` plus stub-only modules under ``stub_paths``.

    Within the analyzed roots a ``.py`` module shadows a ``.pyi`` of the same
    dotted name. Modules found under ``stub_paths`` are added only when no
    analyzed module already claims their name.
    """
    modules: dict[str, ParsedModule] = {}
    failures: list[ParseFailureWitness] = []

    def _take(source_files: list[SourceFile], *, shadow_existing: bool) -> None:
        for source_file in source_files:
            check_deadline()
            parsed = parse_source_file(source_file)
            if isinstance(parsed, ParseFailureWitness):
                logger.warning(
                    "skipping %s: %s failed: %s", parsed.path, parsed.stage, parsed.error
                )
                failures.append(parsed)
                continue
            existing = modules.get(parsed.module_name)
            if existing is not None:
                if not shadow_existing:
                    continue
                if not existing.is_stub:
                    continue
            modules[parsed.module_name] = parsed

    _take(
        iter_python_paths(paths, config=config, check_deadline=check_deadline),
        shadow_existing=True,
    )
    _take(
        iter_python_paths(stub_paths, config=config, check_deadline=check_deadline),
        shadow_existing=False,
    )
    logger.debug("ingested %d modules (%d parse failures)", len(modules), len(failures))
    return IngestResult(
        modules=tuple(modules[name] for name in sorted(modules)),
        parse_failures=tuple(failures),
    )
