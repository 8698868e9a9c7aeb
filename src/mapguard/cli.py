from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer

from mapguard.analysis import MapActionAnalyzer, WellKnownTypeNames, analyze_paths
from mapguard.analysis.timeout_context import Deadline
from mapguard.config import (
    analysis_defaults,
    exclude_dir_list,
    fail_on_diagnostics as fail_on_diagnostics_setting,
    merge_payload,
    proof_mode_enabled,
    stub_path_list,
    timeout_ms as timeout_ms_setting,
    well_known_defaults,
    worker_count,
)
from mapguard.exceptions import NeverThrown
from mapguard.ingest import IngestConfig
from mapguard.invariants import proof_mode_scope
from mapguard.schema import AnalysisResponseDTO, RuleDTO

app = typer.Typer(add_completion=False)

EXIT_DIAGNOSTICS = 1
EXIT_CANCELLED = 2
EXIT_INVARIANT = 3


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _resolve_paths(root: Path, values: List[Path]) -> list[Path]:
    return [value if value.is_absolute() else root / value for value in values]


@app.command("check")
def check(
    paths: List[Path] = typer.Argument(None),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    stubs: Optional[List[Path]] = typer.Option(
        None, "--stubs", help="Directories holding .pyi stubs."
    ),
    workers: Optional[int] = typer.Option(None, "--workers", min=1),
    timeout_ms: Optional[int] = typer.Option(
        None, "--timeout-ms", min=0, help="Deadline for the pass; 0 disables it."
    ),
    json_output: bool = typer.Option(False, "--json"),
    fail_on_diagnostics: Optional[bool] = typer.Option(
        None, "--fail-on-diagnostics/--no-fail-on-diagnostics"
    ),
    proof_mode: Optional[bool] = typer.Option(
        None,
        "--proof-mode/--no-proof-mode",
        help="Treat missing framework types as an invariant failure.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Report Map action diagnostics for PATHS (default: the root)."""
    _configure_logging(verbose)
    section = merge_payload(
        {
            "stub_paths": [str(item) for item in stubs] if stubs else None,
            "workers": workers,
            "timeout_ms": timeout_ms,
            "fail_on_diagnostics": fail_on_diagnostics,
            "proof_mode": proof_mode,
        },
        analysis_defaults(root=root, config_path=config),
    )
    names = WellKnownTypeNames.from_section(well_known_defaults(root=root, config_path=config))
    stub_paths = _resolve_paths(root, [Path(item) for item in stub_path_list(section)])
    budget = timeout_ms_setting(section)
    try:
        with proof_mode_scope(proof_mode_enabled(section)):
            result = analyze_paths(
                _resolve_paths(root, list(paths or [])) or [root],
                config=IngestConfig(exclude_dirs=set(exclude_dir_list(section))),
                stub_paths=stub_paths,
                analyzer=MapActionAnalyzer(names),
                workers=worker_count(section),
                deadline=Deadline.from_timeout_ms(budget) if budget > 0 else None,
            )
    except NeverThrown as exc:
        typer.echo(f"Invariant violated: {json.dumps(exc.marker_payload_dict)}", err=True)
        raise typer.Exit(code=EXIT_INVARIANT)
    if json_output:
        typer.echo(AnalysisResponseDTO.from_result(result).model_dump_json(indent=2))
    else:
        for diagnostic in result.diagnostics:
            typer.echo(diagnostic.render())
        if not result.enabled:
            typer.echo("Map action analysis disabled: framework types not found.", err=True)
        if not result.completed:
            typer.echo("Analysis stopped before completion.", err=True)
    if not result.completed:
        raise typer.Exit(code=EXIT_CANCELLED)
    if fail_on_diagnostics_setting(section) and result.diagnostics:
        raise typer.Exit(code=EXIT_DIAGNOSTICS)


@app.command("rules")
def rules(json_output: bool = typer.Option(False, "--json")) -> None:
    """List the diagnostics this analyzer can report."""
    descriptors = MapActionAnalyzer.supported_diagnostics
    if json_output:
        payload = [RuleDTO.from_descriptor(item).model_dump() for item in descriptors]
        typer.echo(json.dumps(payload, indent=2))
        return
    for descriptor in descriptors:
        typer.echo(
            f"{descriptor.id} {descriptor.severity.value} [{descriptor.category}] "
            f"{descriptor.title}"
        )
