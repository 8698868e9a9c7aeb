from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from mapguard.analysis.timeout_context import Deadline, deadline_clock_scope, deadline_scope
from mapguard.deadline_clock import GasMeter
from tests.program_helpers import source


@pytest.fixture(autouse=True)
def _deadline_scope_fixture():
    with deadline_scope(Deadline.from_timeout_ms(120_000)):
        with deadline_clock_scope(GasMeter(limit=100_000_000)):
            yield


@pytest.fixture
def write_tree():
    def _write(root: Path, files: dict[str, str]) -> Path:
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source(text), encoding="utf-8")
        return root

    return _write
