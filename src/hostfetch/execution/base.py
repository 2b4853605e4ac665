"""Execution Context contract consumed by the fixed-output builder."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from hostfetch.models import RetrievalProcedure

# Exit codes retrieval scripts use to classify their own failures.
EXIT_NOT_FOUND = 44
EXIT_TEMPFAIL = 75

OUTPUT_DIRNAME = "out"


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    exit_code: int
    produced_path: Path | None
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ExecutionContext(Protocol):
    name: str

    def run(self, procedure: RetrievalProcedure, work_dir: Path) -> ExecutionResult:
        """Run *procedure* inside the exclusive scratch directory *work_dir*.

        The procedure writes its output to ``$out`` (``work_dir / "out"``).
        """


def output_path(work_dir: Path) -> Path:
    return work_dir / OUTPUT_DIRNAME


def sandbox_env(procedure: RetrievalProcedure, work_dir: Path) -> dict[str, str]:
    """Return the variables every procedure sees, layered under its own env."""
    home = work_dir / "home"
    home.mkdir(parents=True, exist_ok=True)
    env = {
        "out": str(output_path(work_dir)),
        "HOME": str(home),
        "TMPDIR": str(home),
    }
    env.update(procedure.env)
    return env


def produced(work_dir: Path) -> Path | None:
    out = output_path(work_dir)
    return out if out.exists() or out.is_symlink() else None
