"""In-process execution context for testing and development.

Stands in for the downloader tools without spawning processes or touching the
network. Each handler receives the procedure and the ``$out`` path it must
populate, and returns an exit code. Handlers are looked up by
``procedure.tool`` first, then by the basename of ``argv[0]``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from hostfetch.execution.base import ExecutionResult, output_path, produced, sandbox_env
from hostfetch.models import RetrievalProcedure
from hostfetch.policy import Policy, ensure_network_allowed

Handler = Callable[[RetrievalProcedure, Path], int]

EXIT_NO_HANDLER = 127


@dataclass(slots=True)
class InProcessExecutionContext:
    name: str = "inprocess"
    handlers: dict[str, Handler] = field(default_factory=dict)
    policy: Policy = field(default_factory=Policy)
    calls: list[RetrievalProcedure] = field(default_factory=list)

    def register(self, tool: str, handler: Handler) -> None:
        self.handlers[tool] = handler

    def run(self, procedure: RetrievalProcedure, work_dir: Path) -> ExecutionResult:
        if procedure.network:
            ensure_network_allowed(policy=self.policy, operation="run")
        work_dir.mkdir(parents=True, exist_ok=True)
        sandbox_env(procedure, work_dir)
        self.calls.append(procedure)

        handler = self.handlers.get(procedure.tool)
        if handler is None and procedure.argv:
            handler = self.handlers.get(Path(procedure.argv[0]).name)
        if handler is None:
            return ExecutionResult(
                exit_code=EXIT_NO_HANDLER,
                produced_path=None,
                stderr=f"no handler for {procedure.tool or procedure.argv[:1]}",
            )

        exit_code = handler(procedure, output_path(work_dir))
        return ExecutionResult(exit_code=exit_code, produced_path=produced(work_dir))
