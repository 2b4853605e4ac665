"""Subprocess execution of retrieval procedures on the local host.

Only a fixed set of impure variables (proxy settings, CA bundles, ``PATH``)
leaks from the caller's environment into the procedure; everything else comes
from :func:`hostfetch.execution.base.sandbox_env` and the procedure itself.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from hostfetch.errors import ValidationError
from hostfetch.execution.base import EXIT_TEMPFAIL, ExecutionResult, produced, sandbox_env
from hostfetch.models import RetrievalProcedure
from hostfetch.policy import Policy, ensure_network_allowed

IMPURE_ENV_VARS = (
    "PATH",
    "http_proxy",
    "https_proxy",
    "ftp_proxy",
    "all_proxy",
    "no_proxy",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "NO_PROXY",
    "SSL_CERT_FILE",
    "NIX_SSL_CERT_FILE",
    "CURL_CA_BUNDLE",
)


@dataclass(slots=True)
class SubprocessExecutionContext:
    name: str = "subprocess"
    policy: Policy = field(default_factory=Policy)
    timeout: float | None = None
    impure_env_vars: tuple[str, ...] = IMPURE_ENV_VARS

    def run(self, procedure: RetrievalProcedure, work_dir: Path) -> ExecutionResult:
        if procedure.network:
            ensure_network_allowed(policy=self.policy, operation="run")
        work_dir.mkdir(parents=True, exist_ok=True)

        env = {key: os.environ[key] for key in self.impure_env_vars if key in os.environ}
        env.update(sandbox_env(procedure, work_dir))

        try:
            completed = subprocess.run(
                list(procedure.argv),
                cwd=str(work_dir),
                env=env,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ValidationError(
                "Retrieval tool is not installed.",
                hint="Install the tool or point the toolchain at it via HOSTFETCH_<TOOL>.",
                context={"backend": self.name, "tool": procedure.argv[0]},
            ) from exc
        except subprocess.TimeoutExpired as exc:
            return ExecutionResult(
                exit_code=EXIT_TEMPFAIL,
                produced_path=None,
                stderr=f"timed out after {exc.timeout}s",
            )

        return ExecutionResult(
            exit_code=completed.returncode,
            produced_path=produced(work_dir),
            stdout=completed.stdout[-2000:] if completed.stdout else "",
            stderr=completed.stderr[-2000:] if completed.stderr else "",
        )
