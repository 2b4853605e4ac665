"""Policy configuration, tool locations, and enforcement helpers."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from hostfetch.errors import PolicyError

NetworkMode = Literal["online", "offline"]

STORE_DIR_ENV = "HOSTFETCH_STORE_DIR"
TOOL_ENV_PREFIX = "HOSTFETCH_"


@dataclass(frozen=True, slots=True)
class Policy:
    network_mode: NetworkMode = "online"


@dataclass(frozen=True, slots=True)
class Toolchain:
    """Executables that retrieval procedures and the archive normalizer invoke."""

    bash: str = "bash"
    curl: str = "curl"
    jq: str = "jq"
    megatools: str = "megatools"
    unar: str = "unar"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Toolchain:
        """Build a toolchain honouring ``HOSTFETCH_<TOOL>`` overrides."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            bash=env.get(f"{TOOL_ENV_PREFIX}BASH", defaults.bash),
            curl=env.get(f"{TOOL_ENV_PREFIX}CURL", defaults.curl),
            jq=env.get(f"{TOOL_ENV_PREFIX}JQ", defaults.jq),
            megatools=env.get(f"{TOOL_ENV_PREFIX}MEGATOOLS", defaults.megatools),
            unar=env.get(f"{TOOL_ENV_PREFIX}UNAR", defaults.unar),
        )


def default_store_dir(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    configured = env.get(STORE_DIR_ENV)
    if configured:
        return Path(configured)
    return Path.home() / ".cache" / "hostfetch" / "store"


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled by policy.",
            hint="Switch policy.network_mode to 'online' for this operation.",
            context={"operation": operation},
        )
