"""Host adapter protocol and shared helpers for building retrieval scripts."""

from __future__ import annotations

import shlex
from enum import StrEnum
from typing import Protocol

from hostfetch.execution.base import EXIT_NOT_FOUND, EXIT_TEMPFAIL
from hostfetch.models import Locator, ResolvedFetch, RetrievalProcedure
from hostfetch.policy import Toolchain

# curl: proxy/host resolution, connect, timeout, TLS handshake, empty reply, recv error
CURL_TRANSIENT_EXIT_CODES = frozenset({5, 6, 7, 28, 35, 52, 56})


class HostKind(StrEnum):
    MEGA = "mega"
    GOFILE = "gofile"
    BUZZHEAVIER = "buzzheavier"


class HostAdapter(Protocol):
    kind: HostKind
    toolchain: Toolchain

    def resolve(self, locator: Locator, *, sub_path: str | None = None) -> ResolvedFetch:
        """Translate *locator* into a retrieval procedure and output shape."""


def script_procedure(
    toolchain: Toolchain,
    script: str,
    *args: str,
    tool: str,
    description: str,
    transient_exit_codes: frozenset[int] = frozenset(),
) -> RetrievalProcedure:
    """Wrap a bash *script* taking positional *args* as a retrieval procedure."""
    return RetrievalProcedure(
        argv=(toolchain.bash, "-euo", "pipefail", "-c", script, "hostfetch", *args),
        network=True,
        not_found_exit_codes=frozenset({EXIT_NOT_FOUND}),
        transient_exit_codes=frozenset({EXIT_TEMPFAIL}) | transient_exit_codes,
        tool=tool,
        description=description,
    )


def quote(value: str) -> str:
    return shlex.quote(value)
