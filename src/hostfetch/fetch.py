"""Caller-facing fetch: host locator in, verified content-addressed artifact out."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

from hostfetch.adapters import HostKind, adapter_for
from hostfetch.builder import FixedOutputBuilder
from hostfetch.errors import HostFetchError
from hostfetch.execution.base import ExecutionContext
from hostfetch.execution.local import SubprocessExecutionContext
from hostfetch.models import Artifact, ExpectedDigest, FetchOptions, Locator
from hostfetch.observability import StructuredLogger
from hostfetch.policy import Policy, Toolchain, default_store_dir
from hostfetch.store import ArtifactStore


def fetch(
    host_kind: HostKind | str,
    locator: Locator | str,
    expected_digest: str | ExpectedDigest,
    algorithm: str = "sha256",
    options: FetchOptions | None = None,
    *,
    store: ArtifactStore | str | Path | None = None,
    context: ExecutionContext | None = None,
    toolchain: Toolchain | None = None,
    policy: Policy | None = None,
    logger: StructuredLogger | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Artifact:
    """Fetch *locator* from *host_kind* and accept it only if it matches *expected_digest*.

    The artifact is published at ``<store>/<algorithm>-<digest>``, so two
    locators yielding identical content share one address.
    """
    options = options or FetchOptions()
    target = locator if isinstance(locator, Locator) else Locator(ref=locator)
    tools = toolchain or Toolchain.from_env()

    try:
        adapter = adapter_for(host_kind, tools)
        resolved = adapter.resolve(target, sub_path=options.sub_path)
    except HostFetchError as exc:
        raise exc.with_context(host=str(host_kind), locator=str(target))

    if isinstance(store, ArtifactStore):
        artifact_store = store
    else:
        artifact_store = ArtifactStore(store if store is not None else default_store_dir())

    builder = FixedOutputBuilder(
        context=context or SubprocessExecutionContext(policy=policy or Policy()),
        store=artifact_store,
        toolchain=tools,
        logger=logger if logger is not None else StructuredLogger(),
        sleep=sleep,
    )
    return builder.build_resolved(
        resolved,
        expected_digest,
        algorithm,
        options=options,
        host=adapter.kind.value,
        locator=str(target),
    )
