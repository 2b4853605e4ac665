"""Fixed-output fetch builder: run, normalize, hash, verify, publish.

The declared digest is the only accept/reject criterion. Retrieval output is
normalized (unwrapped, unpacked, pruned) before hashing, since the declared
digest covers the normalized result. Retries are opt-in and each attempt starts
from a fresh scratch directory; only errors classified as retryable are
retried, so a digest mismatch or a configuration error fails immediately.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from hostfetch.archive import coerce_shape, extract, select_sub_path, unwrap_single
from hostfetch.digest import digest, parse_expected, verify
from hostfetch.errors import (
    DigestMismatch,
    HostFetchError,
    HostUnavailable,
    LocatorNotFound,
    RetrievalFailed,
)
from hostfetch.execution.base import ExecutionContext, ExecutionResult
from hostfetch.models import (
    Artifact,
    ExpectedDigest,
    FetchOptions,
    OutputShape,
    ResolvedFetch,
    RetrievalProcedure,
)
from hostfetch.observability import StructuredLogger
from hostfetch.policy import Toolchain
from hostfetch.store import ArtifactStore


@dataclass(slots=True)
class FixedOutputBuilder:
    context: ExecutionContext
    store: ArtifactStore
    toolchain: Toolchain = field(default_factory=Toolchain)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    sleep: Callable[[float], None] = time.sleep

    def build(
        self,
        procedure: RetrievalProcedure,
        expected_digest: str | ExpectedDigest,
        algorithm: str = "sha256",
        shape: OutputShape = "auto",
        *,
        options: FetchOptions | None = None,
        host: str = "",
        locator: str = "",
    ) -> Artifact:
        """Run *procedure* and publish its output if it matches *expected_digest*."""
        options = options or FetchOptions()
        resolved = ResolvedFetch(procedure=procedure, shape=shape, sub_path=options.sub_path)
        return self.build_resolved(
            resolved,
            expected_digest,
            algorithm,
            options=options,
            host=host,
            locator=locator,
        )

    def build_resolved(
        self,
        resolved: ResolvedFetch,
        expected_digest: str | ExpectedDigest,
        algorithm: str = "sha256",
        *,
        options: FetchOptions | None = None,
        host: str = "",
        locator: str = "",
    ) -> Artifact:
        options = options or FetchOptions()
        label = locator or resolved.procedure.description
        try:
            expected = (
                expected_digest
                if isinstance(expected_digest, ExpectedDigest)
                else parse_expected(expected_digest, algorithm)
            )
        except HostFetchError as exc:
            raise exc.with_context(host=host, locator=label)

        attempts = options.retries + 1
        for attempt in range(1, attempts + 1):
            self._log("attempt", host, label, attempt, f"Attempt {attempt} of {attempts}.")
            try:
                artifact = self._attempt(resolved, expected, options, host=host, locator=label)
            except HostFetchError as exc:
                exc.with_context(host=host, locator=label, attempt=f"{attempt}/{attempts}")
                self._log(
                    "attempt",
                    host,
                    label,
                    attempt,
                    exc.message,
                    level="error",
                    extra={"code": exc.code, "retryable": exc.retryable},
                )
                if not exc.retryable or attempt == attempts:
                    raise
                delay = options.backoff * (2 ** (attempt - 1))
                self._log("retry", host, label, attempt, f"Retrying in {delay:g}s.", level="warning")
                if delay:
                    self.sleep(delay)
                continue
            self._log(
                "publish",
                host,
                label,
                attempt,
                "Artifact published.",
                extra={"address": artifact.address, "path": str(artifact.path)},
            )
            return artifact
        raise AssertionError("unreachable")

    def _attempt(
        self,
        resolved: ResolvedFetch,
        expected: ExpectedDigest,
        options: FetchOptions,
        *,
        host: str,
        locator: str,
    ) -> Artifact:
        with self.store.scratch() as work_dir:
            result = self.context.run(resolved.procedure, work_dir)
            if not result.ok:
                raise _classify_failure(result, resolved.procedure)
            if result.produced_path is None:
                raise RetrievalFailed(
                    "Retrieval finished without producing $out.",
                    hint="The retrieval command must write its output to $out.",
                    context={"procedure": resolved.procedure.description},
                )
            try:
                path, name = self._normalize(
                    result.produced_path, resolved, options, work_dir, host=host, locator=locator
                )
                actual = digest(path, expected.algorithm)
            except OSError as exc:
                raise RetrievalFailed(
                    "Fetched content could not be read.",
                    context={"path": str(exc.filename or ""), "error": exc.strerror or str(exc)},
                ) from exc

            self._log(
                "digest",
                host,
                locator,
                None,
                "Digest computed.",
                extra={"algorithm": expected.algorithm, "actual": actual},
            )
            if not verify(actual, expected):
                raise DigestMismatch(
                    "Fetched content does not match the declared digest.",
                    expected=expected.value,
                    actual=actual,
                    hint="Correct the declared digest or the locator after checking the content.",
                    context={"algorithm": expected.algorithm},
                )
            return self.store.publish(path, expected, name=name, host=host, locator=locator)

    def _normalize(
        self,
        produced_path: Path,
        resolved: ResolvedFetch,
        options: FetchOptions,
        work_dir: Path,
        *,
        host: str,
        locator: str,
    ) -> tuple[Path, str]:
        """Reduce the raw retrieval output to the entry the digest covers.

        A folder is pruned to ``sub_path`` before unpacking, so an archive can
        be picked out of a share. A fetched file can only be pruned after it
        has been unpacked.
        """
        path = unwrap_single(produced_path) if resolved.unwrap else produced_path
        path, fetched_shape = coerce_shape(path, resolved.shape)
        name = options.rename_to or resolved.name or path.name

        sub_path = resolved.sub_path
        if sub_path and fetched_shape == "tree":
            path = select_sub_path(path, sub_path)
            sub_path = None
            if not options.rename_to:
                name = path.name
        if options.unpack:
            self._log("unpack", host, locator, None, f"Unpacking {path.name}.")
            path = extract(
                path,
                work_dir / "unpacked",
                collapse=options.collapse,
                toolchain=self.toolchain,
            )
        if sub_path:
            path = select_sub_path(path, sub_path)
            if not options.rename_to and not options.unpack:
                name = path.name
        return path, name

    def _log(
        self,
        operation: str,
        host: str,
        locator: str,
        attempt: int | None,
        message: str,
        *,
        level: str = "info",
        extra: dict[str, object] | None = None,
    ) -> None:
        self.logger.log(
            operation=operation,
            host=host or None,
            locator=locator or None,
            attempt=attempt,
            message=message,
            level=level,
            extra=extra,
        )


def _classify_failure(result: ExecutionResult, procedure: RetrievalProcedure) -> RetrievalFailed:
    context = {
        "procedure": procedure.description,
        "returncode": str(result.exit_code),
        "stderr": result.stderr[-2000:] if result.stderr else "",
    }
    if result.exit_code in procedure.not_found_exit_codes:
        return LocatorNotFound("Host reports no such resource.", context=context)
    if result.exit_code in procedure.transient_exit_codes:
        return HostUnavailable(
            "Host or network is temporarily unavailable.",
            hint="Retry later or configure retries.",
            context=context,
        )
    return RetrievalFailed("Retrieval command failed.", context=context)


def build(
    procedure: RetrievalProcedure,
    expected_digest: str | ExpectedDigest,
    algorithm: str = "sha256",
    shape: OutputShape = "auto",
    *,
    context: ExecutionContext,
    store: ArtifactStore | str | Path,
    options: FetchOptions | None = None,
) -> Artifact:
    """Functional entry point around :class:`FixedOutputBuilder`."""
    builder = FixedOutputBuilder(
        context=context,
        store=store if isinstance(store, ArtifactStore) else ArtifactStore(store),
    )
    return builder.build(procedure, expected_digest, algorithm, shape, options=options)
