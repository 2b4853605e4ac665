"""Content-addressed artifact store with atomic publication.

An artifact lives at ``<root>/<algorithm>-<hex>``, addressed by the digest the
caller declared, next to a ``<address>.json`` manifest. Retrieval runs in a
scratch directory under ``<root>/.tmp`` so publication is a single rename on
the same filesystem; nothing partially written is ever visible at an address.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from hostfetch.digest import digest, shape_of, verify
from hostfetch.errors import StoreError
from hostfetch.models import Artifact, ExpectedDigest

SCRATCH_DIRNAME = ".tmp"


class ArtifactStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def address_path(self, expected: ExpectedDigest) -> Path:
        return self.root / expected.address

    def manifest_path(self, expected: ExpectedDigest) -> Path:
        return self.root / f"{expected.address}.json"

    @contextmanager
    def scratch(self) -> Iterator[Path]:
        """Yield an exclusive scratch directory that is always removed afterwards."""
        scratch_root = self.root / SCRATCH_DIRNAME
        scratch_root.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="fetch-", dir=str(scratch_root)))
        try:
            yield work_dir
        finally:
            if work_dir.exists():
                shutil.rmtree(work_dir, ignore_errors=True)

    def publish(
        self,
        source: Path,
        expected: ExpectedDigest,
        *,
        name: str,
        host: str,
        locator: str,
    ) -> Artifact:
        """Move verified *source* to its address, reusing an identical existing entry."""
        target = self.address_path(expected)
        shape = shape_of(source)
        if target.exists():
            self._verify_existing(target, expected)
        else:
            try:
                os.replace(source, target)
            except OSError as exc:
                # A concurrent publish of the same content won the rename.
                if not target.exists():
                    raise StoreError(
                        "Failed to publish artifact.",
                        context={"operation": "publish", "address": expected.address, "error": str(exc)},
                    ) from exc
                self._verify_existing(target, expected)

        artifact = Artifact(
            path=target,
            digest=expected,
            shape=shape,
            name=name,
            host=host,
            locator=locator,
        )
        self._write_manifest(artifact)
        return artifact

    def get(self, expected: ExpectedDigest) -> Artifact | None:
        target = self.address_path(expected)
        manifest_path = self.manifest_path(expected)
        if not target.exists() or not manifest_path.exists():
            return None
        manifest = self._read_manifest(manifest_path)
        if manifest.get("address") != expected.address:
            raise StoreError(
                "Artifact manifest address mismatch.",
                hint="Remove the store entry and fetch again.",
                context={"operation": "get", "address": expected.address},
            )
        self._verify_existing(target, expected)
        return Artifact(
            path=target,
            digest=expected,
            shape=shape_of(target),
            name=str(manifest.get("name", "")),
            host=str(manifest.get("host", "")),
            locator=str(manifest.get("locator", "")),
        )

    def _verify_existing(self, target: Path, expected: ExpectedDigest) -> None:
        actual = digest(target, expected.algorithm)
        if not verify(actual, expected):
            raise StoreError(
                "Existing store entry does not match its address.",
                hint="Remove the store entry and fetch again.",
                context={
                    "operation": "publish",
                    "path": str(target),
                    "expected": expected.value,
                    "actual": actual,
                },
            )

    def _write_manifest(self, artifact: Artifact) -> None:
        manifest_path = self.manifest_path(artifact.digest)
        payload = artifact.to_dict()
        fd, temp_name = tempfile.mkstemp(prefix=".manifest-", dir=str(self.root))
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(payload, indent=2, sort_keys=True) + "\n")
        os.replace(temp_name, manifest_path)

    def _read_manifest(self, path: Path) -> dict[str, object]:
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StoreError(
                "Artifact manifest is not valid JSON.",
                hint="Remove the store entry and fetch again.",
                context={"operation": "get", "path": str(path)},
            ) from exc
        if not isinstance(parsed, dict):
            raise StoreError(
                "Artifact manifest has invalid structure.",
                hint="Remove the store entry and fetch again.",
                context={"operation": "get", "path": str(path)},
            )
        return parsed
