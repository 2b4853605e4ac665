"""Digest computation and verification for fetched files and directory trees.

The tree digest is the reproducibility contract for directory outputs. It is
computed as follows:

1. Walk the tree without following symlinks.
2. Emit one entry per regular file, ``["f", relpath, executable, file_digest]``,
   and one per symlink, ``["l", relpath, link_target]``. ``relpath`` uses ``/``
   separators; ``executable`` is the owner-execute bit; ``file_digest`` is the
   hex digest of the file bytes under the same algorithm.
3. Sort entries by ``relpath``, encode the list as canonical CBOR and hash it.

Directories participate only through the paths of their contents, so empty
directories are ignored. Timestamps, ownership and all other mode bits do not
participate.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import re
import stat
from collections.abc import Callable
from pathlib import Path
from typing import Any, cast

import cbor2

from hostfetch.errors import ValidationError
from hostfetch.models import ArtifactShape, DigestAlgorithm, ExpectedDigest

_HASHERS: dict[str, Callable[[], Any]] = {
    "sha256": hashlib.sha256,
    "sha384": hashlib.sha384,
    "sha512": hashlib.sha512,
    "blake2b": hashlib.blake2b,
}

SUPPORTED_ALGORITHMS: tuple[str, ...] = tuple(sorted(_HASHERS))

_HEX_PATTERN = re.compile(r"^[0-9a-fA-F]+$")
_CHUNK_SIZE = 1 << 16


def _hasher(algorithm: str) -> Any:
    try:
        return _HASHERS[algorithm]()
    except KeyError:
        raise ValidationError(
            f"Unsupported digest algorithm `{algorithm}`.",
            hint=f"Use one of: {', '.join(SUPPORTED_ALGORITHMS)}.",
            context={"algorithm": algorithm},
        ) from None


def hex_length(algorithm: str) -> int:
    return _hasher(algorithm).digest_size * 2


def parse_expected(value: str, algorithm: str = "sha256") -> ExpectedDigest:
    """Parse a caller-declared digest in hex, ``algo:hex`` or SRI form."""
    raw = value.strip()
    if not raw:
        raise ValidationError("Expected digest must not be empty.")

    for prefix in SUPPORTED_ALGORITHMS:
        if raw.startswith(f"{prefix}-"):
            return _parse_sri(raw, prefix, declared=algorithm)
        if raw.startswith(f"{prefix}:"):
            if prefix != algorithm:
                raise _algorithm_conflict(raw, prefix, algorithm)
            raw = raw[len(prefix) + 1 :]
            break

    expected_length = hex_length(algorithm)
    if not _HEX_PATTERN.fullmatch(raw) or len(raw) != expected_length:
        raise ValidationError(
            "Expected digest is not valid for its algorithm.",
            hint=f"Provide {expected_length} hex characters or an SRI `{algorithm}-<base64>` value.",
            context={"algorithm": algorithm, "value": value},
        )
    return ExpectedDigest(algorithm=cast(DigestAlgorithm, algorithm), value=raw.lower())


def _parse_sri(raw: str, prefix: str, *, declared: str) -> ExpectedDigest:
    if prefix != declared:
        raise _algorithm_conflict(raw, prefix, declared)
    try:
        decoded = base64.b64decode(raw[len(prefix) + 1 :], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(
            "Expected digest has invalid SRI base64 payload.",
            context={"algorithm": declared, "value": raw},
        ) from exc
    if len(decoded) * 2 != hex_length(declared):
        raise ValidationError(
            "Expected digest has the wrong length for its algorithm.",
            context={"algorithm": declared, "value": raw},
        )
    return ExpectedDigest(algorithm=cast(DigestAlgorithm, declared), value=decoded.hex())


def _algorithm_conflict(raw: str, prefix: str, declared: str) -> ValidationError:
    return ValidationError(
        "Expected digest prefix conflicts with the declared algorithm.",
        context={"algorithm": declared, "prefix": prefix, "value": raw},
    )


def to_sri(value: str, algorithm: str) -> str:
    return f"{algorithm}-{base64.b64encode(bytes.fromhex(value)).decode('ascii')}"


def digest_file(path: str | Path, algorithm: str = "sha256") -> str:
    h = _hasher(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return str(h.hexdigest())


def tree_entries(root: str | Path, algorithm: str = "sha256") -> list[list[object]]:
    """Return the sorted entry list the tree digest is computed over."""
    base = Path(root)
    entries: list[list[object]] = []
    for dirpath, dirnames, filenames in os.walk(base, followlinks=False):
        current = Path(dirpath)
        for name in [*dirnames, *filenames]:
            entry_path = current / name
            relpath = entry_path.relative_to(base).as_posix()
            mode = entry_path.lstat().st_mode
            if stat.S_ISLNK(mode):
                entries.append(["l", relpath, os.readlink(entry_path)])
            elif stat.S_ISREG(mode):
                executable = bool(mode & stat.S_IXUSR)
                entries.append(["f", relpath, executable, digest_file(entry_path, algorithm)])
            elif not stat.S_ISDIR(mode):
                raise ValidationError(
                    "Tree contains an entry that is neither file, directory nor symlink.",
                    context={"path": str(entry_path)},
                )
    entries.sort(key=lambda entry: str(entry[1]))
    return entries


def digest_tree(root: str | Path, algorithm: str = "sha256") -> str:
    h = _hasher(algorithm)
    h.update(cbor2.dumps(tree_entries(root, algorithm), canonical=True))
    return str(h.hexdigest())


def shape_of(path: str | Path) -> ArtifactShape:
    target = Path(path)
    if target.is_dir() and not target.is_symlink():
        return "tree"
    return "file"


def digest(path: str | Path, algorithm: str = "sha256") -> str:
    """Digest a file by its bytes or a directory by its canonical tree form."""
    if shape_of(path) == "tree":
        return digest_tree(path, algorithm)
    return digest_file(path, algorithm)


def verify(value: str, expected: str | ExpectedDigest) -> bool:
    wanted = expected.value if isinstance(expected, ExpectedDigest) else expected
    return hmac.compare_digest(value.lower(), wanted.lower())


__all__ = [
    "SUPPORTED_ALGORITHMS",
    "digest",
    "digest_file",
    "digest_tree",
    "hex_length",
    "parse_expected",
    "shape_of",
    "to_sri",
    "tree_entries",
    "verify",
]
