"""Archive extraction and output normalization ahead of digesting.

Everything here runs before the digest is computed, so each rule changes
what the declared digest covers:

* ``extract`` unpacks into a fresh directory. With ``collapse`` enabled, a
  root holding exactly one entry that is a real directory is replaced by that
  directory. The rule is applied once and never recursively.
* ``select_sub_path`` prunes a fetched tree to one relative entry.
* ``coerce_shape`` checks a fetched output against its declared shape,
  accepting a directory that wraps exactly one file as that file.
"""

from __future__ import annotations

import lzma
import stat
import subprocess
import tarfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Literal

from hostfetch.errors import (
    ExtractionFailed,
    LocatorNotFound,
    RetrievalFailed,
    UnsupportedArchiveFormat,
    ValidationError,
)
from hostfetch.models import ArtifactShape, OutputShape
from hostfetch.policy import Toolchain

ArchiveFormat = Literal["zip", "tar", "tar.gz", "tar.bz2", "tar.xz", "7z", "rar"]

_MAGIC: tuple[tuple[bytes, int, ArchiveFormat], ...] = (
    (b"PK\x03\x04", 0, "zip"),
    (b"PK\x05\x06", 0, "zip"),
    (b"7z\xbc\xaf\x27\x1c", 0, "7z"),
    (b"Rar!\x1a\x07", 0, "rar"),
    (b"\x1f\x8b", 0, "tar.gz"),
    (b"BZh", 0, "tar.bz2"),
    (b"\xfd7zXZ\x00", 0, "tar.xz"),
    (b"ustar", 257, "tar"),
)

_EXTENSIONS: tuple[tuple[str, ArchiveFormat], ...] = (
    (".tar.gz", "tar.gz"),
    (".tgz", "tar.gz"),
    (".tar.bz2", "tar.bz2"),
    (".tbz2", "tar.bz2"),
    (".tar.xz", "tar.xz"),
    (".txz", "tar.xz"),
    (".tar", "tar"),
    (".zip", "zip"),
    (".7z", "7z"),
    (".rar", "rar"),
)


def detect_format(path: str | Path) -> ArchiveFormat:
    """Detect the archive format from magic bytes, falling back to the extension."""
    archive = Path(path)
    if not archive.is_file():
        raise UnsupportedArchiveFormat(
            "Only a single regular file can be unpacked.",
            hint="Select the archive inside a folder with sub_path before unpacking.",
            context={"path": str(archive)},
        )
    try:
        with open(archive, "rb") as f:
            header = f.read(512)
    except OSError as exc:
        raise ExtractionFailed(
            "Archive could not be read.",
            context={"path": str(archive), "error": str(exc)},
        ) from exc
    for magic, offset, fmt in _MAGIC:
        if header[offset : offset + len(magic)] == magic:
            return fmt
    lowered = archive.name.lower()
    for suffix, fmt in _EXTENSIONS:
        if lowered.endswith(suffix):
            return fmt
    raise UnsupportedArchiveFormat(
        "Unrecognized archive format.",
        hint="Supported formats: zip, tar, tar.gz, tar.bz2, tar.xz, 7z, rar.",
        context={"path": str(archive)},
    )


def extract(
    archive_path: str | Path,
    dest: str | Path,
    *,
    shape: OutputShape = "tree",
    collapse: bool = True,
    toolchain: Toolchain | None = None,
) -> Path:
    """Extract *archive_path* into the fresh directory *dest* and normalize it."""
    archive = Path(archive_path)
    target = Path(dest)
    if target.exists():
        raise ValidationError(
            "Extraction target must not exist yet.",
            context={"path": str(target)},
        )
    fmt = detect_format(archive)
    target.mkdir(parents=True)
    if fmt == "zip":
        _extract_zip(archive, target)
    elif fmt in ("7z", "rar"):
        _extract_with_unar(archive, target, toolchain or Toolchain())
    else:
        _extract_tar(archive, target)

    root = collapse_wrapper(target) if collapse else target
    normalized, _ = coerce_shape(root, shape)
    return normalized


def collapse_wrapper(root: Path) -> Path:
    entries = list(root.iterdir())
    if len(entries) == 1 and entries[0].is_dir() and not entries[0].is_symlink():
        return entries[0]
    return root


def _extract_zip(archive: Path, target: Path) -> None:
    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                _check_member_name(info.filename, archive)
            zf.extractall(target)
            for info in zf.infolist():
                mode = info.external_attr >> 16
                if not info.is_dir() and mode & stat.S_IXUSR:
                    extracted = target / info.filename
                    extracted.chmod(extracted.stat().st_mode | 0o111)
    except (zipfile.BadZipFile, zlib.error, EOFError, OSError) as exc:
        raise ExtractionFailed(
            "Zip archive is corrupt or truncated.",
            context={"path": str(archive), "error": str(exc)},
        ) from exc


def _extract_tar(archive: Path, target: Path) -> None:
    try:
        with tarfile.open(archive, "r:*") as tf:
            tf.extractall(target, filter="data")
    except tarfile.FilterError as exc:
        raise ExtractionFailed(
            "Tar archive contains members that escape the destination.",
            context={"path": str(archive), "error": str(exc)},
        ) from exc
    except (tarfile.TarError, zlib.error, lzma.LZMAError, EOFError, OSError) as exc:
        raise ExtractionFailed(
            "Tar archive is corrupt or truncated.",
            context={"path": str(archive), "error": str(exc)},
        ) from exc


def _extract_with_unar(archive: Path, target: Path, toolchain: Toolchain) -> None:
    command = [toolchain.unar, "-q", "-f", "-D", "-o", str(target), str(archive)]
    try:
        completed = subprocess.run(command, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        raise ValidationError(
            "Archive tool `unar` is not installed.",
            hint="Install unar or set HOSTFETCH_UNAR.",
            context={"tool": toolchain.unar},
        ) from exc
    if completed.returncode != 0:
        raise ExtractionFailed(
            "unar failed to extract archive.",
            context={
                "path": str(archive),
                "returncode": str(completed.returncode),
                "stderr": completed.stderr[-2000:] if completed.stderr else "",
            },
        )


def _check_member_name(name: str, archive: Path) -> None:
    member = PurePosixPath(name)
    if member.is_absolute() or ".." in member.parts:
        raise ExtractionFailed(
            "Archive member escapes the destination.",
            context={"path": str(archive), "member": name},
        )


def sub_path_parts(sub_path: str) -> tuple[str, ...]:
    """Split a relative POSIX sub-path into components, rejecting escapes."""
    path = PurePosixPath(sub_path)
    parts = tuple(part for part in path.parts if part not in ("", "."))
    if path.is_absolute() or ".." in parts or not parts:
        raise ValidationError(
            "sub_path must be a non-empty relative path without `..`.",
            context={"sub_path": sub_path},
        )
    return parts


def select_sub_path(root: Path, sub_path: str) -> Path:
    if not root.is_dir() or root.is_symlink():
        raise ValidationError(
            "sub_path selection needs a folder or an unpacked archive.",
            context={"sub_path": sub_path},
        )
    selected = root.joinpath(*sub_path_parts(sub_path))
    if not selected.exists() and not selected.is_symlink():
        raise LocatorNotFound(
            "Selected sub_path does not exist in the fetched content.",
            context={"sub_path": sub_path},
        )
    if not selected.resolve().is_relative_to(root.resolve()):
        raise ValidationError(
            "Selected sub_path resolves outside the fetched content.",
            context={"sub_path": sub_path},
        )
    return selected


def unwrap_single(path: Path) -> Path:
    """Return the one entry a tool wrote inside *path*."""
    entries = sorted(path.iterdir()) if path.is_dir() else []
    if len(entries) != 1:
        raise RetrievalFailed(
            "Retrieval tool did not produce exactly one entry.",
            context={"path": str(path), "entries": str(len(entries))},
        )
    return entries[0]


def coerce_shape(path: Path, shape: OutputShape) -> tuple[Path, ArtifactShape]:
    is_tree = path.is_dir() and not path.is_symlink()
    if shape == "auto":
        return path, "tree" if is_tree else "file"
    if shape == "tree":
        if not is_tree:
            raise RetrievalFailed(
                "Expected a directory tree but retrieval produced a file.",
                context={"path": str(path)},
            )
        return path, "tree"
    if not is_tree:
        return path, "file"
    entries = list(path.iterdir())
    if len(entries) == 1 and entries[0].is_file() and not entries[0].is_symlink():
        return entries[0], "file"
    raise RetrievalFailed(
        "Expected a single file but retrieval produced a directory.",
        context={"path": str(path), "entries": str(len(entries))},
    )


__all__ = [
    "ArchiveFormat",
    "coerce_shape",
    "collapse_wrapper",
    "detect_format",
    "extract",
    "select_sub_path",
    "sub_path_parts",
    "unwrap_single",
]
