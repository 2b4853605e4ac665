"""Core typed dataclasses for locators, procedures, digests and artifacts."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from hostfetch.errors import ValidationError

OutputShape = Literal["file", "tree", "auto"]
ArtifactShape = Literal["file", "tree"]
DigestAlgorithm = Literal["sha256", "sha384", "sha512", "blake2b"]

OUTPUT_SHAPES: tuple[OutputShape, ...] = ("file", "tree", "auto")


@dataclass(frozen=True, slots=True)
class Locator:
    """Where remote content lives on a host; never a statement about what it is.

    ``ref`` is a host ID or share link. ``folder`` is an explicit caller flag
    for hosts whose IDs do not reveal whether they name a file or a folder.
    """

    ref: str
    folder: bool | None = None

    def __str__(self) -> str:
        if self.folder is None:
            return self.ref
        return f"{self.ref} ({'folder' if self.folder else 'file'})"


@dataclass(frozen=True, slots=True)
class RetrievalProcedure:
    argv: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)
    network: bool = True
    not_found_exit_codes: frozenset[int] = frozenset()
    transient_exit_codes: frozenset[int] = frozenset()
    tool: str = ""
    description: str = ""


@dataclass(frozen=True, slots=True)
class ResolvedFetch:
    """Adapter output: how to fetch and what shape the fetched output must take.

    ``sub_path`` is the part of the caller's selection the host could not
    serve selectively; the builder prunes to it before hashing. ``unwrap``
    marks tools that write the fetched entry inside ``$out`` rather than as
    ``$out`` itself.
    """

    procedure: RetrievalProcedure
    shape: OutputShape
    sub_path: str | None = None
    name: str | None = None
    unwrap: bool = False


@dataclass(frozen=True, slots=True)
class ExpectedDigest:
    algorithm: DigestAlgorithm
    value: str

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.value}"

    @property
    def address(self) -> str:
        return f"{self.algorithm}-{self.value}"


@dataclass(frozen=True, slots=True)
class FetchOptions:
    retries: int = 0
    rename_to: str | None = None
    sub_path: str | None = None
    unpack: bool = False
    collapse: bool = True
    backoff: float = 0.0

    def __post_init__(self) -> None:
        if isinstance(self.retries, bool) or not isinstance(self.retries, int) or self.retries < 0:
            raise ValidationError(
                "FetchOptions.retries must be an integer >= 0.",
                context={"retries": repr(self.retries)},
            )
        if self.backoff < 0:
            raise ValidationError(
                "FetchOptions.backoff must be >= 0.",
                context={"backoff": repr(self.backoff)},
            )
        if self.rename_to is not None and (
            not self.rename_to or "/" in self.rename_to or self.rename_to in {".", ".."}
        ):
            raise ValidationError(
                "FetchOptions.rename_to must be a plain file name.",
                context={"rename_to": self.rename_to},
            )
        if self.sub_path is not None and not self.sub_path.strip("/"):
            raise ValidationError("FetchOptions.sub_path must not be empty.")


@dataclass(frozen=True, slots=True)
class Artifact:
    """A verified, published fetch output addressed by its declared digest."""

    path: Path
    digest: ExpectedDigest
    shape: ArtifactShape
    name: str
    host: str
    locator: str

    @property
    def address(self) -> str:
        return self.digest.address

    def to_dict(self) -> dict[str, str]:
        return {
            "address": self.address,
            "algorithm": self.digest.algorithm,
            "digest": self.digest.value,
            "host": self.host,
            "locator": self.locator,
            "name": self.name,
            "path": str(self.path),
            "shape": self.shape,
        }
