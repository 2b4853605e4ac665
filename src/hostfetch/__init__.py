"""Public package entrypoint for hash-verified file-host fetches."""

from .adapters import BuzzheavierAdapter, GofileAdapter, HostKind, MegaAdapter, adapter_for
from .archive import extract
from .builder import FixedOutputBuilder, build
from .digest import digest, parse_expected, verify
from .errors import (
    DigestMismatch,
    ErrorCode,
    ExtractionFailed,
    HostFetchError,
    HostUnavailable,
    LocatorNotFound,
    PolicyError,
    RetrievalFailed,
    StoreError,
    UnsupportedArchiveFormat,
    UnsupportedLocatorShape,
    ValidationError,
)
from .execution import InProcessExecutionContext, SubprocessExecutionContext
from .fetch import fetch
from .models import Artifact, ExpectedDigest, FetchOptions, Locator, RetrievalProcedure
from .policy import Policy, Toolchain
from .store import ArtifactStore

__all__ = [
    "Artifact",
    "ArtifactStore",
    "BuzzheavierAdapter",
    "DigestMismatch",
    "ErrorCode",
    "ExpectedDigest",
    "ExtractionFailed",
    "FetchOptions",
    "FixedOutputBuilder",
    "GofileAdapter",
    "HostFetchError",
    "HostKind",
    "HostUnavailable",
    "InProcessExecutionContext",
    "Locator",
    "LocatorNotFound",
    "MegaAdapter",
    "Policy",
    "PolicyError",
    "RetrievalFailed",
    "RetrievalProcedure",
    "StoreError",
    "SubprocessExecutionContext",
    "Toolchain",
    "UnsupportedArchiveFormat",
    "UnsupportedLocatorShape",
    "ValidationError",
    "adapter_for",
    "build",
    "digest",
    "extract",
    "fetch",
    "parse_expected",
    "verify",
]
