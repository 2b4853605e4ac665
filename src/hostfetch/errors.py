"""Typed fetch error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across API surfaces."""

    VALIDATION = "E_VALIDATION"
    POLICY = "E_POLICY"
    RETRIEVAL = "E_RETRIEVAL"
    LOCATOR_NOT_FOUND = "E_LOCATOR_NOT_FOUND"
    HOST_UNAVAILABLE = "E_HOST_UNAVAILABLE"
    DIGEST_MISMATCH = "E_DIGEST_MISMATCH"
    UNSUPPORTED_LOCATOR = "E_UNSUPPORTED_LOCATOR"
    UNSUPPORTED_ARCHIVE = "E_UNSUPPORTED_ARCHIVE"
    EXTRACTION = "E_EXTRACTION"
    STORE = "E_STORE"


class HostFetchError(Exception):
    """Base error class that carries code, optional hint, and context.

    ``retryable`` tells the builder whether a fresh attempt may succeed.
    """

    code: str
    hint: str | None
    context: dict[str, str]
    retryable: bool = False
    default_code: ErrorCode = ErrorCode.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = (code or self.default_code).value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for k, v in self.context.items():
            if v:
                parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def with_context(self, **context: str) -> HostFetchError:
        """Add context keys that are not already present and return ``self``."""
        for key, value in context.items():
            self.context.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "type": type(self).__name__,
            "message": self.message,
            "retryable": self.retryable,
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(HostFetchError):
    default_code = ErrorCode.VALIDATION


class PolicyError(HostFetchError):
    default_code = ErrorCode.POLICY


class RetrievalFailed(HostFetchError):
    """Host, network or process failure before any digest was computed."""

    default_code = ErrorCode.RETRIEVAL
    retryable = True


class LocatorNotFound(RetrievalFailed):
    default_code = ErrorCode.LOCATOR_NOT_FOUND


class HostUnavailable(RetrievalFailed):
    default_code = ErrorCode.HOST_UNAVAILABLE


class DigestMismatch(HostFetchError):
    """Fetched content is complete but differs from the declared digest."""

    default_code = ErrorCode.DIGEST_MISMATCH

    def __init__(
        self,
        message: str,
        *,
        expected: str,
        actual: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = dict(context or {})
        merged["expected"] = expected
        merged["actual"] = actual
        super().__init__(message, hint=hint, context=merged)
        self.expected = expected
        self.actual = actual


class UnsupportedLocatorShape(HostFetchError):
    default_code = ErrorCode.UNSUPPORTED_LOCATOR


class UnsupportedArchiveFormat(HostFetchError):
    default_code = ErrorCode.UNSUPPORTED_ARCHIVE


class ExtractionFailed(HostFetchError):
    """Corrupt or partial archive; retried like a failed retrieval."""

    default_code = ErrorCode.EXTRACTION
    retryable = True


class StoreError(HostFetchError):
    default_code = ErrorCode.STORE


__all__ = [
    "DigestMismatch",
    "ErrorCode",
    "ExtractionFailed",
    "HostFetchError",
    "HostUnavailable",
    "LocatorNotFound",
    "PolicyError",
    "RetrievalFailed",
    "StoreError",
    "UnsupportedArchiveFormat",
    "UnsupportedLocatorShape",
    "ValidationError",
]
