"""Execution contexts for retrieval procedures."""

from .base import EXIT_NOT_FOUND, EXIT_TEMPFAIL, ExecutionContext, ExecutionResult
from .inprocess import InProcessExecutionContext
from .local import SubprocessExecutionContext

__all__ = [
    "EXIT_NOT_FOUND",
    "EXIT_TEMPFAIL",
    "ExecutionContext",
    "ExecutionResult",
    "InProcessExecutionContext",
    "SubprocessExecutionContext",
]
