"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from hostfetch.execution import InProcessExecutionContext
from hostfetch.store import ArtifactStore


@pytest.fixture
def inprocess_context() -> InProcessExecutionContext:
    """Provide an execution context whose download tools are Python callables."""
    return InProcessExecutionContext()


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "store")
