"""Unit test fixtures: fakes in place of Redis and the model backends."""

from __future__ import annotations

from pathlib import Path

import pytest

from cuidado.audit import AuditLogger
from cuidado.config import AuditConfig
from cuidado.engine.embeddings import NoopEmbeddingAdapter
from tests.unit.fakes import FakeFragmentStore


@pytest.fixture()
def fragment_store() -> FakeFragmentStore:
    return FakeFragmentStore()


@pytest.fixture()
def embedder() -> NoopEmbeddingAdapter:
    return NoopEmbeddingAdapter()


@pytest.fixture()
def audit_logger(tmp_path: Path) -> AuditLogger:
    return AuditLogger(AuditConfig(file_path=str(tmp_path / "audit.jsonl")))
