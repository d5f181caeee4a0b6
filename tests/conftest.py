"""Shared fixtures."""

import pytest

from ctxbudget.compaction.estimator import TokenEstimator
from ctxbudget.memory.dictionary import DictionaryService


def _offline_encoder(name: str):
    raise RuntimeError(f"encoding {name} unavailable offline")


@pytest.fixture
def estimator() -> TokenEstimator:
    """Estimator that always uses the chars/4 heuristic."""
    return TokenEstimator(encoder_factory=_offline_encoder)


@pytest.fixture
def dictionary() -> DictionaryService:
    """A private dictionary service so tests never share cache state."""
    return DictionaryService()
