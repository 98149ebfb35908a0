"""Shared fixtures for the embedding service tests.

The fakes stand in for the sentence-transformers pipeline so no model is
downloaded: ``FakePipeline`` returns a deterministic float32 matrix and
``CountingLoader`` counts how often the model is loaded.
"""

import time
from typing import List, Optional

import numpy as np
import pytest

from libs.common.config import EmbeddingConfig
from app.encoders.embedding_manager import EmbeddingManager

TEST_MODEL = "test/bge-tiny"


def fake_vector(text: str, dim: int) -> List[float]:
    """Deterministic float32-exact vector derived from the text length."""
    return [len(text) * 0.5 + j for j in range(dim)]


class FakePipeline:
    """Records every call and returns a ``(n, dim)`` float32 array."""

    def __init__(self, dim: int = 4):
        self.dim = dim
        self.calls = []
        self.fail_next: Optional[Exception] = None

    def __call__(self, texts, pooling="mean", normalize=True):
        self.calls.append({"texts": list(texts), "pooling": pooling, "normalize": normalize})
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        return np.array([fake_vector(t, self.dim) for t in texts], dtype=np.float32)


class CountingLoader:
    """Loader that counts invocations, optionally sleeping or failing first."""

    def __init__(self, pipeline, delay: float = 0.0, failures: int = 0):
        self.pipeline = pipeline
        self.delay = delay
        self.failures = failures
        self.calls = 0
        self.model_ids = []

    def __call__(self, model_id: str):
        self.calls += 1
        self.model_ids.append(model_id)
        if self.delay:
            time.sleep(self.delay)
        if self.failures:
            self.failures -= 1
            raise OSError("model weights unavailable")
        return self.pipeline


@pytest.fixture
def config():
    return EmbeddingConfig(ml_embedding_model=TEST_MODEL, _env_file=None)


@pytest.fixture
def fake_pipeline():
    return FakePipeline(dim=4)


@pytest.fixture
def loader(fake_pipeline):
    return CountingLoader(fake_pipeline)


@pytest.fixture
def manager(config, loader):
    return EmbeddingManager(config, loader=loader)
