"""Tests for the sentence-transformers pipeline and device selection."""

from unittest.mock import MagicMock

import numpy as np
import pytest
import torch

from app.batching import gpu_detector
from app.batching.gpu_detector import select_device
from app.encoders import pipeline as pipeline_module
from app.encoders.pipeline import SentenceTransformerPipeline, load_pipeline


@pytest.fixture
def no_accelerators(monkeypatch):
    monkeypatch.setattr(torch.cuda, "is_available", lambda: False)
    if hasattr(torch.backends, "mps"):
        monkeypatch.setattr(torch.backends.mps, "is_available", lambda: False)


def test_select_device_cpu_preference(no_accelerators):
    assert select_device("cpu") == "cpu"


def test_select_device_gpu_falls_back_to_cpu(no_accelerators):
    assert select_device("gpu") == "cpu"
    assert select_device("auto") == "cpu"


def test_select_device_prefers_cuda(monkeypatch):
    monkeypatch.setattr(torch.cuda, "is_available", lambda: True)
    monkeypatch.setattr(torch.cuda, "device_count", lambda: 2)

    assert select_device("auto") == "cuda:0"
    assert gpu_detector.detect_gpus()["gpu_count"] == 2


def test_select_device_explicit_wins(no_accelerators):
    assert select_device("cpu", explicit="cuda:1") == "cuda:1"


def test_pipeline_call_forwards_options():
    model = MagicMock()
    model.encode.return_value = np.zeros((2, 3), dtype=np.float32)
    pipeline = SentenceTransformerPipeline(model, pooling="mean", batch_size=8)

    output = pipeline(["query: a", "query: b"], pooling="mean", normalize=False)

    assert output.shape == (2, 3)
    model.encode.assert_called_once_with(
        ["query: a", "query: b"],
        batch_size=8,
        convert_to_numpy=True,
        normalize_embeddings=False,
        show_progress_bar=False,
    )


def test_pipeline_rejects_other_pooling():
    pipeline = SentenceTransformerPipeline(MagicMock(), pooling="mean")
    with pytest.raises(ValueError):
        pipeline(["a"], pooling="cls")


def test_load_pipeline_assembles_mean_pooling(monkeypatch, no_accelerators):
    transformer = MagicMock()
    transformer.get_word_embedding_dimension.return_value = 384
    transformer_cls = MagicMock(return_value=transformer)
    pooling_cls = MagicMock()
    model = MagicMock()
    model.get_sentence_embedding_dimension.return_value = 384
    model_cls = MagicMock(return_value=model)

    monkeypatch.setattr(pipeline_module.models, "Transformer", transformer_cls)
    monkeypatch.setattr(pipeline_module.models, "Pooling", pooling_cls)
    monkeypatch.setattr(pipeline_module, "SentenceTransformer", model_cls)

    pipeline = load_pipeline("BAAI/bge-small-en-v1.5", batch_size=16)

    transformer_cls.assert_called_once_with("BAAI/bge-small-en-v1.5")
    pooling_cls.assert_called_once_with(384, pooling_mode="mean")
    model_cls.assert_called_once_with(
        modules=[transformer, pooling_cls.return_value], device="cpu"
    )
    assert pipeline.model is model
    assert pipeline.batch_size == 16
    assert pipeline.pooling == "mean"
