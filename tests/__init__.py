"""Tests for the embedding service.

Model loading is replaced with in-process fakes (see ``conftest``), so the
suite runs without downloading weights or a GPU.
"""
