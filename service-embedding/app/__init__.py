"""Embedding service package.

Layout:
- ``api``: FastAPI route handlers and request/response models.
- ``encoders``: ``EmbeddingManager``, output-shape normalization, the
  sentence-transformers pipeline and the base64 vector codec.
- ``batching``: device selection for inference.
- ``runtime``: service-local metrics facade.

Import convenience:
- from app.encoders.embedding_manager import EmbeddingManager
"""
