"""API subpackage for the embedding service.

Contains the FastAPI router for the OpenAI-compatible ``/v1/embeddings``
endpoint and its request/response models.
"""
