"""Embedding encoders and managers.

Exports the ``EmbeddingManager`` which handles model lifecycle and vector
generation. Keep heavy ML imports within implementation modules to minimize
import overhead for unrelated paths.
"""
