"""Exceptions raised by the embedding pipeline."""


class EmbeddingError(Exception):
    """Base exception for embedding operations."""
    pass


class UnexpectedOutputShape(EmbeddingError):
    """Inference output could not be normalized into a matrix."""
    pass


class DimensionMismatchError(UnexpectedOutputShape):
    """Output width differs from the dimension already observed for the model."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Embedding dimension changed from {expected} to {actual}")
        self.expected = expected
        self.actual = actual


class ModelInitializationError(EmbeddingError):
    """Model load failed; the next request starts a new attempt."""
    pass


class InferenceError(EmbeddingError):
    """The inference pipeline raised while embedding a batch."""
    pass
