"""Runtime helpers for the embedding service (metrics facade)."""
