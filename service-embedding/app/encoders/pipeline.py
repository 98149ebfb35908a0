"""Feature-extraction pipeline built on sentence-transformers.

The manager treats the pipeline as an opaque batched callable:
``pipeline(texts, pooling="mean", normalize=True)`` returns the embedding
matrix as a numpy array of shape ``(len(texts), dim)``. Loading downloads the
weights on first use, so ``load_pipeline`` is blocking and slow and is run in
a worker thread by the caller.
"""

from typing import List, Optional

import numpy as np
import structlog
from sentence_transformers import SentenceTransformer, models

from libs.common.metrics import measure_time
from ..batching.gpu_detector import select_device

logger = structlog.get_logger("embedding_service.pipeline")


class SentenceTransformerPipeline:
    """Batched embedding callable over a ``SentenceTransformer``.

    The pooling strategy is fixed when the model is assembled; callers pass
    it anyway so a mismatch is caught instead of silently ignored.
    """

    def __init__(self, model: SentenceTransformer, pooling: str = "mean", batch_size: int = 32):
        self.model = model
        self.pooling = pooling
        self.batch_size = batch_size

    def __call__(self, texts: List[str], pooling: str = "mean", normalize: bool = True) -> np.ndarray:
        if pooling != self.pooling:
            raise ValueError(f"Pipeline was built with {self.pooling} pooling, got {pooling}")
        return self.model.encode(
            list(texts),
            batch_size=self.batch_size,
            convert_to_numpy=True,
            normalize_embeddings=normalize,
            show_progress_bar=False,
        )


@measure_time("model_load", component="pipeline")
def load_pipeline(
    model_id: str,
    device: Optional[str] = None,
    gpu_preference: str = "auto",
    batch_size: int = 32,
    pooling: str = "mean",
) -> SentenceTransformerPipeline:
    """Assemble ``Transformer -> Pooling`` for ``model_id`` on the chosen device."""
    target_device = select_device(gpu_preference, explicit=device)

    transformer = models.Transformer(model_id)
    pooling_module = models.Pooling(
        transformer.get_word_embedding_dimension(),
        pooling_mode=pooling,
    )
    model = SentenceTransformer(modules=[transformer, pooling_module], device=target_device)
    model.eval()

    logger.info(
        "Loaded embedding model",
        model_id=model_id,
        device=target_device,
        pooling=pooling,
        dimension=model.get_sentence_embedding_dimension(),
        max_length=model.max_seq_length
    )
    return SentenceTransformerPipeline(model, pooling=pooling, batch_size=batch_size)
