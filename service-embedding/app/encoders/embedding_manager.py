"""Embedding manager for model lifecycle and embedding generation.

Owns the single model the process serves: loads it lazily (at most once at a
time, shared by every concurrent caller), applies E5-style instruction
prefixes, normalizes the raw inference output into equal-width rows, and
memoizes the embedding dimension once the first inference resolves it.
"""

import asyncio
import time
from contextlib import suppress
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import structlog

from libs.common.config import EmbeddingConfig
from libs.common.metrics import MetricsCollector
from .errors import (
    DimensionMismatchError,
    InferenceError,
    ModelInitializationError,
    UnexpectedOutputShape,
)
from .pipeline import load_pipeline
from .shapes import decode_raw_output, to_matrix

logger = structlog.get_logger("embedding_service.embedding_manager")

PipelineHandle = Callable[..., Any]
PipelineLoader = Callable[[str], PipelineHandle]


class Mode(str, Enum):
    """Role of the texts in retrieval."""
    QUERY = "query"
    PASSAGE = "passage"


class Instruction(str, Enum):
    """Instruction prefix policy."""
    NONE = "none"
    E5 = "e5"


E5_PREFIXES = {
    Mode.QUERY: "query: ",
    Mode.PASSAGE: "passage: ",
}

WARMUP_TEXT = "warmup"


def apply_instruction(
    texts: Union[str, Iterable[str]],
    mode: Union[Mode, str] = Mode.PASSAGE,
    instruction: Union[Instruction, str] = Instruction.E5,
) -> List[str]:
    """Prefix texts according to the instruction policy.

    ``e5`` prepends ``"query: "`` or ``"passage: "`` depending on ``mode``;
    ``none`` returns the texts unchanged. Raises ``ValueError`` for unknown
    mode or instruction values.
    """
    mode = Mode(mode)
    instruction = Instruction(instruction)
    if isinstance(texts, str):
        texts = [texts]
    if instruction is Instruction.E5:
        prefix = E5_PREFIXES[mode]
        return [prefix + text for text in texts]
    return list(texts)


class EmbeddingManager:
    """Manages the embedding model and embedding generation.

    Notes
    - The loader runs in a worker thread; one load task is shared by all
      callers awaiting the model, and a failed load is cleared so the next
      request retries it
    - The dimension is unknown until the first successful inference and is
      never overwritten afterwards; a different width fails the call
    """

    def __init__(
        self,
        config: EmbeddingConfig,
        loader: Optional[PipelineLoader] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Create an embedding manager.

        Parameters
        - config: ``EmbeddingConfig`` naming the model and device settings
        - loader: callable ``model_id -> pipeline``; defaults to
          ``load_pipeline`` with the configured device and batch size
        - metrics: optional collector for load duration and dimension
        """
        self.config = config
        self.model_id = config.ml_embedding_model
        self._loader = loader or partial(
            load_pipeline,
            device=config.ml_embedding_device,
            gpu_preference=config.ml_gpu_preference,
            batch_size=config.ml_max_batch_size,
        )
        self._metrics = metrics
        self._pipeline: Optional[PipelineHandle] = None
        self._pipeline_task: Optional[asyncio.Task] = None
        self._dimension: Optional[int] = None

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    @property
    def is_loaded(self) -> bool:
        return self._pipeline is not None

    async def initialize(self, warmup: bool = True):
        """Load the model eagerly, optionally resolving the dimension too."""
        await self._get_pipeline()
        if warmup:
            await self.get_model_info()
        logger.info(
            "Embedding manager initialized",
            model_id=self.model_id,
            dimension=self._dimension
        )

    async def _get_pipeline(self) -> PipelineHandle:
        if self._pipeline is not None:
            return self._pipeline

        if self._pipeline_task is None:
            self._pipeline_task = asyncio.create_task(self._load_pipeline())
            self._pipeline_task.add_done_callback(self._on_load_done)
        task = self._pipeline_task

        try:
            # shield: a cancelled request must not cancel the shared load
            return await asyncio.shield(task)
        except Exception as e:
            raise ModelInitializationError(
                f"Failed to load embedding model {self.model_id}: {e}"
            ) from e

    async def _load_pipeline(self) -> PipelineHandle:
        logger.info("Loading embedding model", model_id=self.model_id)
        start_time = time.time()

        pipeline = await asyncio.to_thread(self._loader, self.model_id)

        duration = time.time() - start_time
        self._pipeline = pipeline
        if self._metrics is not None:
            self._metrics.record_model_load(self.model_id, duration)
        logger.info(
            "Embedding model ready",
            model_id=self.model_id,
            duration_ms=duration * 1000
        )
        return pipeline

    def _on_load_done(self, task: asyncio.Task):
        if not task.cancelled() and task.exception() is None:
            return
        if self._pipeline_task is task:
            self._pipeline_task = None
        if task.cancelled():
            logger.warning("Embedding model load cancelled", model_id=self.model_id)
        else:
            logger.error(
                "Failed to load embedding model",
                model_id=self.model_id,
                error=str(task.exception())
            )

    def _record_dimension(self, width: int):
        if self._dimension is None:
            self._dimension = width
            if self._metrics is not None:
                self._metrics.set_embedding_dimension(self.model_id, width)
            logger.info("Embedding dimension resolved", model_id=self.model_id, dimension=width)
        elif width != self._dimension:
            logger.error(
                "Embedding dimension mismatch",
                model_id=self.model_id,
                expected=self._dimension,
                actual=width
            )
            raise DimensionMismatchError(self._dimension, width)

    async def embed_batch(
        self,
        texts: Union[str, Iterable[str]],
        mode: Union[Mode, str] = Mode.PASSAGE,
        instruction: Union[Instruction, str] = Instruction.E5,
        normalize: bool = True,
    ) -> List[List[float]]:
        """Embed a batch of texts.

        Returns one row per input text, in input order, all of the model's
        dimension. A bare string is a batch of one text. An empty batch
        returns ``[]`` without touching the model.

        Raises
        - ``ModelInitializationError`` when the model cannot be loaded
        - ``InferenceError`` when the pipeline raises
        - ``UnexpectedOutputShape`` when the output cannot be normalized
        """
        texts = [texts] if isinstance(texts, str) else list(texts)
        if not texts:
            return []

        prefixed = apply_instruction(texts, mode, instruction)
        pipeline = await self._get_pipeline()

        try:
            output = await asyncio.to_thread(
                pipeline, prefixed, pooling="mean", normalize=normalize
            )
        except Exception as e:
            logger.error(
                "Embedding inference failed",
                model_id=self.model_id,
                count=len(texts),
                error=str(e)
            )
            raise InferenceError(f"Inference failed for model {self.model_id}: {e}") from e

        try:
            rows = to_matrix(decode_raw_output(output))
            if len(rows) != len(texts):
                raise UnexpectedOutputShape(
                    f"Expected {len(texts)} embeddings, got {len(rows)}"
                )
        except UnexpectedOutputShape as e:
            logger.error(
                "Unexpected embedding output shape",
                model_id=self.model_id,
                output_type=type(output).__name__,
                error=str(e)
            )
            raise

        self._record_dimension(len(rows[0]))
        return rows

    async def get_model_info(self) -> Dict[str, Any]:
        """Return ``{"model", "dim"}``, warming the model up if needed."""
        if self._dimension is None:
            await self.embed_batch([WARMUP_TEXT], mode=Mode.PASSAGE, instruction=Instruction.E5)
        return {"model": self.model_id, "dim": self._dimension}

    async def health_check(self) -> bool:
        """Check if the embedding model is loaded."""
        return self.is_loaded

    async def cleanup(self):
        """Release the model.

        Cancels a load that is still running; the dimension is kept because
        the model identity cannot change.
        """
        task = self._pipeline_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task
        self._pipeline_task = None
        self._pipeline = None
        logger.info("Embedding manager cleanup completed", model_id=self.model_id)
