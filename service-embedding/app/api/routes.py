"""API routes for the embedding service (OpenAI-compatible)."""

import time
from typing import List, Literal, Optional, Union

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ..encoders.codec import float32_to_base64
from ..encoders.embedding_manager import EmbeddingManager
from ..encoders.errors import EmbeddingError
from libs.common.metrics import MetricsCollector

logger = structlog.get_logger("embedding_service.api")

router = APIRouter()


class EmbeddingsRequest(BaseModel):
    """Request model for the embeddings endpoint."""
    model: Optional[str] = Field(None, description="Accepted for compatibility; the served model is fixed")
    input: Union[str, List[str]] = Field(..., description="Text or batch of texts to embed")
    encoding_format: Literal["float", "base64"] = Field("float", description="Vector encoding")
    mode: Literal["query", "passage"] = Field("passage", description="Role of the texts")
    instruction: Literal["none", "e5"] = Field("e5", description="Instruction prefix policy")
    normalize: bool = Field(True, description="L2-normalize the vectors")


class EmbeddingObject(BaseModel):
    """A single embedding, index-aligned with the request input."""
    object: Literal["embedding"] = "embedding"
    index: int
    embedding: Union[List[float], str]


class EmbeddingsResponse(BaseModel):
    """Response envelope for the embeddings endpoint."""
    object: Literal["list"] = "list"
    data: List[EmbeddingObject]
    model: str


def get_embedding_manager(request: Request) -> EmbeddingManager:
    """Get embedding manager from application state."""
    return request.app.state.embedding_manager


def get_metrics(request: Request) -> MetricsCollector:
    """Get metrics collector from application state."""
    return request.app.state.metrics_collector


@router.post("/embeddings", response_model=EmbeddingsResponse)
async def create_embeddings(
    request: EmbeddingsRequest,
    embedding_manager: EmbeddingManager = Depends(get_embedding_manager),
    metrics_collector: MetricsCollector = Depends(get_metrics)
):
    """Generate embeddings for a string or a batch of strings."""
    start_time = time.time()
    inputs = request.input if isinstance(request.input, list) else [request.input]

    try:
        vectors = await embedding_manager.embed_batch(
            inputs,
            mode=request.mode,
            instruction=request.instruction,
            normalize=request.normalize
        )
    except EmbeddingError as e:
        metrics_collector.record_embedding_error(embedding_manager.model_id, type(e).__name__)
        logger.error(
            "Embedding generation failed",
            error=str(e),
            error_type=type(e).__name__,
            count=len(inputs)
        )
        raise HTTPException(status_code=500, detail=f"Embedding generation failed: {str(e)}")

    data = [
        EmbeddingObject(
            index=i,
            embedding=float32_to_base64(vector) if request.encoding_format == "base64" else vector
        )
        for i, vector in enumerate(vectors)
    ]

    duration = time.time() - start_time
    metrics_collector.record_embedding(
        model_name=embedding_manager.model_id,
        mode=request.mode,
        count=len(inputs),
        duration=duration
    )
    logger.info(
        "Embeddings generated",
        model_name=embedding_manager.model_id,
        count=len(vectors),
        mode=request.mode,
        instruction=request.instruction,
        encoding_format=request.encoding_format,
        latency_ms=duration * 1000
    )

    return EmbeddingsResponse(data=data, model=embedding_manager.model_id)
