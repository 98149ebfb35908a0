"""Embedding service main application."""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router as api_router
from .encoders.embedding_manager import EmbeddingManager
from .encoders.errors import EmbeddingError
from .runtime.metrics import get_metrics_collector
from libs.common.config import EmbeddingConfig
from libs.common.logging import configure_logging

logger = structlog.get_logger("embedding_service")

SERVICE_NAME = "embedding-service"


def create_app(
    config: Optional[EmbeddingConfig] = None,
    embedding_manager: Optional[EmbeddingManager] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Parameters
    - config: settings; read from the environment when omitted
    - embedding_manager: pre-built manager (tests inject one with a fake
      loader); created from ``config`` when omitted
    """
    config = config or EmbeddingConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        configure_logging(SERVICE_NAME, config.ml_log_level, config.ml_log_format)
        app.state.config = config
        app.state.startup_time = time.time()
        app.state.metrics_collector = get_metrics_collector(SERVICE_NAME)

        logger.info("Starting embedding service", model_id=config.ml_embedding_model)

        app.state.embedding_manager = embedding_manager or EmbeddingManager(
            config, metrics=app.state.metrics_collector
        )
        if config.ml_embedding_preload:
            await app.state.embedding_manager.initialize(warmup=True)

        logger.info("Embedding service started successfully")

        yield

        # Shutdown
        logger.info("Shutting down embedding service")
        await app.state.embedding_manager.cleanup()
        logger.info("Embedding service shutdown complete")

    app = FastAPI(
        title="RAG Embedder",
        description="OpenAI-compatible embedding service with E5 instruction prefixes",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origin_list(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/v1")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Reject malformed bodies with 400 and the validation details."""
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "details": jsonable_encoder(exc.errors())}
        )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to responses."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.exception("Unhandled request error", path=request.url.path)
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": str(e)}
            )

        duration = time.time() - start_time

        if hasattr(request.app.state, "metrics_collector"):
            request.app.state.metrics_collector.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status=status_code,
                duration=duration
            )

        return response

    @app.get("/healthz")
    async def health_check(request: Request):
        """Health check; warms the model up to report its dimension."""
        manager: EmbeddingManager = request.app.state.embedding_manager
        try:
            info = await manager.get_model_info()
        except EmbeddingError as e:
            logger.error("Health check failed", error=str(e))
            return JSONResponse(
                status_code=503,
                content={"ok": False, "model": manager.model_id, "dim": None, "error": str(e)}
            )
        return {"ok": True, **info}

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        metrics_data = request.app.state.metrics_collector.get_metrics()
        return Response(content=metrics_data, media_type="text/plain")

    @app.get("/live")
    async def liveness(request: Request):
        """Liveness check. Returns quickly if process is responsive."""
        return {
            "status": "alive",
            "service": SERVICE_NAME,
            "uptime_seconds": time.time() - getattr(request.app.state, "startup_time", time.time())
        }

    @app.get("/ready")
    async def readiness(request: Request):
        """Readiness check. Ready once the model has been loaded."""
        manager: EmbeddingManager = request.app.state.embedding_manager
        if not await manager.health_check():
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready", "service": SERVICE_NAME, "model": manager.model_id}
            )
        return {"status": "ready", "service": SERVICE_NAME, "model": manager.model_id}

    @app.get("/")
    async def root(request: Request):
        """Root endpoint."""
        manager: EmbeddingManager = request.app.state.embedding_manager
        try:
            info = await manager.get_model_info()
        except EmbeddingError as e:
            logger.warning("Model info unavailable", error=str(e))
            info = {"model": manager.model_id, "dim": manager.dimension}
        return {
            "name": "RAG Embedder",
            "model": info["model"],
            "dim": info["dim"],
            "endpoints": ["/v1/embeddings", "/healthz"]
        }

    return app


def _listening_url(server: uvicorn.Server, host: str) -> str:
    """URL of the first bound socket (reports the OS-chosen port for port 0)."""
    port = server.config.port
    for listener in getattr(server, "servers", None) or []:
        sockets = list(listener.sockets or [])
        if sockets:
            port = sockets[0].getsockname()[1]
            break
    if host in ("0.0.0.0", "::", ""):
        host = "localhost"
    elif ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}"


async def serve(server: uvicorn.Server, host: str) -> None:
    """Run ``server`` to completion, logging where it listens once started."""
    serving = asyncio.create_task(server.serve())
    while not server.started and not serving.done():
        await asyncio.sleep(0.05)
    if server.started:
        logger.info("Embedding server listening", url=_listening_url(server, host))
    await serving


def run():
    """Run the service with uvicorn (SIGINT/SIGTERM shut it down gracefully)."""
    config = EmbeddingConfig()
    configure_logging(SERVICE_NAME, config.ml_log_level, config.ml_log_format)
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(config),
            host=config.ml_embedding_host,
            port=config.resolved_port(),
            log_level=config.ml_log_level.lower(),
            log_config=None,
        )
    )
    asyncio.run(serve(server, config.ml_embedding_host))


if __name__ == "__main__":
    run()
