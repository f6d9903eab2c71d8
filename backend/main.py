"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from engine.runtime import get_runtime
from utils.exceptions import AppError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    force=True  # Override any existing config
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Starts the reaper and the background model preload; stops both and
    cancels in-flight jobs on shutdown.
    """
    # === STARTUP ===
    logger.info(
        f"Starting {settings.app_name} - model={settings.whisper_model}, "
        f"max_workers={settings.max_concurrent_workers}, max_queue_size={settings.max_queue_size}, "
        f"max_file_size_mb={settings.max_file_size_mb}"
    )
    runtime = get_runtime()
    await runtime.start(preload_model=settings.preload_model)
    logger.info("Application ready")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down...")
    await runtime.shutdown()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Audio transcription service with background jobs and WebSocket streaming",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Global handler for application errors, keyed on the error kind."""
    status_code = exc.status_code
    if status_code >= 500:
        logger.error(f"Server error: {exc.kind.value} {request.method} {request.url.path} - {exc.message}")
    else:
        logger.warning(f"Client error: {exc.kind.value} {request.method} {request.url.path} - {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.kind.value, "details": exc.detail}
    )

# Include routers
from routers import system, transcription
app.include_router(system.router, prefix="/api/v1", tags=["System"])
app.include_router(transcription.router, prefix="/api/v1/transcribe", tags=["Transcription"])


@app.get("/health")
async def health_check():
    """Liveness probe."""
    return {"status": "healthy", "app": settings.app_name}


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)
