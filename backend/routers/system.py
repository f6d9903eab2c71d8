import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from engine.runtime import TranscriptionRuntime, get_runtime
from models.responses import CapacityResponse, HealthResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def get_health(runtime: TranscriptionRuntime = Depends(get_runtime)):
    """Service status and transcription model state."""
    model_loaded, model_size = runtime.engine_status()
    return HealthResponse(status="healthy", model_loaded=model_loaded, model_size=model_size)


@router.get(
    "/capacity",
    response_model=CapacityResponse,
    responses={503: {"model": CapacityResponse, "description": "Service is at capacity"}},
)
async def get_capacity(runtime: TranscriptionRuntime = Depends(get_runtime)):
    """
    Current load: active and queued jobs against the configured limits.
    Responds 503 with the same body when no new job can be accepted.
    """
    snapshot = runtime.admission.snapshot()
    body = CapacityResponse(**snapshot.to_dict())

    if snapshot.at_capacity:
        logger.warning("Service is at capacity - returning 503")
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
