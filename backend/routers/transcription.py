"""
Transcription endpoints: batch jobs, synchronous transcription and streaming.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile, WebSocket, status
from starlette.websockets import WebSocketDisconnect, WebSocketState

from engine.runtime import TranscriptionRuntime, get_runtime
from models.responses import (
    BatchTranscriptionResponse,
    JobStatusResponse,
    StreamMessage,
    SyncTranscriptionResponse,
)
from utils.exceptions import CapacityExceededError, JobNotFoundError, TranscriptionFailed

logger = logging.getLogger(__name__)
router = APIRouter()

# Client end-of-audio signals on the stream socket
END_OF_STREAM_TEXT = {"end", "close", "eof"}
WS_CLOSE_NORMAL = 1000
WS_CLOSE_MESSAGE_TOO_BIG = 1009


def _reject_if_at_capacity(runtime: TranscriptionRuntime) -> None:
    snapshot = runtime.admission.snapshot()
    if snapshot.at_capacity:
        raise CapacityExceededError(snapshot.active_jobs, snapshot.queued_jobs, snapshot.max_queue_size)


async def _store_upload(file: UploadFile, runtime: TranscriptionRuntime) -> str:
    runtime.files.validate_file(file.filename, file.size or 0, file.content_type)
    return await runtime.files.save_upload(file, file.filename)


@router.post(
    "/batch",
    response_model=BatchTranscriptionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_batch_job(
    file: UploadFile = File(...),
    runtime: TranscriptionRuntime = Depends(get_runtime),
):
    """
    Upload an audio file and queue a background transcription job.

    Accepts: wav, mp3, ogg, m4a. Poll GET /batch/{job_id} for the result.
    """
    # Cheap rejection before the upload is written to disk
    _reject_if_at_capacity(runtime)
    input_path = await _store_upload(file, runtime)

    try:
        job_id = runtime.queue.submit(input_path)
    except Exception:
        # Rejected after the upload was stored
        runtime.files.discard(input_path)
        raise

    logger.info(f"Batch job submitted: job_id={job_id}, file={file.filename}")
    return BatchTranscriptionResponse(job_id=job_id, status="pending")


@router.get("/batch/{job_id}", response_model=JobStatusResponse)
async def get_batch_job(
    job_id: str,
    runtime: TranscriptionRuntime = Depends(get_runtime),
):
    """Get the status of a batch job, with its transcription or error once finished."""
    job = runtime.ledger.get(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return JobStatusResponse(**job.to_status_dict())


@router.post("", response_model=SyncTranscriptionResponse)
async def transcribe_sync(
    file: UploadFile = File(...),
    runtime: TranscriptionRuntime = Depends(get_runtime),
):
    """Transcribe an audio file and wait for the result."""
    _reject_if_at_capacity(runtime)
    input_path = await _store_upload(file, runtime)

    converted_path = None
    converter = runtime.converter_factory()
    transcriber = runtime.transcriber_factory()
    try:
        converted_path = await converter.convert(input_path)
        async with runtime.pool.slot(owner="sync"):
            text = await transcriber.transcribe(converted_path)
    finally:
        runtime.files.discard(input_path, converted_path)

    if not text.strip():
        raise TranscriptionFailed("No speech detected in audio")
    return SyncTranscriptionResponse(transcription=text.strip(), status="completed")


@router.websocket("/stream")
async def stream_transcription(
    websocket: WebSocket,
    runtime: TranscriptionRuntime = Depends(get_runtime),
):
    """
    Real-time streaming transcription.

    The client sends audio as binary frames and signals the end of audio with
    an empty binary frame or the text frame "end". The server answers with
    JSON messages {"type": "partial" | "final" | "error", "text", "timestamp"}.
    """
    await websocket.accept()
    session = runtime.new_stream_session()
    logger.info(f"Stream {session.session_id}: connection established")

    async def send_all(messages: list[StreamMessage]) -> None:
        for message in messages:
            await websocket.send_text(message.model_dump_json())

    try:
        while session.is_open:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                session.abort()
                logger.info(f"Stream {session.session_id}: client disconnected")
                return

            chunk = frame.get("bytes")
            text = frame.get("text")
            if chunk is None and text is not None and text.strip().lower() not in END_OF_STREAM_TEXT:
                await send_all([StreamMessage.error("Expected binary audio frames or the 'end' signal")])
                continue

            if chunk:
                await send_all(await session.receive(chunk))
            else:
                await send_all(await session.close())

        close_code = WS_CLOSE_MESSAGE_TOO_BIG if session.overflowed else WS_CLOSE_NORMAL
        await websocket.close(code=close_code)
        logger.info(f"Stream {session.session_id}: connection closed (code={close_code})")

    except WebSocketDisconnect:
        session.abort()
        logger.info(f"Stream {session.session_id}: client disconnected")
    except Exception as e:
        session.abort()
        logger.error(f"Stream {session.session_id}: unexpected error: {e}", exc_info=True)
        if websocket.application_state == WebSocketState.CONNECTED:
            try:
                await websocket.send_text(StreamMessage.error(f"Unexpected error: {e}").model_dump_json())
                await websocket.close(code=1011)
            except (RuntimeError, WebSocketDisconnect):
                logger.warning(f"Stream {session.session_id}: could not report error to client")
