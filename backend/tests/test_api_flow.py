import pytest
from httpx import ASGITransport, AsyncClient
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from config import settings
from engine.runtime import get_runtime
from main import app

from fakes import FakeConverter

WAV_UPLOAD = ("speech.wav", b"hello world", "audio/wav")


@pytest.mark.asyncio
async def test_liveness_probe(client: AsyncClient):
    response = await client.get("http://test/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_health_reports_model_state(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "model_loaded": True, "model_size": "fake-model"}


@pytest.mark.asyncio
async def test_capacity_when_idle(client: AsyncClient):
    response = await client.get("/capacity")
    assert response.status_code == 200
    assert response.json() == {
        "active_jobs": 0,
        "queued_jobs": 0,
        "max_workers": 2,
        "max_queue_size": 10,
        "available_capacity": 10,
        "at_capacity": False,
    }


@pytest.mark.asyncio
async def test_capacity_returns_503_when_full(client: AsyncClient, runtime):
    runtime.admission.max_queue_size = 1
    runtime.ledger.create()

    response = await client.get("/capacity")
    assert response.status_code == 503
    data = response.json()
    assert data["queued_jobs"] == 1
    assert data["available_capacity"] == 0
    assert data["at_capacity"] is True


@pytest.mark.asyncio
async def test_batch_job_lifecycle(client: AsyncClient, runtime, temp_dirs):
    response = await client.post("/transcribe/batch", files={"file": WAV_UPLOAD})
    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "pending"
    job_id = data["job_id"]

    await runtime.queue.join()

    response = await client.get(f"/transcribe/batch/{job_id}")
    assert response.status_code == 200
    assert response.json() == {
        "job_id": job_id,
        "status": "completed",
        "transcription": "hello world",
        "error": None,
    }

    upload_dir, work_dir = temp_dirs
    assert list(upload_dir.iterdir()) == []
    assert list(work_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_batch_job_failure_is_reported(make_runtime, temp_dirs):
    runtime = make_runtime(converter=lambda: FakeConverter(fail=True))
    app.dependency_overrides[get_runtime] = lambda: runtime
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test/api/v1") as c:
            job_id = (await c.post("/transcribe/batch", files={"file": WAV_UPLOAD})).json()["job_id"]
            await runtime.queue.join()
            data = (await c.get(f"/transcribe/batch/{job_id}")).json()
    finally:
        app.dependency_overrides.clear()

    assert data["status"] == "failed"
    assert data["transcription"] is None
    assert data["error"].startswith("Audio conversion failed")


@pytest.mark.asyncio
async def test_unknown_job_returns_404(client: AsyncClient):
    response = await client.get("/transcribe/batch/does-not-exist")
    assert response.status_code == 404
    assert response.json()["code"] == "JOB_NOT_FOUND"


@pytest.mark.asyncio
async def test_unsupported_format_is_rejected(client: AsyncClient, runtime):
    response = await client.post("/transcribe/batch", files={"file": ("notes.txt", b"text", "text/plain")})
    assert response.status_code == 415
    assert response.json()["code"] == "INVALID_AUDIO_FORMAT"
    assert len(runtime.ledger) == 0


@pytest.mark.asyncio
async def test_empty_upload_is_rejected(client: AsyncClient, temp_dirs):
    response = await client.post("/transcribe/batch", files={"file": ("silence.wav", b"", "audio/wav")})
    assert response.status_code == 415
    upload_dir, _ = temp_dirs
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_oversized_upload_is_rejected(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "max_file_size_mb", 1)
    big = b"x" * (1024 * 1024 + 1)

    response = await client.post("/transcribe/batch", files={"file": ("long.wav", big, "audio/wav")})
    assert response.status_code == 413
    assert response.json()["code"] == "FILE_TOO_LARGE"


@pytest.mark.asyncio
async def test_batch_submit_at_capacity_returns_503(client: AsyncClient, runtime, temp_dirs):
    runtime.admission.max_queue_size = 1
    runtime.ledger.create()

    response = await client.post("/transcribe/batch", files={"file": WAV_UPLOAD})
    assert response.status_code == 503
    assert response.json()["code"] == "CAPACITY_EXCEEDED"
    assert len(runtime.ledger) == 1
    upload_dir, _ = temp_dirs
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_sync_transcription(client: AsyncClient, runtime, temp_dirs):
    response = await client.post("/transcribe", files={"file": WAV_UPLOAD})
    assert response.status_code == 200
    assert response.json() == {"transcription": "hello world", "status": "completed"}

    assert len(runtime.ledger) == 0
    assert runtime.pool.in_use == 0
    upload_dir, work_dir = temp_dirs
    assert list(upload_dir.iterdir()) == []
    assert list(work_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_batch_submit_after_shutdown_removes_upload(runtime, temp_dirs):
    await runtime.queue.stop()
    app.dependency_overrides[get_runtime] = lambda: runtime
    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test/api/v1") as c:
            response = await c.post("/transcribe/batch", files={"file": WAV_UPLOAD})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert len(runtime.ledger) == 0
    upload_dir, _ = temp_dirs
    assert list(upload_dir.iterdir()) == []


# --- WebSocket streaming ---

@pytest.fixture
def stream_client(make_runtime):
    runtime = make_runtime(stream_min_chunk_size=10, stream_max_buffer_size=20)
    app.dependency_overrides[get_runtime] = lambda: runtime
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_stream_partial_then_final(stream_client):
    with stream_client.websocket_connect("/api/v1/transcribe/stream") as ws:
        ws.send_bytes(b"hello")
        ws.send_bytes(b"world!")
        partial = ws.receive_json()
        assert partial["type"] == "partial"
        assert partial["text"] == "helloworld!"
        assert partial["timestamp"] > 0

        ws.send_bytes(b"abc")
        ws.send_text("end")
        final = ws.receive_json()
        assert final == {"type": "final", "text": "abc", "timestamp": final["timestamp"]}

        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
        assert exc_info.value.code == 1000


def test_stream_overflow_closes_connection(stream_client):
    with stream_client.websocket_connect("/api/v1/transcribe/stream") as ws:
        ws.send_bytes(b"x" * 25)
        message = ws.receive_json()
        assert message["type"] == "error"

        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
        assert exc_info.value.code == 1009


def test_stream_rejects_unexpected_text(stream_client):
    with stream_client.websocket_connect("/api/v1/transcribe/stream") as ws:
        ws.send_text("hello?")
        assert ws.receive_json()["type"] == "error"

        # An empty binary frame also ends the stream
        ws.send_bytes(b"")
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
        assert exc_info.value.code == 1000
