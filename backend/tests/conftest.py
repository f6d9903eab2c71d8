import uuid
from typing import AsyncGenerator, Callable, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from config import settings
from engine.runtime import TranscriptionRuntime, get_runtime
from main import app

from fakes import FakeConverter, FakeTranscriber


# --- File System ---

@pytest.fixture(autouse=True)
def temp_dirs(tmp_path, monkeypatch):
    """Point uploads and intermediate files at a per-test directory."""
    upload_dir = tmp_path / "uploads"
    work_dir = tmp_path / "work"
    upload_dir.mkdir()
    work_dir.mkdir()
    monkeypatch.setattr(settings, "upload_dir", upload_dir)
    monkeypatch.setattr(settings, "work_dir", work_dir)
    yield upload_dir, work_dir


@pytest.fixture
def make_input(temp_dirs):
    """Create an input artifact in the upload dir."""
    upload_dir, _ = temp_dirs

    def _make(content: bytes = b"hello world", name: Optional[str] = None) -> str:
        path = upload_dir / (name or f"upload_{uuid.uuid4().hex}.wav")
        path.write_bytes(content)
        return str(path)

    return _make


# --- Runtime ---

@pytest.fixture
def make_runtime():
    def _make(
        converter: Callable[[], FakeConverter] = FakeConverter,
        transcriber: Callable[[], FakeTranscriber] = FakeTranscriber,
        **kwargs,
    ) -> TranscriptionRuntime:
        kwargs.setdefault("max_workers", 2)
        kwargs.setdefault("max_queue_size", 10)
        return TranscriptionRuntime(converter_factory=converter, transcriber_factory=transcriber, **kwargs)

    return _make


@pytest.fixture
def runtime(make_runtime) -> TranscriptionRuntime:
    return make_runtime()


# --- Client Setup ---

@pytest_asyncio.fixture(scope="function")
async def client(runtime) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_runtime] = lambda: runtime
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test/api/v1") as c:
        yield c
    await runtime.queue.stop(wait_for_current=False)
    app.dependency_overrides.clear()
