import asyncio

import pytest

from engine.stream_session import SessionState, StreamSession
from engine.worker_pool import WorkerPool

from fakes import FakeConverter, FakeTranscriber


def _session(pool=None, converter=FakeConverter, transcriber=FakeTranscriber, min_trigger=10, max_size=20):
    return StreamSession(
        pool or WorkerPool(1),
        converter,
        transcriber,
        min_trigger=min_trigger,
        max_size=max_size,
        session_id="test",
    )


@pytest.mark.parametrize("min_trigger,max_size", [(0, 10), (10, 5)])
def test_invalid_thresholds_are_rejected(min_trigger, max_size):
    with pytest.raises(ValueError):
        _session(min_trigger=min_trigger, max_size=max_size)


@pytest.mark.asyncio
async def test_partial_then_final_flush(temp_dirs):
    session = _session()

    assert await session.receive(b"hello") == []
    assert session.buffered == 5

    messages = await session.receive(b"world!")
    assert [m.type for m in messages] == ["partial"]
    assert messages[0].text == "helloworld!"
    assert session.buffered == 0

    assert await session.receive(b"abc") == []

    messages = await session.close()
    assert [m.type for m in messages] == ["final"]
    assert messages[0].text == "abc"
    assert session.state == SessionState.CLOSED

    _, work_dir = temp_dirs
    assert list(work_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_overflow_emits_error_and_closes():
    transcribed = []
    session = _session(transcriber=lambda: FakeTranscriber(on_start=lambda: transcribed.append(1)))

    messages = await session.receive(b"x" * 25)

    assert [m.type for m in messages] == ["error"]
    assert "exceeds maximum" in messages[0].text
    assert session.overflowed
    assert not session.is_open
    assert session.buffered == 0
    assert transcribed == []
    assert await session.receive(b"more") == []
    assert await session.close() == []


@pytest.mark.asyncio
async def test_failed_partial_keeps_session_open():
    attempts = []

    def transcriber():
        attempts.append(1)
        return FakeTranscriber(fail=len(attempts) == 1)

    session = _session(transcriber=transcriber)

    messages = await session.receive(b"0123456789")
    assert [m.type for m in messages] == ["error"]
    assert session.is_open
    assert session.buffered == 0

    messages = await session.receive(b"abcdefghij")
    assert [m.type for m in messages] == ["partial"]
    assert messages[0].text == "abcdefghij"


@pytest.mark.asyncio
async def test_failed_final_flush_reports_error_and_closes():
    session = _session(converter=lambda: FakeConverter(fail=True))
    await session.receive(b"abc")

    messages = await session.close()

    assert [m.type for m in messages] == ["error"]
    assert "conversion failed" in messages[0].text.lower()
    assert session.state == SessionState.CLOSED


@pytest.mark.asyncio
async def test_close_with_empty_buffer_sends_nothing():
    session = _session()
    assert await session.close() == []
    assert session.state == SessionState.CLOSED


@pytest.mark.asyncio
async def test_abort_discards_buffer_without_transcribing():
    transcribed = []
    session = _session(transcriber=lambda: FakeTranscriber(on_start=lambda: transcribed.append(1)))
    await session.receive(b"abc")

    session.abort()

    assert session.buffered == 0
    assert not session.is_open
    assert await session.close() == []
    assert transcribed == []


@pytest.mark.asyncio
async def test_messages_are_timestamped():
    session = _session()
    messages = await session.receive(b"0123456789")
    assert messages[0].timestamp > 0


@pytest.mark.asyncio
async def test_sessions_share_the_worker_pool():
    pool = WorkerPool(1)
    running = 0
    peak = 0

    class CountingTranscriber(FakeTranscriber):
        async def transcribe(self, audio_path):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1
            return "ok"

    sessions = [_session(pool=pool, transcriber=CountingTranscriber) for _ in range(3)]
    results = await asyncio.gather(*(s.receive(b"0123456789") for s in sessions))

    assert peak == 1
    assert all(r[0].type == "partial" for r in results)
    assert pool.in_use == 0


class DiskErrorTranscriber(FakeTranscriber):
    async def transcribe(self, audio_path):
        raise OSError("disk read error")


@pytest.mark.asyncio
async def test_unexpected_partial_error_is_reported_and_session_continues():
    attempts = []

    def transcriber():
        attempts.append(1)
        return DiskErrorTranscriber() if len(attempts) == 1 else FakeTranscriber()

    session = _session(transcriber=transcriber)

    messages = await session.receive(b"0123456789")
    assert [m.type for m in messages] == ["error"]
    assert "disk read error" in messages[0].text
    assert session.is_open

    assert await session.receive(b"abc") == []
    messages = await session.close()
    assert [m.type for m in messages] == ["final"]
    assert messages[0].text == "abc"


@pytest.mark.asyncio
async def test_unexpected_final_error_is_reported_and_closes():
    session = _session(transcriber=DiskErrorTranscriber)
    await session.receive(b"abc")

    messages = await session.close()

    assert [m.type for m in messages] == ["error"]
    assert "disk read error" in messages[0].text
    assert session.state == SessionState.CLOSED
