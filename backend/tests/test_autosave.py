import asyncio

import pytest

from docsign.client.autosave import AutosaveSession, SaveStatus

pytestmark = pytest.mark.anyio


class RecordingWriter:
    def __init__(self, fail_times: int = 0, delay: float = 0.0) -> None:
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.fail_times = fail_times
        self.delay = delay

    async def __call__(self, document_id: str, form_data: dict[str, str]) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times:
            self.fail_times -= 1
            raise ConnectionError("network down")
        self.calls.append((document_id, form_data))


async def test_burst_of_edits_produces_one_write() -> None:
    writer = RecordingWriter()
    statuses: list[SaveStatus] = []
    session = AutosaveSession("doc-1", writer, delay=0.05, on_status=statuses.append)

    for length in range(1, 6):
        session.schedule({"host_name": "Jane Doe"[: length + 3]})
        await asyncio.sleep(0.005)

    assert session.status == SaveStatus.PENDING
    assert await session.wait() == SaveStatus.SAVED
    assert writer.calls == [("doc-1", {"host_name": "Jane Doe"})]
    assert session.writes == 1
    assert statuses[-2:] == [SaveStatus.SAVING, SaveStatus.SAVED]


async def test_failure_keeps_draft_and_next_edit_retries() -> None:
    writer = RecordingWriter(fail_times=1)
    session = AutosaveSession("doc-1", writer, delay=0.01)

    session.schedule({"host_name": "Jane"})
    assert await session.wait() == SaveStatus.ERROR
    assert isinstance(session.last_error, ConnectionError)
    assert session.draft == {"host_name": "Jane"}

    session.schedule({"host_name": "Jane Doe"})
    assert await session.wait() == SaveStatus.SAVED
    assert writer.calls == [("doc-1", {"host_name": "Jane Doe"})]
    assert session.last_error is None


async def test_edit_during_save_restarts_the_window() -> None:
    writer = RecordingWriter(delay=0.05)
    session = AutosaveSession("doc-1", writer, delay=0.01)

    session.schedule({"host_name": "Jane"})
    await asyncio.sleep(0.03)
    assert session.status == SaveStatus.SAVING

    session.schedule({"host_name": "Jane Doe"})
    assert session.status == SaveStatus.PENDING
    assert await session.wait() == SaveStatus.SAVED
    assert writer.calls == [("doc-1", {"host_name": "Jane Doe"})]


async def test_flush_and_close() -> None:
    writer = RecordingWriter()
    session = AutosaveSession("doc-1", writer, delay=10)

    session.schedule({"host_name": "Jane Doe"})
    assert session.deadline is not None
    assert await session.flush() == SaveStatus.SAVED
    assert writer.calls == [("doc-1", {"host_name": "Jane Doe"})]

    session.schedule({"host_name": "Someone else"})
    session.close()
    await asyncio.sleep(0)
    assert session.status == SaveStatus.IDLE
    assert len(writer.calls) == 1


async def test_sessions_are_independent() -> None:
    writer = RecordingWriter()
    first = AutosaveSession("doc-1", writer, delay=0.02)
    second = AutosaveSession("doc-2", writer, delay=0.02)

    first.schedule({"a": "1"})
    second.schedule({"b": "2"})
    await first.wait()
    await second.wait()

    assert sorted(writer.calls) == [("doc-1", {"a": "1"}), ("doc-2", {"b": "2"})]
