"""
Debounced autosave of the signer's draft.

Each editing session owns one :class:`AutosaveSession` and therefore one
scheduled task. Every change cancels that task and schedules a new one, so a
burst of edits produces a single write of the final state. A change that
arrives while a write is in flight cancels it as well; writes are idempotent,
so the next one simply sends the whole draft again.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Mapping, Optional

from docsign.core.config import settings

logger = logging.getLogger("docsign.autosave")

DraftWriter = Callable[[str, dict[str, str]], Awaitable[None]]
StatusListener = Callable[["SaveStatus"], None]


class SaveStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class AutosaveSession:
    def __init__(
        self,
        document_id: str,
        writer: DraftWriter,
        *,
        delay: float | None = None,
        on_status: StatusListener | None = None,
    ) -> None:
        self.document_id = document_id
        self._writer = writer
        self.delay = settings.autosave_debounce_seconds if delay is None else delay
        self._on_status = on_status
        self._status = SaveStatus.IDLE
        self._task: Optional[asyncio.Task[None]] = None
        self._draft: dict[str, str] = {}
        self.deadline: float | None = None
        self.last_error: BaseException | None = None
        self.writes = 0

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def draft(self) -> dict[str, str]:
        return dict(self._draft)

    def _set_status(self, status: SaveStatus) -> None:
        self._status = status
        if self._on_status:
            self._on_status(status)

    def schedule(self, form_data: Mapping[str, str]) -> None:
        """Record the latest draft and restart the debounce window."""
        self._draft = dict(form_data)
        self._cancel_task()
        loop = asyncio.get_running_loop()
        self.deadline = loop.time() + self.delay
        self._set_status(SaveStatus.PENDING)
        self._task = loop.create_task(self._run(self.delay))

    async def flush(self) -> SaveStatus:
        """Write the current draft now, replacing any pending write."""
        self._cancel_task()
        self.deadline = None
        await self._save()
        return self._status

    async def wait(self) -> SaveStatus:
        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        return self._status

    def close(self) -> None:
        self._cancel_task()
        if self._status in (SaveStatus.PENDING, SaveStatus.SAVING):
            self._set_status(SaveStatus.IDLE)

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self.deadline = None
        await self._save()

    async def _save(self) -> None:
        payload = dict(self._draft)
        self._set_status(SaveStatus.SAVING)
        try:
            await self._writer(self.document_id, payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # The draft stays in memory; the next change schedules another attempt.
            self.last_error = exc
            logger.warning("Autosave failed for document %s: %s", self.document_id, exc)
            self._set_status(SaveStatus.ERROR)
            return
        self.writes += 1
        self.last_error = None
        self._set_status(SaveStatus.SAVED)
