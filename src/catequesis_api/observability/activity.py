"""
catequesis_api.observability.activity

Activity logging for successful gated operations.

Responsibilities:
- Define the structured `ActivityRecord`.
- Accept records without ever blocking the response path (bounded queue, drop on full).
- Drain records into a sink (structlog by default) from a background task.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from catequesis_api.observability.logging import get_logger

log = get_logger(__name__)
activity_log = get_logger("catequesis_api.activity")

ActivitySink = Callable[["ActivityRecord"], None]


@dataclass(frozen=True, slots=True)
class ActivityRecord:
    principal_id: str
    username: str
    role: str
    action: str
    method: str
    path: str
    timestamp: datetime

    def as_log_fields(self) -> dict[str, Any]:
        fields = asdict(self)
        fields["timestamp"] = self.timestamp.isoformat()
        return fields


def _structlog_sink(record: ActivityRecord) -> None:
    activity_log.info("activity", **record.as_log_fields())


class ActivityLogger:
    """
    Bounded, lossy activity log.

    `emit` never awaits: if the queue is full the record is dropped and counted.
    """

    def __init__(self, *, max_pending: int = 1_000, sink: ActivitySink | None = None) -> None:
        self._queue: asyncio.Queue[ActivityRecord] = asyncio.Queue(maxsize=max_pending)
        self._sink = sink or _structlog_sink
        self._task: asyncio.Task[None] | None = None
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def emit(self, record: ActivityRecord) -> bool:
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def drain(self) -> int:
        """Write out everything currently queued. Returns how many records were written."""

        written = 0
        while True:
            try:
                record = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return written
            self._write(record)
            self._queue.task_done()
            written += 1

    def _write(self, record: ActivityRecord) -> None:
        try:
            self._sink(record)
        except Exception:
            log.exception("activity_sink_failed", action=record.action)

    async def _run(self) -> None:
        while True:
            record = await self._queue.get()
            self._write(record)
            self._queue.task_done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="activity-logger")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        # Flush whatever is left so shutdown does not lose already-accepted records.
        self.drain()
        if self.dropped:
            log.warning("activity_records_dropped", dropped=self.dropped)


# --- Module Notes -----------------------------------------------------------
# Failures are never recorded here; error handlers already log them.
