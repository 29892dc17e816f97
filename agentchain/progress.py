"""Live progress channel for step and run transitions."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel, Field

from .contracts import RunStatus, StepStatus, utc_now

logger = logging.getLogger(__name__)


class ProgressEvent(BaseModel):
    """A single transition, emitted as it is applied to the record."""

    execution_id: str
    run_status: RunStatus
    step_id: Optional[str] = None
    status: Optional[StepStatus] = None
    attempts: int = 0
    timestamp: datetime = Field(default_factory=utc_now)


ProgressHandler = Callable[[ProgressEvent], Awaitable[None]]


class ProgressChannel:
    """In-process fan-out of progress events.

    Consumers either push-subscribe an async handler or poll a queue obtained
    from :meth:`listen`. A failing handler is logged and never interrupts the
    run that produced the event.
    """

    def __init__(self) -> None:
        self._handlers: List[ProgressHandler] = []
        self._queues: List[asyncio.Queue[ProgressEvent]] = []

    def subscribe(self, handler: ProgressHandler) -> None:
        self._handlers.append(handler)

    def listen(self) -> asyncio.Queue[ProgressEvent]:
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def unlisten(self, queue: asyncio.Queue[ProgressEvent]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    async def publish(self, event: ProgressEvent) -> None:
        for queue in self._queues:
            queue.put_nowait(event)
        for handler in self._handlers:
            try:
                await handler(event)
            except Exception as exc:
                logger.error(
                    f"Progress handler {handler!r} failed for execution "
                    f"{event.execution_id}: {exc}",
                    exc_info=True,
                )
