"""In-process task queue that hands deferred follow-ups to subscribers."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from membership_api.db.base import utc_now

from .logging import current_correlation_id

logger = logging.getLogger(__name__)

TaskHandler = Callable[["TaskMessage"], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class TaskMessage:
    """Envelope describing a queued follow-up.

    Payloads carry identifiers only; handlers re-read current state.
    """

    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    correlation_id: str | None = None
    enqueued_at: datetime = field(default_factory=utc_now)


class TaskQueue:
    """Async queue that fans each message out to every subscriber.

    Without subscribers, messages stay pending until drained. With
    subscribers, a message is delivered inline and removed afterwards.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._pending: deque[TaskMessage] = deque()
        self._subscribers: list[TaskHandler] = []

    async def enqueue(
        self,
        name: str,
        payload: Mapping[str, Any] | None = None,
        *,
        correlation_id: str | None = None,
    ) -> TaskMessage:
        message = TaskMessage(
            name=name,
            payload=dict(payload or {}),
            correlation_id=correlation_id or current_correlation_id(),
        )

        async with self._lock:
            self._pending.append(message)
            subscribers = list(self._subscribers)

        logger.debug(
            "task_queue.enqueue",
            extra={"task": name, "subscribers": len(subscribers)},
        )

        try:
            for handler in subscribers:
                await handler(message)
        finally:
            if subscribers:
                async with self._lock:
                    try:
                        self._pending.remove(message)
                    except ValueError:
                        pass

        return message

    async def drain(self) -> list[TaskMessage]:
        """Return and clear all pending messages."""

        async with self._lock:
            items = list(self._pending)
            self._pending.clear()
        return items

    async def snapshot(self) -> list[TaskMessage]:
        async with self._lock:
            return list(self._pending)

    def subscribe(self, handler: TaskHandler) -> None:
        if handler not in self._subscribers:
            self._subscribers.append(handler)

    def clear_subscribers(self) -> None:
        self._subscribers.clear()


__all__ = ["TaskHandler", "TaskMessage", "TaskQueue"]
