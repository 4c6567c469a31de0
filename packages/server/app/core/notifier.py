"""
Per-user server-sent event channels.

One in-process queue per user; a new connection for the same user replaces
the previous one. Delivery is best effort: events for users without an open
stream are dropped, and nothing survives a process restart. Clients
reconcile by refetching.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, AsyncGenerator, Iterable

import structlog
from fastapi import Request
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

log = structlog.get_logger()

QUEUE_SIZE = 100
PENDING_EVENTS = "hive.pending_events"


class EventNotifier:
    def __init__(self, ping_interval: float = 30.0, retry_ms: int = 5000):
        self.ping_interval = ping_interval
        self.retry_ms = retry_ms
        self._streams: dict[uuid.UUID, asyncio.Queue] = {}

    def register(self, user_id: uuid.UUID) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        replaced = user_id in self._streams
        self._streams[user_id] = queue
        log.info("sse.registered", user_id=str(user_id), replaced=replaced)
        return queue

    def unregister(self, user_id: uuid.UUID, queue: asyncio.Queue) -> None:
        # a newer connection may already own the slot
        if self._streams.get(user_id) is queue:
            del self._streams[user_id]
            log.info("sse.unregistered", user_id=str(user_id))

    def is_connected(self, user_id: uuid.UUID) -> bool:
        return user_id in self._streams

    def send(self, user_id: uuid.UUID, event: str, payload: Any) -> bool:
        """Queue an event for one user. Returns False when nothing was queued."""
        queue = self._streams.get(user_id)
        if queue is None:
            return False
        try:
            queue.put_nowait({"event": event, "data": payload})
        except asyncio.QueueFull:
            log.warning("sse.dropped", user_id=str(user_id), event=event)
            return False
        return True

    def send_to_users(self, user_ids: Iterable[uuid.UUID], event: str, payload: Any) -> int:
        """Queue an event for every listed user that has a stream. Returns the delivered count."""
        return sum(1 for user_id in set(user_ids) if self.send(user_id, event, payload))

    def send_after_commit(
        self, session: AsyncSession, user_ids: Iterable[uuid.UUID], event: str, payload: Any
    ) -> None:
        """Hold an event on the session until its transaction commits. A rollback drops it."""
        session.info.setdefault(PENDING_EVENTS, []).append((self, list(user_ids), event, payload))

    def _frame(self, event: str, payload: Any) -> dict[str, Any]:
        return {
            "event": event,
            "data": json.dumps(payload, default=str),
            "retry": self.retry_ms,
        }

    async def stream(self, request: Request, user_id: uuid.UUID) -> AsyncGenerator[dict, None]:
        """Event generator for one connection: `connected`, then events and `ping` keep-alives."""
        queue = self.register(user_id)
        try:
            yield self._frame("connected", {"user_id": str(user_id)})
            while True:
                if await request.is_disconnected():
                    break
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=self.ping_interval)
                except asyncio.TimeoutError:
                    yield self._frame("ping", "pong")
                    continue
                yield self._frame(message["event"], message["data"])
        finally:
            self.unregister(user_id, queue)


@sa_event.listens_for(Session, "after_commit")
def _dispatch_pending_events(session: Session) -> None:
    for notifier, user_ids, event, payload in session.info.pop(PENDING_EVENTS, []):
        notifier.send_to_users(user_ids, event, payload)


@sa_event.listens_for(Session, "after_soft_rollback")
def _discard_pending_events(session: Session, previous_transaction) -> None:
    if not previous_transaction.nested:
        session.info.pop(PENDING_EVENTS, None)


def get_notifier(request: Request) -> EventNotifier:
    """FastAPI dependency: the notifier created at app startup."""
    return request.app.state.notifier
