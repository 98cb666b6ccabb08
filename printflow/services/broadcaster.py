"""
Realtime broadcaster.

Fans queue engine events out to every connected client. publish() never
blocks: each connection owns a bounded asyncio.Queue drained by its own
sender task, so a slow or dead client only loses its own events. Events on
one connection are delivered in publish order, which keeps status events
for a single job causal.

Delivery is best-effort. Clients reconcile by re-fetching their jobs on
reconnect.
"""
from __future__ import annotations

import asyncio
import enum
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field

from printflow.config import settings
from printflow.logging_config import get_logger
from printflow.models.base import utcnow
from printflow.routes.metrics import track_event_published, update_realtime_connections

logger = get_logger(component="broadcaster")


class EventType(str, enum.Enum):
    JOB_CREATED = "job.created"
    JOB_STATUS_CHANGED = "job.status_changed"
    QUEUE_POSITION_CHANGED = "queue.position_changed"
    JOB_DELETED = "job.deleted"
    SERVICE_AVAILABILITY_CHANGED = "service.availability_changed"


class Event(BaseModel):
    type: EventType
    payload: dict[str, Any]
    emitted_at: datetime = Field(default_factory=utcnow)


class Subscriber(Protocol):
    """Anything that can receive a JSON message; a Starlette WebSocket qualifies."""

    async def send_json(self, data: Any) -> None:
        ...


class Connection:
    """One subscriber plus its outbound buffer and sender task."""

    def __init__(self, subscriber: Subscriber, maxsize: int, user_id: str | None = None):
        self.subscriber = subscriber
        self.user_id = user_id
        self.queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False
        self._task: asyncio.Task | None = None

    def start(self, on_dead) -> None:
        self._task = asyncio.create_task(self._run(on_dead))

    def offer(self, message: dict) -> bool:
        """Buffer a message for this connection; False when it was dropped."""
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def _run(self, on_dead) -> None:
        while True:
            message = await self.queue.get()
            try:
                await self.subscriber.send_json(message)
            except Exception as exc:
                logger.info("realtime_send_failed", user_id=self.user_id, error=str(exc))
                self.closed = True
                self.queue.task_done()
                # Unblock anyone waiting on drain().
                while not self.queue.empty():
                    self.queue.get_nowait()
                    self.queue.task_done()
                on_dead(self)
                return
            self.queue.task_done()

    async def stop(self) -> None:
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None


class RealtimeBroadcaster:
    """In-process fan-out hub shared by all request handlers."""

    def __init__(self, queue_size: int | None = None):
        self.queue_size = queue_size or settings.BROADCAST_QUEUE_SIZE
        self._connections: set[Connection] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connect(self, subscriber: Subscriber, user_id: str | None = None) -> Connection:
        connection = Connection(subscriber, self.queue_size, user_id=user_id)
        self._connections.add(connection)
        connection.start(self._discard)
        update_realtime_connections(len(self._connections))
        logger.info("realtime_connected", user_id=user_id, connections=len(self._connections))
        return connection

    async def disconnect(self, connection: Connection) -> None:
        self._discard(connection)
        await connection.stop()

    def _discard(self, connection: Connection) -> None:
        if connection in self._connections:
            self._connections.discard(connection)
            update_realtime_connections(len(self._connections))
            logger.info("realtime_disconnected", user_id=connection.user_id, connections=len(self._connections))

    def publish(self, event: Event) -> None:
        """Queue an event for every connection. Never blocks, never raises."""
        message = event.model_dump(mode="json")
        track_event_published(event.type.value)
        for connection in list(self._connections):
            if connection.closed:
                continue
            if not connection.offer(message):
                logger.warning(
                    "realtime_event_dropped",
                    user_id=connection.user_id,
                    event_type=event.type.value,
                    dropped=connection.dropped,
                )

    async def drain(self) -> None:
        """Wait until every connection has flushed its buffer."""
        for connection in list(self._connections):
            await connection.queue.join()

    async def close(self) -> None:
        for connection in list(self._connections):
            await self.disconnect(connection)


# ============================================
# Event builders
# ============================================

def _value(v):
    return v.value if isinstance(v, enum.Enum) else v


def job_payload(job) -> dict[str, Any]:
    """Public projection of a job; no student profile data."""
    return {
        "job_id": job.id,
        "token_number": job.token_number,
        "batch_id": job.batch_id,
        "student_id": job.student_id,
        "vendor_id": job.vendor_id,
        "status": _value(job.status),
        "payment_verified": job.payment_verified,
        "amount": job.amount,
        "created_at": job.created_at.isoformat() if job.created_at else None,
    }


def job_created(job) -> Event:
    return Event(type=EventType.JOB_CREATED, payload=job_payload(job))


def job_status_changed(job, from_status) -> Event:
    payload = job_payload(job)
    payload["from_status"] = _value(from_status)
    payload["to_status"] = _value(job.status)
    return Event(type=EventType.JOB_STATUS_CHANGED, payload=payload)


def queue_position_changed(vendor_id: str, job_id: str, token_number: int, position: int) -> Event:
    return Event(
        type=EventType.QUEUE_POSITION_CHANGED,
        payload={
            "vendor_id": vendor_id,
            "job_id": job_id,
            "token_number": token_number,
            "position": position,
        },
    )


def job_deleted(job_id: str, vendor_id: str) -> Event:
    return Event(type=EventType.JOB_DELETED, payload={"job_id": job_id, "vendor_id": vendor_id})


def service_availability_changed(vendor_id: str, is_open: bool) -> Event:
    return Event(
        type=EventType.SERVICE_AVAILABILITY_CHANGED,
        payload={"vendor_id": vendor_id, "is_open": is_open},
    )


# Process-wide instance used by the API layer
broadcaster = RealtimeBroadcaster()
