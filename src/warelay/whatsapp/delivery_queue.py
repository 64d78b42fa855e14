"""Serialized delivery of outbound payloads to the WhatsApp Cloud API.

One payload is in flight at a time, in enqueue order. The head of the
queue is released when the API acknowledges it (returns a message id) or
when the send definitively fails (error response, network error, timeout).
Failed items are not retried.

State machine:

    IDLE --enqueue--> SENDING --ack/failure, queue empty--> IDLE
                      SENDING --ack/failure, more items--> SENDING (next head)
"""

from __future__ import annotations

import asyncio
import enum
import itertools
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from warelay.observability.correlation import correlation_scope, get_correlation_id
from warelay.observability.logging import get_logger
from warelay.observability.redaction import recipient_context, safe_log_context

logger = get_logger(__name__)

# Sends one payload; returns the remote delivery id or raises
Transport = Callable[[dict[str, Any]], Awaitable[str]]

DEFAULT_SEND_TIMEOUT = 15.0


class QueueState(enum.Enum):
    IDLE = "idle"
    SENDING = "sending"


@dataclass(frozen=True)
class DeliveryReceipt:
    """Outcome of one queued payload."""

    ok: bool
    delivery_id: str | None = None
    error: str | None = None


@dataclass
class OutboundQueueItem:
    conversation_key: str
    payload: dict[str, Any]
    sequence: int
    correlation_id: str = ""
    delivery_id: str | None = None
    _done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    receipt: DeliveryReceipt | None = None

    def resolve(self, receipt: DeliveryReceipt) -> None:
        self.receipt = receipt
        self._done.set()

    async def wait(self) -> DeliveryReceipt:
        """Wait until the item was acknowledged or failed."""
        await self._done.wait()
        assert self.receipt is not None
        return self.receipt


class DeliveryQueue:
    """FIFO of outbound payloads drained by a single task."""

    def __init__(self, transport: Transport, send_timeout: float = DEFAULT_SEND_TIMEOUT) -> None:
        self._transport = transport
        self._send_timeout = send_timeout
        self._pending: deque[OutboundQueueItem] = deque()
        self._state = QueueState.IDLE
        self._sequence = itertools.count(1)
        self._drain_task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def pending(self) -> int:
        """Items not yet released, including the one in flight."""
        return len(self._pending)

    @property
    def in_flight(self) -> OutboundQueueItem | None:
        if self._state is QueueState.SENDING and self._pending:
            return self._pending[0]
        return None

    def enqueue(self, conversation_key: str, payload: dict[str, Any]) -> OutboundQueueItem:
        """Append a payload; start sending if the queue is idle.

        Must be called from a running event loop. Never interrupts the
        item currently in flight.
        """
        loop = asyncio.get_running_loop()
        item = OutboundQueueItem(
            conversation_key=conversation_key,
            payload=payload,
            sequence=next(self._sequence),
            correlation_id=get_correlation_id(),
        )
        self._pending.append(item)
        logger.debug(
            "outbound payload queued",
            extra={
                "extra_fields": recipient_context(
                    conversation_key, sequence=item.sequence, pending=len(self._pending)
                )
            },
        )

        if self._state is QueueState.IDLE:
            self._state = QueueState.SENDING
            self._idle.clear()
            self._drain_task = loop.create_task(self._drain())
        return item

    def acknowledge(self, delivery_id: str) -> bool:
        """Release the in-flight item after the API accepted it.

        Only the delivery id returned for the in-flight send releases it.

        Returns:
            False for late, duplicate or unknown acks, and for acks that
            arrive before the in-flight send returned its id.
        """
        item = self.in_flight
        if item is None or item.delivery_id is None or item.delivery_id != delivery_id:
            logger.warning(
                "acknowledgment not matching in-flight message ignored",
                extra={
                    "extra_fields": safe_log_context(
                        delivery_id=delivery_id, in_flight=item is not None
                    )
                },
            )
            return False
        if not self._release(item, DeliveryReceipt(ok=True, delivery_id=delivery_id)):
            return False
        logger.info(
            "outbound message delivered",
            extra={
                "extra_fields": recipient_context(
                    item.conversation_key, sequence=item.sequence, delivery_id=delivery_id
                )
            },
        )
        return True

    def _release(self, item: OutboundQueueItem, receipt: DeliveryReceipt) -> bool:
        """Pop ``item`` if it is still the head; never touches any other item."""
        if not (self._pending and self._pending[0] is item) or item.receipt is not None:
            return False
        self._pending.popleft()
        item.resolve(receipt)
        return True

    def _fail(self, item: OutboundQueueItem, error: str) -> None:
        if not self._release(item, DeliveryReceipt(ok=False, error=error)):
            return
        logger.error(
            "outbound message failed, advancing queue",
            extra={
                "extra_fields": recipient_context(
                    item.conversation_key,
                    sequence=item.sequence,
                    error=error,
                    pending=len(self._pending),
                )
            },
        )

    async def _drain(self) -> None:
        try:
            while self._pending:
                item = self._pending[0]
                with correlation_scope(item.correlation_id):
                    try:
                        delivery_id = await asyncio.wait_for(
                            self._transport(item.payload), timeout=self._send_timeout
                        )
                    except asyncio.TimeoutError:
                        self._fail(item, f"timeout after {self._send_timeout}s")
                    except Exception as e:
                        self._fail(item, f"{type(e).__name__}: {e}")
                    else:
                        item.delivery_id = delivery_id
                        self.acknowledge(delivery_id)
        finally:
            self._state = QueueState.IDLE
            self._drain_task = None
            self._idle.set()

    async def join(self) -> None:
        """Wait until every queued item has been released."""
        await self._idle.wait()

    async def aclose(self) -> None:
        """Cancel the drain; unsent items resolve as failed."""
        task = self._drain_task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        while self._pending:
            self._pending.popleft().resolve(DeliveryReceipt(ok=False, error="queue closed"))
