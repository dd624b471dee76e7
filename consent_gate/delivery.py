"""
Delivery hand-off for consent-gate
Approved payloads leave the release core through a Deliverer
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import structlog
from pydantic import BaseModel

from .constants import DeliveryDefaults

logger = structlog.get_logger(__name__)

# Coroutine taking one approved payload to the wire (SMTP, Graph, ...)
Transport = Callable[[Dict[str, Any]], Awaitable[Any]]


class DeliveryStatus(BaseModel):
    """Opaque result reported by a deliverer"""
    delivered: bool
    detail: Optional[str] = None
    reference: Optional[str] = None


class Deliverer(Protocol):
    """Takes an approved payload towards its transport"""

    async def deliver(self, final_payload: Dict[str, Any]) -> DeliveryStatus:
        ...


def _recipient_domain(payload: Dict[str, Any]) -> str:
    return str(payload.get("to", "")).split("@")[-1]


class OutboxDeliverer:
    """
    Bounded in-process outbox.

    Approved payloads are queued and forwarded to a transport by ``drain``.
    A payload is only accepted while a drain loop is running and the queue
    has room; otherwise the hand-off is reported as not delivered.
    """

    def __init__(self, maxsize: int = DeliveryDefaults.OUTBOX_MAXSIZE):
        if maxsize < 1:
            raise ValueError("Outbox maxsize must be at least 1")
        self.queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=maxsize)
        self._sequence = 0
        self._consumers = 0

    @property
    def has_consumer(self) -> bool:
        return self._consumers > 0

    async def deliver(self, final_payload: Dict[str, Any]) -> DeliveryStatus:
        if not self.has_consumer:
            logger.warning("Outbox has no consumer, payload not accepted",
                           recipient_domain=_recipient_domain(final_payload))
            return DeliveryStatus(delivered=False, detail="no outbox consumer running")

        reference = f"outbox-{self._sequence + 1}"
        try:
            self.queue.put_nowait({"reference": reference, "payload": final_payload})
        except asyncio.QueueFull:
            logger.error("Outbox full, payload not accepted",
                         maxsize=self.queue.maxsize,
                         recipient_domain=_recipient_domain(final_payload))
            return DeliveryStatus(delivered=False, detail="outbox full")

        self._sequence += 1
        logger.info("Payload queued for delivery", reference=reference,
                    recipient_domain=_recipient_domain(final_payload))
        return DeliveryStatus(delivered=True, detail="queued", reference=reference)

    async def drain(self, transport: Transport) -> None:
        """
        Forward queued payloads to ``transport`` until cancelled.

        A transport error is logged against the entry's reference and the
        loop moves on to the next payload.
        """
        self._consumers += 1
        logger.info("Outbox consumer started", pending=self.pending())
        try:
            while True:
                entry = await self.queue.get()
                try:
                    await transport(entry["payload"])
                except Exception as e:
                    logger.error("Outbox transport failed",
                                 reference=entry["reference"], error=str(e))
                else:
                    logger.info("Outbox payload sent", reference=entry["reference"])
                finally:
                    self.queue.task_done()
        finally:
            self._consumers -= 1
            logger.info("Outbox consumer stopped", pending=self.pending())

    async def flush(self, timeout: float = DeliveryDefaults.FLUSH_TIMEOUT_SECONDS) -> int:
        """Wait for queued payloads to be sent; returns how many are left"""
        try:
            await asyncio.wait_for(self.queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Outbox flush timed out", pending=self.pending())
        return self.pending()

    def pending(self) -> int:
        return self.queue.qsize()
