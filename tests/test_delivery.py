"""
Tests for the outbox deliverer
"""

import asyncio

import pytest

from consent_gate.delivery import OutboxDeliverer

PAYLOAD = {
    "to": "alice@example.com",
    "subject": "Quarterly report",
    "body": "Please find the report attached.",
    "classification": "internal",
}


class TestOutboxDeliverer:
    """Test queueing and draining approved payloads"""

    def setup_method(self):
        self.sent = []

    async def _transport(self, payload):
        self.sent.append(payload)

    async def _start(self, outbox, transport=None):
        task = asyncio.create_task(outbox.drain(transport or self._transport))
        await asyncio.sleep(0)
        return task

    async def _stop(self, task):
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    def test_queue_is_bounded_by_default(self):
        assert OutboxDeliverer().queue.maxsize > 0

    def test_unbounded_queue_refused(self):
        with pytest.raises(ValueError):
            OutboxDeliverer(maxsize=0)

    @pytest.mark.asyncio
    async def test_not_delivered_without_consumer(self):
        outbox = OutboxDeliverer()

        status = await outbox.deliver(PAYLOAD)

        assert not status.delivered
        assert status.detail == "no outbox consumer running"
        assert outbox.pending() == 0

    @pytest.mark.asyncio
    async def test_drain_forwards_payloads_in_order(self):
        outbox = OutboxDeliverer()
        task = await self._start(outbox)
        assert outbox.has_consumer

        first = await outbox.deliver(PAYLOAD)
        second = await outbox.deliver({**PAYLOAD, "subject": "Follow-up"})
        assert await outbox.flush(timeout=1) == 0

        assert first.delivered and first.reference == "outbox-1"
        assert second.reference == "outbox-2"
        assert [p["subject"] for p in self.sent] == ["Quarterly report", "Follow-up"]

        await self._stop(task)
        assert not outbox.has_consumer

    @pytest.mark.asyncio
    async def test_full_outbox_refuses_payload(self):
        outbox = OutboxDeliverer(maxsize=1)
        task = await self._start(outbox)

        # Neither call yields, so the consumer has not taken the first entry yet
        accepted = await outbox.deliver(PAYLOAD)
        refused = await outbox.deliver(PAYLOAD)

        assert accepted.delivered
        assert not refused.delivered
        assert refused.detail == "outbox full"
        assert refused.reference is None

        assert await outbox.flush(timeout=1) == 0
        assert len(self.sent) == 1
        await self._stop(task)

    @pytest.mark.asyncio
    async def test_transport_error_does_not_stop_drain(self):
        outbox = OutboxDeliverer()

        async def flaky(payload):
            if payload["subject"] == "boom":
                raise ConnectionError("SMTP relay refused connection")
            self.sent.append(payload)

        task = await self._start(outbox, flaky)
        await outbox.deliver({**PAYLOAD, "subject": "boom"})
        await outbox.deliver(PAYLOAD)

        assert await outbox.flush(timeout=1) == 0
        assert self.sent == [PAYLOAD]
        await self._stop(task)

    @pytest.mark.asyncio
    async def test_flush_times_out_with_pending_entries(self):
        outbox = OutboxDeliverer()
        release = asyncio.Event()

        async def stalled(payload):
            await release.wait()

        task = await self._start(outbox, stalled)
        await outbox.deliver(PAYLOAD)
        await outbox.deliver(PAYLOAD)

        assert await outbox.flush(timeout=0.05) == 1

        release.set()
        assert await outbox.flush(timeout=1) == 0
        await self._stop(task)
