import json

import pytest

from booking_service import consumer, lifecycle


def payment_event(event_type, booking_id, event_id="evt-1"):
    return {
        "event_id": event_id,
        "event_type": event_type,
        "occurred_at": "2026-01-01T00:00:00+00:00",
        "data": {"booking_id": booking_id},
    }


class FakeMessage:
    """Just enough of aio_pika's IncomingMessage for the handler."""

    def __init__(self, body: bytes):
        self.body = body
        self.processed = False

    def process(self, requeue=False):
        message = self

        class _Ctx:
            async def __aenter__(self):
                return message

            async def __aexit__(self, *exc):
                message.processed = True
                return False

        return _Ctx()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "event_type,expected",
    [
        ("payment.captured", "paid"),
        ("payment.refunded", "refunded"),
        ("payment.failed", "failed"),
    ],
)
async def test_payment_events_set_status(session_factory, new_booking, fake_redis, event_type, expected):
    booking = await new_booking()

    changed = await consumer.process_payload(
        payment_event(event_type, booking.booking_id), fake_redis, session_factory
    )

    assert changed is True
    async with session_factory() as db:
        fresh = await lifecycle.find_booking(db, booking.booking_id)
    assert fresh.payment_status == expected
    assert fresh.status == "pending"


@pytest.mark.asyncio
async def test_duplicate_event_is_skipped(session_factory, new_booking, fake_redis, mocker):
    booking = await new_booking()
    event = payment_event("payment.captured", booking.booking_id)

    assert await consumer.process_payload(event, fake_redis, session_factory) is True

    apply = mocker.patch.object(consumer, "apply_payment_event")
    assert await consumer.process_payload(event, fake_redis, session_factory) is False
    apply.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_booking_and_event_types_are_ignored(session_factory, fake_redis):
    assert await consumer.process_payload(payment_event("payment.captured", "missing"), fake_redis, session_factory) is False
    assert await consumer.process_payload(payment_event("slot.reserved", "x"), fake_redis, session_factory) is False


@pytest.mark.asyncio
async def test_handler_drops_malformed_messages(mocker, fake_redis):
    process = mocker.patch.object(consumer, "process_payload")
    handler = consumer.make_handler(fake_redis)

    garbage = FakeMessage(b"not json")
    await handler(garbage)
    not_a_dict = FakeMessage(b"[1, 2]")
    await handler(not_a_dict)

    assert garbage.processed and not_a_dict.processed
    process.assert_not_awaited()


@pytest.mark.asyncio
async def test_handler_dispatches_payload(mocker, fake_redis):
    process = mocker.patch.object(consumer, "process_payload")
    handler = consumer.make_handler(fake_redis)
    event = payment_event("payment.failed", "b-1")

    await handler(FakeMessage(json.dumps(event).encode("utf-8")))

    process.assert_awaited_once_with(event, fake_redis)
