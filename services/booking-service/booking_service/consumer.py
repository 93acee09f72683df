import json
import logging

import aio_pika
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from shared import idempotency
from shared.rabbitmq import EXCHANGE_NAME

from .config import RABBIT_URL
from .db import SessionLocal
from .models import Booking

logger = logging.getLogger(__name__)

QUEUE_NAME = "booking_service_payment_events"

PAYMENT_STATUS_BY_EVENT = {
    "payment.captured": "paid",
    "payment.refunded": "refunded",
    "payment.failed": "failed",
}
ROUTING_KEYS = list(PAYMENT_STATUS_BY_EVENT)

MAX_ATTEMPTS = 3


async def apply_payment_event(db, event_type: str, data: dict) -> bool:
    """Set ``payment_status`` from a payment event. Returns True when a row changed."""
    new_status = PAYMENT_STATUS_BY_EVENT.get(event_type)
    booking_id = data.get("booking_id")
    if not new_status or not booking_id:
        return False

    res = await db.execute(
        select(Booking)
        .where(Booking.booking_id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = res.scalar_one_or_none()
    if not booking:
        logger.warning(f"{event_type} for unknown booking {booking_id}")
        return False

    if booking.payment_status == new_status:
        return False

    booking.payment_status = new_status
    await db.commit()
    logger.info(f"Booking {booking_id} payment status -> {new_status}")
    return True


async def process_payload(payload: dict, redis, session_factory=SessionLocal) -> bool:
    event_id = payload.get("event_id")
    event_type = payload.get("event_type")
    data = payload.get("data") or {}

    if event_type not in PAYMENT_STATUS_BY_EVENT or not isinstance(data, dict):
        return False

    if event_id and redis is not None and await idempotency.is_processed(redis, event_id):
        logger.info(f"Skipping already processed event {event_id}")
        return False

    # a transition committing between read and write bumps the version
    for attempt in range(1, MAX_ATTEMPTS + 1):
        async with session_factory() as db:
            try:
                changed = await apply_payment_event(db, event_type, data)
                break
            except StaleDataError:
                await db.rollback()
                if attempt == MAX_ATTEMPTS:
                    raise
                logger.info(f"Retrying {event_type} after concurrent update (attempt {attempt})")

    if event_id and redis is not None:
        await idempotency.mark_processed(redis, event_id)
    return changed


def make_handler(redis):
    async def handle_message(message: aio_pika.abc.AbstractIncomingMessage):
        async with message.process(requeue=False):
            try:
                payload = json.loads(message.body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.warning("Dropping malformed message")
                return

            if not isinstance(payload, dict):
                logger.warning("Dropping malformed message")
                return

            await process_payload(payload, redis)

    return handle_message


async def start_consumer(redis):
    conn = await aio_pika.connect_robust(RABBIT_URL)
    channel = await conn.channel()
    await channel.set_qos(prefetch_count=50)

    exchange = await channel.declare_exchange(
        EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True
    )

    queue = await channel.declare_queue(QUEUE_NAME, durable=True)
    for rk in ROUTING_KEYS:
        await queue.bind(exchange, routing_key=rk)

    await queue.consume(make_handler(redis))
    logger.info("Payment event consumer started")
    return conn
