from shared.events import build_event, to_json
from shared.rabbitmq import RabbitPublisher

from .config import RABBIT_URL, SERVICE_NAME

publisher = RabbitPublisher(RABBIT_URL, SERVICE_NAME)


async def publish_booking_event(
    event_type: str,
    booking,
    previous_status: str | None,
    changed_by: str,
    extra: dict | None = None,
):
    data = {
        "booking_id": booking.booking_id,
        "customer": booking.customer,
        "technician": booking.technician,
        "previous_status": previous_status,
        "status": booking.status,
        "changed_by": changed_by,
    }
    if extra:
        data.update(extra)

    await publisher.publish(event_type, to_json(build_event(event_type, data)))
