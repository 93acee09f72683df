import os

SERVICE_NAME = "booking-service"

BOOKING_DB = os.getenv("BOOKING_DB")
if not BOOKING_DB:
    raise RuntimeError("BOOKING_DB environment variable is not set")

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is not set")

# optional in dev: events and idempotency are disabled without them
RABBIT_URL = os.getenv("RABBIT_URL")
REDIS_URL = os.getenv("REDIS_URL")

MAX_RESCHEDULES = int(os.getenv("MAX_RESCHEDULES") or "3")

LOG_LEVEL = os.getenv("LOG_LEVEL") or "INFO"
