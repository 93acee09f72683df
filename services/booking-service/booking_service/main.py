import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.logging_config import setup_logging
from shared.middleware import RequestLoggingMiddleware
from shared.responses import ApiResponse, install_error_handlers

from .config import LOG_LEVEL, RABBIT_URL, SERVICE_NAME
from .consumer import start_consumer
from .publisher import publisher
from .routes import redis_client, router

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    consumer_conn = None

    if publisher.enabled:
        try:
            await publisher.connect()
        except Exception:
            logger.warning("Publisher not connected at startup, will retry on first publish")

    if RABBIT_URL and redis_client is not None:
        consumer_conn = await start_consumer(redis_client)
    else:
        logger.info("Payment event consumer disabled (RABBIT_URL or REDIS_URL not set)")

    yield

    await publisher.close()
    if consumer_conn and not consumer_conn.is_closed:
        await consumer_conn.close()
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(title="Booking Service", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
install_error_handlers(app)
app.include_router(router)


@app.get("/health")
async def health():
    return ApiResponse.success(data={"status": "ok", "service": SERVICE_NAME}, message="Service healthy")
