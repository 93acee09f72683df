from fastapi import FastAPI

from shared.logging_config import setup_logging
from shared.middleware import RequestLoggingMiddleware
from shared.responses import ApiResponse, install_error_handlers

from .config import LOG_LEVEL, SERVICE_NAME
from .routes import router

setup_logging(LOG_LEVEL)

app = FastAPI(title="Auth Service")
app.add_middleware(RequestLoggingMiddleware)
install_error_handlers(app)

app.include_router(router)


@app.get("/health")
async def health():
    return ApiResponse.success(data={"status": "ok", "service": SERVICE_NAME}, message="Service healthy")
