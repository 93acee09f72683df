import os

SERVICE_NAME = "auth-service"

AUTH_DB = os.getenv("AUTH_DB")
if not AUTH_DB:
    raise RuntimeError("AUTH_DB environment variable is not set")

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is not set")

ACCESS_TOKEN_MINUTES = int(os.getenv("ACCESS_TOKEN_MINUTES") or "15")
REFRESH_TOKEN_DAYS = int(os.getenv("REFRESH_TOKEN_DAYS") or "7")

LOG_LEVEL = os.getenv("LOG_LEVEL") or "INFO"
