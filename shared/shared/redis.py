import redis.asyncio as redis


def get_redis_client(url: str | None):
    if not url:
        return None
    return redis.from_url(url, decode_responses=True)
