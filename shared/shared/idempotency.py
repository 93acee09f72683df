"""
Redis-backed idempotency helpers.

Two uses: consumers skip domain events they already handled (keyed by
``event_id``), and request handlers honour a client ``Idempotency-Key``
so a retried request returns the first result instead of repeating it.
"""

EVENT_TTL_SECONDS = 86400
REQUEST_TTL_SECONDS = 86400
MAX_KEY_LENGTH = 255

PROCESSING = "__processing__"


def processed_key(event_id: str) -> str:
    return f"processed_event:{event_id}"


def request_key(scope: str, key: str) -> str:
    return f"idempotency:{scope}:{key}"


async def is_processed(client, event_id: str) -> bool:
    return bool(await client.exists(processed_key(event_id)))


async def mark_processed(client, event_id: str):
    await client.set(processed_key(event_id), "1", ex=EVENT_TTL_SECONDS)


async def claim(client, scope: str, key: str, pending_result: str = "") -> str | None:
    """
    Try to claim ``key`` for ``scope``.

    Returns None when the claim succeeded (first request). Otherwise returns
    the stored value: ``PROCESSING:<pending_result>`` while the first request
    is in flight, or the result recorded by ``complete``. ``result_of``
    extracts the result from either form.
    """
    k = request_key(scope, key)
    claimed = await client.set(k, f"{PROCESSING}:{pending_result}", ex=REQUEST_TTL_SECONDS, nx=True)
    if claimed:
        return None
    return await client.get(k)


def is_pending(value: str) -> bool:
    return value.startswith(f"{PROCESSING}:")


def result_of(value: str) -> str:
    if is_pending(value):
        return value[len(PROCESSING) + 1:]
    return value


async def complete(client, scope: str, key: str, result: str):
    await client.set(request_key(scope, key), result, ex=REQUEST_TTL_SECONDS)


async def release(client, scope: str, key: str):
    await client.delete(request_key(scope, key))
