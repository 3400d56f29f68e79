"""
Live status gateway.

Turns a user's event channel into a Server-Sent Events stream.
"""

import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Optional

from renderspace.config import config
from renderspace.events.broker import EventBroker, parse_event
from renderspace.utils.logging import event_logger as logger


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

CONNECTED_FRAME = 'event: connected\ndata: {"message": "Subscribed to events"}\n\n'
KEEPALIVE_FRAME = ": keepalive\n\n"

# Upper bound on one blocking read so disconnects are noticed promptly
_READ_TIMEOUT_SECONDS = 1.0


def format_sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def stream_user_events(
    broker: EventBroker,
    user_id: str,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    keepalive_seconds: Optional[float] = None,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for one connection.

    A handshake frame first, then every valid broker message as a data
    frame, with a keep-alive comment after each quiet interval. Delivery is
    at most once: nothing published before the subscription is replayed.
    """
    keepalive_seconds = keepalive_seconds or config.SSE_KEEPALIVE_SECONDS
    loop = asyncio.get_running_loop()

    async with broker.subscribe(user_id) as pubsub:
        yield CONNECTED_FRAME
        last_sent = loop.time()

        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.debug("Event stream client disconnected", user_id=user_id)
                break

            message = await pubsub.get_message(
                ignore_subscribe_messages=True,
                timeout=min(_READ_TIMEOUT_SECONDS, keepalive_seconds),
            )

            if message is not None and message.get("type") == "message":
                payload = parse_event(message["data"])
                if payload is None:
                    logger.warning("Dropped invalid event payload", user_id=user_id)
                    continue
                yield format_sse(payload)
                last_sent = loop.time()
                continue

            if loop.time() - last_sent >= keepalive_seconds:
                yield KEEPALIVE_FRAME
                last_sent = loop.time()
