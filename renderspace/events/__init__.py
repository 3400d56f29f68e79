"""
Per-user render events over Redis pub/sub, and the SSE stream that
forwards them to the browser.
"""

from .broker import (
    EventBroker,
    RenderEvent,
    EVENT_RENDER_COMPLETED,
    EVENT_RENDER_FAILED,
    parse_event,
)
from .gateway import stream_user_events, format_sse, SSE_HEADERS

__all__ = [
    "EventBroker",
    "RenderEvent",
    "EVENT_RENDER_COMPLETED",
    "EVENT_RENDER_FAILED",
    "parse_event",
    "stream_user_events",
    "format_sse",
    "SSE_HEADERS",
]
