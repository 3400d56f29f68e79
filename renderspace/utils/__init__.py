"""Utility modules for RenderSpace."""

from renderspace.utils.logging import (
    LogSource,
    get_logger,
    get_log_buffer,
    configure_logging,
    render_logger,
    queue_logger,
    credit_logger,
    event_logger,
    api_logger,
)

__all__ = [
    "LogSource",
    "get_logger",
    "get_log_buffer",
    "configure_logging",
    "render_logger",
    "queue_logger",
    "credit_logger",
    "event_logger",
    "api_logger",
]
