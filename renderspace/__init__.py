"""RenderSpace: queued AI room renders with credit billing and live status events."""

__version__ = "1.0.0"
