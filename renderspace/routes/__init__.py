"""
API Routes for RenderSpace
"""

from .render import router as render_router
from .credits import router as credits_router
from .admin import router as admin_router

__all__ = [
    "render_router",
    "credits_router",
    "admin_router",
]
