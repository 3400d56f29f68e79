"""
FastAPI application for the RenderSpace API.

This module sets up the main FastAPI app with routes, middleware,
and the service graph shared by request handlers.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from renderspace.config import config
from renderspace.container import Services, build_services
from renderspace.database.client import verify_supabase_connection
from renderspace.queue.connection import redis_health_check
from renderspace.routes import admin_router, credits_router, render_router
from renderspace.utils.logging import api_logger as logger, configure_logging


def create_app(services: Optional[Services] = None, start_scheduler: Optional[bool] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built service graph (tests); built from config on startup if None
        start_scheduler: Run the maintenance scheduler in this process
            (defaults to ENABLE_MAINTENANCE_SCHEDULER)
    """
    if start_scheduler is None:
        start_scheduler = config.ENABLE_MAINTENANCE_SCHEDULER

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_services = services is None
        app.state.services = services
        app.state.scheduler = None

        logger.info("RenderSpace API starting", environment=config.ENVIRONMENT)

        if owns_services:
            try:
                app.state.services = build_services(config)
            except Exception as e:
                # Keep serving /health so the deploy can report what is missing
                logger.critical("Failed to build services", error=str(e))

        if start_scheduler and app.state.services is not None:
            scheduler = app.state.services.create_scheduler()
            scheduler.start()
            app.state.scheduler = scheduler

        yield

        logger.info("RenderSpace API shutting down")
        if app.state.scheduler is not None:
            await app.state.scheduler.stop()
        if owns_services and app.state.services is not None:
            await app.state.services.close()

    app = FastAPI(
        title="RenderSpace API",
        description="AI room renders from collages and room photos",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(render_router)
    app.include_router(credits_router)
    app.include_router(admin_router)

    # Locally stored renders are served from here
    if config.STORAGE_BACKEND == "local":
        os.makedirs(config.LOCAL_STORAGE_PATH, exist_ok=True)
        app.mount("/renders", StaticFiles(directory=config.LOCAL_STORAGE_PATH), name="renders")

    # ===== Health Check =====

    @app.get("/health")
    async def health_check():
        """Reachability of Redis and Supabase. Always 200 so deploys can read it."""
        svc = app.state.services
        if svc is None:
            return {"status": "degraded", "redis": None, "supabase": False}

        redis = await redis_health_check(svc.redis, svc.queue)
        supabase = False
        if config.supabase_configured:
            supabase = await asyncio.to_thread(verify_supabase_connection)

        healthy = redis["status"] == "healthy" and supabase
        return {
            "status": "healthy" if healthy else "degraded",
            "redis": redis,
            "supabase": supabase,
        }

    # ===== Error Handlers =====

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler."""
        logger.error(
            "Unhandled error",
            path=request.url.path,
            error=str(exc),
            type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if config.DEBUG else "An error occurred",
                "type": type(exc).__name__
            }
        )

    return app


configure_logging(config.LOG_LEVEL)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "renderspace.api.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower()
    )
