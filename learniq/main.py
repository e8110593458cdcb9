"""
Main application entry point for the LearnIQ service.

Usage:
    - Direct: python -m learniq.main
    - ASGI server: uvicorn learniq.main:app
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from learniq.api import install_exception_handlers, main_router, register_module
from learniq.common.logger import app_logger
from learniq.config import settings
from learniq.database.init_db import close_database, initialize_database
from learniq.edl.router import router as edl_router
from learniq.gamification.router import cron_router, router as gamification_router
from learniq.quiz.router import router as quiz_router
from learniq.tutoring.router import get_tutoring_service, limiter, router as tutoring_router

logger = app_logger.getChild("main")

register_module("edl", edl_router)
register_module("quiz", quiz_router)
register_module("gamification", gamification_router)
register_module("cron", cron_router)
register_module("tutoring", tutoring_router)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_tables = os.environ.get("ENV", "development") == "development"
    if not await initialize_database(settings.DATABASE_URL, create_tables=create_tables):
        raise RuntimeError("Database initialization failed")

    redis: Optional[Redis] = None
    if settings.REDIS_URL:
        redis = Redis.from_url(settings.REDIS_URL)
        limiter.redis = redis
        logger.info("Rate limiting backed by Redis")

    logger.info("Application startup complete")
    try:
        yield
    finally:
        await get_tutoring_service().client.close()
        if redis is not None:
            limiter.redis = None
            await redis.aclose()
        await close_database()
        logger.info("Application shutdown complete")


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title=f"{settings.PROJECT_NAME} API",
        description="Adaptive difficulty and gamification service",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_exception_handlers(app)
    app.include_router(main_router, prefix=settings.API_PREFIX)

    @app.get("/")
    async def root():
        return {"message": f"Welcome to {settings.PROJECT_NAME} API"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "true").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")
    uvicorn.run("learniq.main:app", host=host, port=port, reload=reload_enabled, log_level="info")
