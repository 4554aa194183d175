"""
FastAPI Application Entry Point

Run with: uvicorn callqueue.main:app
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callqueue.api.v1.dependencies import close_resources
from callqueue.api.v1.endpoints import health
from callqueue.api.v1.routes import api_router
from callqueue.core.config import get_config, get_settings
from callqueue.core.validation import validate_config_on_startup

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration on startup, release connections on shutdown."""
    settings = get_settings()
    logger.info(f"Call queue API starting ({settings.environment})")

    try:
        validate_config_on_startup(strict=settings.is_production, config=get_config())
    except RuntimeError as e:
        if settings.is_production:
            logger.error(f"Refusing to start: {e}")
            raise
        logger.warning(f"Starting with incomplete configuration: {e}")

    yield

    try:
        await close_resources()
    except Exception as e:
        logger.error(f"Error releasing resources: {e}", exc_info=True)
    logger.info("Call queue API stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(
        title="Shared Missed-Call Queue",
        description="Missed calls from every team device, deduplicated into one queue",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(health.router)
    application.include_router(api_router, prefix=settings.api_prefix)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("callqueue.main:app", host="0.0.0.0", port=8000)
