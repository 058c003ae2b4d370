from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from app.api.main import api_router
from app.services.memory import mem0_client
from app.services.redis_service import redis_service

from .config import settings
from .version import __version__


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events (startup/shutdown).
    """
    yield
    await redis_service.close()
    try:
        await mem0_client.close()
        logger.info("Mem0 HTTP client closed")
    except Exception as exc:
        logger.warning(f"Failed to close Mem0 HTTP client: {exc}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Proactive, personalised news digests for chat companion users",
    version=__version__,
    lifespan=lifespan,
    docs_url=None if settings.APP_ENV != "development" else "/docs",
    redoc_url=None if settings.APP_ENV != "development" else "/redoc",
)

app.include_router(api_router)
