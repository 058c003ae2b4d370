import os

import uvicorn
from loguru import logger

from app.core.app import app  # noqa: F401
from app.core.config import APP_VERSION, settings

if __name__ == "__main__" and settings.APP_ENV != "vercel":
    PORT = os.getenv("PORT", settings.PORT)
    reload = settings.APP_ENV == "development"
    logger.info(f"Starting {settings.APP_NAME} {APP_VERSION} on port {PORT}")
    uvicorn.run("app.core.app:app", host="0.0.0.0", port=int(PORT), reload=reload)
