import secrets

from fastapi import Header, HTTPException
from loguru import logger

from app.core.config import settings


def redact_user_id(user_id: str | None) -> str:
    """
    Redact a user id for logging purposes.
    Shows the first 6 characters followed by ***.
    """
    if not user_id:
        return "None"
    if len(user_id) <= 6:
        return user_id
    return f"{user_id[:6]}***"


async def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """FastAPI dependency that only lets the scheduler through."""
    expected = settings.CRON_SECRET
    if not expected:
        logger.error("CRON_SECRET is not set. Refusing scheduler request.")
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not authorization or not secrets.compare_digest(authorization, f"Bearer {expected}"):
        logger.warning("Unauthorized cron request")
        raise HTTPException(status_code=401, detail="Unauthorized")
