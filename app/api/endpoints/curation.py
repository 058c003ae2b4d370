from datetime import datetime, timezone
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel

from app.core.config import settings
from app.core.security import redact_user_id, verify_cron_secret
from app.models.news import CurationResult
from app.services.news.curator import NewsCurator, build_news_curator

router = APIRouter(tags=["curation"], dependencies=[Depends(verify_cron_secret)])


class CurationSettingsUpdate(BaseModel):
    enabled: bool


@lru_cache
def get_news_curator() -> NewsCurator:
    return build_news_curator()


@router.get("/cron/news-curator", summary="Curate news for the next batch of users")
async def run_news_curation(curator: NewsCurator = Depends(get_news_curator)) -> dict:
    logger.info("Starting scheduled curation run")
    try:
        stats, results = await curator.run_batch(settings.NEWS_BATCH_SIZE)
    except Exception as e:
        logger.exception(f"Fatal error in curation run: {e}")
        raise HTTPException(status_code=500, detail=f"Curation run failed: {e}")

    if not results:
        return {"status": "success", "message": "No users to process"}

    return {
        "status": "success",
        "summary": {
            "usersProcessed": stats.users_processed,
            "successCount": stats.success_count,
            "errorCount": stats.error_count,
            "skippedCount": stats.skipped_count,
            "articlesSent": stats.articles_sent,
            "avgScore": stats.avg_score,
            "processingTimeMs": stats.processing_time_ms,
        },
        "results": [
            {"userId": r.user_id, "status": r.status, "articlesSent": r.articles_sent, "reason": r.reason}
            for r in results
        ],
    }


@router.get("/news/stats", summary="Stats of the last curation run")
async def get_curation_stats(curator: NewsCurator = Depends(get_news_curator)) -> dict:
    stats = await curator.run_stats.load()
    if stats is None:
        raise HTTPException(status_code=404, detail="No curation run recorded yet")
    return stats.model_dump(mode="json", by_alias=True)


@router.post("/news/users/{user_id}/activity", summary="Record that a user was active")
async def record_activity(user_id: str, curator: NewsCurator = Depends(get_news_curator)) -> dict:
    await curator.directory.touch(user_id, datetime.now(timezone.utc))
    return {"status": "ok"}


@router.put("/news/users/{user_id}/settings", summary="Enable or disable news curation for a user")
async def update_settings(
    user_id: str, payload: CurationSettingsUpdate, curator: NewsCurator = Depends(get_news_curator)
) -> dict:
    await curator.articles.update_config(user_id, enabled=payload.enabled)
    logger.info(f"[{redact_user_id(user_id)}] News curation {'enabled' if payload.enabled else 'disabled'}")
    return {"status": "ok", "enabled": payload.enabled}


@router.post("/news/users/{user_id}/curate", summary="Curate news for a single user now")
async def curate_user(user_id: str, curator: NewsCurator = Depends(get_news_curator)) -> CurationResult:
    return await curator.curate_news_for_user(user_id)


@router.delete("/news/users/{user_id}/seen", summary="Forget every article delivered to a user")
async def reset_seen(user_id: str, curator: NewsCurator = Depends(get_news_curator)) -> dict:
    try:
        await curator.deduplicator.reset_seen_articles(user_id)
    except Exception as e:
        logger.error(f"[{redact_user_id(user_id)}] Failed to reset seen list: {e}")
        raise HTTPException(status_code=500, detail="Failed to reset seen articles")
    return {"status": "ok"}


@router.post("/news/users/{user_id}/cleanup", summary="Drop old seen-article records")
async def cleanup_seen(
    user_id: str,
    max_age_days: int = Query(default=30, ge=1),
    curator: NewsCurator = Depends(get_news_curator),
) -> dict:
    removed = await curator.deduplicator.cleanup_old_seen_articles(user_id, max_age_days)
    return {"status": "ok", "removed": removed}
