import json
import uuid
from datetime import datetime
from typing import Any, Protocol

from loguru import logger

from app.core.constants import (
    ACTIVE_USERS_KEY,
    CONFIG_DOC,
    CRON_STATS_KEY,
    NEWS_COLLECTION,
    PROFILE_CACHE_DOC,
    USER_MESSAGES_KEY,
)
from app.core.security import redact_user_id
from app.models.news import (
    ChatMessage,
    CronRunStats,
    CurationConfig,
    ProfileCache,
    RecentTopicRecord,
    SeenArticleRecord,
)
from app.services.document_store import DocumentStore, document_store
from app.services.redis_service import RedisService, redis_service


class ProfileStore:
    """Typed access to the newsCuration/profileCache document."""

    def __init__(self, documents: DocumentStore = document_store):
        self.documents = documents

    async def get_profile_cache(self, user_id: str) -> ProfileCache | None:
        """
        Get the cached interest profile for a user.

        Returns:
            ProfileCache, or None if nothing is cached
        """
        data = await self.documents.get(user_id, NEWS_COLLECTION, PROFILE_CACHE_DOC)
        if not data:
            return None
        return ProfileCache.model_validate(data)

    async def set_profile_cache(self, user_id: str, cache: ProfileCache) -> None:
        """Overwrite the cached profile wholesale."""
        await self.documents.set(user_id, NEWS_COLLECTION, PROFILE_CACHE_DOC, cache.to_document())
        logger.debug(f"[{redact_user_id(user_id)}] Cached interest profile")


class ArticleStore:
    """Typed access to the newsCuration/config document (seen list, recent topics, counters)."""

    def __init__(self, documents: DocumentStore = document_store):
        self.documents = documents

    async def get_config(self, user_id: str) -> CurationConfig | None:
        """
        Load the curation config of a user.

        Returns:
            CurationConfig, or None if the user has no config document yet
        """
        data = await self.documents.get(user_id, NEWS_COLLECTION, CONFIG_DOC)
        if data is None:
            return None
        return CurationConfig.model_validate(data)

    async def update_config(self, user_id: str, **fields: Any) -> None:
        """
        Merge the given CurationConfig fields into the stored document.

        Args:
            user_id: User id
            **fields: CurationConfig field names (snake_case) and their new values
        """
        partial = CurationConfig(**fields).model_dump(mode="json", by_alias=True, include=set(fields))
        await self.documents.set(user_id, NEWS_COLLECTION, CONFIG_DOC, partial, merge=True)

    async def save_seen_articles(self, user_id: str, records: list[SeenArticleRecord]) -> None:
        await self.update_config(user_id, seen_articles=records)

    async def save_recent_topics(self, user_id: str, records: list[RecentTopicRecord]) -> None:
        await self.update_config(user_id, recent_topics=records)


class UserDirectory:
    """Users known to the curator, ordered by their last activity."""

    def __init__(self, redis: RedisService = redis_service):
        self.redis = redis

    async def touch(self, user_id: str, at: datetime) -> None:
        await self.redis.zadd(ACTIVE_USERS_KEY, user_id, at.timestamp())

    async def active_since(self, since: datetime) -> list[str]:
        return await self.redis.zrangebyscore(ACTIVE_USERS_KEY, since.timestamp())


class MessageStore(Protocol):
    async def append_message(self, user_id: str, message: ChatMessage) -> str: ...


class RedisMessageStore:
    """Appends messages to the user's chat history list."""

    def __init__(self, redis: RedisService = redis_service):
        self.redis = redis

    async def append_message(self, user_id: str, message: ChatMessage) -> str:
        message_id = uuid.uuid4().hex
        payload = {"id": message_id, **message.to_document()}
        await self.redis.push(USER_MESSAGES_KEY.format(user_id=user_id), json.dumps(payload))
        return message_id


class RunStatsStore:
    def __init__(self, redis: RedisService = redis_service):
        self.redis = redis

    async def save(self, stats: CronRunStats) -> None:
        await self.redis.set(CRON_STATS_KEY, stats.model_dump_json(by_alias=True))

    async def load(self) -> CronRunStats | None:
        raw = await self.redis.get(CRON_STATS_KEY)
        if not raw:
            return None
        return CronRunStats.model_validate_json(raw)


profile_store = ProfileStore()
article_store = ArticleStore()
user_directory = UserDirectory()
message_store = RedisMessageStore()
run_stats_store = RunStatsStore()
