import json
from typing import Any, Protocol

from loguru import logger

from app.core.constants import USER_DOCUMENT_KEY
from app.core.security import redact_user_id
from app.services.redis_service import RedisService, redis_service


class DocumentStore(Protocol):
    """
    Per-user collection of named JSON documents (e.g. newsCuration/config).

    Implementations raise on I/O failure; the components decide whether a
    failure is fatal, skipped or fail-open.
    """

    async def get(self, user_id: str, collection: str, doc: str) -> dict[str, Any] | None: ...

    async def set(
        self, user_id: str, collection: str, doc: str, data: dict[str, Any], merge: bool = False
    ) -> None: ...


class RedisDocumentStore:
    """DocumentStore that keeps each document as a JSON string under its own Redis key."""

    def __init__(self, redis: RedisService = redis_service):
        self.redis = redis

    @staticmethod
    def _key(user_id: str, collection: str, doc: str) -> str:
        return USER_DOCUMENT_KEY.format(user_id=user_id, collection=collection, doc=doc)

    async def get(self, user_id: str, collection: str, doc: str) -> dict[str, Any] | None:
        raw = await self.redis.get(self._key(user_id, collection, doc))
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[{redact_user_id(user_id)}] Discarding corrupt document {collection}/{doc}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def set(
        self, user_id: str, collection: str, doc: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        """
        Write a document. With merge=True top-level fields of `data` replace the
        stored ones and every other stored field is kept.

        The merge is a plain read-modify-write, not a transaction.
        """
        payload = dict(data)
        if merge:
            current = await self.get(user_id, collection, doc) or {}
            payload = {**current, **payload}
        await self.redis.set(self._key(user_id, collection, doc), json.dumps(payload))


document_store = RedisDocumentStore()
