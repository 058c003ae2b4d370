from typing import Any, Protocol

from loguru import logger

from app.core.base_client import BaseClient
from app.core.config import settings
from app.core.security import redact_user_id


class MemorySource(Protocol):
    async def get_all_memories(self, user_id: str) -> list[str]: ...


class Mem0Client(BaseClient):
    """Read-only client for the Mem0 memories API."""

    def __init__(self, api_key: str | None = settings.MEM0_API_KEY, base_url: str = settings.MEM0_BASE_URL):
        headers = {"Authorization": f"Token {api_key}"} if api_key else {}
        super().__init__(base_url=base_url, timeout=15.0, headers=headers)
        self.api_key = api_key
        if not api_key:
            logger.warning("MEM0_API_KEY not set. Profiles cannot be built until it is configured.")

    async def get_all_memories(self, user_id: str) -> list[str]:
        """
        Fetch every stored memory string for a user.

        Raises:
            RuntimeError: if the client is not configured
            httpx.HTTPError: on transport or status errors
        """
        if not self.api_key:
            raise RuntimeError("MEM0_API_KEY is not configured")

        data = await self.get("/v1/memories/", params={"user_id": user_id})
        memories = self._extract_memories(data)
        logger.debug(f"[{redact_user_id(user_id)}] Mem0 returned {len(memories)} memories")
        return memories

    @staticmethod
    def _extract_memories(data: Any) -> list[str]:
        # The API answers with a bare list or with {"results": [...]} depending on version
        records = data.get("results", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            return []
        return [r["memory"] for r in records if isinstance(r, dict) and isinstance(r.get("memory"), str)]


mem0_client = Mem0Client()
