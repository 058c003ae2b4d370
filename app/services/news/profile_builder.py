import json
import re
from datetime import datetime, timezone

from loguru import logger
from pydantic import ValidationError

from app.core.security import redact_user_id
from app.models.news import ProfileCache, UserInterestProfile
from app.services.gemini import TextGenerator
from app.services.memory import MemorySource
from app.services.news.constants import PROFILE_CACHE_TTL
from app.services.stores import ProfileStore

PROFILE_EXTRACTION_PROMPT = """
You are an AI assistant that analyzes a user's memories to extract their interests and preferences.

Given a list of memories about a user, extract:
1. **Topics of interest**: Specific subjects they care about (e.g., "artificial intelligence", "climate tech", "indie hacking")
2. **Entities**: Companies, people, products, or brands they follow or mention (e.g., "OpenAI", "Elon Musk", "iPhone")
3. **Industries**: Broader industry categories they're interested in (e.g., "technology", "healthcare", "finance")
4. **Curiosities**: Recent questions, problems, or things they're trying to learn (e.g., "how to scale databases", "best practices for team management")

Be specific and extract only concrete interests that are clearly expressed in the memories. Avoid vague or generic terms.

Return your response as a valid JSON object with this exact structure:
{
  "topics": ["topic1", "topic2", ...],
  "entities": ["entity1", "entity2", ...],
  "industries": ["industry1", "industry2", ...],
  "curiosities": ["curiosity1", "curiosity2", ...]
}

IMPORTANT: Return ONLY the JSON object, no additional text or formatting.
"""

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class ProfileParseError(ValueError):
    """The extraction model did not return a usable JSON profile."""


def parse_profile_response(text: str) -> UserInterestProfile:
    """
    Parse the extraction model's answer into a clamped profile.

    Code fences are stripped. Missing or non-list fields become empty lists and
    every list is truncated to its cap by the model validator.

    Raises:
        ProfileParseError: if the text is not a JSON object
    """
    clean = _CODE_FENCE_RE.sub("", text or "").strip()
    try:
        data = json.loads(clean)
    except json.JSONDecodeError as e:
        raise ProfileParseError(f"Invalid JSON response: {e}") from e
    if not isinstance(data, dict):
        raise ProfileParseError(f"Expected a JSON object, got {type(data).__name__}")
    try:
        return UserInterestProfile.model_validate(data)
    except ValidationError as e:
        raise ProfileParseError(str(e)) from e


class ProfileBuilder:
    """
    Builds a user's interest profile from their stored memories.

    Profiles are cached per user for 24 hours. Every failure is reported as
    None so a scheduler can simply skip the user for this run.
    """

    def __init__(self, memory: MemorySource, generator: TextGenerator, store: ProfileStore):
        self.memory = memory
        self.generator = generator
        self.store = store

    async def build_profile(self, user_id: str, now: datetime | None = None) -> UserInterestProfile | None:
        now = now or datetime.now(timezone.utc)
        uid = redact_user_id(user_id)
        logger.info(f"[{uid}] Building interest profile")

        cached = await self._get_cached_profile(user_id, now)
        if cached is not None:
            logger.info(f"[{uid}] Using cached profile")
            return cached

        try:
            memories = await self.memory.get_all_memories(user_id)
            if not memories:
                logger.info(f"[{uid}] No memories found")
                return None
            logger.debug(f"[{uid}] Found {len(memories)} memories")

            profile = await self._extract_profile(memories)
        except ProfileParseError as e:
            logger.warning(f"[{uid}] Failed to parse interest profile: {e}")
            return None
        except Exception as e:
            logger.exception(f"[{uid}] Error building profile: {e}")
            return None

        await self._cache_profile(user_id, profile, now)
        logger.info(f"[{uid}] Built profile: {len(profile.topics)} topics, {len(profile.entities)} entities")
        return profile

    async def _extract_profile(self, memories: list[str]) -> UserInterestProfile:
        prompt = "Analyze these memories and extract the user's interests:\n\n" + "\n\n".join(memories)
        response = await self.generator.generate(
            prompt,
            grounding_enabled=False,
            system_instruction=PROFILE_EXTRACTION_PROMPT,
            temperature=0.3,
        )
        if not response.text:
            raise ProfileParseError("Empty response from text generator")
        return parse_profile_response(response.text)

    async def _get_cached_profile(self, user_id: str, now: datetime) -> UserInterestProfile | None:
        try:
            cache = await self.store.get_profile_cache(user_id)
        except Exception as e:
            logger.warning(f"[{redact_user_id(user_id)}] Could not read profile cache: {e}")
            return None

        if cache is None:
            return None

        age = now - cache.cached_at
        if age >= PROFILE_CACHE_TTL:
            minutes = int(age.total_seconds() // 60)
            logger.debug(f"[{redact_user_id(user_id)}] Profile cache expired (age: {minutes} minutes)")
            return None
        return cache.profile

    async def _cache_profile(self, user_id: str, profile: UserInterestProfile, now: datetime) -> None:
        try:
            await self.store.set_profile_cache(user_id, ProfileCache(profile=profile, cached_at=now, user_id=user_id))
        except Exception as e:
            # Non-fatal: the freshly built profile is still returned
            logger.warning(f"[{redact_user_id(user_id)}] Failed to cache profile: {e}")
