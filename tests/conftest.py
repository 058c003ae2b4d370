import json
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest
from redis.exceptions import RedisError

from app.models.news import Article, ChatMessage, GroundedResponse, GroundingCitation, UserInterestProfile
from app.services.document_store import RedisDocumentStore
from app.services.news.curator import NewsCurator
from app.services.news.deduplicator import Deduplicator
from app.services.news.formatter import MessageFormatter
from app.services.news.profile_builder import ProfileBuilder
from app.services.news.scorer import RelevanceScorer
from app.services.news.search_engine import SearchEngine
from app.services.stores import ArticleStore, ProfileStore, RedisMessageStore, RunStatsStore, UserDirectory

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
USER_ID = "user-1234567890"


class FakeRedisService:
    """In-memory stand-in for RedisService with switchable failures."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.lists: dict[str, list[str]] = defaultdict(list)
        self.zsets: dict[str, dict[str, float]] = defaultdict(dict)
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise RedisError("read failed")
        return self.values.get(key)

    async def set(self, key: str, value: Any) -> None:
        if self.fail_writes:
            raise RedisError("write failed")
        self.values[key] = str(value)

    async def push(self, key: str, value: str) -> int:
        if self.fail_writes:
            raise RedisError("write failed")
        self.lists[key].append(value)
        return len(self.lists[key])

    async def zadd(self, key: str, member: str, score: float) -> None:
        self.zsets[key][member] = score

    async def zrangebyscore(self, key: str, min_score: float | str, max_score: float | str = "+inf") -> list[str]:
        members = sorted(self.zsets[key].items(), key=lambda item: item[1])
        return [m for m, score in members if score >= float(min_score)]

    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for key, values in self.lists.items() if key.endswith(":messages") for raw in values]


class FakeMemorySource:
    def __init__(self, memories: list[str] | None = None, error: Exception | None = None):
        self.memories = memories or []
        self.error = error
        self.calls: list[str] = []

    async def get_all_memories(self, user_id: str) -> list[str]:
        self.calls.append(user_id)
        if self.error:
            raise self.error
        return list(self.memories)


Handler = Callable[[str, bool], GroundedResponse | BaseException]


class FakeTextGenerator:
    """Answers with whatever the handler returns for (prompt, grounding_enabled)."""

    def __init__(self, handler: Handler):
        self.handler = handler
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        prompt: str,
        grounding_enabled: bool = False,
        system_instruction: str | None = None,
        temperature: float = 0.5,
    ) -> GroundedResponse:
        self.calls.append({"prompt": prompt, "grounding_enabled": grounding_enabled})
        result = self.handler(prompt, grounding_enabled)
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def search_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["grounding_enabled"]]


class FailingMessageStore:
    async def append_message(self, user_id: str, message: ChatMessage) -> str:
        raise RedisError("message store unavailable")


def query_of(prompt: str) -> str:
    """Recover the search query from a search prompt."""
    return prompt.splitlines()[0].removeprefix("Find recent news articles about: ")


def make_article(**overrides: Any) -> Article:
    data = {
        "title": "AI breakthrough",
        "url": "https://techcrunch.com/2026/10/18/ai-breakthrough",
        "snippet": "new AI model",
        "source": "techcrunch.com",
        "query": "",
    }
    data.update(overrides)
    return Article(**data)


def citation(title: str, uri: str, snippet: str = "") -> GroundingCitation:
    return GroundingCitation(title=title, uri=uri, snippet=snippet)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def fake_redis() -> FakeRedisService:
    return FakeRedisService()


@pytest.fixture
def documents(fake_redis: FakeRedisService) -> RedisDocumentStore:
    return RedisDocumentStore(fake_redis)


@pytest.fixture
def article_store(documents: RedisDocumentStore) -> ArticleStore:
    return ArticleStore(documents)


@pytest.fixture
def profile_store(documents: RedisDocumentStore) -> ProfileStore:
    return ProfileStore(documents)


@pytest.fixture
def deduplicator(article_store: ArticleStore) -> Deduplicator:
    return Deduplicator(article_store)


@pytest.fixture
def message_store(fake_redis: FakeRedisService) -> RedisMessageStore:
    return RedisMessageStore(fake_redis)


@pytest.fixture
def profile() -> UserInterestProfile:
    return UserInterestProfile(
        topics=["AI", "robotics"],
        entities=["OpenAI"],
        industries=["technology"],
        curiosities=[],
    )


@pytest.fixture
def memory() -> FakeMemorySource:
    return FakeMemorySource(["Loves reading about AI and robotics", "Follows OpenAI closely", "Works in technology"])


def default_handler(profile: UserInterestProfile) -> Handler:
    """Profile extraction returns `profile`; the "AI" topic query finds one strong and one weak article."""

    def handler(prompt: str, grounding_enabled: bool) -> GroundedResponse:
        if not grounding_enabled:
            return GroundedResponse(text="```json\n" + profile.model_dump_json() + "\n```")
        if query_of(prompt).startswith("AI news"):
            return GroundedResponse(
                text="Here is what I found.",
                grounding_citations=[
                    citation(
                        "OpenAI robotics AI breakthrough",
                        "https://techcrunch.com/2026/10/18/openai-robotics",
                        "The technology giant showed a new robot.",
                    ),
                    citation("Cooking tips for busy weeks", "https://randomsite.example/cooking"),
                ],
            )
        return GroundedResponse(text="Nothing relevant today.")

    return handler


@pytest.fixture
def generator(profile: UserInterestProfile) -> FakeTextGenerator:
    return FakeTextGenerator(default_handler(profile))


@pytest.fixture
def curator(
    memory: FakeMemorySource,
    generator: FakeTextGenerator,
    profile_store: ProfileStore,
    article_store: ArticleStore,
    deduplicator: Deduplicator,
    message_store: RedisMessageStore,
    fake_redis: FakeRedisService,
) -> NewsCurator:
    return NewsCurator(
        profile_builder=ProfileBuilder(memory=memory, generator=generator, store=profile_store),
        search_engine=SearchEngine(generator=generator),
        scorer=RelevanceScorer(threshold=60),
        deduplicator=deduplicator,
        formatter=MessageFormatter(messages=message_store),
        articles=article_store,
        directory=UserDirectory(fake_redis),
        run_stats=RunStatsStore(fake_redis),
        max_articles_per_day=10,
        max_articles_per_check=5,
        inactivity_threshold_days=7,
    )
