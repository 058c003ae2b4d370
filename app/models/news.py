from datetime import datetime, timezone
from typing import Annotated, Any, Final, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

# Profile list caps (keep extracted profiles short and focused)
MAX_TOPICS: Final[int] = 15
MAX_ENTITIES: Final[int] = 15
MAX_INDUSTRIES: Final[int] = 10
MAX_CURIOSITIES: Final[int] = 10

PROFILE_FIELD_CAPS: Final[dict[str, int]] = {
    "topics": MAX_TOPICS,
    "entities": MAX_ENTITIES,
    "industries": MAX_INDUSTRIES,
    "curiosities": MAX_CURIOSITIES,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _assume_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


# Stored timestamps without an offset are read as UTC
UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class StoredModel(BaseModel):
    """Base for documents persisted in the store (camelCase on disk)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class UserInterestProfile(BaseModel):
    """
    Structured interests extracted from a user's conversational memories.

    Every list is coerced and clamped on construction, so a profile can never
    exceed its caps no matter what the extraction model returned.
    """

    topics: list[str] = Field(default_factory=list, description="Subjects the user cares about")
    entities: list[str] = Field(default_factory=list, description="Companies, people, products they follow")
    industries: list[str] = Field(default_factory=list, description="Broader industry categories")
    curiosities: list[str] = Field(default_factory=list, description="Open questions they are trying to answer")

    @field_validator("topics", "entities", "industries", "curiosities", mode="before")
    @classmethod
    def _coerce_and_clamp(cls, value: Any, info: ValidationInfo) -> list[str]:
        if not isinstance(value, list):
            return []
        items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return items[: PROFILE_FIELD_CAPS[info.field_name]]

    def has_core_interests(self) -> bool:
        """Topics or entities are what drive a useful search."""
        return bool(self.topics or self.entities)


class Article(BaseModel):
    title: str = "Untitled"
    url: str
    snippet: str = ""
    source: str = "Unknown"
    # Kept loose: the scorer and formatter degrade gracefully on unparsable dates
    published_date: datetime | str | None = None
    query: str = ""
    score: int | None = None

    def with_score(self, score: int) -> "Article":
        return self.model_copy(update={"score": score})


class SeenArticleRecord(StoredModel):
    url_hash: str
    title: str = "Untitled"
    url: str
    seen_at: UtcDatetime = Field(default_factory=utcnow)


class RecentTopicRecord(StoredModel):
    topic: str
    last_sent_at: UtcDatetime = Field(default_factory=utcnow)


class CurationConfig(StoredModel):
    """The newsCuration/config document of a single user."""

    enabled: bool = True
    seen_articles: list[SeenArticleRecord] = Field(default_factory=list)
    recent_topics: list[RecentTopicRecord] = Field(default_factory=list)
    articles_sent_today: int = 0
    last_reset_date: UtcDatetime | None = None
    last_check_timestamp: UtcDatetime | None = None
    last_successful_check: UtcDatetime | None = None
    consecutive_failures: int = 0


class ProfileCache(StoredModel):
    profile: UserInterestProfile
    cached_at: UtcDatetime = Field(default_factory=utcnow)
    user_id: str | None = None


class GroundingCitation(BaseModel):
    title: str = ""
    uri: str = ""
    snippet: str = ""


class GroundedResponse(BaseModel):
    text: str = ""
    grounding_citations: list[GroundingCitation] = Field(default_factory=list)


class ChatMessage(StoredModel):
    role: Literal["user", "assistant"] = "assistant"
    content: str
    timestamp: UtcDatetime = Field(default_factory=utcnow)
    message_type: str = "chat"
    is_public: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class CurationResult(BaseModel):
    user_id: str
    status: Literal["success", "skipped", "error"]
    reason: str | None = None
    articles_sent: int = 0
    avg_score: float | None = None
    processing_time_ms: int | None = None
    error: str | None = None


class CronRunStats(StoredModel):
    last_run_status: Literal["success", "partial", "failed"]
    users_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    articles_sent: int = 0
    avg_score: float = 0.0
    processing_time_ms: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)
    last_run_timestamp: UtcDatetime = Field(default_factory=utcnow)
