from datetime import datetime, timezone
from typing import Literal

from app.models.news import Article, UserInterestProfile
from app.services.news.constants import (
    AUTHORITY_QUALITY_INDICATOR,
    AUTHORITY_SEMI_TRUSTED,
    AUTHORITY_TRUSTED,
    AUTHORITY_UNKNOWN,
    CURIOSITY_MATCH_CAP,
    CURIOSITY_MATCH_POINTS,
    CURIOSITY_MIN_MATCHED_WORDS,
    CURIOSITY_MIN_WORD_LENGTH,
    DEFAULT_SEND_THRESHOLD,
    ENTITY_MATCH_CAP,
    ENTITY_MATCH_POINTS,
    INDUSTRY_MATCH_CAP,
    INDUSTRY_MATCH_POINTS,
    NOVELTY_SCORE,
    PRIORITY_HIGH_MIN,
    PRIORITY_MEDIUM_MIN,
    QUALITY_INDICATORS,
    RECENCY_BUCKETS,
    RECENCY_FLOOR,
    RECENCY_UNDATED,
    SEMI_TRUSTED_SOURCES,
    TOPIC_MATCH_CAP,
    TOPIC_MATCH_POINTS,
    TRUSTED_SOURCES,
)

PriorityLevel = Literal["high", "medium", "low"]


def article_text(article: Article) -> str:
    """Lowercased title + snippet + query, the text every keyword match runs against."""
    return " ".join([article.title or "", article.snippet or "", article.query or ""]).lower()


def parse_published_date(value: datetime | str | None) -> datetime | None:
    """Best-effort conversion to an aware UTC datetime. None when missing or unparsable."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def count_keyword_matches(keywords: list[str], text: str) -> int:
    return sum(1 for keyword in keywords if keyword and keyword.lower() in text)


def curiosity_matches(curiosity: str, text: str) -> bool:
    """
    A curiosity matches when at least min(3, n) of its n significant words
    (longer than 3 characters) appear in the text.
    """
    words = [w for w in curiosity.lower().split(" ") if len(w) >= CURIOSITY_MIN_WORD_LENGTH]
    matched = [w for w in words if w in text]
    return len(matched) >= min(CURIOSITY_MIN_MATCHED_WORDS, len(words))


def calculate_topic_match_score(article: Article, profile: UserInterestProfile) -> int:
    """Topic match factor (0-40)."""
    text = article_text(article)

    score = min(TOPIC_MATCH_CAP, count_keyword_matches(profile.topics, text) * TOPIC_MATCH_POINTS)
    score += min(ENTITY_MATCH_CAP, count_keyword_matches(profile.entities, text) * ENTITY_MATCH_POINTS)
    score += min(INDUSTRY_MATCH_CAP, count_keyword_matches(profile.industries, text) * INDUSTRY_MATCH_POINTS)

    matched_curiosities = sum(1 for c in profile.curiosities if curiosity_matches(c, text))
    score += min(CURIOSITY_MATCH_CAP, matched_curiosities * CURIOSITY_MATCH_POINTS)
    return score


def calculate_recency_score(article: Article, now: datetime | None = None) -> int:
    """Recency factor (0-20). Undated and unparsable dates both get the moderate default."""
    if not article.published_date:
        return RECENCY_UNDATED

    published = parse_published_date(article.published_date)
    if published is None:
        return RECENCY_UNDATED

    now = now or datetime.now(timezone.utc)
    age_hours = (now - published).total_seconds() / 3600
    for max_age_hours, points in RECENCY_BUCKETS:
        if age_hours < max_age_hours:
            return points
    return RECENCY_FLOOR


def calculate_source_authority_score(article: Article) -> int:
    """Source authority factor (0-20)."""
    source = (article.source or "").lower()
    url = (article.url or "").lower()

    def mentioned(needle: str) -> bool:
        return needle in source or needle in url

    if any(mentioned(domain) for domain in TRUSTED_SOURCES):
        return AUTHORITY_TRUSTED
    if any(mentioned(domain) for domain in SEMI_TRUSTED_SOURCES):
        return AUTHORITY_SEMI_TRUSTED
    if any(mentioned(indicator) for indicator in QUALITY_INDICATORS):
        return AUTHORITY_QUALITY_INDICATOR
    return AUTHORITY_UNKNOWN


def calculate_novelty_score(article: Article) -> int:
    """
    Novelty factor (0-20).

    Constant placeholder; whether an article is actually new to the user is
    decided by the Deduplicator, which filters seen URLs before delivery.
    """
    return NOVELTY_SCORE


def calculate_relevance_score(article: Article, profile: UserInterestProfile, now: datetime | None = None) -> int:
    """Sum of the four factors, rounded and clamped to [0, 100]."""
    score = (
        calculate_topic_match_score(article, profile)
        + calculate_recency_score(article, now)
        + calculate_source_authority_score(article)
        + calculate_novelty_score(article)
    )
    return max(0, min(100, round(score)))


def get_priority_level(score: int) -> PriorityLevel:
    if score >= PRIORITY_HIGH_MIN:
        return "high"
    if score >= PRIORITY_MEDIUM_MIN:
        return "medium"
    return "low"


def should_send_article(score: int, threshold: int = DEFAULT_SEND_THRESHOLD) -> bool:
    return score >= threshold


class RelevanceScorer:
    """
    Scores articles against an interest profile.

    Deterministic for a given (article, profile, now); performs no I/O.
    """

    def __init__(self, threshold: int = DEFAULT_SEND_THRESHOLD):
        self.threshold = threshold

    def score(self, article: Article, profile: UserInterestProfile, now: datetime | None = None) -> int:
        return calculate_relevance_score(article, profile, now)

    def score_articles(
        self, articles: list[Article], profile: UserInterestProfile, now: datetime | None = None
    ) -> list[Article]:
        """Return scored copies of every article, best first."""
        scored = [a.with_score(self.score(a, profile, now)) for a in articles]
        scored.sort(key=lambda a: a.score or 0, reverse=True)
        return scored

    def should_send(self, score: int) -> bool:
        return should_send_article(score, self.threshold)
