import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from loguru import logger

from app.core.security import redact_user_id
from app.models.news import Article, CurationConfig, RecentTopicRecord, SeenArticleRecord
from app.services.news.constants import MAX_SEEN_ARTICLES, SEEN_ARTICLE_MAX_AGE_DAYS, TOPIC_WINDOW, URL_HASH_LENGTH
from app.services.stores import ArticleStore


def hash_url(url: str) -> str:
    """SHA-256 of the trimmed, lowercased URL, truncated to 16 hex chars."""
    return hashlib.sha256(url.strip().lower().encode("utf-8")).hexdigest()[:URL_HASH_LENGTH]


@dataclass(frozen=True)
class LookupOutcome:
    """
    Result of a store-backed dedup check: either a value or the read error.

    Callers resolve errors with `value_or(default)`. The curator uses False
    ("not seen" / "not covered") so a transient read failure never blocks
    delivery; the cost is a possible repeat, never a silently dropped digest.
    """

    value: bool | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def value_or(self, default: bool) -> bool:
        return default if self.error is not None else bool(self.value)


def _trim_seen(records: list[SeenArticleRecord]) -> list[SeenArticleRecord]:
    # Ring buffer: keep the most recent MAX_SEEN_ARTICLES, evicting the oldest first
    return records[-MAX_SEEN_ARTICLES:]


class Deduplicator:
    """
    Tracks what each user has already received.

    - URL level: a bounded list of hashed URLs ("seen list").
    - Topic level: topics sent within the last 24 hours.

    Every write is a read-modify-write of the user's single config document.
    There is no lock around it, so two concurrent runs for the same user can
    lose one another's update.
    """

    def __init__(self, store: ArticleStore):
        self.store = store

    async def _load_config(self, user_id: str) -> CurationConfig:
        return await self.store.get_config(user_id) or CurationConfig()

    # Seen articles

    async def lookup_seen_article(self, user_id: str, url: str) -> LookupOutcome:
        try:
            config = await self.store.get_config(user_id)
        except Exception as e:
            logger.error(f"[{redact_user_id(user_id)}] Error checking seen article: {e}")
            return LookupOutcome(error=e)

        if config is None:
            return LookupOutcome(value=False)

        url_hash = hash_url(url)
        seen = any(record.url_hash == url_hash for record in config.seen_articles)
        if seen:
            logger.debug(f"[{redact_user_id(user_id)}] Article already seen: {url[:50]}...")
        return LookupOutcome(value=seen)

    async def has_seen_article(self, user_id: str, url: str) -> bool:
        """True iff the URL is on the user's seen list. Fails open (False) on store errors."""
        outcome = await self.lookup_seen_article(user_id, url)
        return outcome.value_or(False)

    async def filter_unseen(self, user_id: str, articles: list[Article]) -> list[Article]:
        """Drop articles already on the seen list, reading it once. Fails open."""
        if not articles:
            return []
        try:
            config = await self.store.get_config(user_id)
        except Exception as e:
            logger.error(f"[{redact_user_id(user_id)}] Error loading seen list, keeping all candidates: {e}")
            return list(articles)

        if config is None:
            return list(articles)

        seen_hashes = {record.url_hash for record in config.seen_articles}
        unseen = [a for a in articles if hash_url(a.url) not in seen_hashes]
        if len(unseen) < len(articles):
            logger.debug(f"[{redact_user_id(user_id)}] Filtered {len(articles) - len(unseen)} seen articles")
        return unseen

    async def mark_article_as_seen(self, user_id: str, article: Article, now: datetime | None = None) -> None:
        await self.mark_multiple_articles_as_seen(user_id, [article], now)

    async def mark_multiple_articles_as_seen(
        self, user_id: str, articles: list[Article], now: datetime | None = None
    ) -> None:
        """Append the articles to the seen list and trim it. Errors are logged, never raised."""
        if not articles:
            return
        now = now or datetime.now(timezone.utc)
        try:
            config = await self._load_config(user_id)
            records = config.seen_articles + [
                SeenArticleRecord(url_hash=hash_url(a.url), title=a.title or "Untitled", url=a.url, seen_at=now)
                for a in articles
            ]
            await self.store.save_seen_articles(user_id, _trim_seen(records))
            logger.debug(f"[{redact_user_id(user_id)}] Marked {len(articles)} articles as seen")
        except Exception as e:
            logger.error(f"[{redact_user_id(user_id)}] Error marking articles as seen: {e}")

    async def cleanup_old_seen_articles(
        self, user_id: str, max_age_days: int = SEEN_ARTICLE_MAX_AGE_DAYS, now: datetime | None = None
    ) -> int:
        """
        Remove seen records older than max_age_days.

        Returns:
            Number of records removed (0 on error or when nothing changed)
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=max_age_days)
        try:
            config = await self.store.get_config(user_id)
            if config is None:
                return 0

            kept = [r for r in config.seen_articles if r.seen_at > cutoff]
            removed = len(config.seen_articles) - len(kept)
            if removed:
                await self.store.save_seen_articles(user_id, kept)
                logger.info(f"[{redact_user_id(user_id)}] Cleaned up {removed} old seen articles")
            return removed
        except Exception as e:
            logger.error(f"[{redact_user_id(user_id)}] Error cleaning up old seen articles: {e}")
            return 0

    async def reset_seen_articles(self, user_id: str) -> None:
        """Forget every delivered URL for a user. Store errors propagate."""
        await self.store.save_seen_articles(user_id, [])
        logger.info(f"[{redact_user_id(user_id)}] Seen list reset")

    # Recent topics

    async def lookup_recent_topic(self, user_id: str, topic: str, now: datetime | None = None) -> LookupOutcome:
        now = now or datetime.now(timezone.utc)
        try:
            config = await self.store.get_config(user_id)
        except Exception as e:
            logger.error(f"[{redact_user_id(user_id)}] Error checking recent topic: {e}")
            return LookupOutcome(error=e)

        if config is None:
            return LookupOutcome(value=False)

        topic_lower = topic.lower()
        for record in config.recent_topics:
            if record.topic.lower() != topic_lower:
                continue
            since = now - record.last_sent_at
            if since < TOPIC_WINDOW:
                minutes = int(since.total_seconds() // 60)
                logger.debug(f"[{redact_user_id(user_id)}] Topic '{topic}' was covered {minutes} minutes ago")
                return LookupOutcome(value=True)
        return LookupOutcome(value=False)

    async def has_recent_topic_coverage(self, user_id: str, topic: str, now: datetime | None = None) -> bool:
        outcome = await self.lookup_recent_topic(user_id, topic, now)
        return outcome.value_or(False)

    async def mark_topic_as_covered(self, user_id: str, topic: str, now: datetime | None = None) -> None:
        await self.mark_topics_as_covered(user_id, [topic], now)

    async def mark_topics_as_covered(self, user_id: str, topics: list[str], now: datetime | None = None) -> None:
        """Upsert each topic's last_sent_at (case-insensitive), then prune records outside the window."""
        if not topics:
            return
        now = now or datetime.now(timezone.utc)
        try:
            config = await self._load_config(user_id)
            records = list(config.recent_topics)
            by_topic = {record.topic.lower(): record for record in records}
            for topic in topics:
                existing = by_topic.get(topic.lower())
                if existing is not None:
                    existing.last_sent_at = now
                else:
                    record = RecentTopicRecord(topic=topic, last_sent_at=now)
                    records.append(record)
                    by_topic[topic.lower()] = record

            cutoff = now - TOPIC_WINDOW
            records = [r for r in records if r.last_sent_at > cutoff]
            await self.store.save_recent_topics(user_id, records)
            logger.debug(f"[{redact_user_id(user_id)}] Marked topics as covered: {topics}")
        except Exception as e:
            logger.error(f"[{redact_user_id(user_id)}] Error marking topics as covered: {e}")
