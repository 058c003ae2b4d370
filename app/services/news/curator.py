import time
from datetime import datetime, timedelta, timezone

from loguru import logger

from app.core.config import settings
from app.core.security import redact_user_id
from app.models.news import Article, CronRunStats, CurationConfig, CurationResult, UserInterestProfile
from app.services.gemini import gemini_service
from app.services.memory import mem0_client
from app.services.news.deduplicator import Deduplicator
from app.services.news.formatter import MessageFormatter
from app.services.news.profile_builder import ProfileBuilder
from app.services.news.scorer import RelevanceScorer
from app.services.news.search_engine import SearchEngine, generate_query_terms
from app.services.stores import (
    ArticleStore,
    RunStatsStore,
    UserDirectory,
    article_store,
    message_store,
    profile_store,
    run_stats_store,
    user_directory,
)


def _day_start(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class NewsCurator:
    """
    Runs the curation pipeline for one user or a batch of users:
    profile -> search -> seen filter -> score -> topic window -> quota -> digest -> bookkeeping.

    Overlapping runs for the same user inside this process are refused. Runs in
    separate processes are not coordinated.
    """

    def __init__(
        self,
        profile_builder: ProfileBuilder,
        search_engine: SearchEngine,
        scorer: RelevanceScorer,
        deduplicator: Deduplicator,
        formatter: MessageFormatter,
        articles: ArticleStore,
        directory: UserDirectory,
        run_stats: RunStatsStore,
        max_articles_per_day: int = settings.NEWS_MAX_ARTICLES_PER_DAY,
        max_articles_per_check: int = settings.NEWS_MAX_ARTICLES_PER_CHECK,
        inactivity_threshold_days: int = settings.NEWS_INACTIVITY_THRESHOLD_DAYS,
    ):
        self.profile_builder = profile_builder
        self.search_engine = search_engine
        self.scorer = scorer
        self.deduplicator = deduplicator
        self.formatter = formatter
        self.articles = articles
        self.directory = directory
        self.run_stats = run_stats
        self.max_articles_per_day = max_articles_per_day
        self.max_articles_per_check = max_articles_per_check
        self.inactivity_threshold_days = inactivity_threshold_days
        # In-memory lock to prevent overlapping runs for the same user
        self._curating_users: set[str] = set()

    async def curate_news_for_user(self, user_id: str, now: datetime | None = None) -> CurationResult:
        now = now or datetime.now(timezone.utc)
        uid = redact_user_id(user_id)

        if user_id in self._curating_users:
            logger.debug(f"[{uid}] Curation already in progress, skipping")
            return CurationResult(user_id=user_id, status="skipped", reason="in_progress")

        self._curating_users.add(user_id)
        started = time.monotonic()
        logger.info(f"[{uid}] Curating news")
        try:
            result = await self._curate(user_id, now)
            result.processing_time_ms = int((time.monotonic() - started) * 1000)
            return result
        except Exception as e:
            logger.exception(f"[{uid}] Error curating news: {e}")
            await self._record_failure(user_id, now)
            return CurationResult(user_id=user_id, status="error", error=str(e))
        finally:
            self._curating_users.discard(user_id)

    async def _curate(self, user_id: str, now: datetime) -> CurationResult:
        uid = redact_user_id(user_id)

        profile = await self.profile_builder.build_profile(user_id, now)
        if profile is None or not profile.has_core_interests():
            logger.info(f"[{uid}] No interests found, skipping")
            return await self._skip(user_id, "no_interests", now)

        candidates = await self.search_engine.search_news(profile, now)
        if not candidates:
            logger.info(f"[{uid}] No articles found")
            return await self._skip(user_id, "no_articles", now)
        logger.info(f"[{uid}] Found {len(candidates)} candidate articles")

        unseen = await self.deduplicator.filter_unseen(user_id, candidates)
        relevant = [a for a in self.scorer.score_articles(unseen, profile, now) if self.scorer.should_send(a.score)]
        logger.info(f"[{uid}] {len(relevant)} articles passed the relevance threshold")
        if not relevant:
            return await self._skip(user_id, "low_relevance", now)

        query_terms = dict(generate_query_terms(profile, now))
        fresh = await self._drop_recent_topics(user_id, relevant, query_terms, now)
        if not fresh:
            logger.info(f"[{uid}] Every relevant topic was covered in the last 24 hours")
            return await self._skip(user_id, "recent_topics", now)

        config = await self.articles.get_config(user_id) or CurationConfig()
        needs_reset = config.last_reset_date is None or config.last_reset_date < _day_start(now)
        sent_today = 0 if needs_reset else config.articles_sent_today
        remaining = self.max_articles_per_day - sent_today
        if remaining <= 0:
            logger.info(f"[{uid}] Daily limit reached")
            return CurationResult(user_id=user_id, status="skipped", reason="daily_limit")

        to_send = fresh[: min(remaining, self.max_articles_per_check)]
        await self._deliver(user_id, to_send, profile, query_terms, now)

        # The digest is already delivered, so counter write failures are only logged
        try:
            await self.articles.update_config(
                user_id,
                last_check_timestamp=now,
                last_successful_check=now,
                consecutive_failures=0,
                articles_sent_today=sent_today + len(to_send),
                last_reset_date=now if needs_reset else config.last_reset_date,
            )
        except Exception as e:
            logger.error(f"[{uid}] Failed to update curation counters after delivery: {e}")

        avg_score = sum(a.score or 0 for a in to_send) / len(to_send)
        logger.info(f"[{uid}] Sent {len(to_send)} articles (avg score {avg_score:.1f})")
        return CurationResult(user_id=user_id, status="success", articles_sent=len(to_send), avg_score=avg_score)

    async def _drop_recent_topics(
        self, user_id: str, articles: list[Article], query_terms: dict[str, str], now: datetime
    ) -> list[Article]:
        covered: dict[str, bool] = {}
        fresh = []
        for article in articles:
            term = query_terms.get(article.query)
            if term is None:
                fresh.append(article)
                continue
            if term not in covered:
                covered[term] = await self.deduplicator.has_recent_topic_coverage(user_id, term, now)
            if not covered[term]:
                fresh.append(article)
        return fresh

    async def _deliver(
        self,
        user_id: str,
        articles: list[Article],
        profile: UserInterestProfile,
        query_terms: dict[str, str],
        now: datetime,
    ) -> None:
        digest = self.formatter.format_digest(articles, profile, now)
        # Injection failures propagate: nothing is marked as seen if the user never got the digest
        await self.formatter.inject_message(user_id, digest, articles)

        await self.deduplicator.mark_multiple_articles_as_seen(user_id, articles, now)
        topics = list(dict.fromkeys(query_terms[a.query] for a in articles if a.query in query_terms))
        await self.deduplicator.mark_topics_as_covered(user_id, topics, now)

    async def _skip(self, user_id: str, reason: str, now: datetime) -> CurationResult:
        await self.articles.update_config(user_id, last_check_timestamp=now)
        return CurationResult(user_id=user_id, status="skipped", reason=reason)

    async def _record_failure(self, user_id: str, now: datetime) -> None:
        try:
            config = await self.articles.get_config(user_id) or CurationConfig()
            await self.articles.update_config(
                user_id, last_check_timestamp=now, consecutive_failures=config.consecutive_failures + 1
            )
        except Exception as e:
            logger.warning(f"[{redact_user_id(user_id)}] Failed to record curation failure: {e}")

    async def get_user_batch(
        self, batch_size: int = settings.NEWS_BATCH_SIZE, now: datetime | None = None
    ) -> list[str]:
        """
        Pick the next users to curate: recently active, enabled, under their daily
        quota, least recently checked first.
        """
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=self.inactivity_threshold_days)
        day_start = _day_start(now)
        epoch = datetime.fromtimestamp(0, tz=timezone.utc)

        eligible: list[tuple[datetime, str]] = []
        for user_id in await self.directory.active_since(since):
            try:
                config = await self.articles.get_config(user_id) or CurationConfig()
            except Exception as e:
                logger.warning(f"[{redact_user_id(user_id)}] Skipping user with unreadable curation config: {e}")
                continue
            if not config.enabled:
                continue
            needs_reset = config.last_reset_date is None or config.last_reset_date < day_start
            if not needs_reset and config.articles_sent_today >= self.max_articles_per_day:
                continue
            eligible.append((config.last_check_timestamp or epoch, user_id))

        eligible.sort(key=lambda item: item[0])
        batch = [user_id for _, user_id in eligible[:batch_size]]
        logger.info(f"Found {len(eligible)} eligible users, processing batch of {len(batch)}")
        return batch

    async def run_batch(
        self, batch_size: int = settings.NEWS_BATCH_SIZE, now: datetime | None = None
    ) -> tuple[CronRunStats, list[CurationResult]]:
        """Curate one batch of users sequentially and persist the run stats."""
        started = time.monotonic()
        now = now or datetime.now(timezone.utc)

        user_ids = await self.get_user_batch(batch_size, now)
        results = [await self.curate_news_for_user(user_id, now) for user_id in user_ids]

        success = [r for r in results if r.status == "success"]
        errors = [r for r in results if r.status == "error"]
        skipped = [r for r in results if r.status == "skipped"]
        scores = [r.avg_score for r in success if r.avg_score]

        if not errors:
            status = "success"
        elif success:
            status = "partial"
        else:
            status = "failed"

        stats = CronRunStats(
            last_run_status=status,
            users_processed=len(user_ids),
            success_count=len(success),
            error_count=len(errors),
            skipped_count=len(skipped),
            articles_sent=sum(r.articles_sent for r in results),
            avg_score=sum(scores) / len(scores) if scores else 0.0,
            processing_time_ms=int((time.monotonic() - started) * 1000),
            errors=[{"userId": r.user_id, "error": r.error, "timestamp": now.isoformat()} for r in errors],
            last_run_timestamp=now,
        )
        logger.info(
            f"Curation run completed: {stats.success_count} success, {stats.error_count} errors, "
            f"{stats.skipped_count} skipped, {stats.articles_sent} articles sent"
        )

        try:
            await self.run_stats.save(stats)
        except Exception as e:
            logger.warning(f"Failed to save curation run stats: {e}")

        return stats, results


def build_news_curator() -> NewsCurator:
    """Wire the curator to the process-wide Redis, Mem0 and Gemini clients."""
    return NewsCurator(
        profile_builder=ProfileBuilder(memory=mem0_client, generator=gemini_service, store=profile_store),
        search_engine=SearchEngine(generator=gemini_service),
        scorer=RelevanceScorer(threshold=settings.NEWS_MIN_RELEVANCE_SCORE),
        deduplicator=Deduplicator(store=article_store),
        formatter=MessageFormatter(messages=message_store),
        articles=article_store,
        directory=user_directory,
        run_stats=run_stats_store,
    )
