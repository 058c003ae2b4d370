from datetime import datetime, timezone

from loguru import logger

from app.core.security import redact_user_id
from app.models.news import Article, ChatMessage, UserInterestProfile
from app.services.news.constants import DIGEST_CLOSING, PROACTIVE_NEWS_MESSAGE_TYPE
from app.services.news.scorer import article_text, curiosity_matches, parse_published_date
from app.services.stores import MessageStore


def format_time_ago(published: datetime | str | None, now: datetime | None = None) -> str:
    """Humanised publish time, or "" when the date is missing or unparsable."""
    published_at = parse_published_date(published)
    if published_at is None:
        return ""

    now = now or datetime.now(timezone.utc)
    hours = int((now - published_at).total_seconds() // 3600)
    days = hours // 24

    if hours < 1:
        return "Just published"
    if hours < 24:
        return f"Published {hours} hour{'s' if hours > 1 else ''} ago"
    if days < 7:
        return f"Published {days} day{'s' if days > 1 else ''} ago"
    return f"Published {published_at.strftime('%b')} {published_at.day}, {published_at.year}"


def get_article_context(article: Article, profile: UserInterestProfile) -> str | None:
    """One sentence explaining why the article was picked, or None if nothing matched."""
    text = article_text(article)

    topics = [t for t in profile.topics if t.lower() in text][:2]
    entities = [e for e in profile.entities if e.lower() in text][:2]
    curiosities = [c for c in profile.curiosities if curiosity_matches(c, text)][:1]

    contexts = []
    if topics:
        contexts.append(f"This relates to your interest in {' and '.join(topics)}")
    if entities:
        contexts.append(f"covers {' and '.join(entities)}")
    if curiosities:
        contexts.append(f'might help with "{curiosities[0]}"')

    if not contexts:
        return None
    if len(contexts) == 1:
        return contexts[0] + "."
    if len(contexts) == 2:
        return f"{contexts[0]} and {contexts[1]}."
    return f"{contexts[0]}, {contexts[1]}, and {contexts[2]}."


def _greeting(count: int) -> str:
    if count == 1:
        return "Hey! I found an interesting article for you:"
    if count == 2:
        return "Hey! I found a couple of interesting articles for you:"
    return f"Hey! I found {count} interesting articles for you:"


def _format_article_block(index: int, article: Article, profile: UserInterestProfile, now: datetime | None) -> str:
    block = f"\n{index}. **{article.title or 'Untitled'}**"

    metadata = " by ".join(part for part in (format_time_ago(article.published_date, now), article.source) if part)
    if metadata:
        block += f"\n   {metadata}"

    block += f"\n   [Read more →]({article.url or '#'})"

    if context := get_article_context(article, profile):
        block += f"\n\n   {context}"
    return block


def format_news_digest(
    articles: list[Article], profile: UserInterestProfile, now: datetime | None = None
) -> str | None:
    if not articles:
        return None

    blocks = "\n".join(_format_article_block(i, a, profile, now) for i, a in enumerate(articles, start=1))
    return f"{_greeting(len(articles))}\n{blocks}\n\n{DIGEST_CLOSING}"


def format_single_article(article: Article, profile: UserInterestProfile) -> str:
    """Short notification for one high-priority article."""
    message = (
        f"Hey! Just found this:\n\n**{article.title or 'Untitled'}**\n"
        f"by {article.source or 'Unknown Source'}\n[Read more →]({article.url or '#'})"
    )
    if context := get_article_context(article, profile):
        message += f"\n\n{context}"
    return message + "\n\nThought you'd find this interesting!"


def format_bundled_digest(
    articles: list[Article], profile: UserInterestProfile, now: datetime | None = None
) -> str | None:
    if not articles:
        return None
    if len(articles) == 1:
        return format_single_article(articles[0], profile)
    return format_news_digest(articles, profile, now)


def format_batch_summary(article_count: int, topics_count: int) -> str:
    articles = f"{article_count} article{'s' if article_count > 1 else ''}"
    topics = f"{topics_count} topic{'s' if topics_count > 1 else ''}"
    return (
        f"📰 I've been keeping an eye out for news you might like. Found {articles} covering "
        f"{topics} you're interested in. Check them out above!"
    )


class MessageFormatter:
    """Renders digests and writes them into the user's chat history."""

    def __init__(self, messages: MessageStore):
        self.messages = messages

    def format_digest(
        self, articles: list[Article], profile: UserInterestProfile, now: datetime | None = None
    ) -> str | None:
        return format_news_digest(articles, profile, now)

    async def inject_message(self, user_id: str, content: str, articles: list[Article] | None = None) -> str:
        """
        Persist a digest as an assistant message tagged proactive_news.

        Returns:
            The id of the stored message

        Raises:
            ValueError: if content is empty
            Exception: any store failure, since an unsaved digest never reaches the user
        """
        if not content:
            raise ValueError("Content is required")

        articles = articles or []
        logger.info(f"[{redact_user_id(user_id)}] Injecting news digest with {len(articles)} articles")

        message = ChatMessage(
            role="assistant",
            content=content,
            message_type=PROACTIVE_NEWS_MESSAGE_TYPE,
            metadata={
                "articles": [{"title": a.title, "url": a.url, "source": a.source, "score": a.score} for a in articles],
                "generatedAt": datetime.now(timezone.utc).isoformat(),
                "articleCount": len(articles),
            },
        )
        message_id = await self.messages.append_message(user_id, message)
        logger.info(f"[{redact_user_id(user_id)}] Message injected: {message_id}")
        return message_id
