import asyncio
import re
from datetime import datetime, timezone
from urllib.parse import urlparse

from loguru import logger

from app.models.news import Article, GroundedResponse, UserInterestProfile
from app.services.gemini import TextGenerator
from app.services.news.constants import (
    MAX_SEARCH_QUERIES,
    QUERY_TOP_CURIOSITIES,
    QUERY_TOP_ENTITIES,
    QUERY_TOP_INDUSTRIES,
    QUERY_TOP_TOPICS,
    TITLE_LOOKBEHIND_CHARS,
)

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]

SEARCH_PROMPT = """Find recent news articles about: {query}

List the most relevant and recent articles you find. For each article, provide:
- Title
- URL
- Brief summary (1-2 sentences)
- Source/publisher name
- Publication date (if available)

Focus on authoritative sources like news sites, research publications, and reputable blogs."""

_URL_RE = re.compile(r"https?://[^\s)]+")
# Title guesses, tried in order: a quoted 10-80 char phrase, then the trailing 10-80 char line
_QUOTED_TITLE_RE = re.compile(r"[\"']([^\"']{10,80})[\"']")
_LINE_TITLE_RE = re.compile(r"(?:^|\n)([^\n]{10,80})$")


def extract_domain(url: str) -> str:
    """Hostname without a leading "www.", or "Unknown" for malformed URLs."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return "Unknown"
    if not hostname:
        return "Unknown"
    return hostname.removeprefix("www.")


def generate_query_terms(profile: UserInterestProfile, now: datetime | None = None) -> list[tuple[str, str]]:
    """
    Turn a profile into at most five (query, interest term) pairs.

    Categories are added in priority order (topics, entities, industries,
    curiosities) so the cap drops the later ones first.
    """
    now = now or datetime.now(timezone.utc)
    month = MONTH_NAMES[now.month - 1]
    year = now.year

    pairs = [(f"{topic} news {month} {year}", topic) for topic in profile.topics[:QUERY_TOP_TOPICS]]
    pairs += [(f"{entity} latest updates {year}", entity) for entity in profile.entities[:QUERY_TOP_ENTITIES]]
    pairs += [(f"{ind} trends {month} {year}", ind) for ind in profile.industries[:QUERY_TOP_INDUSTRIES]]
    pairs += [(f"{c} recent research {year}", c) for c in profile.curiosities[:QUERY_TOP_CURIOSITIES]]

    return pairs[:MAX_SEARCH_QUERIES]


def generate_search_queries(profile: UserInterestProfile, now: datetime | None = None) -> list[str]:
    return [query for query, _ in generate_query_terms(profile, now)]


def parse_citations(response: GroundedResponse, query: str) -> list[Article]:
    articles = []
    for citation in response.grounding_citations:
        if not citation.uri:
            continue
        articles.append(
            Article(
                title=citation.title or "Untitled",
                url=citation.uri,
                snippet=citation.snippet or "",
                source=extract_domain(citation.uri),
                query=query,
            )
        )
    return articles


def parse_text_fallback(text: str, query: str) -> list[Article]:
    """
    Degraded mode: recover bare URLs from the answer text and guess a title from
    the text just before each one.
    """
    articles = []
    for url in _URL_RE.findall(text or ""):
        url_index = text.index(url)
        before = text[max(0, url_index - TITLE_LOOKBEHIND_CHARS) : url_index]
        match = _QUOTED_TITLE_RE.search(before) or _LINE_TITLE_RE.search(before)
        title = match.group(1) if match else None
        articles.append(
            Article(
                title=(title or "Article").strip(),
                url=url,
                snippet="",
                source=extract_domain(url),
                query=query,
            )
        )
    return articles


def parse_search_response(response: GroundedResponse, query: str) -> list[Article]:
    """Citations when present, regex recovery otherwise; duplicate URLs dropped."""
    articles = parse_citations(response, query)
    if not articles:
        logger.debug(f"No grounding citations for '{query}', falling back to text parsing")
        articles = parse_text_fallback(response.text, query)
    return dedupe_by_url(articles)


def dedupe_by_url(articles: list[Article], seen_urls: set[str] | None = None) -> list[Article]:
    """Keep the first article per URL (case-insensitive, no other normalisation)."""
    seen_urls = set() if seen_urls is None else seen_urls
    unique = []
    for article in articles:
        key = article.url.lower()
        if key in seen_urls:
            continue
        seen_urls.add(key)
        unique.append(article)
    return unique


class SearchEngine:
    """Finds candidate articles for a profile through grounded search."""

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    async def search_news(self, profile: UserInterestProfile, now: datetime | None = None) -> list[Article]:
        queries = generate_search_queries(profile, now)
        if not queries:
            logger.info("No queries generated from profile")
            return []

        logger.info(f"Searching news with {len(queries)} queries: {queries}")

        # Queries are independent; run them together and merge in query order
        results = await asyncio.gather(*(self.search_query(q) for q in queries), return_exceptions=True)

        seen_urls: set[str] = set()
        all_articles: list[Article] = []
        for query, result in zip(queries, results):
            if isinstance(result, BaseException):
                logger.warning(f"Search failed for '{query}': {result}")
                continue
            all_articles.extend(dedupe_by_url(result, seen_urls))

        logger.info(f"Found {len(all_articles)} unique articles across {len(queries)} queries")
        return all_articles

    async def search_query(self, query: str) -> list[Article]:
        """Run one grounded search. Errors propagate to the batch, which skips the query."""
        response = await self.generator.generate(SEARCH_PROMPT.format(query=query), grounding_enabled=True)
        articles = parse_search_response(response, query)
        logger.debug(f"Query '{query}' returned {len(articles)} articles")
        return articles
