from datetime import timedelta
from typing import Final

# Profile cache freshness
PROFILE_CACHE_TTL: Final[timedelta] = timedelta(hours=24)

# Query synthesis (per-category picks, then a hard cap on the total)
QUERY_TOP_TOPICS: Final[int] = 3
QUERY_TOP_ENTITIES: Final[int] = 2
QUERY_TOP_INDUSTRIES: Final[int] = 2
QUERY_TOP_CURIOSITIES: Final[int] = 1
MAX_SEARCH_QUERIES: Final[int] = 5

# Degraded-mode title recovery: how much text before a bare URL to inspect
TITLE_LOOKBEHIND_CHARS: Final[int] = 100

# Topic match (0-40): per-match points and per-category caps
TOPIC_MATCH_POINTS: Final[int] = 5
TOPIC_MATCH_CAP: Final[int] = 25
ENTITY_MATCH_POINTS: Final[int] = 3
ENTITY_MATCH_CAP: Final[int] = 10
INDUSTRY_MATCH_POINTS: Final[int] = 1
INDUSTRY_MATCH_CAP: Final[int] = 3
CURIOSITY_MATCH_POINTS: Final[int] = 2
CURIOSITY_MATCH_CAP: Final[int] = 2
CURIOSITY_MIN_WORD_LENGTH: Final[int] = 4  # words must be longer than 3 chars
CURIOSITY_MIN_MATCHED_WORDS: Final[int] = 3

# Recency (0-20): (max age in hours, points); anything older gets RECENCY_FLOOR
RECENCY_UNDATED: Final[int] = 12
RECENCY_BUCKETS: Final[list[tuple[int, int]]] = [
    (6, 20),
    (24, 18),
    (72, 15),
    (168, 10),
    (336, 5),
]
RECENCY_FLOOR: Final[int] = 2

# Source authority (0-20)
AUTHORITY_TRUSTED: Final[int] = 20
AUTHORITY_SEMI_TRUSTED: Final[int] = 12
AUTHORITY_QUALITY_INDICATOR: Final[int] = 10
AUTHORITY_UNKNOWN: Final[int] = 5

TRUSTED_SOURCES: Final[tuple[str, ...]] = (
    # Tech news
    "techcrunch.com",
    "theverge.com",
    "arstechnica.com",
    "wired.com",
    "engadget.com",
    "venturebeat.com",
    "technologyreview.com",
    "zdnet.com",
    "cnet.com",
    # Business/finance
    "bloomberg.com",
    "reuters.com",
    "ft.com",
    "wsj.com",
    "fortune.com",
    "forbes.com",
    "cnbc.com",
    "businessinsider.com",
    # General news
    "nytimes.com",
    "theguardian.com",
    "bbc.com",
    "npr.org",
    "apnews.com",
    "washingtonpost.com",
    "economist.com",
    # Research/academic
    "arxiv.org",
    "nature.com",
    "science.org",
    "acm.org",
    "ieee.org",
    "sciencedirect.com",
    "springer.com",
    # Industry
    "techradar.com",
    "gizmodo.com",
    "mashable.com",
    "slashdot.org",
    "hackernews.com",
    "ycombinator.com",
    "medium.com",
)

SEMI_TRUSTED_SOURCES: Final[tuple[str, ...]] = (
    "reddit.com",
    "twitter.com",
    "x.com",
    "linkedin.com",
    "substack.com",
    "dev.to",
    "producthunt.com",
)

QUALITY_INDICATORS: Final[tuple[str, ...]] = (
    ".edu",
    ".gov",
    ".org",
    "research",
    "journal",
    "official",
)

# Novelty (0-20). Constant: real novelty is enforced by the Deduplicator.
NOVELTY_SCORE: Final[int] = 15

# Priority bands
PRIORITY_HIGH_MIN: Final[int] = 60
PRIORITY_MEDIUM_MIN: Final[int] = 40
DEFAULT_SEND_THRESHOLD: Final[int] = 60

# Deduplication
MAX_SEEN_ARTICLES: Final[int] = 100
TOPIC_WINDOW: Final[timedelta] = timedelta(hours=24)
URL_HASH_LENGTH: Final[int] = 16
SEEN_ARTICLE_MAX_AGE_DAYS: Final[int] = 30

# Digest
DIGEST_CLOSING: Final[str] = "Let me know if you want me to dive deeper into any of these!"
PROACTIVE_NEWS_MESSAGE_TYPE: Final[str] = "proactive_news"
