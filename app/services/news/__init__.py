"""
News curation engine.

Profile extraction, search query synthesis, relevance scoring, persistent
deduplication and digest formatting, wired together by NewsCurator.
"""

from app.services.news.curator import NewsCurator, build_news_curator
from app.services.news.deduplicator import Deduplicator, hash_url
from app.services.news.formatter import MessageFormatter
from app.services.news.profile_builder import ProfileBuilder
from app.services.news.scorer import RelevanceScorer
from app.services.news.search_engine import SearchEngine

__all__ = [
    "NewsCurator",
    "build_news_curator",
    "ProfileBuilder",
    "SearchEngine",
    "RelevanceScorer",
    "Deduplicator",
    "MessageFormatter",
    "hash_url",
]
