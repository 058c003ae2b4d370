import asyncio

from app.models.news import GroundedResponse, UserInterestProfile
from app.services.news.search_engine import (
    SearchEngine,
    extract_domain,
    generate_query_terms,
    generate_search_queries,
    parse_search_response,
)
from tests.conftest import FakeTextGenerator, citation, query_of


def test_queries_follow_priority_order_and_cap(now):
    profile = UserInterestProfile(
        topics=["AI", "climate tech", "indie hacking", "rust"],
        entities=["OpenAI", "Stripe", "Apple"],
        industries=["finance"],
        curiosities=["how to scale databases"],
    )

    assert generate_search_queries(profile, now) == [
        "AI news October 2026",
        "climate tech news October 2026",
        "indie hacking news October 2026",
        "OpenAI latest updates 2026",
        "Stripe latest updates 2026",
    ]


def test_each_category_has_its_own_pattern(now):
    profile = UserInterestProfile(
        topics=["AI"],
        entities=["OpenAI"],
        industries=["healthcare"],
        curiosities=["how to scale databases", "unused"],
    )

    assert generate_search_queries(profile, now) == [
        "AI news October 2026",
        "OpenAI latest updates 2026",
        "healthcare trends October 2026",
        "how to scale databases recent research 2026",
    ]


def test_query_terms_map_back_to_interests(now):
    profile = UserInterestProfile(topics=["AI"], industries=["healthcare"])

    assert generate_query_terms(profile, now) == [
        ("AI news October 2026", "AI"),
        ("healthcare trends October 2026", "healthcare"),
    ]


def test_empty_profile_generates_no_queries(now):
    assert generate_search_queries(UserInterestProfile(), now) == []


def test_extract_domain():
    assert extract_domain("https://www.bbc.com/news/technology") == "bbc.com"
    assert extract_domain("https://news.ycombinator.com/item?id=1") == "news.ycombinator.com"
    assert extract_domain("not a url") == "Unknown"
    assert extract_domain("http://[::1") == "Unknown"


def test_citations_are_preferred_over_text():
    response = GroundedResponse(
        text="See https://ignored.example.com/x for more",
        grounding_citations=[
            citation("Robots learn to fold laundry", "https://www.theverge.com/robots", "A short summary"),
            citation("", "https://arxiv.org/abs/1"),
        ],
    )

    articles = parse_search_response(response, "robotics news October 2026")

    assert [a.url for a in articles] == ["https://www.theverge.com/robots", "https://arxiv.org/abs/1"]
    assert articles[0].source == "theverge.com"
    assert articles[0].snippet == "A short summary"
    assert articles[1].title == "Untitled"
    assert all(a.query == "robotics news October 2026" for a in articles)
    assert all(a.published_date is None for a in articles)


def test_text_fallback_recovers_urls_and_titles():
    text = (
        "Read Big AI news story of the week: https://news.example.com/story\n"
        "See https://a.example.com/x"
    )

    articles = parse_search_response(GroundedResponse(text=text), "AI news October 2026")

    assert [a.url for a in articles] == ["https://news.example.com/story", "https://a.example.com/x"]
    assert articles[0].title == "Read Big AI news story of the week:"
    assert articles[0].source == "news.example.com"
    assert articles[1].title == "Article"
    assert all(a.query == "AI news October 2026" for a in articles)


def test_text_fallback_prefers_quoted_titles():
    text = 'Reuters reported "Chipmakers race to build new fabs" (https://www.reuters.com/chips)'

    articles = parse_search_response(GroundedResponse(text=text), "chips news")

    assert articles[0].url == "https://www.reuters.com/chips"
    assert articles[0].title == "Chipmakers race to build new fabs"


def test_duplicate_urls_in_one_response_are_dropped():
    response = GroundedResponse(
        grounding_citations=[
            citation("First", "https://techcrunch.com/a"),
            citation("Second", "https://techcrunch.com/a"),
        ]
    )

    articles = parse_search_response(response, "q")

    assert [a.title for a in articles] == ["First"]


async def test_search_dedupes_across_queries_and_skips_failures(now):
    profile = UserInterestProfile(topics=["AI", "robotics", "chips"])

    def handler(prompt: str, grounding_enabled: bool):
        query = query_of(prompt)
        if query.startswith("AI"):
            return GroundedResponse(grounding_citations=[citation("AI story", "https://techcrunch.com/Shared")])
        if query.startswith("robotics"):
            return GroundedResponse(
                grounding_citations=[
                    citation("Same story again", "https://TECHCRUNCH.com/shared"),
                    citation("Robot story", "https://wired.com/robots"),
                ]
            )
        return RuntimeError("quota exceeded")

    generator = FakeTextGenerator(handler)
    articles = await SearchEngine(generator).search_news(profile, now)

    assert [a.url for a in articles] == ["https://techcrunch.com/Shared", "https://wired.com/robots"]
    assert articles[0].query == "AI news October 2026"
    assert len(generator.search_calls) == 3


async def test_search_with_no_queries_makes_no_calls(now):
    generator = FakeTextGenerator(lambda prompt, grounding: GroundedResponse())

    assert await SearchEngine(generator).search_news(UserInterestProfile(), now) == []
    assert generator.calls == []


def test_quoted_title_wins_over_the_preceding_line():
    text = "Top story today from the wire 'Chipmakers race to build new fabs' at https://www.reuters.com/chips"

    articles = parse_search_response(GroundedResponse(text=text), "chips news")

    assert articles[0].title == "Chipmakers race to build new fabs"


async def test_cancelled_query_is_skipped(now):
    profile = UserInterestProfile(topics=["AI", "robotics"])

    def handler(prompt: str, grounding_enabled: bool):
        if query_of(prompt).startswith("robotics"):
            return asyncio.CancelledError()
        return GroundedResponse(grounding_citations=[citation("AI story", "https://techcrunch.com/ai")])

    articles = await SearchEngine(FakeTextGenerator(handler)).search_news(profile, now)

    assert [a.url for a in articles] == ["https://techcrunch.com/ai"]
