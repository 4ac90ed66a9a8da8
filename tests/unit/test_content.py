"""Tests for article extraction, summarisation and structured extraction."""
import json

import pytest

from smartbrowser.core.browser.models import PageContent, PageMetadata
from smartbrowser.utils.exceptions import LLMError, ValidationError

SUMMARY_REPLY = json.dumps(
    {
        "summary": "The council approved trams and more night buses.",
        "keyPoints": ["Three tram lines", "Night buses doubled", ""],
        "entities": [
            {"type": "organization", "name": "council", "confidence": 1.7},
            {"type": "place"},
        ],
        "sentiment": "hopeful",
        "relevanceScore": 0.9,
    }
)


def _page(text, url="https://news.example.com/transport", title="Transport plan"):
    return PageContent(url=url, title=title, text=text)


class TestArticleExtractor:
    @pytest.mark.asyncio
    async def test_extracts_article_with_metadata(self, article_html):
        from smartbrowser.core.content.extractor import ArticleExtractor

        result = await ArticleExtractor().extract(article_html, "https://news.example.com/a")

        assert result.success is True
        assert "tram lines" in result.content.text
        assert result.content.metadata.author == "Jane Reporter"
        assert result.content.metadata.description == "A plan for trams and night buses."
        assert result.content.metadata.language == "en"
        assert result.content.metadata.word_count > 100
        assert result.content.extractor_used == "article-extractor"
        assert 0.7 <= result.confidence <= 1.0

    @pytest.mark.asyncio
    async def test_empty_html(self):
        from smartbrowser.core.content.extractor import ArticleExtractor

        result = await ArticleExtractor().extract("   ", "https://example.com")
        assert result.success is False
        assert result.error == "HTML content is empty"

    @pytest.mark.asyncio
    async def test_too_short_article(self):
        from smartbrowser.core.content.extractor import ArticleExtractor

        html = "<html><body><p>" + "Short but real sentence here. " * 2 + "</p></body></html>"
        result = await ArticleExtractor().extract(html, "https://example.com")

        assert result.success is False
        assert result.error == "Extracted content is too short"
        assert result.confidence == 0.3

    @pytest.mark.asyncio
    async def test_below_hard_floor(self):
        from smartbrowser.core.content.extractor import ArticleExtractor

        result = await ArticleExtractor().extract("<html><body><p>Hi</p></body></html>", "https://example.com")

        assert result.success is False
        assert result.confidence == 0.0

    def test_can_extract(self, article_html):
        from smartbrowser.core.content.extractor import ArticleExtractor

        extractor = ArticleExtractor()
        assert extractor.can_extract(article_html) is True
        assert extractor.can_extract("<html><body><div>menu</div></body></html>") is False

    def test_json_ld_metadata(self):
        from smartbrowser.core.content.extractor import ArticleExtractor, ExtractionOptions

        html = """<html><head><script type="application/ld+json">
        {"@type": "NewsArticle", "author": {"name": "Ada"}, "datePublished": "2024-05-01T10:00:00Z"}
        </script></head><body><article><p>""" + "Words about things. " * 20 + "</p></article></body></html>"

        result = ArticleExtractor()._extract_sync(html, "https://example.com", ExtractionOptions())

        assert result.content.metadata.author == "Ada"
        assert result.content.metadata.publish_date == "2024-05-01T10:00:00+00:00"


class TestConfidence:
    def test_rich_article_scores_high(self):
        from smartbrowser.core.content.extractor import calculate_confidence

        metadata = PageMetadata(author="A", publish_date="2024-01-01", description="d")
        assert calculate_confidence("x" * 2500, metadata, "A long enough title", True) == 1.0

    def test_short_bare_text_scores_low(self):
        from smartbrowser.core.content.extractor import calculate_confidence

        assert calculate_confidence("x" * 150, PageMetadata(), "", False) == 0.3

    def test_huge_text_penalised(self):
        from smartbrowser.core.content.extractor import calculate_confidence

        assert calculate_confidence("x" * 60_000, PageMetadata(), "", False) == 0.7


class TestContentSummarizer:
    @pytest.mark.asyncio
    async def test_summarize_parses_and_clamps(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        llm = scripted_llm(SUMMARY_REPLY)
        text = "The council met on Monday. " * 10
        result = await ContentSummarizer(llm).summarize(SummaryRequest(content=_page(text)))

        assert result.success is True
        assert result.cached is False
        summary = result.summary
        assert summary.summary.startswith("The council approved")
        assert summary.key_points == ["Three tram lines", "Night buses doubled"]
        assert [e.name for e in summary.entities] == ["council"]
        assert summary.entities[0].confidence == 1.0
        assert summary.entities[0].mentions == 10
        assert summary.sentiment == "neutral"
        assert summary.relevance_score == 0.9

    @pytest.mark.asyncio
    async def test_cache_hit_skips_llm(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        llm = scripted_llm(SUMMARY_REPLY)
        summarizer = ContentSummarizer(llm)
        request = SummaryRequest(content=_page("Long enough article text. " * 5))

        first = await summarizer.summarize(request)
        second = await summarizer.summarize(request)

        assert len(llm.calls) == 1
        assert second.cached is True
        assert second.summary.summary == first.summary.summary
        assert summarizer.get_cache_stats()["hit_rate"] == 0.5
        assert summarizer.get_cached_summary_by_url("https://news.example.com/transport") is not None

    @pytest.mark.asyncio
    async def test_options_are_part_of_cache_key(self, scripted_llm):
        from smartbrowser.core.content.summarizer import (
            ContentSummarizer,
            SummaryOptions,
            SummaryRequest,
        )

        llm = scripted_llm(SUMMARY_REPLY, SUMMARY_REPLY)
        summarizer = ContentSummarizer(llm)
        content = _page("Long enough article text. " * 5)

        await summarizer.summarize(SummaryRequest(content=content))
        await summarizer.summarize(
            SummaryRequest(content=content, options=SummaryOptions(max_length="brief"))
        )

        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_cache_expires(self, scripted_llm, fake_clock):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        llm = scripted_llm(SUMMARY_REPLY, SUMMARY_REPLY)
        summarizer = ContentSummarizer(llm, cache_ttl=60, clock=fake_clock)
        request = SummaryRequest(content=_page("Long enough article text. " * 5))

        await summarizer.summarize(request)
        fake_clock.advance(61)
        result = await summarizer.summarize(request)

        assert result.cached is False
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_llm_failure_returns_fallback(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        llm = scripted_llm(LLMError("anthropic", "overloaded"))
        text = "First paragraph of the story, long enough to count.\n\nSecond paragraph."
        result = await ContentSummarizer(llm).summarize(SummaryRequest(content=_page(text)))

        assert result.success is False
        assert "overloaded" in result.error
        assert result.summary.summary == "First paragraph of the story, long enough to count...."
        assert result.summary.key_points[1] == "Page title: Transport plan"

    @pytest.mark.asyncio
    async def test_short_text_never_reaches_llm(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        llm = scripted_llm(SUMMARY_REPLY)
        result = await ContentSummarizer(llm).summarize(SummaryRequest(content=_page("too short")))

        assert result.success is False
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_prose_reply_is_used_verbatim(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        llm = scripted_llm("A plain sentence summary.")
        result = await ContentSummarizer(llm).summarize(
            SummaryRequest(content=_page("Long enough article text. " * 5))
        )

        assert result.success is True
        assert result.summary.summary == "A plain sentence summary."

    @pytest.mark.asyncio
    async def test_batch_keeps_order(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        llm = scripted_llm(default=SUMMARY_REPLY)
        requests = [
            SummaryRequest(content=_page("Long enough article text. " * 5, url=f"https://e.com/{n}"))
            for n in range(5)
        ]

        results = await ContentSummarizer(llm).batch_summarize(requests)

        assert [r.summary.url for r in results] == [f"https://e.com/{n}" for n in range(5)]
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_summarize_with_context(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer

        llm = scripted_llm(SUMMARY_REPLY)
        related = _page("Earlier coverage of the tram debate.", title="Tram debate")

        result = await ContentSummarizer(llm).summarize_with_context(
            _page("Long enough article text. " * 5),
            related_pages=[related],
            user_goals=["commuting"],
            focus_areas=["budget"],
        )

        assert result.success is True
        prompt = llm.calls[0]["user"]
        assert "Related: Tram debate - Earlier coverage" in prompt
        assert "budget" in prompt and "commuting" in prompt

    @pytest.mark.asyncio
    async def test_clear_cache(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        summarizer = ContentSummarizer(scripted_llm(SUMMARY_REPLY))
        await summarizer.summarize(SummaryRequest(content=_page("Long enough article text. " * 5)))
        assert summarizer.get_cache_stats()["size"] == 1

        summarizer.clear_cache()

        assert summarizer.get_cache_stats()["size"] == 0
        assert summarizer.get_cached_summary_by_url("https://news.example.com/transport") is None

    @pytest.mark.asyncio
    async def test_url_index_follows_evictions(self, scripted_llm):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        summarizer = ContentSummarizer(scripted_llm(default=SUMMARY_REPLY), max_cache_size=2)
        for n in range(50):
            page = _page("Long enough article text. " * 5, url=f"https://e.com/{n}")
            await summarizer.summarize(SummaryRequest(content=page))

        assert len(summarizer._url_index) <= 2
        assert summarizer.get_cached_summary_by_url("https://e.com/0") is None
        assert summarizer.get_cached_summary_by_url("https://e.com/49") is not None

    @pytest.mark.asyncio
    async def test_url_index_follows_expiry(self, scripted_llm, fake_clock):
        from smartbrowser.core.content.summarizer import ContentSummarizer, SummaryRequest

        summarizer = ContentSummarizer(
            scripted_llm(default=SUMMARY_REPLY), cache_ttl=60, clock=fake_clock
        )
        await summarizer.summarize(SummaryRequest(content=_page("Long enough article text. " * 5)))
        fake_clock.advance(61)

        assert summarizer.get_cached_summary_by_url("https://news.example.com/transport") is None
        assert summarizer._url_index == {}
        assert summarizer.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_newer_entry_keeps_url_slot(self, scripted_llm):
        from smartbrowser.core.content.summarizer import (
            ContentSummarizer,
            SummaryOptions,
            SummaryRequest,
        )

        summarizer = ContentSummarizer(scripted_llm(default=SUMMARY_REPLY), max_cache_size=2)
        content = _page("Long enough article text. " * 5)
        await summarizer.summarize(SummaryRequest(content=content))
        await summarizer.summarize(
            SummaryRequest(content=content, options=SummaryOptions(max_length="brief"))
        )
        await summarizer.summarize(
            SummaryRequest(content=_page("Other article text here. " * 5, url="https://e.com/other"))
        )

        assert summarizer.get_cached_summary_by_url("https://news.example.com/transport") is not None


class TestStructuredDataExtractor:
    @pytest.mark.asyncio
    async def test_keeps_only_requested_fields(self, scripted_llm):
        from smartbrowser.core.content.structured import StructuredDataExtractor

        llm = scripted_llm('{"price": 19.99, "name": "Lamp", "extra": true}')
        data = await StructuredDataExtractor(llm).extract(
            _page("A lamp for sale."), [{"name": "price", "type": "number"}, {"name": "name"}]
        )

        assert data == {"price": 19.99, "name": "Lamp"}

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, scripted_llm):
        from smartbrowser.core.content.structured import StructuredDataExtractor

        data = await StructuredDataExtractor(scripted_llm("no idea")).extract(
            _page("text"), [{"name": "price"}]
        )
        assert data == {}

    @pytest.mark.asyncio
    async def test_empty_schema(self, scripted_llm):
        from smartbrowser.core.content.structured import StructuredDataExtractor

        with pytest.raises(ValidationError):
            await StructuredDataExtractor(scripted_llm()).extract(_page("text"), [])
