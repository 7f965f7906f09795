"""Unit tests for the page audits and their scoring."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from siteaudit.audit.audits.a11y import AXE_RUN_SCRIPT, BUILTIN_RULES_SCRIPT, A11yAudit
from siteaudit.audit.audits.base import SafeAudit, grade_for
from siteaudit.audit.audits.budgets import BUDGETS, BudgetThreshold, get_budget
from siteaudit.audit.audits.content_quality import (
    CONTENT_SCRIPT,
    ContentQualityAudit,
    analyze_content_quality,
    count_syllables,
    heading_hierarchy_ok,
    text_statistics,
)
from siteaudit.audit.audits.content_weight import ContentWeightAudit, summarize_resources
from siteaudit.audit.audits.http import HttpAudit, filter_headers
from siteaudit.audit.audits.mobile import MobileAudit, analyze_mobile
from siteaudit.audit.audits.perf import PerfAudit, analyze_metrics
from siteaudit.audit.audits.registry import build_audits
from siteaudit.audit.audits.seo import SeoAudit, analyze_seo
from siteaudit.audit.models.config import AuditOptions
from siteaudit.audit.models.context import AuditContext


def make_context(page=None, url="https://a.test/"):
    return AuditContext(url=url, page=page or MagicMock(), run_id="run-1")


def mock_page(evaluate_result):
    page = MagicMock()
    page.evaluate = AsyncMock(return_value=evaluate_result)
    page.add_script = AsyncMock()
    return page


class TestBase:
    """Tests for grading and the failure-isolating wrapper."""

    def test_grades(self):
        assert grade_for(95) == "A"
        assert grade_for(85) == "B"
        assert grade_for(75) == "C"
        assert grade_for(65) == "D"
        assert grade_for(10) == "F"

    @pytest.mark.asyncio
    async def test_safe_audit_records_error(self):
        inner = SeoAudit()
        ctx = make_context(mock_page(None))
        ctx.page.evaluate.side_effect = RuntimeError("execution context destroyed")

        await SafeAudit(inner).run(ctx)

        assert ctx.audit_errors == {"seo": "execution context destroyed"}
        assert ctx.seo is None


class TestHttpAudit:
    """Tests for navigation and response recording."""

    def test_filter_headers(self):
        headers = {"content-type": "text/html", "set-cookie": "secret", "server": ""}
        assert filter_headers(headers) == {"content-type": "text/html"}

    @pytest.mark.asyncio
    async def test_records_status_and_headers(self, fake_site, fake_page):
        fake_site.statuses["https://a.test/missing"] = 404
        ctx = make_context(fake_page, "https://a.test/missing")

        await HttpAudit().run(ctx)

        assert ctx.status_code == 404
        assert ctx.headers == {"content-type": "text/html", "server": "fake"}
        assert ctx.response_time_ms >= 0

    @pytest.mark.asyncio
    async def test_navigation_failure_propagates(self, fake_site, fake_page):
        fake_site.fail("https://a.test/", 1)
        ctx = make_context(fake_page)

        with pytest.raises(RuntimeError):
            await HttpAudit().run(ctx)

        assert "ERR_CONNECTION_RESET" in ctx.navigation_error

    def test_http_audit_is_critical(self):
        assert HttpAudit.critical is True


class TestPerf:
    """Tests for Web Vitals scoring and budgets."""

    def test_all_good(self):
        result = analyze_metrics({"lcp": 1200, "fcp": 800, "cls": 0.01, "ttfb": 200})
        assert result == {"score": 100, "grade": "A", "issues": []}

    def test_poor_and_needs_work(self):
        result = analyze_metrics({"lcp": 5000, "fcp": 2000, "cls": 0.0, "ttfb": None})

        assert result["score"] == 100 - 40 - 15
        assert result["grade"] == "F"
        issues = {i["type"]: i["severity"] for i in result["issues"]}
        assert issues == {"lcp-slow": "error", "fcp-slow": "warning"}

    def test_score_floor(self):
        result = analyze_metrics({"lcp": 9000, "fcp": 9000, "cls": 1.0, "ttfb": 9000})
        assert result["score"] == 0

    def test_threshold_score_curve(self):
        threshold = BudgetThreshold(good=1000, needs_work=2000, max=3000)
        assert threshold.score(500) == 100.0
        assert threshold.score(2000) == pytest.approx(70.0)
        assert threshold.score(3000) == pytest.approx(30.0)
        assert threshold.score(6000) < 30.0
        assert threshold.status(500) == "good"
        assert threshold.status(1500) == "needs-improvement"
        assert threshold.status(2500) == "poor"
        assert threshold.status(3500) == "failing"

    def test_budget_evaluation(self):
        result = BUDGETS["default"].evaluate({"lcp": 2000, "fcp": 1000, "cls": None})

        assert set(result["metrics"]) == {"lcp", "fcp"}
        assert result["overallScore"] == 100.0
        assert result["grade"] == "A"
        assert result["passes"] is True

    def test_budget_failure(self):
        result = BUDGETS["ecommerce"].evaluate({"lcp": 5000})
        assert result["metrics"]["lcp"]["status"] == "failing"
        assert result["passes"] is False

    def test_unknown_budget_falls_back_to_default(self):
        assert get_budget("nope") is BUDGETS["default"]
        assert get_budget("Blog") is BUDGETS["blog"]

    @pytest.mark.asyncio
    async def test_perf_audit_fills_context(self):
        page = mock_page({"ttfb": 120.4, "fcp": 900, "lcp": 1500.6, "dcl": 1100, "loadEnd": 2000, "cls": 0.02})
        ctx = make_context(page)

        await PerfAudit(budget="corporate").run(ctx)

        assert ctx.ttfb_ms == 120.4
        assert ctx.lcp_ms == 1500.6
        assert ctx.load_end_ms == 2000.0
        assert ctx.performance["score"] == 100
        assert ctx.performance["coreWebVitals"]["largestContentfulPaint"] == 1501
        assert ctx.performance_budget["budget"] == "corporate"

    @pytest.mark.asyncio
    async def test_perf_audit_tolerates_missing_entries(self):
        ctx = make_context(mock_page(None))

        await PerfAudit().run(ctx)

        assert ctx.lcp_ms is None
        assert ctx.performance["score"] == 100


class TestSeo:
    """Tests for SEO analysis."""

    GOOD_PAGE = {
        "title": "A descriptive page title of reasonable length",
        "description": "x" * 140,
        "h1": ["Welcome"],
        "images": 4,
        "missingAlt": 0,
        "emptyAlt": 0,
    }

    def test_good_page(self):
        result = analyze_seo(self.GOOD_PAGE)
        assert result["score"] == 100
        assert result["issues"] == []
        assert result["metaTags"]["title"] == self.GOOD_PAGE["title"]

    def test_empty_page(self):
        result = analyze_seo({})
        types = [i["type"] for i in result["issues"]]
        assert types == ["title-missing", "description-missing", "h1-missing"]
        assert result["score"] == 35
        assert result["grade"] == "F"

    def test_length_warnings_do_not_deduct(self):
        data = dict(self.GOOD_PAGE, title="Short", description="Too short")
        result = analyze_seo(data)
        types = [i["type"] for i in result["issues"]]
        assert types == ["title-short", "description-short"]
        assert result["score"] == 100

    def test_multiple_h1(self):
        result = analyze_seo(dict(self.GOOD_PAGE, h1=["One", "Two"]))
        assert result["score"] == 90
        assert result["headings"]["issues"][0]["type"] == "h1-multiple"

    def test_image_alt_deduction(self):
        result = analyze_seo(dict(self.GOOD_PAGE, images=10, missingAlt=4))
        assert result["score"] == 86
        assert result["images"] == {"total": 10, "missingAlt": 4, "emptyAlt": 0}

    @pytest.mark.asyncio
    async def test_seo_audit(self):
        ctx = make_context(mock_page(self.GOOD_PAGE))
        await SeoAudit().run(ctx)
        assert ctx.seo["score"] == 100


class TestA11y:
    """Tests for the accessibility audit engines."""

    @pytest.mark.asyncio
    async def test_builtin_rules(self):
        violations = [{"id": "image-alt", "impact": "critical", "nodes": 2}]
        page = mock_page({"violations": violations, "passes": 3})
        ctx = make_context(page)

        await A11yAudit().run(ctx)

        page.evaluate.assert_awaited_once_with(BUILTIN_RULES_SCRIPT)
        page.add_script.assert_not_awaited()
        assert ctx.a11y["engine"] == "builtin"
        assert ctx.a11y["violations"] == violations

    @pytest.mark.asyncio
    async def test_axe_engine(self, tmp_path):
        axe = tmp_path / "axe.min.js"
        axe.write_text("window.axe = {};")
        page = mock_page({"violations": [], "passes": 40, "incomplete": 1})
        ctx = make_context(page)

        await A11yAudit(axe_source=axe).run(ctx)

        page.add_script.assert_awaited_once_with("window.axe = {};")
        page.evaluate.assert_awaited_once_with(AXE_RUN_SCRIPT)
        assert ctx.a11y == {"engine": "axe-core", "violations": [], "passes": 40, "incomplete": 1}


class TestContentWeight:
    """Tests for resource weight summaries."""

    def test_summarize_resources(self):
        entries = [
            {"url": "https://a.test/app.js", "type": "script", "size": 600 * 1024, "duration": 100},
            {"url": "https://a.test/site.css", "type": "link", "size": 1000, "duration": 2500},
            {"url": "https://a.test/hero.png", "type": "img", "size": 2000, "duration": 50},
            {"url": "https://a.test/beacon", "type": "beacon", "size": 0, "duration": 10},
        ]

        result = summarize_resources(entries, document_bytes=5000)

        assert result["totalBytes"] == 600 * 1024 + 1000 + 2000 + 5000
        assert result["requestCount"] == 5
        assert result["byType"]["script"] == {"count": 1, "bytes": 600 * 1024}
        assert result["byType"]["stylesheet"]["count"] == 1
        assert result["byType"]["other"]["count"] == 1
        assert result["byType"]["document"] == {"count": 1, "bytes": 5000}
        assert [r["url"] for r in result["largeResources"]] == ["https://a.test/app.js"]
        assert result["slowResources"] == [{"url": "https://a.test/site.css", "type": "stylesheet", "durationMs": 2500}]

    @pytest.mark.asyncio
    async def test_content_weight_audit(self):
        ctx = make_context(mock_page(None))
        await ContentWeightAudit().run(ctx)
        assert ctx.content_weight["totalBytes"] == 0
        assert ctx.content_weight["requestCount"] == 0


class TestMobile:
    """Tests for mobile friendliness scoring."""

    def test_responsive_page(self):
        result = analyze_mobile({"viewport": "width=device-width, initial-scale=1"})
        assert result["score"] == 100
        assert result["issues"] == []

    def test_missing_viewport(self):
        result = analyze_mobile({})
        assert result["score"] == 70
        assert result["issues"][0]["type"] == "viewport-missing"

    def test_fixed_viewport_and_other_problems(self):
        result = analyze_mobile({
            "viewport": "width=1024",
            "smallTouchTargets": 15,
            "smallFonts": 5,
            "horizontalScroll": True,
        })
        assert result["score"] == 100 - 15 - 20 - 5 - 10
        assert [i["type"] for i in result["issues"]] == [
            "viewport-not-responsive",
            "touch-targets-small",
            "font-size-small",
            "horizontal-scroll",
        ]

    @pytest.mark.asyncio
    async def test_mobile_audit_passes_thresholds(self):
        page = mock_page({"viewport": "width=device-width"})
        ctx = make_context(page)

        await MobileAudit().run(ctx)

        args = page.evaluate.await_args.args
        assert args[1] == [48, 12]
        assert ctx.mobile["score"] == 100


class TestContentQuality:
    """Tests for text statistics and content quality scoring."""

    def test_count_syllables(self):
        assert count_syllables("make") == 1
        assert count_syllables("table") == 2
        assert count_syllables("readability") == 5
        assert count_syllables("...") == 0

    def test_text_statistics(self):
        stats = text_statistics("The cat sat on the mat today. The dog ran in the park again!", paragraphs=2)

        assert stats["wordCount"] == 14
        assert stats["sentenceCount"] == 2
        assert stats["uniqueWords"] == 11
        assert stats["lexicalDiversity"] == 0.786
        assert stats["avgWordsPerSentence"] == 7.0
        assert stats["avgWordsPerParagraph"] == 7.0
        assert stats["fleschReadingEase"] == 100
        assert stats["fleschKincaidGrade"] == 0.6
        assert stats["gunningFogIndex"] == 2.8
        assert [k["word"] for k in stats["topKeywords"]] == ["again", "park", "today"]

    def test_heading_hierarchy(self):
        assert heading_hierarchy_ok([{"level": 1}, {"level": 2}, {"level": 3}, {"level": 2}])
        assert heading_hierarchy_ok([{"level": 2}, {"level": 3}])
        assert not heading_hierarchy_ok([{"level": 1}, {"level": 2}, {"level": 4}])

    def test_empty_page(self):
        result = analyze_content_quality({})

        assert result["score"] == 55
        assert result["grade"] == "F"
        assert [i["type"] for i in result["issues"]] == ["thin-content", "no-headings"]
        assert len(result["recommendations"]) == 2
        assert result["readability"]["interpretation"] is None

    def test_rich_content_bonus(self):
        result = analyze_content_quality({"media": 2, "lists": 1})
        assert result["score"] == 70
        assert result["contentRichness"]["media"] == 2

    def test_long_sentence(self):
        text = " ".join(f"word{i}" for i in range(40)) + "."

        result = analyze_content_quality({"text": text, "paragraphs": 1})

        assert result["score"] == 60
        assert [i["type"] for i in result["issues"]] == ["thin-content", "no-headings", "complex-sentences"]
        assert result["readability"]["interpretation"] == "Easy to read (6th grade level) | Grade level: 11.8"
        assert result["lexicalDiversity"] == 1.0
        assert len(result["keywords"]) == 10

    def test_skipped_heading_level(self):
        headings = [{"level": 1, "text": "Guide"}, {"level": 3, "text": "Details"}]
        result = analyze_content_quality({"headings": headings})

        assert result["contentStructure"]["properHierarchy"] is False
        assert "heading-hierarchy" in [i["type"] for i in result["issues"]]
        assert result["score"] == 60

    @pytest.mark.asyncio
    async def test_content_quality_audit(self):
        page = mock_page(None)
        ctx = make_context(page)

        await ContentQualityAudit().run(ctx)

        page.evaluate.assert_awaited_once_with(CONTENT_SCRIPT)
        assert ctx.content_quality["score"] == 55
        assert ctx.build_result()["contentQuality"] == ctx.content_quality


class TestRegistry:
    """Tests for building the audit pipeline."""

    def test_http_runs_first_and_unwrapped(self):
        audits = build_audits(["seo", "http"])
        assert [a.name for a in audits] == ["http", "seo"]
        assert isinstance(audits[0], HttpAudit)
        assert isinstance(audits[1], SafeAudit)

    def test_defaults_build_every_audit(self):
        audits = build_audits()
        assert [a.name for a in audits] == ["http", "perf", "seo", "a11y", "content_weight", "mobile"]

    def test_duplicates_collapse(self):
        assert [a.name for a in build_audits(["seo", "seo"])] == ["seo"]

    def test_unknown_audit(self):
        with pytest.raises(ValueError, match="lighthouse"):
            build_audits(["lighthouse"])

    def test_options_flow_into_audits(self):
        options = AuditOptions(navigation_timeout_ms=5000, performance_budget="blog")
        http, perf = build_audits(["http", "perf"], options)
        assert http.navigation_timeout_ms == 5000
        assert perf.inner.budget.name == "blog"

    def test_content_quality_is_opt_in(self):
        assert "content_quality" not in [a.name for a in build_audits()]
        audits = build_audits(["http", "content_quality"])
        assert [a.name for a in audits] == ["http", "content_quality"]
        assert isinstance(audits[1].inner, ContentQualityAudit)
