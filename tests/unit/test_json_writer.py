"""Unit tests for artifact writing and run summary aggregation."""

import json
import pytest
from datetime import date, datetime, timedelta

from siteaudit.audit.exceptions import ArtifactWriteError
from siteaudit.audit.writer.json_writer import JsonWriter, url_slug
from siteaudit.audit.writer.summary import (
    build_summary,
    format_duration,
    http_status_stats,
    performance_stats,
    round_half_up,
    seo_stats,
    stat_block,
    violation_stats,
)


def page(url="https://a.test/", status=200, **extra):
    result = {"url": url, "http": {"statusCode": status}, "perf": {}}
    result.update(extra)
    return result


class TestJsonWriter:
    """Tests for artifact naming and persistence."""

    def test_url_slug(self):
        assert url_slug("https://a.test/x?y=1") == "https___a_test_x_y_1"

    def test_artifact_path_uses_date_and_slug(self, tmp_path):
        writer = JsonWriter(tmp_path, today=lambda: date(2024, 1, 15))
        path = writer.artifact_path("https://a.test/")
        assert path == tmp_path / "audit_2024-01-15_https___a_test_.json"

    @pytest.mark.asyncio
    async def test_write_creates_directory_and_file(self, tmp_path):
        writer = JsonWriter(tmp_path / "nested" / "out", today=lambda: date(2024, 1, 15))

        path = await writer.write(page())

        assert path.exists()
        assert json.loads(path.read_text())["url"] == "https://a.test/"
        assert len(writer.processed_pages) == 1

    @pytest.mark.asyncio
    async def test_same_url_same_day_overwrites(self, tmp_path):
        writer = JsonWriter(tmp_path, today=lambda: date(2024, 1, 15))

        await writer.write(page(status=500))
        path = await writer.write(page(status=200))

        assert len(list(tmp_path.glob("audit_*.json"))) == 1
        assert json.loads(path.read_text())["http"]["statusCode"] == 200
        assert len(writer.processed_pages) == 1
        assert writer.processed_pages[0]["http"]["statusCode"] == 200

    @pytest.mark.asyncio
    async def test_different_days_keep_both(self, tmp_path):
        day = [date(2024, 1, 15)]
        writer = JsonWriter(tmp_path, today=lambda: day[0])

        await writer.write(page())
        day[0] = date(2024, 1, 16)
        await writer.write(page())

        assert len(list(tmp_path.glob("audit_*.json"))) == 2

    @pytest.mark.asyncio
    async def test_result_without_url_is_rejected(self, tmp_path):
        writer = JsonWriter(tmp_path)
        with pytest.raises(ArtifactWriteError):
            await writer.write({"http": {}})

    @pytest.mark.asyncio
    async def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        writer = JsonWriter(blocker / "out")

        with pytest.raises(ArtifactWriteError):
            await writer.write(page())

    @pytest.mark.asyncio
    async def test_write_summary(self, tmp_path):
        writer = JsonWriter(tmp_path, run_id="run-9", today=lambda: date(2024, 1, 15))
        await writer.write(page("https://a.test/1", 200))
        await writer.write(page("https://a.test/2", 404))

        path = await writer.write_summary({"queue": {"succeeded": 2}})

        assert path.name == "summary_2024-01-15.json"
        assert writer.summary_path == path
        summary = json.loads(path.read_text())
        assert summary["runId"] == "run-9"
        assert summary["pages"]["total"] == 2
        assert summary["queue"] == {"succeeded": 2}
        assert summary["urls"] == ["https://a.test/1", "https://a.test/2"]


class TestSummary:
    """Tests for the summary aggregation functions."""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(2.4) == 2
        assert round_half_up(-2.5) == -3

    def test_status_partition(self):
        pages = [page(status=200), page(status=301), page(status=404), page(status=None)]

        stats = http_status_stats(pages)

        assert stats["total"] == 4
        assert stats["successful"] == 1
        assert stats["redirects"] == 1
        assert stats["errors"] == 1
        assert stats["crashed"] == 1
        assert stats["successRate"] == 50
        assert stats["httpStatusBreakdown"] == {
            "200": 1,
            "301 (Permanent Redirect)": 1,
            "404 (Not Found)": 1,
            "crashed": 1,
        }

    def test_status_breakdown_buckets(self):
        pages = [page(status=s) for s in (201, 302, 307, 403, 503)]
        breakdown = http_status_stats(pages)["httpStatusBreakdown"]
        assert breakdown == {
            "201": 1,
            "302 (Temporary Redirect)": 1,
            "3xx (Other Redirects)": 1,
            "4xx (Client Error)": 1,
            "5xx (Server Error)": 1,
        }

    def test_empty_run(self):
        stats = http_status_stats([])
        assert stats["total"] == 0
        assert stats["successRate"] == 0

    def test_stat_block(self):
        block = stat_block([100, 200, 300, 400, None, True], "ms")
        assert block == {"count": 4, "avg": 250, "median": 250, "min": 100, "max": 400, "unit": "ms"}

    def test_stat_block_all_missing(self):
        block = stat_block([None, None], "bytes")
        assert block == {"count": 0, "avg": None, "median": None, "min": None, "max": None, "unit": "bytes"}

    def test_violation_stats(self):
        pages = [
            page(a11y={"violations": [{"impact": "critical"}, {"impact": "serious"}]}),
            page(a11y={"violations": [{"impact": "critical"}]}),
        ]
        stats = violation_stats(pages)
        assert stats["total"] == 3
        assert stats["byImpact"] == {"critical": 2, "serious": 1}
        assert stats["avgPerPage"] == "1.5"

    def test_performance_stats(self):
        pages = [
            page(performance={"score": 95, "issues": []}),
            page(performance={"score": 55, "issues": [{"type": "lcp-slow"}]}),
            page(),
        ]
        stats = performance_stats(pages)
        assert stats["totalPagesWithPerf"] == 2
        assert stats["averageScore"] == 75
        assert stats["scoreDistribution"]["A (90-100)"] == 1
        assert stats["scoreDistribution"]["F (0-59)"] == 1
        assert stats["issuesByType"] == {"lcp-slow": 1}

    def test_seo_stats(self):
        pages = [page(seo={"score": 80, "issues": [
            {"type": "title-missing"},
            {"type": "h1-multiple"},
            {"type": "image-alt-missing"},
        ]})]
        stats = seo_stats(pages)
        assert stats["totalIssues"] == 3
        assert stats["issuesByCategory"]["title"] == {"title-missing": 1}
        assert stats["issuesByCategory"]["headings"] == {"h1-multiple": 1}
        assert stats["issuesByCategory"]["images"] == {"image-alt-missing": 1}

    def test_format_duration(self):
        assert format_duration(timedelta(seconds=75)) == "1m 15s"
        assert format_duration(timedelta(seconds=5)) == "5s"

    def test_build_summary(self):
        started = datetime(2024, 1, 15, 10, 0, 0)
        finished = started + timedelta(seconds=90)
        pages = [
            page("https://a.test/1", perf={"ttfbMs": 100, "engine": {"taskDurationMs": 1000}}),
            page("https://a.test/2", perf={"ttfbMs": 300, "engine": {"taskDurationMs": 3000}}),
        ]

        summary = build_summary(pages, "run-1", started, finished)

        assert summary["duration"] == {"totalMs": 90000, "formatted": "1m 30s"}
        assert summary["legacyPerf"]["ttfb"]["median"] == 200
        assert summary["engine"]["taskDuration"]["max"] == 3000
        assert summary["legacyPerf"]["lcp"]["count"] == 0
        assert summary["urls"] == ["https://a.test/1", "https://a.test/2"]
