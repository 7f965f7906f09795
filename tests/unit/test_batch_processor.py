"""Unit tests for batch mode."""

import json
import pytest
import asyncio
from collections import Counter
from datetime import datetime

from siteaudit.audit.batch.processor import BatchProcessor
from siteaudit.audit.capture.browser_pool import BrowserPool
from siteaudit.audit.models.config import AuditOptions, PoolOptions
from siteaudit.audit.models.batch import BatchJob, BatchProgress, BatchReport, BatchResult, BatchStatistics


URLS = ["https://a.test/1", "https://a.test/2", "https://a.test/3"]


class ScriptedRunner:
    """Job runner failing each URL a configured number of times."""

    def __init__(self, failures=None, error_key=False):
        self.failures = dict(failures or {})
        self.error_key = error_key
        self.attempts = Counter()

    async def __call__(self, job: BatchJob):
        self.attempts[job.url] += 1
        await asyncio.sleep(0)
        if self.failures.get(job.url, 0) > 0:
            self.failures[job.url] -= 1
            if self.error_key:
                return {"url": job.url, "error": "navigation failed"}
            raise RuntimeError(f"audit of {job.url} failed")
        return {"url": job.url, "http": {"statusCode": 200}}


class TestBatchModels:
    """Tests for batch data structures."""

    def test_job_retry_budget(self):
        job = BatchJob(url="https://a.test/", max_retries=1)
        assert job.can_retry
        job.retries = 1
        assert not job.can_retry

    def test_job_id_format(self):
        millis, suffix = BatchJob(url="a").id.split("_")
        assert millis.isdigit()
        assert suffix.isdigit()

    def test_progress_percentage(self):
        assert BatchProgress(total=4, completed=1, failed=1).percentage == 50.0
        assert BatchProgress(total=0, completed=0, failed=0).percentage == 100.0

    def test_statistics(self):
        stats = BatchStatistics(
            total_jobs=10, completed_jobs=6, failed_jobs=2, pending_jobs=2,
            average_time_ms=500.0, elapsed_ms=4000, workers_active=2, queue_length=1,
        )
        assert stats.success_rate == 75.0
        assert stats.progress == 80.0
        assert stats.estimated_remaining_ms == 500
        assert stats.to_dict()["successRate"] == 75.0

    @pytest.mark.asyncio
    async def test_report_save(self, tmp_path):
        start = datetime(2024, 1, 15, 10, 0, 0)
        report = BatchReport(
            start_time=start,
            end_time=datetime(2024, 1, 15, 10, 0, 2),
            total_urls=2,
            successful=1,
            failed=1,
            results=[
                BatchResult(url="https://a.test/1", success=True, data={"url": "https://a.test/1"}),
                BatchResult(url="https://a.test/2", success=False, error="boom"),
            ],
        )

        path = await report.save(tmp_path / "reports" / "batch.json")

        data = json.loads(path.read_text())
        assert data["durationMs"] == 2000
        assert data["successRate"] == 50.0
        assert data["results"][1]["error"] == "boom"


class TestBatchProcessor:
    """Tests for workers, retries, timeouts and cancellation."""

    @pytest.mark.asyncio
    async def test_all_jobs_succeed(self):
        processor = BatchProcessor(max_workers=2)

        report = await processor.process_batch(URLS, job_runner=ScriptedRunner())

        assert report.total_urls == 3
        assert report.successful == 3
        assert report.failed == 0
        assert sorted(r.url for r in report.results) == URLS
        assert all(r.success for r in report.results)
        assert not processor.is_running

    @pytest.mark.asyncio
    async def test_failed_jobs_are_requeued(self):
        runner = ScriptedRunner(failures={"https://a.test/2": 2})
        processor = BatchProcessor(max_workers=2, max_retries=3)

        report = await processor.process_batch(URLS, job_runner=runner)

        assert report.successful == 3
        assert runner.attempts["https://a.test/2"] == 3

    @pytest.mark.asyncio
    async def test_permanent_failure(self):
        runner = ScriptedRunner(failures={"https://a.test/2": 10})
        processor = BatchProcessor(max_workers=2, max_retries=2)

        report = await processor.process_batch(URLS, job_runner=runner)

        assert report.successful == 2
        assert report.failed == 1
        assert runner.attempts["https://a.test/2"] == 3
        failed = [r for r in report.results if not r.success]
        assert failed[0].error == "audit of https://a.test/2 failed"

    @pytest.mark.asyncio
    async def test_error_key_counts_as_failure(self):
        runner = ScriptedRunner(failures={"https://a.test/1": 10}, error_key=True)
        processor = BatchProcessor(max_workers=1, max_retries=0)

        report = await processor.process_batch(URLS, job_runner=runner)

        assert report.failed == 1
        failed = [r for r in report.results if not r.success][0]
        assert failed.error == "navigation failed"
        assert failed.data["error"] == "navigation failed"

    @pytest.mark.asyncio
    async def test_job_timeout(self):
        async def slow(job):
            await asyncio.sleep(5)
            return {}

        processor = BatchProcessor(max_workers=1, max_retries=0, timeout_s=0.05)

        report = await processor.process_batch(["https://a.test/slow"], job_runner=slow)

        assert report.failed == 1
        assert report.results[0].error.startswith("Timed out")

    @pytest.mark.asyncio
    async def test_stop_on_error_cancels_remaining_jobs(self):
        runner = ScriptedRunner(failures={"https://a.test/1": 10})
        processor = BatchProcessor(max_workers=1, max_retries=0, continue_on_error=False)

        report = await processor.process_batch(URLS, job_runner=runner)

        assert report.successful == 0
        assert report.failed == 3
        cancelled = [r for r in report.results if r.error and "cancelled" in r.error]
        assert sorted(r.url for r in cancelled) == ["https://a.test/2", "https://a.test/3"]
        assert runner.attempts["https://a.test/2"] == 0

    @pytest.mark.asyncio
    async def test_progress_callback(self):
        updates = []
        processor = BatchProcessor(max_workers=2)

        await processor.process_batch(URLS, job_runner=ScriptedRunner(), on_progress=updates.append)

        assert updates[0].message == "Starting batch"
        assert updates[-1].is_complete
        assert updates[-1].percentage == 100.0
        assert sum(1 for u in updates if u.message.startswith("Completed")) == 3

    @pytest.mark.asyncio
    async def test_failing_progress_callback_is_ignored(self):
        def broken(progress):
            raise RuntimeError("ui crashed")

        processor = BatchProcessor(max_workers=2)
        report = await processor.process_batch(URLS, job_runner=ScriptedRunner(), on_progress=broken)

        assert report.successful == 3

    @pytest.mark.asyncio
    async def test_concurrent_batches_rejected(self):
        async def slow(job):
            await asyncio.sleep(0.05)
            return {"url": job.url}

        processor = BatchProcessor(max_workers=1)
        first = asyncio.create_task(processor.process_batch(URLS[:1], job_runner=slow))
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError, match="already running"):
            await processor.process_batch(URLS, job_runner=slow)

        report = await first
        assert report.successful == 1

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        processor = BatchProcessor()
        report = await processor.process_batch([], job_runner=ScriptedRunner())
        assert report.total_urls == 0
        assert report.results == []

    @pytest.mark.asyncio
    async def test_statistics_after_run(self):
        processor = BatchProcessor(max_workers=3)
        report = await processor.process_batch(URLS, job_runner=ScriptedRunner())

        stats = report.statistics
        assert stats.total_jobs == 3
        assert stats.completed_jobs == 3
        assert stats.pending_jobs == 0
        assert stats.queue_length == 0
        assert stats.workers_active == 0


class TestDefaultJobRunner:
    """Tests for jobs audited through the shared pool and writer."""

    @pytest.fixture
    def fake_pool(self, monkeypatch, page_factory):
        monkeypatch.setattr(
            "siteaudit.audit.batch.processor.BrowserPool",
            lambda options: BrowserPool(options, page_factory=page_factory),
        )

    @pytest.mark.asyncio
    async def test_each_result_carries_its_own_page(self, fake_pool, fake_site, tmp_path):
        urls = [f"https://a.test/p{i}" for i in range(12)]
        fake_site.fail("https://a.test/p5", 10)
        processor = BatchProcessor(
            max_workers=4,
            max_retries=0,
            pool_options=PoolOptions(prewarm=0, idle_floor=0, acquire_poll_s=0.01),
        )
        options = AuditOptions(enabled_audits=["http"], max_retries=0, base_delay_ms=0)

        report = await processor.process_batch(urls, options=options, output_dir=tmp_path)

        assert report.successful == 11
        assert report.failed == 1
        assert sorted(r.url for r in report.results) == sorted(urls)
        for result in report.results:
            assert result.data["url"] == result.url

        failed = [r for r in report.results if not r.success]
        assert failed[0].url == "https://a.test/p5"
        assert "ERR_CONNECTION_RESET" in failed[0].error
        assert len(list(tmp_path.glob("audit_*.json"))) == 12
