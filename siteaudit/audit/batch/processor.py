"""Batch processing of many URLs with a pool of worker tasks.

Each URL becomes a :class:`BatchJob` on an ``asyncio.Queue``. Workers pull
jobs, run them under a per-job timeout and re-queue failures while the job
has retries left. The batch ends when every job has either succeeded or
failed permanently, or when it is cancelled.
"""

import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..audits.registry import build_audits
from ..capture.browser_pool import BrowserPool
from ..exceptions import BatchCancelledError
from ..models.batch import BatchJob, BatchProgress, BatchReport, BatchResult, BatchStatistics
from ..models.config import AuditOptions, PoolOptions
from ..queue.audit_queue import AuditQueue, make_run_id
from ..redirects import RedirectHandler
from ..writer.json_writer import JsonWriter

logger = logging.getLogger(__name__)


JobRunner = Callable[[BatchJob], Awaitable[Dict[str, Any]]]
ProgressCallback = Callable[[BatchProgress], None]


class BatchProcessor:
    """Runs independent single-URL audits across a worker pool."""

    def __init__(
        self,
        max_workers: int = 4,
        max_retries: int = 3,
        timeout_s: float = 300.0,
        continue_on_error: bool = True,
        pool_options: Optional[PoolOptions] = None
    ):
        self.max_workers = max_workers
        self.max_retries = max_retries
        self.timeout_s = timeout_s
        self.continue_on_error = continue_on_error
        self.pool_options = pool_options or PoolOptions()

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._results: List[BatchResult] = []
        self._durations: List[int] = []
        self._on_progress: Optional[ProgressCallback] = None
        self._total = 0
        self._completed = 0
        self._failed = 0
        self._active = 0
        self._running = False
        self._cancelled = False
        self._start: Optional[float] = None

        # Shared by the default job runner
        self._pool: Optional[BrowserPool] = None
        self._writer: Optional[JsonWriter] = None
        self._redirects: Optional[RedirectHandler] = None
        self._options = AuditOptions()

    @property
    def is_running(self) -> bool:
        return self._running

    async def process_batch(
        self,
        urls: Sequence[str],
        options: Optional[AuditOptions] = None,
        output_dir: Optional[Path] = None,
        on_progress: Optional[ProgressCallback] = None,
        job_runner: Optional[JobRunner] = None
    ) -> BatchReport:
        """Process ``urls`` and return the batch report.

        Args:
            urls: URLs to audit
            options: Audit options for the default job runner
            output_dir: Artifact directory for the default job runner
            on_progress: Called with a :class:`BatchProgress` after every job
            job_runner: Coroutine auditing one job; defaults to a
                single-URL :class:`AuditQueue` run sharing one browser pool

        Raises:
            RuntimeError: If a batch is already running on this processor
        """
        if self._running:
            raise RuntimeError("Batch processor is already running")

        self._running = True
        self._cancelled = False
        self._results = []
        self._durations = []
        self._total = len(urls)
        self._completed = 0
        self._failed = 0
        self._on_progress = on_progress
        self._options = options or AuditOptions()
        self._start = time.monotonic()
        start_time = datetime.utcnow()

        self._queue = asyncio.Queue()
        for url in urls:
            self._queue.put_nowait(BatchJob(url=url, max_retries=self.max_retries))

        runner = job_runner
        if runner is None:
            await self._start_default_runner(output_dir)
            runner = self._run_single_url

        worker_count = max(1, min(self.max_workers, self._total))
        logger.info(f"Starting batch of {self._total} URLs with {worker_count} workers")
        self._emit_progress("Starting batch")

        self._workers = [
            asyncio.create_task(self._worker(f"worker-{i}", runner))
            for i in range(worker_count)
        ]

        try:
            await self._queue.join()
        finally:
            for worker in self._workers:
                worker.cancel()
            await asyncio.gather(*self._workers, return_exceptions=True)
            self._workers = []
            await self._stop_default_runner()
            self._running = False

        report = BatchReport(
            start_time=start_time,
            end_time=datetime.utcnow(),
            total_urls=self._total,
            successful=self._completed,
            failed=self._failed,
            results=list(self._results),
            output_dir=output_dir,
            statistics=self.statistics(),
        )

        self._emit_progress("Batch complete", is_complete=True)
        logger.info(f"Batch finished: {report.successful} successful, {report.failed} failed")
        return report

    def cancel(self) -> None:
        """Drop every queued job; in-flight jobs finish normally."""
        if not self._running or self._cancelled or self._queue is None:
            return

        self._cancelled = True
        logger.info("Cancelling batch")

        while True:
            try:
                job = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            error = BatchCancelledError(f"Batch cancelled before {job.url} was processed")
            self._record(BatchResult(url=job.url, success=False, error=str(error)))
            self._failed += 1
            self._queue.task_done()

        self._emit_progress("Batch cancelled", is_error=True)

    def statistics(self) -> BatchStatistics:
        elapsed_ms = int((time.monotonic() - self._start) * 1000) if self._start else 0
        average = sum(self._durations) / len(self._durations) if self._durations else 0.0
        queue_length = self._queue.qsize() if self._queue else 0

        return BatchStatistics(
            total_jobs=self._total,
            completed_jobs=self._completed,
            failed_jobs=self._failed,
            pending_jobs=self._total - self._completed - self._failed,
            average_time_ms=average,
            elapsed_ms=elapsed_ms,
            workers_active=self._active,
            queue_length=queue_length,
        )

    async def _worker(self, name: str, runner: JobRunner) -> None:
        logger.debug(f"Batch {name} started")
        while True:
            job = await self._queue.get()
            try:
                await self._execute(job, runner)
            except Exception as e:
                logger.error(f"Unexpected error in batch {name}: {e}")
            finally:
                self._queue.task_done()

    async def _execute(self, job: BatchJob, runner: JobRunner) -> None:
        self._active += 1
        start = time.perf_counter()
        try:
            data = await asyncio.wait_for(runner(job), timeout=self.timeout_s)
            error = data.get("error") if isinstance(data, dict) else None
        except asyncio.TimeoutError:
            data, error = None, f"Timed out after {self.timeout_s}s"
        except Exception as e:
            data, error = None, str(e)
        finally:
            self._active -= 1

        duration_ms = int((time.perf_counter() - start) * 1000)
        self._durations.append(duration_ms)

        if error is None:
            self._completed += 1
            self._record(BatchResult(url=job.url, success=True, data=data, duration_ms=duration_ms))
            logger.info(f"Completed {job.url} ({self._completed + self._failed}/{self._total})")
            self._emit_progress(f"Completed {job.url}")
            return

        if job.can_retry and not self._cancelled:
            job.retries += 1
            logger.warning(f"Retrying {job.url} (attempt {job.retries}/{job.max_retries}): {error}")
            self._queue.put_nowait(job)
            return

        self._failed += 1
        self._record(BatchResult(
            url=job.url, success=False, data=data, error=error, duration_ms=duration_ms
        ))
        logger.error(f"Failed {job.url}: {error}")
        self._emit_progress(f"Failed {job.url}", is_error=True)

        if not self.continue_on_error:
            logger.error("Stopping batch after permanent failure")
            self.cancel()

    def _record(self, result: BatchResult) -> None:
        self._results.append(result)

    def _emit_progress(self, message: str, is_error: bool = False, is_complete: bool = False) -> None:
        if self._on_progress is None:
            return
        progress = BatchProgress(
            total=self._total,
            completed=self._completed,
            failed=self._failed,
            message=message,
            is_error=is_error,
            is_complete=is_complete,
        )
        try:
            self._on_progress(progress)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def _start_default_runner(self, output_dir: Optional[Path]) -> None:
        self._writer = JsonWriter(output_dir or Path("./artifacts"), run_id=make_run_id())
        self._redirects = RedirectHandler(
            policy=self._options.redirect_policy,
            max_redirects_to_follow=self._options.max_redirect_hops,
        )
        self._pool = BrowserPool(self.pool_options)
        await self._pool.start()

    async def _stop_default_runner(self) -> None:
        if self._pool is not None:
            await self._pool.close()
        self._pool = None

    async def _run_single_url(self, job: BatchJob) -> Dict[str, Any]:
        """Audit one URL through a one-worker audit queue.

        All jobs share one writer, so the summary rewritten at the end of
        each job covers every page audited so far.
        """
        options = self._options.model_copy(update=job.options) if job.options else self._options
        queue = AuditQueue(
            pool=self._pool,
            audits=build_audits(options=options),
            writer=self._writer,
            options=options,
            redirect_handler=self._redirects,
        )
        await queue.process([job.url], concurrency=1)

        result = queue.results.get(job.url)
        if result is not None:
            return result
        reason = queue.skip_reasons.get(job.url)
        if reason is not None:
            return {"url": job.url, "skipped": True, "reason": reason}
        return {"url": job.url, "error": "No result written"}
