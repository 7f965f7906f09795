"""Audit queue: the orchestration core of a run.

N worker loops share one cursor over the URL list. For each URL a worker
acquires a page handle, checks for redirects, then runs the audit pipeline
against the resolved URL with rate limiting and retry-with-backoff. Every
processed URL yields exactly one artifact: a full result on success or a
minimal failure record once retries are exhausted. When all workers have
drained, the writer emits the run summary once.

Per URL the emitted events are strictly ordered:
``PageQueued < [PageRedirected] < PageStarted < AuditAttached/AuditFinished ...
< PageFinished | PageError``, with ``PageRetry`` looping back to ``PageStarted``.
Retries of a failed page creation emit ``PageRetry`` before redirect detection.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set
from urllib.parse import urldefrag

import psutil

from ..audits.base import Audit
from ..capture.browser_pool import BrowserPool
from ..capture.page import PageHandle
from ..events import (
    AuditAttached,
    AuditEvent,
    AuditFinished,
    EventBus,
    PageError,
    PageFinished,
    PageQueued,
    PageRetry,
    PageSkipped,
    PageStarted,
    log_listener,
)
from ..exceptions import PoolClosedError
from ..models.config import AuditOptions
from ..models.context import AuditContext, EngineFootprint, failure_result
from ..models.redirect import RedirectInfo
from ..redirects import RedirectHandler
from ..writer.json_writer import JsonWriter
from .rate_limiter import RequestRateLimiter, backoff_delay_ms

logger = logging.getLogger(__name__)


def make_run_id(now: Optional[datetime] = None) -> str:
    """Filesystem-safe run id derived from an ISO timestamp."""
    return (now or datetime.utcnow()).isoformat().replace(":", "-").replace(".", "_")


def _location_key(url: str) -> str:
    return urldefrag(url)[0].rstrip("/")


class AuditQueue:
    """Runs the audit pipeline over a list of URLs with bounded concurrency."""

    def __init__(
        self,
        pool: BrowserPool,
        audits: Sequence[Audit],
        writer: JsonWriter,
        options: Optional[AuditOptions] = None,
        redirect_handler: Optional[RedirectHandler] = None,
        events: Optional[EventBus] = None,
        rate_limiter: Optional[RequestRateLimiter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """Initialize the queue.

        Args:
            pool: Browser pool lending page handles
            audits: Audit pipeline, run sequentially in this order
            writer: Artifact writer; its run id is the run id of this queue
            options: Retry, throttling and concurrency options
            redirect_handler: Redirect detection; without it URLs are audited as given
            events: External event bus. When omitted the queue creates one,
                logs every event and closes it at the end of the run.
            rate_limiter: Throttle applied before each attempt
            sleep: Coroutine used for retry backoff
        """
        self.pool = pool
        self.audits = list(audits)
        self.writer = writer
        self.options = options or AuditOptions()
        self.redirect_handler = redirect_handler
        self.rate_limiter = rate_limiter or RequestRateLimiter(
            delay_between_requests_ms=self.options.delay_between_requests_ms,
            max_requests_per_second=self.options.max_requests_per_second,
        )
        self._sleep = sleep

        self._owns_events = events is None
        self.events = events or EventBus()
        if self._owns_events:
            self.events.subscribe(log_listener)

        self._urls: List[str] = []
        self._cursor = 0
        self._stopped = False
        self._audited: Set[str] = set()
        # Written result and skip reason per input URL
        self.results: Dict[str, Dict[str, Any]] = {}
        self.skip_reasons: Dict[str, str] = {}
        self._process = psutil.Process()

        self._stats = {
            "queued": 0,
            "succeeded": 0,
            "failed": 0,
            "retries": 0,
            "skipped": 0,
            "redirected": 0,
        }

    @property
    def run_id(self) -> str:
        return self.writer.run_id

    async def process(self, urls: Sequence[str], concurrency: Optional[int] = None) -> None:
        """Audit every URL and write the run summary.

        Args:
            urls: URLs to audit, in queue order
            concurrency: Worker loops to spawn; defaults to ``options.concurrency``
        """
        workers_count = concurrency or self.options.concurrency
        self._urls = list(urls)
        self._cursor = 0
        self._stopped = False

        logger.info(
            f"Starting run {self.run_id}: {len(self._urls)} URLs, {workers_count} workers"
        )

        workers = [
            asyncio.create_task(self._worker(i)) for i in range(workers_count)
        ]

        try:
            await asyncio.gather(*workers)
        finally:
            try:
                await self.writer.write_summary(self._summary_extras())
            except Exception as e:
                logger.error(f"Failed to write run summary: {e}")

            await self.events.drain()
            if self._owns_events:
                self.events.close()

        logger.info(f"Run {self.run_id} finished: {self._stats}")

    def _claim_next(self) -> Optional[str]:
        # No await between read and increment, so the claim is atomic
        # under the event loop.
        if self._stopped or self._cursor >= len(self._urls):
            return None
        url = self._urls[self._cursor]
        self._cursor += 1
        return url

    async def _worker(self, worker_id: int) -> None:
        logger.debug(f"Worker {worker_id} started")
        while True:
            url = self._claim_next()
            if url is None:
                break
            self._stats["queued"] += 1
            self._emit(PageQueued(url=url))
            await self._process_url(url)
        logger.debug(f"Worker {worker_id} finished")

    async def _process_url(self, url: str) -> None:
        started_at = datetime.utcnow()

        try:
            page = await self._acquire_with_backoff(url)
        except PoolClosedError as e:
            self._stopped = True
            self.results[url] = await self._fail(url, str(e), started_at)
            return
        except Exception as e:
            logger.error(f"Could not acquire a page for {url}: {e}")
            self.results[url] = await self._fail(url, str(e), started_at)
            return

        redirect: Optional[RedirectInfo] = None
        if self.redirect_handler is not None:
            redirect = await self.redirect_handler.detect(page, url, self.events)

        target = redirect.final_url if redirect else url
        if redirect:
            self._stats["redirected"] += 1

        if self.redirect_handler is not None and self.redirect_handler.should_skip(redirect):
            self.redirect_handler.statistics.mark_skipped(url)
            await self._skip(url, f"redirected to {target}", page)
            return

        key = _location_key(target)
        if key in self._audited:
            await self._skip(url, "already audited", page)
            return
        self._audited.add(key)

        self.results[url] = await self._process_with_retry(target, page, redirect)

    async def _acquire_with_backoff(self, url: str) -> PageHandle:
        """Acquire the page used for redirect detection and the first attempt.

        Creation failures are retried with the attempt backoff so detection
        always runs before the audited URL is decided.

        Raises:
            PoolClosedError: If the pool has been closed
            Exception: The last creation error once retries are exhausted
        """
        attempt = 0
        while True:
            try:
                return await self.pool.acquire()
            except PoolClosedError:
                raise
            except Exception as e:
                attempt += 1
                if attempt > self.options.max_retries:
                    raise
                delay_ms = backoff_delay_ms(self.options.base_delay_ms, attempt)
                self._stats["retries"] += 1
                logger.warning(f"Could not acquire a page for {url}: {e}; retrying in {delay_ms}ms")
                self._emit(PageRetry(url=url, attempt=attempt, delay_ms=delay_ms))
                await self._sleep(delay_ms / 1000.0)

    async def _process_with_retry(
        self,
        url: str,
        page: Optional[PageHandle],
        redirect: Optional[RedirectInfo] = None
    ) -> Dict[str, Any]:
        """Run the pipeline until it succeeds or retries run out.

        Takes ownership of ``page`` and releases it before returning.

        Returns:
            The result written for ``url``, a failure record if every attempt failed
        """
        started_at = datetime.utcnow()
        attempt = 0
        last_error: Optional[BaseException] = None

        while True:
            try:
                if page is None:
                    page = await self.pool.acquire()

                await self.rate_limiter.acquire()
                self._emit(PageStarted(url=url))

                ctx = AuditContext(
                    url=url,
                    page=page,
                    run_id=self.run_id,
                    events=self.events,
                    redirect=redirect,
                )
                await self._run_pipeline(ctx)
                result = ctx.build_result()
                await self._write(result)

                self._stats["succeeded"] += 1
                await self._release(page)
                self._emit(PageFinished(url=url))
                return result

            except PoolClosedError as e:
                last_error = e
                self._stopped = True
                break

            except Exception as e:
                last_error = e
                attempt += 1
                if attempt > self.options.max_retries:
                    break

                delay_ms = backoff_delay_ms(self.options.base_delay_ms, attempt)
                self._stats["retries"] += 1
                logger.warning(
                    f"Attempt {attempt} failed for {url}: {e}; retrying in {delay_ms}ms"
                )
                self._emit(PageRetry(url=url, attempt=attempt, delay_ms=delay_ms))
                await self._sleep(delay_ms / 1000.0)

                if page is not None and page.is_closed():
                    await self._release(page)
                    page = None

        logger.error(f"All attempts failed for {url}: {last_error}")
        result = await self._fail(url, str(last_error), started_at)
        if page is not None:
            await self._release(page)
        return result

    async def _run_pipeline(self, ctx: AuditContext) -> None:
        start = time.perf_counter()
        cpu_before = self._process.cpu_times()
        peak_rss = self._rss()

        def on_console(kind: str, text: str) -> None:
            if kind == "error":
                ctx.console_errors.append(text)

        unsubscribe = ctx.page.on_console(on_console)
        try:
            for audit in self.audits:
                self._emit(AuditAttached(url=ctx.url, audit_name=audit.name))
                await audit.run(ctx)
                peak_rss = max(peak_rss, self._rss())
                self._emit(AuditFinished(url=ctx.url, audit_name=audit.name))
        finally:
            unsubscribe()

        if self.options.screenshots:
            await self._capture_screenshot(ctx)

        cpu_after = self._process.cpu_times()
        ctx.engine_footprint = EngineFootprint(
            task_duration_ms=int((time.perf_counter() - start) * 1000),
            peak_rss_bytes=max(peak_rss, self._rss()),
            cpu_user_ms=int((cpu_after.user - cpu_before.user) * 1000),
            cpu_system_ms=int((cpu_after.system - cpu_before.system) * 1000),
        )

    async def _capture_screenshot(self, ctx: AuditContext) -> None:
        path = self.writer.screenshot_path(ctx.url)
        try:
            await ctx.page.screenshot(str(path))
            ctx.screenshot_path = str(path)
        except Exception as e:
            logger.warning(f"Screenshot failed for {ctx.url}: {e}")

    def _rss(self) -> int:
        try:
            return self._process.memory_info().rss
        except psutil.Error:
            return 0

    async def _fail(self, url: str, message: str, started_at: datetime) -> Dict[str, Any]:
        self._stats["failed"] += 1
        self._emit(PageError(url=url, message=message))
        result = failure_result(url, self.run_id, message, started_at)
        await self._write(result)
        return result

    async def _skip(self, url: str, reason: str, page: Optional[PageHandle]) -> None:
        self._stats["skipped"] += 1
        self.skip_reasons[url] = reason
        logger.info(f"Skipping {url}: {reason}")
        self._emit(PageSkipped(url=url, reason=reason))
        if page is not None:
            await self._release(page)

    async def _write(self, result: Dict[str, Any]) -> None:
        try:
            await self.writer.write(result)
        except Exception as e:
            logger.error(f"Failed to write artifact for {result.get('url')}: {e}")

    async def _release(self, page: PageHandle) -> None:
        try:
            await self.pool.release(page)
        except Exception as e:
            logger.warning(f"Failed to release page handle: {e}")

    def _emit(self, event: AuditEvent) -> None:
        self.events.emit(event)

    def _summary_extras(self) -> Dict[str, Any]:
        extras: Dict[str, Any] = {"queue": self.get_stats()}
        if self.redirect_handler is not None:
            extras.update(self.redirect_handler.summary())
        return extras

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self._stats)
        stats["rateLimiter"] = self.rate_limiter.get_stats()
        return stats
