"""CLI runner: wires the browser pool, redirect handler, audit queue and
writer for one run, and maps the outcome to an exit code.
"""

import logging
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..api.websocket import start_bridge_server, stop_bridge_server
from ..audit.audits.registry import build_audits
from ..audit.batch.processor import BatchProcessor
from ..audit.capture.browser_pool import BrowserPool
from ..audit.events import EventBus
from ..audit.exceptions import BrowserPoolError, ConfigurationError, SitemapError
from ..audit.input.sitemap_provider import load_urls_from_sitemap
from ..audit.models.batch import BatchReport
from ..audit.queue.audit_queue import AuditQueue, make_run_id
from ..audit.redirects import RedirectHandler
from ..audit.utils.url_filter import filter_urls
from ..audit.writer.json_writer import JsonWriter
from .config import CLIConfiguration
from .progress import RealTimeOutput

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """CLI exit codes for CI/CD integration."""
    SUCCESS = 0           # Every page audited successfully
    PAGE_FAILURES = 1     # At least one page failed after all retries
    CONFIG_ERROR = 3      # Configuration or input error
    RUNTIME_ERROR = 4     # Runtime error during execution


# Events retained for late WebSocket subscribers
BRIDGE_HISTORY_SIZE = 200


class AuditRunner:
    """Runs one audit (or batch) from a CLI configuration."""

    def __init__(self, config: CLIConfiguration, output: Optional[RealTimeOutput] = None):
        self.config = config
        self.output = output
        self.summary: Optional[Dict[str, Any]] = None
        self.summary_path: Optional[Path] = None
        self.batch_report: Optional[BatchReport] = None

    async def resolve_urls(self) -> List[str]:
        """Collect input URLs and apply include/exclude filters and the page cap.

        Raises:
            ConfigurationError: If there is no input or nothing survives filtering
            SitemapError: If the sitemap cannot be loaded
        """
        source = self.config.input
        if source.sitemap_url:
            urls = await load_urls_from_sitemap(source.sitemap_url, max_urls=max(source.max_pages * 10, 1000))
        else:
            urls = list(source.urls)

        if not urls:
            raise ConfigurationError("No URLs to audit")

        filtered = filter_urls(urls, source.include, source.exclude, source.max_pages)
        if not filtered:
            raise ConfigurationError(f"All {len(urls)} URLs were filtered out by include/exclude patterns")

        logger.info(f"Resolved {len(filtered)} of {len(urls)} input URLs")
        return filtered

    async def run(self) -> ExitCode:
        """Audit all input URLs through the audit queue."""
        try:
            urls = await self.resolve_urls()
        except (ConfigurationError, SitemapError) as e:
            self._print_error(str(e))
            return ExitCode.CONFIG_ERROR

        history = BRIDGE_HISTORY_SIZE if self.config.server.enabled else 0
        events = EventBus(history_size=history)
        if self.output:
            self.output.attach(events)

        server = None
        pool = BrowserPool(self.config.browser)
        try:
            if self.config.server.enabled:
                server = await start_bridge_server(events, self.config.server.host, self.config.server.port)

            await pool.start()

            audit_options = self.config.audit
            writer = JsonWriter(self.config.output.output_dir, run_id=make_run_id())
            redirects = RedirectHandler(
                policy=audit_options.redirect_policy,
                max_redirects_to_follow=audit_options.max_redirect_hops,
            )
            queue = AuditQueue(
                pool=pool,
                audits=build_audits(options=audit_options),
                writer=writer,
                options=audit_options,
                redirect_handler=redirects,
                events=events,
            )

            await queue.process(urls)

            self.summary = writer.summary or writer.build_summary()
            self.summary_path = writer.summary_path
            stats = queue.get_stats()

        except BrowserPoolError as e:
            self._print_error(f"Browser launch failed: {e}")
            return ExitCode.RUNTIME_ERROR
        except Exception as e:
            self._print_error(f"Runtime error: {e}")
            logger.exception("Audit run failed")
            return ExitCode.RUNTIME_ERROR
        finally:
            await pool.close()
            events.close()
            if self.output:
                self.output.detach()
            if server is not None:
                await stop_bridge_server(server)

        self._print_summary(stats)
        return ExitCode.PAGE_FAILURES if stats["failed"] else ExitCode.SUCCESS

    async def run_batch(self) -> ExitCode:
        """Audit all input URLs as independent batch jobs."""
        try:
            urls = await self.resolve_urls()
        except (ConfigurationError, SitemapError) as e:
            self._print_error(str(e))
            return ExitCode.CONFIG_ERROR

        batch = self.config.batch
        processor = BatchProcessor(
            max_workers=batch.workers,
            max_retries=batch.max_retries,
            timeout_s=batch.timeout_seconds,
            continue_on_error=batch.continue_on_error,
            pool_options=self.config.browser,
        )
        output_dir = self.config.output.output_dir

        try:
            report = await processor.process_batch(
                urls,
                options=self.config.audit,
                output_dir=output_dir,
                on_progress=self.output.on_batch_progress if self.output else None,
            )
            await report.save(output_dir / f"batch_report_{make_run_id()}.json")
        except BrowserPoolError as e:
            self._print_error(f"Browser launch failed: {e}")
            return ExitCode.RUNTIME_ERROR
        except Exception as e:
            self._print_error(f"Runtime error: {e}")
            logger.exception("Batch run failed")
            return ExitCode.RUNTIME_ERROR

        self.batch_report = report
        if not self.config.output.quiet:
            self._echo(
                f"\n📦 Batch complete: {report.successful} successful, {report.failed} failed "
                f"({report.success_rate:.1f}%) in {report.duration_ms / 1000:.1f}s"
            )
        return ExitCode.PAGE_FAILURES if report.failed else ExitCode.SUCCESS

    def _print_summary(self, stats: Dict[str, Any]) -> None:
        if self.config.output.quiet or self.summary is None:
            return

        pages = self.summary["pages"]
        self._echo("\n📊 AUDIT SUMMARY")
        self._echo(f"   Pages: {pages['total']} ({pages['successRate']}% success)")
        self._echo(f"   ✅ Successful: {pages['successful']}")
        if pages["redirects"]:
            self._echo(f"   ↪️  Redirects: {pages['redirects']}")
        if pages["errors"]:
            self._echo(f"   ⚠️  HTTP errors: {pages['errors']}")
        if pages["crashed"]:
            self._echo(f"   ❌ Crashed: {pages['crashed']}")
        if stats.get("skipped"):
            self._echo(f"   ⏭️  Skipped: {stats['skipped']}")
        self._echo(f"   ⏱️  Duration: {self.summary['duration']['formatted']}")
        if self.summary_path:
            self._echo(f"   📁 Summary: {self.summary_path}")

    def _echo(self, message: str) -> None:
        stream = self.output.stream if self.output else None
        print(message, file=stream)

    def _print_error(self, message: str) -> None:
        logger.error(message)
        stream = self.output.stream if self.output else None
        print(f"❌ {message}", file=stream)
