"""Real-time console output for audit runs.

:class:`RealTimeOutput` subscribes to the event bus and prints each audit
event to stderr, either as emoji-prefixed text or as JSON lines.
"""

import json
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional, TextIO

from ..audit.events import AuditEvent, EventBus, Subscription
from ..audit.models.batch import BatchProgress


class RealTimeOutput:
    """Real-time output formatter for streaming audit events."""

    def __init__(
        self,
        format_type: str = "text",
        quiet: bool = False,
        verbose: bool = False,
        stream: Optional[TextIO] = None
    ):
        self.format_type = format_type.lower()
        self.quiet = quiet
        self.verbose = verbose
        self._stream = stream
        self._buffer: List[Dict[str, Any]] = []
        self._subscription: Optional[Subscription] = None

    @property
    def stream(self) -> TextIO:
        return self._stream or sys.stderr

    def attach(self, bus: EventBus) -> Subscription:
        """Print every event emitted on ``bus``."""
        self._subscription = bus.subscribe(self.on_event)
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def on_event(self, event: AuditEvent) -> None:
        self.emit_event(event.type, event.to_dict(), event.timestamp)

    def emit_event(self, event_type: str, data: Dict[str, Any], timestamp: Optional[datetime] = None):
        if self.quiet:
            return

        event = {
            "type": event_type,
            "timestamp": (timestamp or datetime.utcnow()).isoformat(),
            "data": data,
        }
        self._buffer.append(event)

        if self.format_type == "json":
            self._emit_json_event(event)
        else:
            self._emit_text_event(event)

    def _emit_json_event(self, event: Dict[str, Any]):
        print(json.dumps(event, default=str), file=self.stream)

    def _emit_text_event(self, event: Dict[str, Any]):
        event_type = event["type"]
        data = event["data"]
        url = data.get("url", "unknown")
        timestamp = datetime.fromisoformat(event["timestamp"]).strftime("%H:%M:%S")

        if event_type == "PageQueued":
            if self.verbose:
                print(f"📥 [{timestamp}] Queued: {url}", file=self.stream)

        elif event_type == "PageStarted":
            print(f"🔍 [{timestamp}] Auditing: {url}", file=self.stream)

        elif event_type == "PageRedirected":
            print(f"↪️  [{timestamp}] {url} -> {data.get('finalUrl')}", file=self.stream)

        elif event_type == "PageRetry":
            print(
                f"🔁 [{timestamp}] Retry {data.get('attempt')} for {url} in {data.get('delayMs')}ms",
                file=self.stream
            )

        elif event_type == "PageSkipped":
            print(f"⏭️  [{timestamp}] Skipped {url}: {data.get('reason')}", file=self.stream)

        elif event_type == "PageFinished":
            print(f"✅ [{timestamp}] {url}", file=self.stream)

        elif event_type == "PageError":
            print(f"❌ [{timestamp}] {url}: {data.get('message')}", file=self.stream)

        elif event_type in ("AuditAttached", "AuditFinished") and self.verbose:
            verb = "running" if event_type == "AuditAttached" else "done"
            print(f"   ⚙️  {data.get('auditName')} {verb}", file=self.stream)

    def on_batch_progress(self, progress: BatchProgress) -> None:
        """Batch progress callback."""
        if self.quiet:
            return
        if self.format_type == "json":
            self._emit_json_event({
                "type": "BatchProgress",
                "timestamp": datetime.utcnow().isoformat(),
                "data": {
                    "total": progress.total,
                    "completed": progress.completed,
                    "failed": progress.failed,
                    "percentage": round(progress.percentage, 1),
                    "message": progress.message,
                },
            })
            return

        emoji = "❌" if progress.is_error else ("🏁" if progress.is_complete else "📊")
        print(
            f"{emoji} [{progress.percentage:5.1f}%] {progress.message} "
            f"({progress.completed} ok, {progress.failed} failed of {progress.total})",
            file=self.stream
        )

    def get_events(self) -> List[Dict[str, Any]]:
        return self._buffer.copy()


def create_real_time_output(
    format_type: str = "text",
    quiet: bool = False,
    verbose: bool = False
) -> RealTimeOutput:
    """Create a real-time output formatter."""
    return RealTimeOutput(format_type=format_type, quiet=quiet, verbose=verbose)
