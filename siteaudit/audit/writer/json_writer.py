"""JSON artifact writer.

One file per page, named by calendar date and a URL slug, so re-running
the same URL on the same day overwrites the earlier artifact. Results are
also kept in memory for the run summary; a rewritten URL replaces its
earlier entry there too.
"""

import json
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiofiles

from ..exceptions import ArtifactWriteError
from .summary import build_summary

logger = logging.getLogger(__name__)


_SLUG_PATTERN = re.compile(r"[^a-zA-Z0-9]")


def url_slug(url: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return _SLUG_PATTERN.sub("_", url)


class JsonWriter:
    """Persists page results and the run summary under ``base_dir``."""

    def __init__(
        self,
        base_dir: Path,
        run_id: str = "",
        today: Callable[[], date] = date.today
    ):
        self.base_dir = Path(base_dir)
        self.run_id = run_id
        self._today = today
        self._pages: Dict[str, Dict[str, Any]] = {}
        self.started_at = datetime.utcnow()
        self.summary: Optional[Dict[str, Any]] = None
        self.summary_path: Optional[Path] = None

    @property
    def processed_pages(self) -> List[Dict[str, Any]]:
        return list(self._pages.values())

    def artifact_path(self, url: str) -> Path:
        return self.base_dir / f"audit_{self._today().isoformat()}_{url_slug(url)}.json"

    def screenshot_path(self, url: str) -> Path:
        screenshots_dir = self.base_dir / "screenshots"
        screenshots_dir.mkdir(parents=True, exist_ok=True)
        return screenshots_dir / f"{self._today().isoformat()}_{url_slug(url)}.png"

    async def write(self, page_result: Dict[str, Any]) -> Path:
        """Write one page artifact and remember it for the summary.

        Raises:
            ArtifactWriteError: If the file cannot be written
        """
        url = page_result.get("url")
        if not url:
            raise ArtifactWriteError("Page result has no url")

        path = self.artifact_path(url)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(page_result, indent=2, default=str))
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write {path}: {e}") from e

        self._pages[path.name] = page_result
        logger.debug(f"Wrote artifact {path.name}")
        return path

    def build_summary(self, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        summary = build_summary(self.processed_pages, self.run_id, self.started_at)
        if extra:
            summary.update(extra)
        return summary

    async def write_summary(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        """Aggregate all written pages and persist ``summary_{date}.json``.

        Raises:
            ArtifactWriteError: If the file cannot be written
        """
        summary = self.build_summary(extra)
        self.summary = summary
        path = self.base_dir / f"summary_{self._today().isoformat()}.json"
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(summary, indent=2, default=str))
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write summary {path}: {e}") from e

        self.summary_path = path
        logger.info(
            f"Summary written to {path} "
            f"({summary['pages']['total']} pages, {summary['pages']['successRate']}% success)"
        )
        return path
