"""Data structures for batch mode."""

import json
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles


def new_job_id() -> str:
    """Job id of the form ``{epoch_ms}_{random}``."""
    return f"{int(time.time() * 1000)}_{random.randint(0, 999999)}"


@dataclass
class BatchJob:
    """One URL waiting to be audited in batch mode."""
    url: str
    options: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_job_id)
    retries: int = 0
    max_retries: int = 3

    @property
    def can_retry(self) -> bool:
        return self.retries < self.max_retries


@dataclass
class BatchResult:
    """Outcome of a batch job after its final attempt."""
    url: str
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "durationMs": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class BatchProgress:
    """Progress notification passed to the batch progress callback."""
    total: int
    completed: int
    failed: int
    message: str = ""
    is_error: bool = False
    is_complete: bool = False

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 100.0
        return (self.completed + self.failed) / self.total * 100.0


@dataclass
class BatchStatistics:
    """Live snapshot of a running batch."""
    total_jobs: int
    completed_jobs: int
    failed_jobs: int
    pending_jobs: int
    average_time_ms: float
    elapsed_ms: int
    workers_active: int
    queue_length: int

    @property
    def success_rate(self) -> float:
        done = self.completed_jobs + self.failed_jobs
        if done == 0:
            return 0.0
        return self.completed_jobs / done * 100.0

    @property
    def progress(self) -> float:
        if self.total_jobs == 0:
            return 100.0
        return (self.completed_jobs + self.failed_jobs) / self.total_jobs * 100.0

    @property
    def estimated_remaining_ms(self) -> int:
        workers = max(self.workers_active, 1)
        return int(self.pending_jobs * self.average_time_ms / workers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalJobs": self.total_jobs,
            "completedJobs": self.completed_jobs,
            "failedJobs": self.failed_jobs,
            "pendingJobs": self.pending_jobs,
            "successRate": round(self.success_rate, 1),
            "averageTimeMs": round(self.average_time_ms),
            "elapsedMs": self.elapsed_ms,
            "estimatedRemainingMs": self.estimated_remaining_ms,
            "progress": round(self.progress, 1),
            "workersActive": self.workers_active,
            "queueLength": self.queue_length,
        }


@dataclass
class BatchReport:
    """Final report of a batch run."""
    start_time: datetime
    end_time: datetime
    total_urls: int
    successful: int
    failed: int
    results: List[BatchResult]
    output_dir: Optional[Path] = None
    statistics: Optional[BatchStatistics] = None

    @property
    def success_rate(self) -> float:
        if self.total_urls == 0:
            return 0.0
        return self.successful / self.total_urls * 100.0

    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "durationMs": self.duration_ms,
            "totalUrls": self.total_urls,
            "successful": self.successful,
            "failed": self.failed,
            "successRate": round(self.success_rate, 1),
            "outputDir": str(self.output_dir) if self.output_dir else None,
            "statistics": self.statistics.to_dict() if self.statistics else None,
            "results": [r.to_dict() for r in self.results],
        }

    async def save(self, path: Path) -> Path:
        """Write the report as indented JSON and return the path."""
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(self.to_dict(), indent=2, default=str))
        return path
