"""Bounded pool of browser page handles.

The pool caps the number of simultaneously busy handles, pre-warms a few
idle ones at start, validates idle handles before lending them out and never
returns a handle it could not reset. A background reaper trims surplus idle
handles and force-closes busy handles that have been checked out for too
long, which recovers capacity from audits that hang.

Acquisition at capacity is a poll loop, not a wait queue: callers sleep a
short interval and try again until a release frees a slot.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Awaitable, Callable, Dict, List, Optional

from ..exceptions import BrowserPoolError, PoolClosedError
from ..models.config import PoolOptions
from .browser_factory import BrowserConfig, BrowserFactory
from .page import BLANK_URL, PageHandle

logger = logging.getLogger(__name__)


PageFactory = Callable[[], Awaitable[PageHandle]]


@dataclass
class _Lease:
    handle: PageHandle
    acquired_at: float


class BrowserPool:
    """Lends page handles to workers and takes them back."""

    def __init__(
        self,
        options: Optional[PoolOptions] = None,
        factory: Optional[BrowserFactory] = None,
        page_factory: Optional[PageFactory] = None
    ):
        """Initialize the pool.

        Args:
            options: Pool sizing and timing options
            factory: Browser factory to launch; built from options when omitted
            page_factory: Coroutine creating a handle; overrides the factory's
                ``new_page`` (the factory is then not launched unless given)
        """
        self.options = options or PoolOptions()

        if page_factory is None:
            self.factory = factory or BrowserFactory(BrowserConfig(
                engine=self.options.engine.value,
                headless=self.options.headless,
            ))
            self._page_factory: PageFactory = self.factory.new_page
        else:
            self.factory = factory
            self._page_factory = page_factory

        self._idle: List[PageHandle] = []
        self._busy: Dict[int, _Lease] = {}
        self._reserved = 0
        self._started = False
        self._closed = False
        self._reaper_task: Optional[asyncio.Task] = None

        self._stats = {
            "created": 0,
            "discarded": 0,
            "reaped": 0,
            "stale_closed": 0,
            "acquired": 0,
            "released": 0,
        }

    @property
    def capacity(self) -> int:
        return self.options.max_pages

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def busy_count(self) -> int:
        return len(self._busy)

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Launch the browser, pre-warm idle handles and start the reaper.

        Raises:
            BrowserPoolError: If the browser cannot be launched
        """
        if self._started:
            return
        if self._closed:
            raise PoolClosedError("Browser pool has been closed")

        if self.factory is not None:
            await self.factory.start()

        for _ in range(min(self.options.prewarm, self.capacity)):
            try:
                self._idle.append(await self._create())
            except BrowserPoolError as e:
                logger.warning(f"Pre-warm failed: {e}")
                break

        self._reaper_task = asyncio.create_task(self._reap_loop())
        self._started = True
        logger.info(f"Browser pool started (capacity={self.capacity}, idle={len(self._idle)})")

    async def acquire(self) -> PageHandle:
        """Check out a validated page handle, waiting while at capacity.

        Raises:
            PoolClosedError: If the pool is closed before or during the wait
            BrowserPoolError: If a new handle cannot be created
        """
        while True:
            if self._closed:
                raise PoolClosedError("Browser pool has been closed")

            if len(self._busy) + self._reserved >= self.capacity:
                await asyncio.sleep(self.options.acquire_poll_s)
                continue

            self._reserved += 1
            try:
                handle = await self._take_idle_or_create()
            finally:
                self._reserved -= 1

            if handle is None:
                continue

            if self._closed:
                await self._close_handle(handle)
                raise PoolClosedError("Browser pool has been closed")

            self._busy[id(handle)] = _Lease(handle, time.monotonic())
            self._stats["acquired"] += 1
            return handle

    async def _take_idle_or_create(self) -> Optional[PageHandle]:
        if self._idle:
            handle = self._idle.pop()
            if await self._validate(handle):
                return handle
            logger.debug("Idle handle failed validation, discarding")
            await self._discard(handle)
            return None
        return await self._create()

    async def release(self, handle: PageHandle) -> None:
        """Return a handle; it is reset and kept, or closed if reset fails."""
        lease = self._busy.pop(id(handle), None)
        if lease is None:
            logger.warning("Released a handle the pool does not own; closing it")
            await self._close_handle(handle)
            return

        self._stats["released"] += 1

        if self._closed:
            await self._close_handle(handle)
            return

        try:
            await handle.reset()
            if handle.is_closed():
                raise BrowserPoolError("handle closed during reset")
        except Exception as e:
            logger.warning(f"Failed to reset page handle, discarding: {e}")
            await self._discard(handle)
            return

        self._idle.append(handle)

    @asynccontextmanager
    async def page(self) -> AsyncGenerator[PageHandle, None]:
        """Acquire a handle for the duration of the block."""
        handle = await self.acquire()
        try:
            yield handle
        finally:
            await self.release(handle)

    async def reap(self) -> int:
        """Close surplus idle handles and stale busy handles.

        Returns:
            Number of handles closed
        """
        closed = 0

        while len(self._idle) > self.options.idle_floor:
            handle = self._idle.pop(0)
            await self._close_handle(handle)
            self._stats["reaped"] += 1
            closed += 1

        now = time.monotonic()
        stale = [
            key for key, lease in self._busy.items()
            if now - lease.acquired_at > self.options.stale_after_s
        ]
        for key in stale:
            lease = self._busy.pop(key)
            logger.warning(
                f"Force-closing page handle busy for {now - lease.acquired_at:.0f}s"
            )
            await self._close_handle(lease.handle)
            self._stats["stale_closed"] += 1
            closed += 1

        if closed:
            logger.debug(f"Reaper closed {closed} handles")
        return closed

    async def _reap_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.options.reap_interval_s)
            try:
                await self.reap()
            except Exception as e:
                logger.error(f"Reaper sweep failed: {e}")

    async def close(self) -> None:
        """Close every handle and the browser. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._reaper_task:
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
            self._reaper_task = None

        handles = self._idle + [lease.handle for lease in self._busy.values()]
        self._idle = []
        self._busy = {}
        for handle in handles:
            await self._close_handle(handle)

        if self.factory is not None:
            await self.factory.stop()

        logger.info(f"Browser pool closed ({len(handles)} handles)")

    async def _create(self) -> PageHandle:
        try:
            handle = await self._page_factory()
        except BrowserPoolError:
            raise
        except Exception as e:
            raise BrowserPoolError(f"Failed to create page handle: {e}") from e
        self._stats["created"] += 1
        return handle

    async def _validate(self, handle: PageHandle) -> bool:
        if handle.is_closed():
            return False
        try:
            await handle.goto(BLANK_URL, wait_until="load", timeout_ms=5000)
            return True
        except Exception as e:
            logger.debug(f"Page handle validation failed: {e}")
            return False

    async def _discard(self, handle: PageHandle) -> None:
        self._stats["discarded"] += 1
        await self._close_handle(handle)

    async def _close_handle(self, handle: PageHandle) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.debug(f"Error closing page handle: {e}")

    def stats(self) -> Dict[str, int]:
        data = dict(self._stats)
        data.update({
            "idle": len(self._idle),
            "busy": len(self._busy),
            "capacity": self.capacity,
            "closed": self._closed,
        })
        return data

    def __repr__(self) -> str:
        return f"BrowserPool(capacity={self.capacity}, idle={len(self._idle)}, busy={len(self._busy)})"
