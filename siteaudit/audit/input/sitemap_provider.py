"""URL discovery from sitemap.xml files.

Handles plain sitemaps, sitemap index files (recursively, up to
``max_depth`` levels) and gzip-compressed sitemaps. Elements are matched
with and without the sitemaps.org namespace.
"""

import gzip
import logging
import xml.etree.ElementTree as ET
from typing import AsyncIterator, List, Optional, Set
from urllib.parse import urldefrag, urljoin

import aiohttp

from ..exceptions import SitemapError
from ..utils.url_filter import is_http_url

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find_locs(root: ET.Element, element: str) -> List[str]:
    """Text of every ``<element><loc>`` under ``root``, namespace or not."""
    locs = []
    for child in root.iter():
        if _local_name(child.tag) != element:
            continue
        for sub in child:
            if _local_name(sub.tag) == "loc" and sub.text and sub.text.strip():
                locs.append(sub.text.strip())
                break
    return locs


class SitemapProvider:
    """Fetches a sitemap or sitemap index and yields page URLs.

    The root sitemap must load; failures of nested sitemaps are logged and
    skipped unless ``strict`` is set.
    """

    def __init__(
        self,
        sitemap_url: str,
        max_urls: int = 50000,
        max_depth: int = 5,
        timeout: int = 30,
        user_agent: str = "SiteAudit/1.0",
        strict: bool = False
    ):
        self.sitemap_url = sitemap_url
        self.max_urls = max_urls
        self.max_depth = max_depth
        self.timeout = timeout
        self.user_agent = user_agent
        self.strict = strict

        self._session: Optional[aiohttp.ClientSession] = None
        self._stats = {
            "sitemaps_processed": 0,
            "sitemaps_failed": 0,
            "index_sitemaps": 0,
            "compressed_sitemaps": 0,
            "urls_discovered": 0,
            "duplicate_urls": 0,
            "invalid_urls": 0,
        }

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": self.user_agent},
                connector=aiohttp.TCPConnector(limit=10, limit_per_host=5),
            )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def discover_urls(self) -> List[str]:
        """All distinct page URLs, in sitemap order, capped at ``max_urls``.

        Raises:
            SitemapError: If the root sitemap cannot be fetched or parsed
        """
        urls = [url async for url in self.iter_urls()]
        logger.info(f"Sitemap discovery completed: {len(urls)} URLs, {self._stats}")
        return urls

    async def iter_urls(self) -> AsyncIterator[str]:
        await self._ensure_session()
        seen: Set[str] = set()
        visited: Set[str] = set()

        async for url in self._process_sitemap(self.sitemap_url, seen, visited, 0):
            yield url
            if len(seen) >= self.max_urls:
                logger.warning(f"Reached maximum URL limit ({self.max_urls})")
                return

    async def _process_sitemap(
        self,
        sitemap_url: str,
        seen: Set[str],
        visited: Set[str],
        level: int
    ) -> AsyncIterator[str]:
        if level >= self.max_depth:
            logger.warning(f"Maximum sitemap depth reached: {sitemap_url}")
            return
        if sitemap_url in visited:
            logger.debug(f"Sitemap already processed: {sitemap_url}")
            return
        visited.add(sitemap_url)

        try:
            root = ET.fromstring(await self._fetch_sitemap(sitemap_url))
        except (SitemapError, ET.ParseError, aiohttp.ClientError, OSError) as e:
            self._stats["sitemaps_failed"] += 1
            message = f"Failed to load sitemap {sitemap_url}: {e}"
            if level == 0 or self.strict:
                raise SitemapError(message) from e
            logger.error(message)
            return

        self._stats["sitemaps_processed"] += 1

        if self._is_sitemap_index(root):
            self._stats["index_sitemaps"] += 1
            for loc in _find_locs(root, "sitemap"):
                async for url in self._process_sitemap(urljoin(sitemap_url, loc), seen, visited, level + 1):
                    yield url
            return

        for loc in _find_locs(root, "url"):
            self._stats["urls_discovered"] += 1
            url = urldefrag(urljoin(sitemap_url, loc))[0]
            if not is_http_url(url):
                self._stats["invalid_urls"] += 1
                logger.debug(f"Invalid URL from sitemap: {url}")
                continue
            if url in seen:
                self._stats["duplicate_urls"] += 1
                continue
            seen.add(url)
            yield url

    async def _fetch_sitemap(self, sitemap_url: str) -> bytes:
        logger.debug(f"Fetching sitemap: {sitemap_url}")

        async with self._session.get(sitemap_url) as response:
            if response.status != 200:
                raise SitemapError(f"HTTP {response.status} fetching sitemap: {sitemap_url}")
            content = await response.read()

        # aiohttp already decodes Content-Encoding: gzip; .xml.gz files arrive raw
        if content.startswith(b"\x1f\x8b"):
            try:
                content = gzip.decompress(content)
            except OSError as e:
                raise SitemapError(f"Failed to decompress gzipped sitemap: {e}") from e
            self._stats["compressed_sitemaps"] += 1
        return content

    @staticmethod
    def _is_sitemap_index(root: ET.Element) -> bool:
        if _local_name(root.tag) == "sitemapindex":
            return True
        return any(_local_name(child.tag) == "sitemap" for child in root)

    def get_stats(self) -> dict:
        return {
            "sitemap_url": self.sitemap_url,
            "max_urls": self.max_urls,
            "max_depth": self.max_depth,
            **self._stats,
        }


async def load_urls_from_sitemap(
    sitemap_url: str,
    max_urls: int = 50000,
    timeout: int = 30
) -> List[str]:
    """Fetch every page URL listed by ``sitemap_url``.

    Raises:
        SitemapError: If the sitemap cannot be loaded
    """
    async with SitemapProvider(sitemap_url, max_urls=max_urls, timeout=timeout) as provider:
        return await provider.discover_urls()
