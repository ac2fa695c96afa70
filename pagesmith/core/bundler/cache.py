"""
Remote module cache

Maps fully-resolved CDN URLs to fetched source text for the lifetime of the
process. Entries are never invalidated; failed fetches are never stored.
"""

import logging
from typing import Dict, Optional, Any

import httpx

from .constants import DEFAULT_FETCH_TIMEOUT
from .diagnostics import BuildError

logger = logging.getLogger(__name__)


class FetchError(BuildError):
    """Remote module unreachable"""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, name="FetchError", module_id=url)
        self.status_code = status_code


class ModuleCache:
    """Process-lifetime cache of remote module source"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = DEFAULT_FETCH_TIMEOUT):
        self._client = client
        self.timeout = timeout
        self._entries: Dict[str, str] = {}
        self._stats = {"hits": 0, "misses": 0, "fetch_errors": 0}

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, url: str) -> Optional[str]:
        return self._entries.get(url)

    async def fetch(self, url: str) -> str:
        """
        Fetch a remote module, memoized

        Concurrent calls for the same uncached URL each perform a request;
        the writes are idempotent.

        Args:
            url: Absolute module URL

        Returns:
            Module source text

        Raises:
            FetchError: On transport errors or non-2xx responses
        """
        cached = self._entries.get(url)
        if cached is not None:
            self._stats["hits"] += 1
            logger.debug(f"Module cache hit: {url}")
            return cached

        self._stats["misses"] += 1
        try:
            if self._client is not None:
                response = await self._client.get(url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            self._stats["fetch_errors"] += 1
            logger.error(f"Error loading external module: {url}: {e}")
            raise FetchError(f"Failed to fetch {url}: {e}", url=url) from e

        if not response.is_success:
            self._stats["fetch_errors"] += 1
            logger.error(f"Error loading external module: {url}: HTTP {response.status_code}")
            raise FetchError(
                f"Failed to fetch {url}: {response.status_code} {response.reason_phrase}",
                url=url,
                status_code=response.status_code,
            )

        code = response.text
        self._entries[url] = code
        return code

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Module cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        total_size = sum(len(code.encode("utf-8")) for code in self._entries.values())
        return {
            "total_entries": len(self._entries),
            "total_size_bytes": total_size,
            **self._stats,
        }
