"""Best-effort robots.txt checks.

This is a prefix matcher, not a robots.txt implementation: every ``Disallow``
line applies regardless of its ``User-agent`` group, and ``Allow``, wildcards
and ``$`` anchors are ignored. Any failure to fetch the file means "allowed".
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

import httpx

from core.config import FetchConfig

logger = logging.getLogger(__name__)

_DISALLOW_RE = re.compile(r"^\s*disallow\s*:\s*(.*)$", re.I)


def parse_disallows(text: str) -> List[str]:
    """Collect the non-empty ``Disallow:`` prefixes from a robots.txt body."""
    prefixes = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        m = _DISALLOW_RE.match(line)
        if m:
            value = m.group(1).strip()
            if value:
                prefixes.append(value)
    return prefixes


def is_path_allowed(disallows: List[str], path: str) -> bool:
    path = path or "/"
    return not any(path.startswith(prefix) for prefix in disallows)


class RobotsPolicy:
    """Answers allow/deny for a path on a site.

    Rules are cached per (crawl, site root) so each crawl fetches robots.txt
    once and a failed fetch never outlives the crawl that saw it; call
    `release` when the crawl ends. An ``httpx.AsyncClient`` may be injected
    (tests use a MockTransport), or passed per call by the crawl that owns it;
    otherwise a short-lived client is created for each robots.txt fetch.
    """

    def __init__(self, config: Optional[FetchConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or FetchConfig()
        self._client = client
        self._cache: Dict[Tuple[Optional[str], str], List[str]] = {}

    async def is_allowed(
        self,
        site_root: str,
        path: str,
        crawl_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> bool:
        disallows = await self.disallows_for(site_root, crawl_id=crawl_id, client=client)
        allowed = is_path_allowed(disallows, path)
        if not allowed:
            logger.debug("robots.txt on %s disallows %s", site_root, path)
        return allowed

    async def disallows_for(
        self,
        site_root: str,
        crawl_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> List[str]:
        key = (crawl_id, site_root.rstrip("/"))
        if key not in self._cache:
            self._cache[key] = await self._fetch_disallows(key[1], client)
        return self._cache[key]

    def release(self, crawl_id: Optional[str]) -> None:
        """Forget the rules cached for ``crawl_id``."""
        for key in [k for k in self._cache if k[0] == crawl_id]:
            del self._cache[key]

    def clear(self) -> None:
        self._cache.clear()

    async def _fetch_disallows(self, root: str, client: Optional[httpx.AsyncClient]) -> List[str]:
        robots_url = f"{root}/robots.txt"
        try:
            resp = await self._get(robots_url, client)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info("robots.txt unavailable for %s (%s), allowing all paths", root, e)
            return []
        if not resp.is_success:
            logger.info("robots.txt returned %s for %s, allowing all paths", resp.status_code, root)
            return []
        return parse_disallows(resp.text)

    async def _get(self, url: str, client: Optional[httpx.AsyncClient] = None) -> httpx.Response:
        headers = {"User-Agent": self.config.user_agent}
        timeout = self.config.robots_timeout
        if self._client is not None:
            client = self._client
        if client is not None:
            return await client.get(url, headers=headers, timeout=timeout, follow_redirects=True)
        async with httpx.AsyncClient(follow_redirects=True) as one_shot:
            return await one_shot.get(url, headers=headers, timeout=timeout)
