"""Static link discovery for the crawl frontier."""

import logging
from typing import List, Optional
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from core.config import FetchConfig

logger = logging.getLogger(__name__)


def parse_links(html: str, page_url: str) -> List[str]:
    """Absolute URLs for every ``<a href>`` in ``html``, in document order.

    Relative hrefs are resolved against ``page_url``; hrefs that fail to
    parse are dropped. No dedup or origin filtering happens here.
    """
    soup = BeautifulSoup(html, "lxml")
    links = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href:
            continue
        try:
            absolute = urljoin(page_url, href)
            urlsplit(absolute).port  # raises ValueError on a malformed netloc
        except ValueError:
            continue
        links.append(absolute)
    return links


class LinkExtractor:
    """Fetches raw markup (no rendering) and returns the page's hyperlinks.

    Never raises for availability problems: a non-2xx response, a timeout or
    a transport error all yield an empty list.
    """

    def __init__(self, config: Optional[FetchConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or FetchConfig()
        self._client = client

    async def extract_links(self, page_url: str, client: Optional[httpx.AsyncClient] = None) -> List[str]:
        """Links on ``page_url``, fetched through ``client`` when the crawl shares one."""
        try:
            resp = await self._get(page_url, client)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Link fetch failed for %s: %s", page_url, e)
            return []
        if not resp.is_success:
            logger.warning("Link fetch for %s returned HTTP %s", page_url, resp.status_code)
            return []
        links = parse_links(resp.text, page_url)
        logger.debug("Found %d links on %s", len(links), page_url)
        return links

    async def _get(self, url: str, client: Optional[httpx.AsyncClient] = None) -> httpx.Response:
        headers = {"User-Agent": self.config.user_agent}
        timeout = self.config.link_timeout
        if self._client is not None:
            client = self._client
        if client is not None:
            return await client.get(url, headers=headers, timeout=timeout, follow_redirects=True)
        async with httpx.AsyncClient(follow_redirects=True) as one_shot:
            return await one_shot.get(url, headers=headers, timeout=timeout)
