"""Per-crawl frontier: the ledger of discovered URLs and their status."""

import logging
from typing import List, Optional

from core.models import (
    CrawlUrl,
    URL_DONE,
    URL_ERROR,
    URL_QUEUED,
    URL_SKIPPED,
)
from core.storage import SQLiteStore

from .urls import normalize_url

logger = logging.getLogger(__name__)


class Frontier:
    """Append-mostly queue of CrawlUrl entries keyed by (crawl_id, canonical url).

    Entries are handed out oldest first, which approximates breadth-first
    order. An entry that has left ``queued`` never returns to it.
    """

    def __init__(self, store: SQLiteStore):
        self.store = store

    def enqueue(self, crawl_id: str, url: str, depth: int) -> bool:
        """Add ``url`` at ``depth``; returns False if it is already known to this crawl."""
        entry = self.store.add_crawl_url(crawl_id, normalize_url(url), depth)
        if entry is None:
            return False
        logger.debug("Queued %s (depth %d)", entry.url, depth)
        return True

    def next_queued(self, crawl_id: str) -> Optional[CrawlUrl]:
        return self.store.next_queued_url(crawl_id)

    def mark_done(self, entry_id: str, reason: Optional[str] = None) -> bool:
        return self.store.finish_crawl_url(entry_id, URL_DONE, reason)

    def mark_skipped(self, entry_id: str, reason: Optional[str] = None) -> bool:
        return self.store.finish_crawl_url(entry_id, URL_SKIPPED, reason)

    def mark_error(self, entry_id: str, reason: Optional[str] = None) -> bool:
        return self.store.finish_crawl_url(entry_id, URL_ERROR, reason)

    def skip_remaining(self, crawl_id: str, reason: str) -> int:
        """Mark every still-queued entry skipped; returns how many were changed."""
        count = self.store.finish_queued_urls(crawl_id, URL_SKIPPED, reason)
        if count:
            logger.info("Skipped %d queued URLs: %s", count, reason)
        return count

    def count_by_status(self, crawl_id: str, status: str) -> int:
        return self.store.count_crawl_urls(crawl_id, status)

    def queued_count(self, crawl_id: str) -> int:
        return self.count_by_status(crawl_id, URL_QUEUED)

    def entries(self, crawl_id: str) -> List[CrawlUrl]:
        return self.store.list_crawl_urls(crawl_id)
