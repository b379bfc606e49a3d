"""Crawl orchestrator: drains a crawl's frontier and persists per-page scans.

A crawl moves ``queued -> running -> done | error``. Each loop iteration takes
the oldest queued URL, enforces the page budget and robots.txt, scans the page
through the shared rate limiter, records the Page and Scan, and, while the
depth budget allows, queues the page's same-origin links one level deeper.

Failures of a single URL are written to its frontier entry and the crawl goes
on; a crawl that ends with skipped or errored entries is still ``done``. Only
unexpected exceptions (store failures, bugs) abort the run, which then ends in
``error`` and re-raises.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from urllib.parse import urlsplit

import httpx

from core.config import Config
from core.errors import (
    CrawlAlreadyRunningError,
    CrawlCancelledError,
    CrawlNotFoundError,
    ScanError,
    SiteNotFoundError,
)
from core.models import (
    CRAWL_DONE,
    CRAWL_ERROR,
    CRAWL_QUEUED,
    CRAWL_RUNNING,
    SCAN_DONE,
    SCAN_FAILED,
    URL_DONE,
    URL_QUEUED,
    URL_STATUSES,
    Crawl,
    CrawlUrl,
    Scan,
    Site,
    to_dict,
)
from core.severity import violations_by_rule
from core.storage import SQLiteStore, new_id
from scanner.page_scanner import PageScanner, ScanResult

from .cancel import DEFAULT_REASON as CANCELLED_REASON
from .cancel import CancelToken
from .frontier import Frontier
from .links import LinkExtractor
from .rate_limiter import RateLimiter
from .robots import RobotsPolicy
from .urls import normalize_url, same_origin, site_root, url_path

logger = logging.getLogger(__name__)

PAGE_LIMIT_REASON = "page limit reached"
ROBOTS_REASON = "blocked by robots.txt"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def title_from_url(url: str) -> str:
    """Readable fallback title: the host for the root, otherwise the path segments."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    segments = [s for s in parts.path.split("/") if s]
    if not segments:
        return parts.hostname or url
    words = " > ".join(segments).replace("-", " ").replace("_", " ")
    return " ".join(w[:1].upper() + w[1:] for w in words.split(" "))


class CrawlOrchestrator:
    """Owns the control loop for crawls stored in ``store``.

    The scanner, rate limiter, robots checker and link extractor are injected
    so one limiter can be shared by every crawl in the process. A given crawl
    is only ever drained by one loop at a time.
    """

    def __init__(
        self,
        store: SQLiteStore,
        scanner,
        limiter: Optional[RateLimiter] = None,
        robots: Optional[RobotsPolicy] = None,
        links: Optional[LinkExtractor] = None,
        config: Optional[Config] = None,
    ):
        self.config = config or Config()
        self.store = store
        self.frontier = Frontier(store)
        self.scanner = scanner
        self.limiter = limiter or RateLimiter(
            max_concurrent=self.config.rate_limit.max_concurrent,
            min_time=self.config.rate_limit.min_time,
        )
        self.robots = robots or RobotsPolicy(self.config.fetch)
        self.links = links or LinkExtractor(self.config.fetch)
        self._active: Set[str] = set()

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: Optional[SQLiteStore] = None,
        limiter: Optional[RateLimiter] = None,
    ) -> "CrawlOrchestrator":
        """Build an orchestrator with the default Playwright scanner and SQLite store."""
        return cls(
            store=store or SQLiteStore(config.database.path),
            scanner=PageScanner(config.scanner, user_agent=config.fetch.user_agent),
            limiter=limiter,
            config=config,
        )

    # Public API

    def start_crawl(self, site_id: str, max_pages: Optional[int] = None, max_depth: Optional[int] = None) -> str:
        """Create a queued crawl for ``site_id`` seeded with the site root.

        Returns immediately; call `run_crawl` (usually from a worker) to process it.
        """
        max_pages = self.config.crawl.max_pages if max_pages is None else max_pages
        max_depth = self.config.crawl.max_depth if max_depth is None else max_depth
        if max_pages < 0 or max_depth < 0:
            raise ValueError("max_pages and max_depth must be non-negative")

        site = self.store.get_site(site_id)
        if site is None:
            raise SiteNotFoundError(site_id)

        crawl = self.store.create_crawl(site.id, max_pages, max_depth, CRAWL_QUEUED)
        self.frontier.enqueue(crawl.id, site.url, 0)
        self.store.update_crawl(crawl.id, pages_queued=self.frontier.queued_count(crawl.id))
        logger.info("Crawl %s queued for %s (max_pages=%d, max_depth=%d)", crawl.id, site.url, max_pages, max_depth)
        return crawl.id

    async def run_crawl(self, crawl_id: str, cancel_token: Optional[CancelToken] = None) -> None:
        """Drain the crawl's frontier to completion.

        Raises:
            CrawlNotFoundError: If the crawl does not exist
            CrawlAlreadyRunningError: If this orchestrator is already running it
            Exception: Any infrastructure failure, after marking the crawl ``error``
        """
        crawl = self.store.get_crawl(crawl_id)
        if crawl is None:
            raise CrawlNotFoundError(crawl_id)
        if crawl_id in self._active:
            raise CrawlAlreadyRunningError(crawl_id)
        site = self.store.get_site(crawl.site_id)
        if site is None:
            raise SiteNotFoundError(crawl.site_id)

        self._active.add(crawl_id)
        try:
            self.store.update_crawl(crawl_id, status=CRAWL_RUNNING, started_at=_now(), finished_at=None)
            logger.info("Crawl %s started for %s", crawl_id, site.url)

            # one connection pool for every robots.txt and link fetch of this run
            async with httpx.AsyncClient(follow_redirects=True) as client:
                await self._drain(crawl, site, cancel_token, client)

            self._update_counters(crawl_id)
            self.store.update_crawl(crawl_id, status=CRAWL_DONE, finished_at=_now())
            logger.info(
                "Crawl %s done: %d pages scanned",
                crawl_id,
                self.frontier.count_by_status(crawl_id, URL_DONE),
            )
        except Exception:
            logger.exception("Crawl %s failed", crawl_id)
            self._mark_failed(crawl_id)
            raise
        finally:
            self._active.discard(crawl_id)
            self.robots.release(crawl_id)

    async def scan_url(self, site_id: str, url: str) -> Scan:
        """Ad-hoc scan of one URL, stored without a Page.

        Scanner failures are recorded as a ``failed`` Scan rather than raised.
        """
        site = self.store.get_site(site_id)
        if site is None:
            raise SiteNotFoundError(site_id)
        try:
            result = await self.limiter.schedule(lambda: self.scanner.scan(url))
        except ScanError as e:
            logger.warning("Ad-hoc scan of %s failed: %s", url, e)
            return self.store.create_scan(
                Scan(id=new_id(), site_id=site.id, status=SCAN_FAILED, raw={"url": url, "error": str(e)})
            )
        scan = self._build_scan(site.id, None, result)
        scan.raw = {"url": url, "violations": result.violations_payload()}
        return self.store.create_scan(scan)

    def get_crawl_status(self, crawl_id: str) -> Optional[Dict[str, Any]]:
        """Crawl record plus per-status counts, progress and a time estimate."""
        crawl = self.store.get_crawl(crawl_id)
        if crawl is None:
            return None

        counts = {status: self.frontier.count_by_status(crawl_id, status) for status in URL_STATUSES}
        total = sum(counts.values())
        status = to_dict(crawl)
        status.update({
            "status_counts": counts,
            "progress": {
                "total_urls": total,
                "completed_urls": counts[URL_DONE],
                "progress_percentage": round(counts[URL_DONE] / total * 100) if total else 0,
                "estimated_time_remaining": self._estimate_remaining(crawl, counts),
            },
            "is_running": crawl.status == CRAWL_RUNNING,
            "can_restart": crawl.status in (CRAWL_DONE, CRAWL_ERROR),
        })
        return status

    # Control loop

    async def _drain(
        self,
        crawl: Crawl,
        site: Site,
        cancel_token: Optional[CancelToken],
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        root = site_root(site.url)
        while True:
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Crawl %s cancelled", crawl.id)
                self.frontier.skip_remaining(crawl.id, cancel_token.reason or CANCELLED_REASON)
                return

            entry = self.frontier.next_queued(crawl.id)
            if entry is None:
                return

            if self.frontier.count_by_status(crawl.id, URL_DONE) >= crawl.max_pages:
                self.frontier.skip_remaining(crawl.id, PAGE_LIMIT_REASON)
                return

            await self._process(crawl, root, entry, cancel_token, client)
            self._update_counters(crawl.id)

    async def _process(
        self,
        crawl: Crawl,
        root: str,
        entry: CrawlUrl,
        cancel_token: Optional[CancelToken],
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        url = entry.url

        if self.config.crawl.respect_robots and not await self.robots.is_allowed(
            root, url_path(url), crawl_id=crawl.id, client=client
        ):
            logger.info("Skipping %s: %s", url, ROBOTS_REASON)
            self.frontier.mark_skipped(entry.id, ROBOTS_REASON)
            return

        try:
            result = await self.limiter.schedule(lambda: self.scanner.scan(url), cancel_token=cancel_token)
        except CrawlCancelledError:
            # left queued; the loop skips it on the next pass
            return
        except ScanError as e:
            logger.warning("Scan failed for %s: %s", url, e)
            self.frontier.mark_error(entry.id, str(e))
            return

        self._record_page_scan(crawl.site_id, url, result)
        self.frontier.mark_done(entry.id)

        if entry.depth < crawl.max_depth:
            await self._queue_links(crawl, root, entry, client)

    async def _queue_links(
        self,
        crawl: Crawl,
        root: str,
        entry: CrawlUrl,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        links = await self.links.extract_links(entry.url, client=client)
        added = 0
        for link in links:
            canonical = normalize_url(link)
            if not same_origin(canonical, root):
                continue
            if self.frontier.enqueue(crawl.id, canonical, entry.depth + 1):
                added += 1
        logger.debug("Queued %d new links from %s", added, entry.url)

    # Persistence helpers

    def _record_page_scan(self, site_id: str, url: str, result: ScanResult) -> Scan:
        page = self.store.upsert_page(site_id, url, title=result.title, default_title=title_from_url(url))
        scan = self._build_scan(site_id, page.id, result)

        previous = self.store.latest_scan_for_page(page.id, SCAN_DONE)
        if previous is not None:
            scan.previous_scan_id = previous.id
            scan.issues_fixed = max(0, previous.issues - result.issues)
            scan.new_issues = max(0, result.issues - previous.issues)
            scan.score_change = result.score - previous.score

        self.store.create_scan(scan)
        self.store.set_latest_scan(page.id, scan.id)
        return scan

    @staticmethod
    def _build_scan(site_id: str, page_id: Optional[str], result: ScanResult) -> Scan:
        return Scan(
            id=new_id(),
            site_id=site_id,
            page_id=page_id,
            status=SCAN_DONE,
            score=result.score,
            issues=result.issues,
            impact_critical=result.impact_critical,
            impact_serious=result.impact_serious,
            impact_moderate=result.impact_moderate,
            impact_minor=result.impact_minor,
            raw=result.violations_payload(),
            violations_by_rule=violations_by_rule(result.violations),
            new_issues=result.issues,
        )

    def _update_counters(self, crawl_id: str) -> None:
        self.store.update_crawl(
            crawl_id,
            pages_done=self.frontier.count_by_status(crawl_id, URL_DONE),
            pages_queued=self.frontier.queued_count(crawl_id),
        )

    def _mark_failed(self, crawl_id: str) -> None:
        try:
            self.store.update_crawl(crawl_id, status=CRAWL_ERROR, finished_at=_now())
        except Exception:
            logger.exception("Could not record failure of crawl %s", crawl_id)

    @staticmethod
    def _estimate_remaining(crawl: Crawl, counts: Dict[str, int]) -> Optional[str]:
        if crawl.status != CRAWL_RUNNING or not crawl.started_at or counts[URL_DONE] == 0:
            return None

        elapsed = (_now() - crawl.started_at).total_seconds()
        remaining = elapsed / counts[URL_DONE] * counts[URL_QUEUED]
        minutes = int(-(-remaining // 60))

        if minutes < 1:
            return "Less than 1 minute"
        if minutes < 60:
            return f"{minutes} minute{'s' if minutes > 1 else ''}"
        return f"{minutes // 60}h {minutes % 60}m"
