"""Exception hierarchy for the crawl and scan pipeline.

Per-URL problems are raised as `ScanError` subclasses and are recorded on the
frontier entry by the orchestrator. Everything else escapes the crawl loop.
"""


class SiteScanError(Exception):
    """Base class for all SiteScan errors."""


class ScanError(SiteScanError):
    """A single page could not be scanned."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.message = message


class NavigationError(ScanError):
    """The browser failed to load the page (timeout, DNS, TLS, HTTP crash)."""


class EngineError(ScanError):
    """The accessibility engine could not be injected or did not run."""


class CrawlError(SiteScanError):
    """Base class for crawl bookkeeping errors."""


class CrawlNotFoundError(CrawlError):
    def __init__(self, crawl_id: str):
        super().__init__(f"Crawl not found: {crawl_id}")
        self.crawl_id = crawl_id


class SiteNotFoundError(CrawlError):
    def __init__(self, site_id: str):
        super().__init__(f"Site not found: {site_id}")
        self.site_id = site_id


class CrawlAlreadyRunningError(CrawlError):
    def __init__(self, crawl_id: str):
        super().__init__(f"Crawl is already running: {crawl_id}")
        self.crawl_id = crawl_id


class CrawlCancelledError(SiteScanError):
    """Raised when work is refused because the crawl was cancelled."""
