"""Shared fakes for crawl tests: no browser and no network."""

from typing import Dict, List, Optional
from urllib.parse import urljoin

import pytest

from core.config import Config
from core.storage import SQLiteStore
from crawler.orchestrator import CrawlOrchestrator
from crawler.rate_limiter import RateLimiter
from scanner.page_scanner import ScanResult, Violation


def make_result(impacts=(), title=None) -> ScanResult:
    violations = [
        Violation(id=f"rule-{i}", impact=impact, nodes=[{"target": ["body"], "html": "<body>"}])
        for i, impact in enumerate(impacts)
    ]
    return ScanResult.from_violations(violations, title=title)


class FakeScanner:
    """Returns canned results; URLs mapped to an exception raise it instead."""

    def __init__(self, results: Optional[Dict[str, object]] = None, default=None):
        self.results = results or {}
        self.default = default if default is not None else make_result()
        self.scanned: List[str] = []
        self.entered = False

    async def scan(self, url):
        self.scanned.append(url)
        outcome = self.results.get(url, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.entered = False


class FakeLinks:
    """Serves hrefs per page, resolved against the page like the real extractor."""

    def __init__(self, links: Optional[Dict[str, List[str]]] = None):
        self.links = links or {}
        self.requested: List[str] = []
        self.clients = []

    async def extract_links(self, page_url, client=None):
        self.requested.append(page_url)
        self.clients.append(client)
        return [urljoin(page_url, href) for href in self.links.get(page_url, [])]


class FakeRobots:
    def __init__(self, disallows: Optional[List[str]] = None):
        self.disallows = disallows or []
        self.released = []

    async def is_allowed(self, site_root, path, crawl_id=None, client=None):
        return not any(path.startswith(prefix) for prefix in self.disallows)

    def release(self, crawl_id):
        self.released.append(crawl_id)


@pytest.fixture
def store():
    store = SQLiteStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def site(store):
    return store.create_site("https://example.com/")


def build_orchestrator(store, scanner=None, links=None, robots=None, config=None):
    return CrawlOrchestrator(
        store=store,
        scanner=scanner or FakeScanner(),
        limiter=RateLimiter(max_concurrent=2, min_time=0),
        robots=robots or FakeRobots(),
        links=links or FakeLinks(),
        config=config or Config(),
    )
