"""Records shared between the crawl core and its store."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# Crawl status
CRAWL_QUEUED = "queued"
CRAWL_RUNNING = "running"
CRAWL_DONE = "done"
CRAWL_ERROR = "error"

# CrawlUrl (frontier entry) status
URL_QUEUED = "queued"
URL_DONE = "done"
URL_SKIPPED = "skipped"
URL_ERROR = "error"

URL_STATUSES = (URL_QUEUED, URL_DONE, URL_SKIPPED, URL_ERROR)

# Scan status
SCAN_QUEUED = "queued"
SCAN_RUNNING = "running"
SCAN_DONE = "done"
SCAN_FAILED = "failed"


@dataclass
class Site:
    id: str
    url: str
    created_at: Optional[datetime] = None


@dataclass
class Crawl:
    id: str
    site_id: str
    status: str = CRAWL_QUEUED
    max_pages: int = 50
    max_depth: int = 3
    pages_done: int = 0
    pages_queued: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (CRAWL_DONE, CRAWL_ERROR)


@dataclass
class CrawlUrl:
    """One frontier entry: a canonical URL discovered during a crawl."""

    id: str
    crawl_id: str
    url: str
    depth: int
    status: str = URL_QUEUED
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


@dataclass
class Page:
    id: str
    site_id: str
    url: str
    title: Optional[str] = None
    latest_scan_id: Optional[str] = None


@dataclass
class Scan:
    id: str
    site_id: str
    page_id: Optional[str] = None
    status: str = SCAN_QUEUED
    score: int = 0
    issues: int = 0
    impact_critical: int = 0
    impact_serious: int = 0
    impact_moderate: int = 0
    impact_minor: int = 0
    raw: Any = None
    violations_by_rule: Dict[str, int] = field(default_factory=dict)
    previous_scan_id: Optional[str] = None
    issues_fixed: int = 0
    new_issues: int = 0
    score_change: Optional[int] = None
    created_at: Optional[datetime] = None


def to_dict(record) -> Dict[str, Any]:
    """Serialize a record to a JSON-friendly dict (datetimes as ISO strings)."""
    out = asdict(record)
    for key, value in out.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
    return out


def to_dicts(records: List[Any]) -> List[Dict[str, Any]]:
    return [to_dict(r) for r in records]
