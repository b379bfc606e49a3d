"""SQLite persistence for sites, crawls, frontier entries, pages and scans.

The crawl core only needs create/read/update on these records. Insertion order
of crawl_urls is the table rowid, which gives the frontier its FIFO order.
"""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import (
    Crawl,
    CrawlUrl,
    Page,
    Scan,
    Site,
    URL_QUEUED,
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sites (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL UNIQUE,
    created_at TEXT
);
CREATE TABLE IF NOT EXISTS crawls (
    id TEXT PRIMARY KEY,
    site_id TEXT NOT NULL REFERENCES sites(id),
    status TEXT NOT NULL,
    max_pages INTEGER NOT NULL,
    max_depth INTEGER NOT NULL,
    pages_done INTEGER NOT NULL DEFAULT 0,
    pages_queued INTEGER NOT NULL DEFAULT 0,
    started_at TEXT,
    finished_at TEXT,
    created_at TEXT
);
CREATE TABLE IF NOT EXISTS crawl_urls (
    id TEXT PRIMARY KEY,
    crawl_id TEXT NOT NULL REFERENCES crawls(id),
    url TEXT NOT NULL,
    depth INTEGER NOT NULL,
    status TEXT NOT NULL,
    reason TEXT,
    created_at TEXT,
    processed_at TEXT,
    UNIQUE (crawl_id, url)
);
CREATE INDEX IF NOT EXISTS idx_crawl_urls_status ON crawl_urls (crawl_id, status);
CREATE TABLE IF NOT EXISTS pages (
    id TEXT PRIMARY KEY,
    site_id TEXT NOT NULL REFERENCES sites(id),
    url TEXT NOT NULL,
    title TEXT,
    latest_scan_id TEXT,
    UNIQUE (site_id, url)
);
CREATE TABLE IF NOT EXISTS scans (
    id TEXT PRIMARY KEY,
    site_id TEXT NOT NULL REFERENCES sites(id),
    page_id TEXT REFERENCES pages(id),
    status TEXT NOT NULL,
    score INTEGER,
    issues INTEGER,
    impact_critical INTEGER,
    impact_serious INTEGER,
    impact_moderate INTEGER,
    impact_minor INTEGER,
    raw_json TEXT,
    violations_by_rule_json TEXT,
    previous_scan_id TEXT,
    issues_fixed INTEGER,
    new_issues INTEGER,
    score_change INTEGER,
    created_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_scans_page ON scans (page_id, status);
"""


def new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteStore:
    """Store backed by a single sqlite3 connection.

    Pass ``":memory:"`` for a throwaway database.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Store is closed")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.commit()
            self._conn.close()
            self._conn = None

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        cur = self.conn.execute(sql, params)
        self.conn.commit()
        return cur

    # Sites

    def create_site(self, url: str) -> Site:
        site = Site(id=new_id(), url=url, created_at=_now())
        self._execute(
            "INSERT INTO sites (id, url, created_at) VALUES (?, ?, ?)",
            (site.id, site.url, _ts(site.created_at)),
        )
        return site

    def get_site(self, site_id: str) -> Optional[Site]:
        row = self.conn.execute("SELECT * FROM sites WHERE id = ?", (site_id,)).fetchone()
        return self._site(row) if row else None

    def find_site_by_url(self, url: str) -> Optional[Site]:
        row = self.conn.execute("SELECT * FROM sites WHERE url = ?", (url,)).fetchone()
        return self._site(row) if row else None

    # Crawls

    def create_crawl(self, site_id: str, max_pages: int, max_depth: int, status: str) -> Crawl:
        crawl = Crawl(
            id=new_id(),
            site_id=site_id,
            status=status,
            max_pages=max_pages,
            max_depth=max_depth,
            created_at=_now(),
        )
        self._execute(
            "INSERT INTO crawls (id, site_id, status, max_pages, max_depth, pages_done, pages_queued, created_at)"
            " VALUES (?, ?, ?, ?, ?, 0, 0, ?)",
            (crawl.id, site_id, status, max_pages, max_depth, _ts(crawl.created_at)),
        )
        return crawl

    def get_crawl(self, crawl_id: str) -> Optional[Crawl]:
        row = self.conn.execute("SELECT * FROM crawls WHERE id = ?", (crawl_id,)).fetchone()
        return self._crawl(row) if row else None

    _CRAWL_FIELDS = ("status", "pages_done", "pages_queued", "started_at", "finished_at")

    def update_crawl(self, crawl_id: str, **fields: Any) -> None:
        unknown = set(fields) - set(self._CRAWL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown crawl fields: {sorted(unknown)}")
        if not fields:
            return
        columns = ", ".join(f"{k} = ?" for k in fields)
        values = tuple(_ts(v) if isinstance(v, datetime) else v for v in fields.values())
        self._execute(f"UPDATE crawls SET {columns} WHERE id = ?", values + (crawl_id,))

    # Frontier entries

    def add_crawl_url(self, crawl_id: str, url: str, depth: int) -> Optional[CrawlUrl]:
        """Insert a queued entry; returns None when (crawl_id, url) already exists."""
        entry = CrawlUrl(id=new_id(), crawl_id=crawl_id, url=url, depth=depth, created_at=_now())
        try:
            self._execute(
                "INSERT INTO crawl_urls (id, crawl_id, url, depth, status, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (entry.id, crawl_id, url, depth, URL_QUEUED, _ts(entry.created_at)),
            )
        except sqlite3.IntegrityError:
            return None
        return entry

    def get_crawl_url(self, entry_id: str) -> Optional[CrawlUrl]:
        row = self.conn.execute("SELECT * FROM crawl_urls WHERE id = ?", (entry_id,)).fetchone()
        return self._crawl_url(row) if row else None

    def next_queued_url(self, crawl_id: str) -> Optional[CrawlUrl]:
        row = self.conn.execute(
            "SELECT * FROM crawl_urls WHERE crawl_id = ? AND status = ? ORDER BY rowid ASC LIMIT 1",
            (crawl_id, URL_QUEUED),
        ).fetchone()
        return self._crawl_url(row) if row else None

    def finish_crawl_url(self, entry_id: str, status: str, reason: Optional[str] = None) -> bool:
        """Move a queued entry to a terminal status. Returns False if it was not queued."""
        cur = self._execute(
            "UPDATE crawl_urls SET status = ?, reason = ?, processed_at = ? WHERE id = ? AND status = ?",
            (status, reason, _ts(_now()), entry_id, URL_QUEUED),
        )
        return cur.rowcount == 1

    def finish_queued_urls(self, crawl_id: str, status: str, reason: Optional[str] = None) -> int:
        cur = self._execute(
            "UPDATE crawl_urls SET status = ?, reason = ?, processed_at = ? WHERE crawl_id = ? AND status = ?",
            (status, reason, _ts(_now()), crawl_id, URL_QUEUED),
        )
        return cur.rowcount

    def count_crawl_urls(self, crawl_id: str, status: Optional[str] = None) -> int:
        if status is None:
            row = self.conn.execute("SELECT COUNT(*) FROM crawl_urls WHERE crawl_id = ?", (crawl_id,)).fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM crawl_urls WHERE crawl_id = ? AND status = ?", (crawl_id, status)
            ).fetchone()
        return row[0]

    def list_crawl_urls(self, crawl_id: str) -> List[CrawlUrl]:
        rows = self.conn.execute(
            "SELECT * FROM crawl_urls WHERE crawl_id = ? ORDER BY rowid ASC", (crawl_id,)
        ).fetchall()
        return [self._crawl_url(r) for r in rows]

    # Pages

    def upsert_page(
        self, site_id: str, url: str, title: Optional[str] = None, default_title: Optional[str] = None
    ) -> Page:
        """Create the page for (site_id, url) or update its title when one is given.

        ``default_title`` is only used when the page is created without a title.
        """
        row = self.conn.execute("SELECT * FROM pages WHERE site_id = ? AND url = ?", (site_id, url)).fetchone()
        if row is None:
            page = Page(id=new_id(), site_id=site_id, url=url, title=title or default_title)
            self._execute(
                "INSERT INTO pages (id, site_id, url, title) VALUES (?, ?, ?, ?)",
                (page.id, site_id, url, page.title),
            )
            return page
        page = self._page(row)
        if title:
            self._execute("UPDATE pages SET title = ? WHERE id = ?", (title, page.id))
            page.title = title
        return page

    def get_page(self, page_id: str) -> Optional[Page]:
        row = self.conn.execute("SELECT * FROM pages WHERE id = ?", (page_id,)).fetchone()
        return self._page(row) if row else None

    def list_pages(self, site_id: str) -> List[Page]:
        rows = self.conn.execute("SELECT * FROM pages WHERE site_id = ? ORDER BY rowid ASC", (site_id,)).fetchall()
        return [self._page(r) for r in rows]

    def set_latest_scan(self, page_id: str, scan_id: str) -> None:
        self._execute("UPDATE pages SET latest_scan_id = ? WHERE id = ?", (scan_id, page_id))

    # Scans

    def create_scan(self, scan: Scan) -> Scan:
        if not scan.id:
            scan.id = new_id()
        if scan.created_at is None:
            scan.created_at = _now()
        self._execute(
            "INSERT INTO scans (id, site_id, page_id, status, score, issues, impact_critical, impact_serious,"
            " impact_moderate, impact_minor, raw_json, violations_by_rule_json, previous_scan_id, issues_fixed,"
            " new_issues, score_change, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                scan.id,
                scan.site_id,
                scan.page_id,
                scan.status,
                scan.score,
                scan.issues,
                scan.impact_critical,
                scan.impact_serious,
                scan.impact_moderate,
                scan.impact_minor,
                json.dumps(scan.raw),
                json.dumps(scan.violations_by_rule),
                scan.previous_scan_id,
                scan.issues_fixed,
                scan.new_issues,
                scan.score_change,
                _ts(scan.created_at),
            ),
        )
        return scan

    def get_scan(self, scan_id: str) -> Optional[Scan]:
        row = self.conn.execute("SELECT * FROM scans WHERE id = ?", (scan_id,)).fetchone()
        return self._scan(row) if row else None

    def latest_scan_for_page(self, page_id: str, status: str) -> Optional[Scan]:
        row = self.conn.execute(
            "SELECT * FROM scans WHERE page_id = ? AND status = ? ORDER BY rowid DESC LIMIT 1",
            (page_id, status),
        ).fetchone()
        return self._scan(row) if row else None

    # Row mapping

    @staticmethod
    def _site(row: sqlite3.Row) -> Site:
        return Site(id=row["id"], url=row["url"], created_at=_dt(row["created_at"]))

    @staticmethod
    def _crawl(row: sqlite3.Row) -> Crawl:
        return Crawl(
            id=row["id"],
            site_id=row["site_id"],
            status=row["status"],
            max_pages=row["max_pages"],
            max_depth=row["max_depth"],
            pages_done=row["pages_done"],
            pages_queued=row["pages_queued"],
            started_at=_dt(row["started_at"]),
            finished_at=_dt(row["finished_at"]),
            created_at=_dt(row["created_at"]),
        )

    @staticmethod
    def _crawl_url(row: sqlite3.Row) -> CrawlUrl:
        return CrawlUrl(
            id=row["id"],
            crawl_id=row["crawl_id"],
            url=row["url"],
            depth=row["depth"],
            status=row["status"],
            reason=row["reason"],
            created_at=_dt(row["created_at"]),
            processed_at=_dt(row["processed_at"]),
        )

    @staticmethod
    def _page(row: sqlite3.Row) -> Page:
        return Page(
            id=row["id"],
            site_id=row["site_id"],
            url=row["url"],
            title=row["title"],
            latest_scan_id=row["latest_scan_id"],
        )

    @staticmethod
    def _scan(row: sqlite3.Row) -> Scan:
        return Scan(
            id=row["id"],
            site_id=row["site_id"],
            page_id=row["page_id"],
            status=row["status"],
            score=row["score"],
            issues=row["issues"],
            impact_critical=row["impact_critical"],
            impact_serious=row["impact_serious"],
            impact_moderate=row["impact_moderate"],
            impact_minor=row["impact_minor"],
            raw=json.loads(row["raw_json"]) if row["raw_json"] else None,
            violations_by_rule=json.loads(row["violations_by_rule_json"] or "{}"),
            previous_scan_id=row["previous_scan_id"],
            issues_fixed=row["issues_fixed"] or 0,
            new_issues=row["new_issues"] or 0,
            score_change=row["score_change"],
            created_at=_dt(row["created_at"]),
        )


def scan_summary(scan: Scan) -> Dict[str, Any]:
    """Compact dict used by API responses and logs."""
    return {
        "id": scan.id,
        "page_id": scan.page_id,
        "status": scan.status,
        "score": scan.score,
        "issues": scan.issues,
        "impact": {
            "critical": scan.impact_critical,
            "serious": scan.impact_serious,
            "moderate": scan.impact_moderate,
            "minor": scan.impact_minor,
        },
    }
