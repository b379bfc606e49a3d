"""Tests for the SQLite store."""

import sqlite3

import pytest

from core.models import CRAWL_DONE, CRAWL_QUEUED, SCAN_DONE, SCAN_FAILED, Scan
from core.storage import SQLiteStore, new_id, scan_summary


def test_sites(store):
    site = store.create_site("https://example.com/")

    assert store.get_site(site.id).url == "https://example.com/"
    assert store.find_site_by_url("https://example.com/").id == site.id
    assert store.find_site_by_url("https://other.com/") is None
    assert store.get_site("missing") is None


def test_crawl_lifecycle(store, site):
    crawl = store.create_crawl(site.id, max_pages=5, max_depth=1, status=CRAWL_QUEUED)

    store.update_crawl(crawl.id, status=CRAWL_DONE, pages_done=3, pages_queued=0)

    loaded = store.get_crawl(crawl.id)
    assert loaded.status == CRAWL_DONE
    assert loaded.pages_done == 3
    assert loaded.max_pages == 5
    assert loaded.is_finished
    assert loaded.created_at is not None


def test_update_crawl_rejects_unknown_fields(store, site):
    crawl = store.create_crawl(site.id, max_pages=5, max_depth=1, status=CRAWL_QUEUED)

    with pytest.raises(ValueError):
        store.update_crawl(crawl.id, site_id="other")


def test_upsert_page_keeps_identity(store, site):
    first = store.upsert_page(site.id, "https://example.com/a", default_title="A")
    second = store.upsert_page(site.id, "https://example.com/a", title="Real title", default_title="ignored")
    third = store.upsert_page(site.id, "https://example.com/a")

    assert first.id == second.id == third.id
    assert first.title == "A"
    assert store.get_page(first.id).title == "Real title"
    assert len(store.list_pages(site.id)) == 1


def test_scans_round_trip_and_latest(store, site):
    page = store.upsert_page(site.id, "https://example.com/")
    old = store.create_scan(Scan(id=new_id(), site_id=site.id, page_id=page.id, status=SCAN_DONE, score=80))
    store.create_scan(Scan(id=new_id(), site_id=site.id, page_id=page.id, status=SCAN_FAILED))
    new = store.create_scan(
        Scan(
            id="",
            site_id=site.id,
            page_id=page.id,
            status=SCAN_DONE,
            score=95,
            issues=1,
            impact_minor=1,
            raw=[{"id": "region"}],
            violations_by_rule={"region": 2},
            previous_scan_id=old.id,
        )
    )

    assert new.id
    latest = store.latest_scan_for_page(page.id, SCAN_DONE)
    assert latest.id == new.id
    assert latest.raw == [{"id": "region"}]
    assert latest.violations_by_rule == {"region": 2}
    assert latest.previous_scan_id == old.id

    summary = scan_summary(latest)
    assert summary["score"] == 95
    assert summary["impact"]["minor"] == 1


def test_closed_store_raises():
    store = SQLiteStore(":memory:")
    store.close()

    with pytest.raises(sqlite3.ProgrammingError):
        store.create_site("https://example.com/")


def test_file_store_creates_parent_dir(tmp_path):
    path = tmp_path / "nested" / "sitescan.db"
    store = SQLiteStore(str(path))
    site = store.create_site("https://example.com/")
    store.close()

    reopened = SQLiteStore(str(path))
    assert reopened.get_site(site.id) is not None
    reopened.close()
