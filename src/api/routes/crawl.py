"""API routes for starting crawls and reading their progress."""

import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import BaseModel, Field, HttpUrl

from core.config import load_config, merge_env_config
from core.errors import CrawlError, SiteNotFoundError
from core.models import to_dicts
from core.storage import scan_summary
from crawler.orchestrator import CrawlOrchestrator
from crawler.urls import normalize_url, site_root

logger = logging.getLogger(__name__)

router = APIRouter()


class CrawlRequest(BaseModel):
    """Request body for starting a crawl."""

    url: HttpUrl
    max_pages: Optional[int] = Field(default=None, ge=0)
    max_depth: Optional[int] = Field(default=None, ge=0)


class CrawlResponse(BaseModel):
    crawl_id: str
    site_id: str
    status: str
    message: str


class ScanRequest(BaseModel):
    """Request body for a one-off scan of a single page."""

    url: HttpUrl


def get_orchestrator(request: Request) -> CrawlOrchestrator:
    orchestrator = request.app.state.orchestrator
    if orchestrator is None:
        config = merge_env_config(load_config())
        orchestrator = CrawlOrchestrator.from_config(config)
        request.app.state.orchestrator = orchestrator
    return orchestrator


async def _run_crawl(orchestrator: CrawlOrchestrator, crawl_id: str) -> None:
    """Background task to run a crawl."""
    try:
        await orchestrator.run_crawl(crawl_id)
    except CrawlError as e:
        logger.error("Crawl %s not run: %s", crawl_id, e)
    except Exception as e:
        # already logged and recorded as error by the orchestrator
        logger.debug("Background crawl %s ended with %r", crawl_id, e)


def _site_for(orchestrator: CrawlOrchestrator, url: str):
    root = normalize_url(site_root(normalize_url(url)))
    site = orchestrator.store.find_site_by_url(root)
    if site is None:
        site = orchestrator.store.create_site(root)
    return site


@router.post("/crawls", response_model=CrawlResponse)
async def create_crawl(
    request: CrawlRequest,
    background_tasks: BackgroundTasks,
    orchestrator: CrawlOrchestrator = Depends(get_orchestrator),
):
    """Start a crawl of the site the URL belongs to.

    The crawl runs in the background. Use the returned crawl_id to check status.
    """
    site = _site_for(orchestrator, str(request.url))
    try:
        crawl_id = orchestrator.start_crawl(site.id, request.max_pages, request.max_depth)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    background_tasks.add_task(_run_crawl, orchestrator, crawl_id)

    return CrawlResponse(
        crawl_id=crawl_id,
        site_id=site.id,
        status="queued",
        message="Crawl started. Use GET /api/crawls/{crawl_id} to check status.",
    )


@router.get("/crawls/{crawl_id}")
async def get_crawl(crawl_id: str, orchestrator: CrawlOrchestrator = Depends(get_orchestrator)):
    """Get the status and progress of a crawl."""
    status = orchestrator.get_crawl_status(crawl_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Crawl not found")
    return status


@router.get("/crawls/{crawl_id}/urls")
async def list_crawl_urls(
    crawl_id: str,
    status: Optional[str] = None,
    orchestrator: CrawlOrchestrator = Depends(get_orchestrator),
) -> List[dict]:
    """List the crawl's frontier entries, optionally filtered by status."""
    if orchestrator.store.get_crawl(crawl_id) is None:
        raise HTTPException(status_code=404, detail="Crawl not found")
    entries = orchestrator.frontier.entries(crawl_id)
    if status:
        entries = [e for e in entries if e.status == status]
    return to_dicts(entries)


@router.get("/sites/{site_id}/pages")
async def list_pages(site_id: str, orchestrator: CrawlOrchestrator = Depends(get_orchestrator)):
    """List the pages recorded for a site with their latest scan summary."""
    if orchestrator.store.get_site(site_id) is None:
        raise HTTPException(status_code=404, detail="Site not found")
    pages = []
    for page in orchestrator.store.list_pages(site_id):
        scan = orchestrator.store.get_scan(page.latest_scan_id) if page.latest_scan_id else None
        pages.append({
            "id": page.id,
            "url": page.url,
            "title": page.title,
            "latest_scan": scan_summary(scan) if scan else None,
        })
    return {"site_id": site_id, "pages": pages}


@router.post("/scans")
async def create_scan(request: ScanRequest, orchestrator: CrawlOrchestrator = Depends(get_orchestrator)):
    """Scan a single page right away and return the stored result."""
    url = normalize_url(str(request.url))
    site = _site_for(orchestrator, url)
    try:
        scan = await orchestrator.scan_url(site.id, url)
    except SiteNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return scan_summary(scan)
