import logging
import os
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from core.__version__ import __title__, __version__
from crawler.orchestrator import CrawlOrchestrator

from .routes.crawl import router as crawl_router

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(orchestrator: Optional[CrawlOrchestrator] = None) -> FastAPI:
    """Build the API app.

    When no orchestrator is given one is built from the loaded config on the
    first request that needs it.
    """
    app = FastAPI(
        title=f"{__title__} API",
        description="API for SiteScan accessibility crawling",
        version=__version__,
    )
    app.state.orchestrator = orchestrator
    app.include_router(crawl_router, prefix="/api")

    @app.get("/")
    def read_root():
        return {"message": f"Welcome to the {__title__} API", "version": __version__}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("API_HOST", "0.0.0.0"), port=int(os.getenv("API_PORT", 8000)))
