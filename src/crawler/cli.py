import argparse
import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

from core.__version__ import __version__
from core.config import load_config, merge_env_config
from core.errors import CrawlError, CrawlNotFoundError
from core.logging import setup_logging
from core.storage import SQLiteStore

from .cancel import CancelToken
from .orchestrator import CrawlOrchestrator

# Load .env if present
load_dotenv()

logger = logging.getLogger("sitescan")


async def _run(crawl_id: str, orchestrator: CrawlOrchestrator) -> None:
    token = CancelToken()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel, f"stopped by {signal.Signals(sig).name}")
        except (NotImplementedError, RuntimeError):
            # not supported on this platform or outside the main thread
            pass

    if orchestrator.store.get_crawl(crawl_id) is None:
        raise CrawlNotFoundError(crawl_id)

    # one browser for the whole crawl, one context per page
    async with orchestrator.scanner:
        await orchestrator.run_crawl(crawl_id, cancel_token=token)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Run a queued SiteScan crawl to completion",
        epilog="Example:\n  sitescan-crawl 3f2c9b0e6d4a4d7e9a1b2c3d4e5f6a7b",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("crawl_id", help="Identifier of the crawl to run")
    parser.add_argument("--config", help="Path to YAML or JSON config file")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    use_rich = os.environ.get("USE_RICH_LOGGER", "1") not in ("0", "false", "False")
    setup_logging(level=level, use_rich=use_rich)

    try:
        config = merge_env_config(load_config(args.config))
    except (OSError, ValueError) as e:
        print(f"Failed to load config {args.config}: {e}", file=sys.stderr)
        return 2

    store = SQLiteStore(config.database.path)
    orchestrator = CrawlOrchestrator.from_config(config, store=store)
    logger.info("Starting crawl %s", args.crawl_id)
    try:
        asyncio.run(_run(args.crawl_id, orchestrator))
        status = orchestrator.get_crawl_status(args.crawl_id)
    except CrawlError as e:
        logger.error("%s", e)
        return 1
    except Exception as e:
        logger.error("Crawl %s failed: %s", args.crawl_id, e)
        return 1
    finally:
        store.close()

    counts = status["status_counts"]
    logger.info(
        "Crawl %s completed: %d done, %d skipped, %d errors",
        args.crawl_id,
        counts["done"],
        counts["skipped"],
        counts["error"],
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
