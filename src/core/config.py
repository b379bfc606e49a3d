"""Configuration management for SiteScan.

Supports loading configuration from YAML or JSON files and environment
variables, with environment variables taking precedence.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_USER_AGENT = "SiteScan Accessibility Crawler/1.0"
DEFAULT_AXE_URL = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.7.2/axe.min.js"
DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


@dataclass
class CrawlConfig:
    """Default budgets for new crawls."""

    max_pages: int = 50
    max_depth: int = 3
    respect_robots: bool = True


@dataclass
class RateLimitConfig:
    """Configuration for the shared scan limiter."""

    max_concurrent: int = 2
    min_time: float = 0.5  # seconds between task starts


@dataclass
class FetchConfig:
    """Configuration for the static fetches (robots.txt, link discovery)."""

    user_agent: str = DEFAULT_USER_AGENT
    robots_timeout: float = 5.0
    link_timeout: float = 10.0


@dataclass
class ScannerConfig:
    """Configuration for the headless-browser scanner."""

    navigation_timeout: float = 30.0
    headless: bool = True
    browser_type: str = "chromium"
    launch_args: List[str] = field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    axe_script_path: Optional[str] = None
    axe_script_url: str = DEFAULT_AXE_URL
    max_penalty: int = 90


@dataclass
class DatabaseConfig:
    """Configuration for the SQLite store."""

    path: str = "data/sitescan.db"


@dataclass
class Config:
    """Main configuration container."""

    crawl: CrawlConfig = field(default_factory=CrawlConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        config = cls()

        if "crawl" in data:
            crawl = data["crawl"]
            config.crawl = CrawlConfig(
                max_pages=crawl.get("max_pages", 50),
                max_depth=crawl.get("max_depth", 3),
                respect_robots=crawl.get("respect_robots", True),
            )

        if "rate_limit" in data:
            rl = data["rate_limit"]
            config.rate_limit = RateLimitConfig(
                max_concurrent=rl.get("max_concurrent", 2),
                min_time=rl.get("min_time", 0.5),
            )

        if "fetch" in data:
            fetch = data["fetch"]
            config.fetch = FetchConfig(
                user_agent=fetch.get("user_agent", DEFAULT_USER_AGENT),
                robots_timeout=fetch.get("robots_timeout", 5.0),
                link_timeout=fetch.get("link_timeout", 10.0),
            )

        if "scanner" in data:
            scanner = data["scanner"]
            config.scanner = ScannerConfig(
                navigation_timeout=scanner.get("navigation_timeout", 30.0),
                headless=scanner.get("headless", True),
                browser_type=scanner.get("browser_type", "chromium"),
                launch_args=scanner.get("launch_args", list(DEFAULT_LAUNCH_ARGS)),
                axe_script_path=scanner.get("axe_script_path"),
                axe_script_url=scanner.get("axe_script_url", DEFAULT_AXE_URL),
                max_penalty=scanner.get("max_penalty", 90),
            )

        if "database" in data:
            db = data["database"]
            config.database = DatabaseConfig(path=db.get("path", "data/sitescan.db"))

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert Config to dictionary."""
        return {
            "crawl": {
                "max_pages": self.crawl.max_pages,
                "max_depth": self.crawl.max_depth,
                "respect_robots": self.crawl.respect_robots,
            },
            "rate_limit": {
                "max_concurrent": self.rate_limit.max_concurrent,
                "min_time": self.rate_limit.min_time,
            },
            "fetch": {
                "user_agent": self.fetch.user_agent,
                "robots_timeout": self.fetch.robots_timeout,
                "link_timeout": self.fetch.link_timeout,
            },
            "scanner": {
                "navigation_timeout": self.scanner.navigation_timeout,
                "headless": self.scanner.headless,
                "browser_type": self.scanner.browser_type,
                "launch_args": list(self.scanner.launch_args),
                "axe_script_path": self.scanner.axe_script_path,
                "axe_script_url": self.scanner.axe_script_url,
                "max_penalty": self.scanner.max_penalty,
            },
            "database": {
                "path": self.database.path,
            },
        }


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from file.

    Searches for configuration in the following order:
    1. Specified config_path
    2. ./sitescan.yaml, ./sitescan.yml, ./.sitescan.yaml, ./.sitescan.yml
    3. ~/.sitescan/config.yaml

    Args:
        config_path: Optional path to configuration file

    Returns:
        Config object with loaded settings
    """
    paths_to_try = []

    if config_path:
        paths_to_try.append(Path(config_path))
    else:
        paths_to_try.append(Path("sitescan.yaml"))
        paths_to_try.append(Path("sitescan.yml"))
        paths_to_try.append(Path(".sitescan.yaml"))
        paths_to_try.append(Path(".sitescan.yml"))

        home = Path.home()
        paths_to_try.append(home / ".sitescan" / "config.yaml")
        paths_to_try.append(home / ".sitescan" / "config.yml")

    for path in paths_to_try:
        if path.exists():
            return load_config_from_file(path)

    if config_path:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    return Config()


def load_config_from_file(path: Path) -> Config:
    """Load configuration from a specific file.

    Raises:
        ValueError: If file format is not supported
    """
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    elif suffix == ".json":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    else:
        raise ValueError(f"Unsupported configuration file format: {suffix}")

    return Config.from_dict(data)


def merge_env_config(config: Config) -> Config:
    """Merge SITESCAN_* environment variables into configuration."""
    if os.environ.get("SITESCAN_MAX_PAGES"):
        config.crawl.max_pages = int(os.environ["SITESCAN_MAX_PAGES"])
    if os.environ.get("SITESCAN_MAX_DEPTH"):
        config.crawl.max_depth = int(os.environ["SITESCAN_MAX_DEPTH"])
    if os.environ.get("SITESCAN_RESPECT_ROBOTS"):
        config.crawl.respect_robots = os.environ["SITESCAN_RESPECT_ROBOTS"] not in ("0", "false", "False")

    if os.environ.get("SITESCAN_MAX_CONCURRENT"):
        config.rate_limit.max_concurrent = int(os.environ["SITESCAN_MAX_CONCURRENT"])
    if os.environ.get("SITESCAN_MIN_TIME"):
        config.rate_limit.min_time = float(os.environ["SITESCAN_MIN_TIME"])

    if os.environ.get("SITESCAN_USER_AGENT"):
        config.fetch.user_agent = os.environ["SITESCAN_USER_AGENT"]

    if os.environ.get("SITESCAN_NAVIGATION_TIMEOUT"):
        config.scanner.navigation_timeout = float(os.environ["SITESCAN_NAVIGATION_TIMEOUT"])
    if os.environ.get("SITESCAN_AXE_SCRIPT"):
        config.scanner.axe_script_path = os.environ["SITESCAN_AXE_SCRIPT"]

    if os.environ.get("SITESCAN_DB_PATH"):
        config.database.path = os.environ["SITESCAN_DB_PATH"]

    return config
