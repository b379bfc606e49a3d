"""Version information for SiteScan."""

__version__ = "1.0.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Package metadata
__title__ = "SiteScan"
__description__ = "Polite same-origin crawler that runs axe-core accessibility scans per page"
__license__ = "MIT"
