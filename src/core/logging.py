import logging
from typing import Optional

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(level: int = logging.INFO, use_rich: Optional[bool] = None) -> None:
    """Configure project-wide logging.

    - If `rich` is installed and `use_rich` is True (or None and rich is present), uses
      `rich.logging.RichHandler` for console output and rich tracebacks.
    - Otherwise falls back to a standard library `StreamHandler` with a readable format.
    """
    if use_rich is None:
        try:
            import rich  # noqa: F401
            use_rich = True
        except ImportError:
            use_rich = False

    if use_rich:
        from rich.logging import RichHandler
        from rich.traceback import install as _install_tb

        _install_tb()
        _install_handler(RichHandler(rich_tracebacks=True, show_path=False), level)
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s:%(name)s: %(message)s"))
        _install_handler(handler, level)

    # keep http client chatter out of crawl logs unless debugging
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def _install_handler(handler: logging.Handler, level: int) -> None:
    root = logging.getLogger()
    # remove existing handlers to avoid duplicate logs
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)
