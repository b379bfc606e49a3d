from typing import Optional

from core.errors import CrawlCancelledError

DEFAULT_REASON = "crawl cancelled"


class CancelToken:
    """Cooperative cancellation flag shared between a supervisor and a crawl."""

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = DEFAULT_REASON) -> None:
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CrawlCancelledError(self.reason or DEFAULT_REASON)
