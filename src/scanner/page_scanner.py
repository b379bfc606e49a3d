"""Headless-browser accessibility scanner.

Loads a page in Playwright, injects axe-core and turns its violations into a
scored `ScanResult`. Each scan gets its own isolated browser context which is
closed on every exit path; the browser itself is shared when the scanner is
used as an async context manager, or launched per scan otherwise:

    async with PageScanner(config) as scanner:
        result = await scanner.scan("https://example.com")
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from core.config import ScannerConfig
from core.errors import EngineError, NavigationError
from core.severity import (
    CRITICAL,
    MINOR,
    MODERATE,
    SERIOUS,
    compute_score,
    count_by_impact,
    sort_by_impact,
)

logger = logging.getLogger(__name__)

AXE_RUN_SCRIPT = """
async () => {
    if (!window.axe) {
        throw new Error("axe-core is not loaded");
    }
    return await window.axe.run(document, { resultTypes: ["violations"] });
}
"""


@dataclass
class Violation:
    """One axe-core rule failure and the nodes it affects."""

    id: str
    impact: Optional[str] = None
    help: str = ""
    description: str = ""
    help_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    nodes: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_axe(cls, data: Dict[str, Any]) -> "Violation":
        nodes = []
        for node in data.get("nodes") or []:
            nodes.append({
                "target": node.get("target", []),
                "html": (node.get("html") or "")[:500],
                "failure_summary": node.get("failureSummary"),
            })
        return cls(
            id=data.get("id", "unknown"),
            impact=data.get("impact"),
            help=data.get("help", ""),
            description=data.get("description", ""),
            help_url=data.get("helpUrl"),
            tags=list(data.get("tags") or []),
            nodes=nodes,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScanResult:
    score: int
    issues: int
    impact_critical: int = 0
    impact_serious: int = 0
    impact_moderate: int = 0
    impact_minor: int = 0
    violations: List[Violation] = field(default_factory=list)
    title: Optional[str] = None

    @classmethod
    def from_violations(
        cls,
        violations: List[Violation],
        title: Optional[str] = None,
        max_penalty: int = 90,
    ) -> "ScanResult":
        counts = count_by_impact(violations)
        return cls(
            score=compute_score(counts, max_penalty=max_penalty),
            issues=len(violations),
            impact_critical=counts[CRITICAL],
            impact_serious=counts[SERIOUS],
            impact_moderate=counts[MODERATE],
            impact_minor=counts[MINOR],
            violations=sort_by_impact(violations),
            title=title,
        )

    def violations_payload(self) -> List[Dict[str, Any]]:
        return [v.to_dict() for v in self.violations]


class PageScanner:
    """Runs axe-core against a URL in a headless browser.

    A browser object may be injected, in which case the scanner never
    launches or closes it.
    """

    def __init__(self, config: Optional[ScannerConfig] = None, browser=None, user_agent: Optional[str] = None):
        self.config = config or ScannerConfig()
        self.user_agent = user_agent
        self._browser = browser
        self._owns_browser = False
        self._playwright = None

    async def __aenter__(self) -> "PageScanner":
        if self._browser is None:
            self._playwright, self._browser = await self._launch()
            self._owns_browser = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_browser and self._browser is not None:
            try:
                await self._browser.close()
            finally:
                self._browser = None
                self._owns_browser = False
                if self._playwright is not None:
                    await self._playwright.stop()
                    self._playwright = None

    async def scan(self, url: str) -> ScanResult:
        """Scan one URL.

        Raises:
            NavigationError: If the page cannot be loaded in time
            EngineError: If axe-core cannot be injected or run
        """
        if self._browser is not None:
            return await self._scan(self._browser, url)

        # one-shot: a private browser so concurrent scans never share it
        try:
            playwright, browser = await self._launch()
        except PlaywrightError as e:
            raise EngineError(url, f"Browser launch failed: {e}") from e
        try:
            return await self._scan(browser, url)
        finally:
            try:
                await browser.close()
            finally:
                await playwright.stop()

    async def _launch(self):
        logger.info("Launching %s browser (headless=%s)", self.config.browser_type, self.config.headless)
        playwright = await async_playwright().start()
        launcher = getattr(playwright, self.config.browser_type)
        try:
            browser = await launcher.launch(
                headless=self.config.headless,
                args=list(self.config.launch_args),
            )
        except BaseException:
            await playwright.stop()
            raise
        return playwright, browser

    async def _scan(self, browser, url: str) -> ScanResult:
        context_options = {"ignore_https_errors": True}
        if self.user_agent:
            context_options["user_agent"] = self.user_agent
        try:
            context = await browser.new_context(**context_options)
        except PlaywrightError as e:
            raise EngineError(url, f"Could not open browser context: {e}") from e
        try:
            try:
                page = await context.new_page()
            except PlaywrightError as e:
                raise EngineError(url, f"Could not open page: {e}") from e
            page.set_default_timeout(self.config.navigation_timeout * 1000)

            try:
                await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=self.config.navigation_timeout * 1000,
                )
            except PlaywrightError as e:
                raise NavigationError(url, f"Navigation failed: {e}") from e

            try:
                await self._inject_engine(page)
                results = await page.evaluate(AXE_RUN_SCRIPT)
            except PlaywrightError as e:
                raise EngineError(url, f"Accessibility engine failed: {e}") from e

            violations = [Violation.from_axe(v) for v in (results or {}).get("violations") or []]
            title = await self._page_title(page)
            result = ScanResult.from_violations(violations, title=title, max_penalty=self.config.max_penalty)
            logger.info("Scanned %s: score=%d issues=%d", url, result.score, result.issues)
            return result
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning("Failed to close browser context for %s: %s", url, e)

    async def _inject_engine(self, page) -> None:
        if self.config.axe_script_path:
            await page.add_script_tag(path=self.config.axe_script_path)
        else:
            await page.add_script_tag(url=self.config.axe_script_url)

    @staticmethod
    async def _page_title(page) -> Optional[str]:
        try:
            title = await page.title()
        except PlaywrightError:
            return None
        if not title or not title.strip():
            return None
        return title.strip()
