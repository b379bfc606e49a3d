"""Tests for the headless-browser page scanner using fake Playwright objects."""

import pytest
from playwright.async_api import Error as PlaywrightError

from core.config import ScannerConfig
from core.errors import EngineError, NavigationError
from scanner.page_scanner import PageScanner, ScanResult, Violation

AXE_RESULTS = {
    "violations": [
        {
            "id": "region",
            "impact": "moderate",
            "help": "All page content should be contained by landmarks",
            "helpUrl": "https://dequeuniversity.com/rules/axe/4.7/region",
            "tags": ["best-practice"],
            "nodes": [{"target": ["div"], "html": "<div>" + "x" * 600, "failureSummary": "Fix this"}],
        },
        {
            "id": "image-alt",
            "impact": "critical",
            "help": "Images must have alternate text",
            "nodes": [{"target": ["img"], "html": "<img>"}, {"target": ["img.b"], "html": "<img>"}],
        },
    ]
}


class FakePage:
    def __init__(self, goto_error=None, evaluate_error=None, results=None, title="  Home  "):
        self.goto_error = goto_error
        self.evaluate_error = evaluate_error
        self.results = AXE_RESULTS if results is None else results
        self._title = title
        self.default_timeout = None
        self.goto_calls = []
        self.scripts = []

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if self.goto_error:
            raise self.goto_error

    async def add_script_tag(self, **kwargs):
        self.scripts.append(kwargs)

    async def evaluate(self, script):
        if self.evaluate_error:
            raise self.evaluate_error
        return self.results

    async def title(self):
        return self._title


class FakeContext:
    def __init__(self, page):
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page=None):
        self.page = page or FakePage()
        self.contexts = []
        self.closed = False

    async def new_context(self, **kwargs):
        context = FakeContext(self.page)
        context.options = kwargs
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakePlaywright:
    def __init__(self):
        self.stopped = False

    async def stop(self):
        self.stopped = True


@pytest.mark.asyncio
async def test_scan_success():
    browser = FakeBrowser()
    scanner = PageScanner(ScannerConfig(navigation_timeout=12), browser=browser, user_agent="TestAgent/1.0")

    result = await scanner.scan("https://example.com/")

    assert isinstance(result, ScanResult)
    assert result.issues == 2
    assert result.impact_critical == 1
    assert result.impact_moderate == 1
    assert result.score == 100 - 10 - 2
    assert result.title == "Home"
    assert [v.id for v in result.violations] == ["image-alt", "region"]

    page = browser.page
    assert page.goto_calls == [("https://example.com/", "domcontentloaded", 12000)]
    assert page.default_timeout == 12000
    assert page.scripts == [{"url": ScannerConfig().axe_script_url}]

    context = browser.contexts[0]
    assert context.closed
    assert context.options["user_agent"] == "TestAgent/1.0"
    assert context.options["ignore_https_errors"] is True
    assert not browser.closed


@pytest.mark.asyncio
async def test_scan_uses_local_axe_script():
    browser = FakeBrowser()
    scanner = PageScanner(ScannerConfig(axe_script_path="/opt/axe.min.js"), browser=browser)

    await scanner.scan("https://example.com/")

    assert browser.page.scripts == [{"path": "/opt/axe.min.js"}]


@pytest.mark.asyncio
async def test_navigation_failure_closes_context():
    browser = FakeBrowser(FakePage(goto_error=PlaywrightError("Timeout 30000ms exceeded")))
    scanner = PageScanner(browser=browser)

    with pytest.raises(NavigationError) as excinfo:
        await scanner.scan("https://example.com/slow")

    assert excinfo.value.url == "https://example.com/slow"
    assert "Timeout" in str(excinfo.value)
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_engine_failure_closes_context():
    browser = FakeBrowser(FakePage(evaluate_error=PlaywrightError("axe-core is not loaded")))
    scanner = PageScanner(browser=browser)

    with pytest.raises(EngineError):
        await scanner.scan("https://example.com/")

    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_blank_title_and_no_violations():
    browser = FakeBrowser(FakePage(results={"violations": []}, title="   "))
    result = await PageScanner(browser=browser).scan("https://example.com/")

    assert result.score == 100
    assert result.issues == 0
    assert result.title is None


@pytest.mark.asyncio
async def test_one_shot_scan_launches_and_closes_browser(monkeypatch):
    browser = FakeBrowser()
    playwright = FakePlaywright()

    async def fake_launch(self):
        return playwright, browser

    monkeypatch.setattr(PageScanner, "_launch", fake_launch)

    result = await PageScanner().scan("https://example.com/")

    assert result.issues == 2
    assert browser.closed
    assert playwright.stopped


@pytest.mark.asyncio
async def test_context_manager_shares_browser(monkeypatch):
    browser = FakeBrowser()
    playwright = FakePlaywright()

    async def fake_launch(self):
        return playwright, browser

    monkeypatch.setattr(PageScanner, "_launch", fake_launch)

    async with PageScanner() as scanner:
        await scanner.scan("https://example.com/a")
        await scanner.scan("https://example.com/b")
        assert not browser.closed

    assert len(browser.contexts) == 2
    assert all(c.closed for c in browser.contexts)
    assert browser.closed
    assert playwright.stopped


@pytest.mark.asyncio
async def test_injected_browser_is_not_closed():
    browser = FakeBrowser()

    async with PageScanner(browser=browser) as scanner:
        await scanner.scan("https://example.com/")

    assert not browser.closed


def test_violation_from_axe_truncates_markup():
    violation = Violation.from_axe(AXE_RESULTS["violations"][0])

    assert violation.help_url.startswith("https://dequeuniversity.com")
    assert len(violation.nodes[0]["html"]) == 500
    assert violation.nodes[0]["failure_summary"] == "Fix this"
    assert violation.to_dict()["id"] == "region"
