"""
Shared fixtures: an in-memory stand-in for the Playwright objects the
crawler touches (context, page, request, response, route, console message).
"""

import asyncio
from collections import Counter
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from sitecrawl.utils.config import CrawlerConfig


class FakeFrame:
    def __init__(self, parent_frame: Optional['FakeFrame'] = None):
        self.parent_frame = parent_frame


class FakeRequest:
    def __init__(self, url: str, resource_type: str = "document",
                 redirected_from: Optional['FakeRequest'] = None,
                 frame: Optional[FakeFrame] = None):
        self.url = url
        self.resource_type = resource_type
        self.redirected_from = redirected_from
        self.frame = frame or FakeFrame()


class FakeResponse:
    def __init__(self, request: FakeRequest, status: int = 200,
                 headers: Optional[Dict[str, str]] = None):
        self.request = request
        self.status = status
        self.headers = headers or {'content-type': 'text/html'}


class FakeRoute:
    def __init__(self, request: FakeRequest):
        self.request = request
        self.continued = False
        self.aborted = False

    async def continue_(self):
        self.continued = True

    async def abort(self):
        self.aborted = True


class FakeConsoleMessage:
    def __init__(self, text: str, type: str = "error"):
        self.text = text
        self.type = type


class FakeSite:
    """
    Scripted pages keyed by URL.

    Each page is a dict with any of:
        html           document body returned by page.content()
        redirect_to    final URL the navigation ends on
        headers        response headers
        fail_times     number of leading attempts that raise a navigation error
        timeout        every attempt times out
        console        console message texts emitted on load
        resources      (url, resource_type) sub-requests issued on load
        inline         result of page.evaluate()
    """

    def __init__(self, pages: Optional[Dict[str, Dict[str, Any]]] = None):
        self.pages = pages or {}
        self.calls: Counter = Counter()
        self.routes: List[FakeRoute] = []

    def add(self, url: str, **page):
        self.pages[url] = page
        return self


class FakePage:
    def __init__(self, site: FakeSite):
        self.site = site
        self.url = "about:blank"
        self.closed = False
        self.route_handler = None
        self.listeners: Dict[str, List[Any]] = {}
        self._html = ""
        self._inline: Dict[str, bool] = {}

    async def route(self, pattern: str, handler):
        self.route_handler = handler

    def on(self, event: str, handler):
        self.listeners.setdefault(event, []).append(handler)

    def emit(self, event: str, payload: Any):
        for handler in self.listeners.get(event, []):
            handler(payload)

    async def goto(self, url: str, wait_until: str = "load", timeout: int = 30000):
        self.site.calls[url] += 1
        await asyncio.sleep(0)

        scripted = self.site.pages.get(url)
        if scripted is None:
            raise PlaywrightError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        if scripted.get('timeout'):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        if self.site.calls[url] <= scripted.get('fail_times', 0):
            raise PlaywrightError(f"net::ERR_CONNECTION_RESET at {url}")

        request = FakeRequest(url)
        final_url = scripted.get('redirect_to')
        if final_url:
            request = FakeRequest(final_url, redirected_from=request)

        self.url = final_url or url
        self._html = scripted.get('html', '')
        self._inline = scripted.get('inline', {})

        for resource_url, resource_type in scripted.get('resources', []):
            route = FakeRoute(FakeRequest(resource_url, resource_type))
            self.site.routes.append(route)
            await self.route_handler(route)

        for text in scripted.get('console', []):
            self.emit("console", FakeConsoleMessage(text))

        return FakeResponse(request, headers=scripted.get('headers'))

    async def content(self) -> str:
        return self._html

    async def evaluate(self, script: str):
        return self._inline

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, site: FakeSite):
        self.site = site
        self.pages: List[FakePage] = []

    async def new_page(self) -> FakePage:
        page = FakePage(self.site)
        self.pages.append(page)
        return page


def make_launcher(site: FakeSite, launches: Optional[List[Any]] = None):
    """Browser launcher yielding a FakeContext over the given site."""

    @asynccontextmanager
    async def launcher(config: CrawlerConfig):
        context = FakeContext(site)
        if launches is not None:
            launches.append(context)
        yield context

    return launcher


def anchors(*hrefs: str) -> str:
    return "<html><body>" + "".join(f'<a href="{href}">link</a>' for href in hrefs) + "</body></html>"


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def crawler_config():
    def factory(**overrides) -> CrawlerConfig:
        values = dict(
            base_url="https://x.test/",
            max_pages=100,
            max_depth=10,
            concurrency=1,
            max_retries=2,
            delay_ms=0,
            idle_poll_ms=5,
            headless=True,
            skip_confirmation=True,
        )
        values.update(overrides)
        return CrawlerConfig(**values)
    return factory
