"""
Page fetching through a rendered browser page, plus a lightweight HTTP probe.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

import aiohttp
from aiohttp import ClientTimeout, ClientError
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .hooks import CrawlHooks, RequestDecision
from .normalizer import get_origin


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    final_url: Optional[str] = None
    status_code: int = 0
    headers: Dict[str, str] = field(default_factory=dict)
    response: Optional[Any] = None
    redirect_chain: List[str] = field(default_factory=list)
    error: Optional[str] = None
    fetch_time: float = 0.0


def redirect_chain_of(response: Optional[Any]) -> List[str]:
    """Rebuild the ordered URL chain that led to a navigation response."""
    if response is None:
        return []

    chain = []
    request = response.request
    while request is not None:
        chain.append(request.url)
        request = request.redirected_from
    chain.reverse()
    return chain


class PageFetcher:
    """
    Fetches documents with one dedicated browser page.

    The page is owned by a single worker for its whole lifetime. Every
    outgoing request is first offered to the request hook; requests the hook
    does not take over are continued, except sub-resources bound for another
    origin, which are aborted before they reach the network.
    """

    def __init__(self, context: Any, base_origin: str, hooks: Optional[CrawlHooks] = None,
                 navigation_timeout_ms: int = 30000, wait_until: str = "networkidle"):
        self.context = context
        self.base_origin = base_origin
        self.hooks = hooks or CrawlHooks()
        self.navigation_timeout_ms = navigation_timeout_ms
        self.wait_until = wait_until

        self.logger = logging.getLogger(__name__)
        self.page: Optional[Any] = None

        # Statistics
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'blocked_requests': 0,
            'hook_handled_requests': 0
        }

    async def open(self):
        """Create the page and install request and console listeners."""
        if self.page is None:
            self.page = await self.context.new_page()
            await self.page.route("**/*", self._handle_route)
            self.page.on("console", self._handle_console)

    async def close(self):
        """Close the page."""
        if self.page is not None:
            try:
                await self.page.close()
            except PlaywrightError as e:
                self.logger.debug(f"Page already closed: {e}")
            self.page = None
            self.logger.debug(f"Fetcher stats: {self.stats}")

    async def _handle_route(self, route: Any):
        request = route.request

        try:
            decision = self.hooks.on_request_intercept(route)
            if inspect.isawaitable(decision):
                decision = await decision
        except Exception as e:
            self.logger.error(f"Request hook failed for {request.url}: {e}", exc_info=True)
            decision = RequestDecision.PASS_THROUGH

        if decision is RequestDecision.HANDLED:
            self.stats['hook_handled_requests'] += 1
            return

        try:
            if request.resource_type != "document" and get_origin(request.url) != self.base_origin:
                self.stats['blocked_requests'] += 1
                await route.abort()
                return
            await route.continue_()
        except PlaywrightError as e:
            # The page navigated away or closed while the route was pending
            self.logger.debug(f"Route for {request.url} no longer active: {e}")

    def _handle_console(self, message: Any):
        page_url = self.page.url if self.page is not None else ''
        try:
            self.hooks.on_console_message(message, page_url)
        except Exception as e:
            self.logger.error(f"Console hook failed on {page_url}: {e}", exc_info=True)

    async def fetch(self, url: str) -> FetchResult:
        """
        Navigate the page to a URL.

        Navigation errors and timeouts are returned in FetchResult.error
        rather than raised.
        """
        if self.page is None:
            await self.open()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            response = await self.page.goto(
                url,
                wait_until=self.wait_until,
                timeout=self.navigation_timeout_ms
            )

        except PlaywrightTimeoutError:
            self.stats['failed_requests'] += 1
            error_msg = f"Navigation timeout of {self.navigation_timeout_ms} ms exceeded"
            self.logger.warning(f"Timeout fetching {url}")

        except PlaywrightError as e:
            self.stats['failed_requests'] += 1
            error_msg = f"Navigation error: {e}"
            self.logger.warning(f"Navigation error fetching {url}: {e}")

        else:
            self.stats['successful_requests'] += 1
            final_url = self.page.url or url
            chain = redirect_chain_of(response)
            if chain and chain[-1] != final_url:
                chain.append(final_url)

            return FetchResult(
                url=url,
                final_url=final_url,
                status_code=response.status if response is not None else 0,
                headers=dict(response.headers) if response is not None else {},
                response=response,
                redirect_chain=chain,
                fetch_time=time.time() - start_time
            )

        return FetchResult(
            url=url,
            error=error_msg,
            fetch_time=time.time() - start_time
        )

    async def content(self) -> str:
        """Serialized DOM of the rendered page."""
        return await self.page.content()


async def probe_url(url: str, timeout: float = 10.0,
                    user_agent: Optional[str] = None) -> FetchResult:
    """
    Plain HTTP GET used to check that a seed is reachable before a browser
    is launched. Never raises for network errors.
    """
    start_time = time.time()
    headers = {'User-Agent': user_agent} if user_agent else {}

    try:
        async with aiohttp.ClientSession(timeout=ClientTimeout(total=timeout),
                                         headers=headers) as session:
            async with session.get(url, allow_redirects=True) as response:
                chain = [str(item.url) for item in response.history]
                chain.append(str(response.url))
                return FetchResult(
                    url=url,
                    final_url=str(response.url),
                    status_code=response.status,
                    headers=dict(response.headers),
                    redirect_chain=chain if len(chain) > 1 else [],
                    fetch_time=time.time() - start_time
                )

    except asyncio.TimeoutError:
        error_msg = "Request timeout"

    except ClientError as e:
        error_msg = f"Client error: {str(e)}"

    return FetchResult(
        url=url,
        error=error_msg,
        fetch_time=time.time() - start_time
    )
