"""
Capability interface through which callers observe and steer a crawl.
"""

import logging
from enum import Enum
from typing import Any, Optional


class RequestDecision(Enum):
    """Outcome of a request-intercept hook."""
    HANDLED = "handled"
    PASS_THROUGH = "pass_through"


class CrawlHooks:
    """
    Base class for crawl hooks. Every method is a no-op by default, so
    implementations override only what they need.
    """

    async def on_page_visit(self, page: Any, url: str, depth: int,
                            response: Optional[Any]) -> None:
        """
        Called once per successfully fetched same-origin document, before
        its links are extracted.

        Args:
            page: the worker's Playwright page, already on the document
            url: the normalized URL that was claimed
            depth: crawl depth of the URL
            response: the Playwright navigation response, if any
        """

    async def on_request_intercept(self, route: Any) -> RequestDecision:
        """
        Called for every outgoing request of a worker page.

        Return HANDLED only after the hook has itself continued, aborted or
        fulfilled the route; anything else lets the crawler apply its own
        policy to the request.
        """
        return RequestDecision.PASS_THROUGH

    def on_console_message(self, message: Any, page_url: str) -> None:
        """Called for every console message of a worker page."""


class LoggingHooks(CrawlHooks):
    """Hooks that only forward console output to the log."""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level
        self.logger = logging.getLogger(__name__)

    def on_console_message(self, message: Any, page_url: str) -> None:
        self.logger.log(self.level, f"[console:{message.type}] {page_url}: {message.text}")
