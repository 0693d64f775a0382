"""
Fetch worker: one concurrent unit draining the shared frontier.
"""

import logging
from typing import Optional

from .cancellation import CancellationToken
from .fetcher import PageFetcher, FetchResult
from .hooks import CrawlHooks
from .normalizer import normalize_url, is_same_origin
from .parser import LinkExtractor
from .results import CrawlStats, RedirectRecord
from .url_frontier import URLFrontier, FrontierEntry
from ..utils.config import CrawlerConfig
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


class FetchWorker:
    """
    Claims frontier entries and processes them one at a time:
    claim, fetch, snapshot the DOM and extract links, hand the page to the
    hooks, enqueue the links, then wait the pacing delay.

    Stops when the frontier is exhausted or cancellation is signalled. An
    in-flight fetch is never interrupted; it completes or times out.
    """

    def __init__(self, worker_id: str, config: CrawlerConfig, frontier: URLFrontier,
                 fetcher: PageFetcher, extractor: LinkExtractor, stats: CrawlStats,
                 token: CancellationToken, hooks: Optional[CrawlHooks] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        self.worker_id = worker_id
        self.config = config
        self.frontier = frontier
        self.fetcher = fetcher
        self.extractor = extractor
        self.stats = stats
        self.token = token
        self.hooks = hooks or CrawlHooks()
        self.monitor = monitor

        self.base_origin = fetcher.base_origin
        self.logger = get_crawler_logger(__name__, worker_id=worker_id)
        self.page_log_level = logging.DEBUG if config.quiet else logging.INFO
        self.processed = 0

    async def run(self) -> int:
        """Worker loop. Returns the number of entries processed."""
        self.logger.debug("Worker started")
        if self.monitor:
            self.monitor.worker_started()

        try:
            while not self.token.is_cancelled:
                entry = await self.frontier.claim_next()

                if entry is None:
                    if await self.frontier.is_exhausted():
                        break
                    # Other workers are mid-fetch and may still add links
                    await self.token.sleep(self.config.idle_poll_ms / 1000)
                    continue

                try:
                    await self.process(entry)
                except Exception as e:
                    # Keep the entry out of limbo so other workers can finish
                    self.logger.error(f"Unexpected error on {entry.url}: {e}", exc_info=True)
                    await self.handle_failure(entry, f"Unexpected error: {e}")
                self.processed += 1

                if self.monitor:
                    self.monitor.update_frontier_size(len(self.frontier))

                await self.token.sleep(self.config.delay_ms / 1000)
        finally:
            if self.monitor:
                self.monitor.worker_stopped()

        self.logger.debug(f"Worker finished after {self.processed} entries")
        return self.processed

    async def process(self, entry: FrontierEntry):
        """Fetch one claimed entry and drive it to a terminal state or a retry."""
        self.logger.log_url_event(
            self.page_log_level, entry.url,
            f"Visiting: {entry.url} (depth: {entry.depth}"
            f"{f', attempt {entry.retry_count + 1}' if entry.retry_count else ''})"
        )

        result = await self.fetcher.fetch(entry.url)
        if self.monitor:
            self.monitor.record_fetch(result.fetch_time)

        if result.error:
            await self.handle_failure(entry, result.error)
            return

        if not is_same_origin(result.final_url, self.base_origin):
            await self.handle_external_redirect(entry, result)
            return

        try:
            html = await self.fetcher.content()
            extracted = self.extractor.extract(html, result.final_url)
        except Exception as e:
            await self.handle_failure(entry, f"Link extraction failed: {e}")
            return

        # Past this point the attempt cannot fail, so the hook sees each URL once
        await self.run_page_hook(entry, result)

        await self.frontier.mark_visited(entry.url)

        new_links = 0
        for link in extracted.links:
            if await self.frontier.enqueue(normalize_url(link), entry.depth + 1,
                                           parent_url=entry.url):
                new_links += 1

        self.stats.record_page(len(extracted.links), new_links, extracted.truncated)
        if self.monitor:
            self.monitor.record_page(len(extracted.links), new_links, extracted.truncated)

        if extracted.truncated:
            self.logger.warning(
                f"Truncated links on {entry.url}: kept {len(extracted.links)} "
                f"of {extracted.total_found}"
            )

        self.logger.log(
            self.page_log_level,
            f"Found {len(extracted.links)} links on {entry.url}, {new_links} new "
            f"(queue: {len(self.frontier)}, visited: {len(self.frontier.visited)})"
        )

    async def run_page_hook(self, entry: FrontierEntry, result: FetchResult):
        """Invoke the page-visit hook. Hook errors never fail the URL."""
        try:
            await self.hooks.on_page_visit(self.fetcher.page, entry.url, entry.depth,
                                           result.response)
        except Exception as e:
            self.logger.error(f"Page hook failed on {entry.url}: {e}", exc_info=True)
            self.stats.record_hook_error(entry.url, str(e))

    async def handle_external_redirect(self, entry: FrontierEntry, result: FetchResult):
        """The URL was reached but its navigation left the origin; nothing is crawled."""
        await self.frontier.mark_visited(entry.url)

        record = RedirectRecord(
            from_url=entry.url,
            to_url=result.final_url,
            chain=tuple(result.redirect_chain or [entry.url, result.final_url]),
            reason="external_origin"
        )
        if self.stats.record_redirect(record) and self.monitor:
            self.monitor.record_redirect()

        self.logger.log(self.page_log_level,
                        f"Redirected off-origin: {entry.url} -> {result.final_url}")

    async def handle_failure(self, entry: FrontierEntry, error: str):
        """Retry with the same depth, or fail terminally once retries run out."""
        if entry.retry_count < self.config.max_retries:
            await self.frontier.requeue(entry)
            self.stats.record_retry()
            if self.monitor:
                self.monitor.record_failure(terminal=False)
            self.logger.warning(
                f"Retrying {entry.url} ({entry.retry_count + 1}/{self.config.max_retries}): {error}"
            )
            return

        await self.frontier.mark_failed(entry.url)
        self.stats.record_failure(entry.url, error, attempts=entry.retry_count + 1)
        if self.monitor:
            self.monitor.record_failure(terminal=True)
        self.logger.error(
            f"Error visiting {entry.url}: {error} - giving up after {entry.retry_count + 1} attempts"
        )
