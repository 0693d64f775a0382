"""
Crawl coordinator: owns the worker pool, interrupt handling and the result.
"""

import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, List, Optional

from playwright.async_api import async_playwright

from .cancellation import CancellationToken
from .fetcher import PageFetcher
from .hooks import CrawlHooks
from .normalizer import validate_seed_url, get_origin
from .parser import LinkExtractor
from .results import CrawlResult, CrawlStats
from .url_frontier import URLFrontier
from .worker import FetchWorker
from ..storage.checkpoint import CheckpointStore, CheckpointError
from ..utils.config import CrawlerConfig
from ..utils.monitoring import CrawlerMonitor


class CrawlDeclinedError(Exception):
    """The operator declined the pre-flight confirmation."""
    pass


class ForcedShutdownError(Exception):
    """A second interrupt tore the crawl down; no result exists."""
    pass


@asynccontextmanager
async def launch_browser_context(config: CrawlerConfig) -> AsyncIterator[Any]:
    """Launch Chromium and yield one browser context shared by all workers."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=config.headless)
        try:
            context_options = {}
            if config.user_agent:
                context_options['user_agent'] = config.user_agent
            context = await browser.new_context(**context_options)
            try:
                yield context
            finally:
                await context.close()
        finally:
            await browser.close()


def describe_crawl(config: CrawlerConfig, action: str) -> List[str]:
    """Lines shown before a crawl starts."""
    return [
        "Crawl Configuration:",
        f"   Action: {action}",
        f"   URL: {config.base_url}",
        f"   Max Pages: {config.max_pages}",
        f"   Max Links Per Page: {config.max_links_per_page}",
        f"   Max Depth: {config.max_depth}",
        f"   Concurrency: {config.concurrency}",
        f"   Max Retries: {config.max_retries}",
        f"   Delay: {config.delay_ms} ms",
        f"   Headless: {config.headless}",
    ]


async def confirm_crawl(config: CrawlerConfig, action: str,
                        prompt: Callable[[str], str] = input) -> bool:
    """Show the crawl plan and ask the operator to proceed."""
    print()
    for line in describe_crawl(config, action):
        print(line)

    loop = asyncio.get_running_loop()
    answer = await loop.run_in_executor(None, prompt, "\nAre you ready to proceed? (y/n): ")
    return answer.strip().lower() in ('y', 'yes')


class CrawlerScheduler:
    """
    Runs one crawl from a seed URL to a CrawlResult.

    Workers share one frontier, one stats object and one browser context;
    each worker gets its own page. The first interrupt stops new claims and
    yields a partial result once in-flight fetches settle; a second one
    cancels the workers outright.
    """

    def __init__(self, config: CrawlerConfig, hooks: Optional[CrawlHooks] = None,
                 monitor: Optional[CrawlerMonitor] = None,
                 checkpoint: Optional[CheckpointStore] = None,
                 browser_launcher: Callable[[CrawlerConfig], Any] = launch_browser_context,
                 prompt: Callable[[str], str] = input,
                 report_interval: float = 30.0,
                 install_signal_handlers: bool = True):
        self.config = config
        self.hooks = hooks or CrawlHooks()
        self.monitor = monitor
        self.checkpoint = checkpoint
        self.browser_launcher = browser_launcher
        self.prompt = prompt
        self.report_interval = report_interval
        self.install_signal_handlers = install_signal_handlers
        self.logger = logging.getLogger(__name__)

        # Crawl state, created per run
        self.base_origin: Optional[str] = None
        self.frontier: Optional[URLFrontier] = None
        self.stats: Optional[CrawlStats] = None
        self.token: Optional[CancellationToken] = None
        self.workers: List[asyncio.Task] = []
        self._forced = False
        self._loop_signals: List[int] = []
        self._previous_handlers = {}

    async def crawl(self, action: str = "ANALYZE", resume: bool = False) -> CrawlResult:
        """
        Run the crawl to completion (or cancellation).

        Raises:
            InvalidSeedURLError: before anything starts, if the seed is unusable
            CrawlDeclinedError: if the pre-flight confirmation is declined
            ForcedShutdownError: after a second interrupt
        """
        seed = validate_seed_url(self.config.base_url)
        self.base_origin = get_origin(seed)

        if not self.config.skip_confirmation:
            if not await confirm_crawl(self.config, action, self.prompt):
                raise CrawlDeclinedError("Crawl cancelled by user")

        self.frontier = URLFrontier(self.config.max_pages, self.config.max_depth)
        self.stats = CrawlStats()
        self.token = CancellationToken()
        self._forced = False

        await self._seed_frontier(seed, resume)

        self.logger.info(f"Starting crawler at {seed} with {self.config.concurrency} workers")

        self._install_signal_handlers()
        try:
            async with self.browser_launcher(self.config) as context:
                await self._run_workers(context)
        finally:
            self._remove_signal_handlers()

        if self._forced:
            raise ForcedShutdownError("Crawl terminated by a second interrupt")

        result = self._assemble_result()
        await self._update_checkpoint(result)
        self._log_final_stats(result)
        return result

    def request_shutdown(self):
        """Interrupt handler: cooperative stop first, forced teardown on repeat."""
        if self.token is None:
            return

        if not self.token.is_cancelled:
            self.logger.warning(
                "Interrupt received - finishing in-flight pages, no new pages will be "
                "claimed. Interrupt again to force quit."
            )
            self.token.cancel()
            return

        if not self._forced:
            self.logger.error("Second interrupt received - forcing shutdown")
            self._forced = True
            for task in self.workers:
                if not task.done():
                    task.cancel()
            return

        # Teardown is stuck; hand the signals back so the next one kills the process
        self.logger.error("Interrupt received during forced shutdown - restoring default signal handling")
        self._remove_signal_handlers()

    async def _seed_frontier(self, seed: str, resume: bool):
        if resume and self.checkpoint is not None:
            try:
                state = await self.checkpoint.load(self.base_origin)
            except CheckpointError as e:
                self.logger.error(f"Could not load checkpoint for {self.base_origin}: {e}")
                state = None

            if state:
                self.frontier.restore(state)
            else:
                self.logger.info(f"No checkpoint for {self.base_origin}, starting fresh")

        # No-op when a restored checkpoint already knows the seed
        await self.frontier.enqueue(seed, 0)

    async def _run_workers(self, context: Any):
        fetchers = [
            PageFetcher(
                context,
                self.base_origin,
                hooks=self.hooks,
                navigation_timeout_ms=self.config.navigation_timeout_ms,
                wait_until=self.config.wait_until
            )
            for _ in range(self.config.concurrency)
        ]

        try:
            for fetcher in fetchers:
                await fetcher.open()

            workers = [
                FetchWorker(
                    f"worker-{i}",
                    self.config,
                    self.frontier,
                    fetcher,
                    LinkExtractor(self.base_origin, self.config.max_links_per_page),
                    self.stats,
                    self.token,
                    hooks=self.hooks,
                    monitor=self.monitor
                )
                for i, fetcher in enumerate(fetchers)
            ]

            self.workers = [
                asyncio.create_task(worker.run(), name=worker.worker_id)
                for worker in workers
            ]
            reporter = asyncio.create_task(self._stats_reporter())

            outcomes = await asyncio.gather(*self.workers, return_exceptions=True)

            reporter.cancel()
            try:
                await reporter
            except asyncio.CancelledError:
                pass

            for worker, outcome in zip(workers, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    self.logger.debug(f"{worker.worker_id} cancelled")
                elif isinstance(outcome, BaseException):
                    self.logger.error(f"{worker.worker_id} crashed: {outcome}", exc_info=outcome)

        finally:
            self.workers = []
            for fetcher in fetchers:
                await fetcher.close()

    async def _stats_reporter(self):
        """Periodically log crawl progress."""
        level = logging.DEBUG if self.config.quiet else logging.INFO
        while True:
            await asyncio.sleep(self.report_interval)
            frontier_stats = self.frontier.get_stats()
            self.logger.log(
                level,
                f"Crawl Progress: "
                f"Visited={frontier_stats['total_visited']}, "
                f"Failed={frontier_stats['total_failed']}, "
                f"Queued={frontier_stats['total_queued']}, "
                f"InFlight={frontier_stats['in_flight']}, "
                f"Retries={self.stats.retries}, "
                f"Rate={self.stats.pages_per_minute:.1f} pages/min"
            )

    def _assemble_result(self) -> CrawlResult:
        self.stats.finish()
        self.stats.depth_skipped = self.frontier.depth_skipped
        return CrawlResult(
            timestamp=datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            partial=self.token.is_cancelled,
            visited=tuple(sorted(self.frontier.visited)),
            failed=tuple(sorted(self.frontier.failed)),
            abandoned=tuple(self.frontier.abandoned()),
            redirects=tuple(self.stats.redirects[url] for url in sorted(self.stats.redirects)),
            stats=self.stats,
            config=self.config.summary()
        )

    async def _update_checkpoint(self, result: CrawlResult):
        """Keep unfinished work for --resume; drop the checkpoint once nothing is left."""
        if self.checkpoint is None:
            return

        try:
            if result.partial or result.abandoned:
                await self.checkpoint.save(self.base_origin, self.frontier.export_state())
            else:
                await self.checkpoint.clear(self.base_origin)
        except CheckpointError as e:
            self.logger.error(f"Could not update checkpoint: {e}")

    def _install_signal_handlers(self):
        if not self.install_signal_handlers:
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
                self._loop_signals.append(sig)
            except NotImplementedError:
                # Event loops without add_signal_handler (Windows)
                self._previous_handlers[sig] = signal.signal(
                    sig, lambda signum, frame: loop.call_soon_threadsafe(self.request_shutdown)
                )

    def _remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in self._loop_signals:
            loop.remove_signal_handler(sig)
        for sig, previous in self._previous_handlers.items():
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._loop_signals = []
        self._previous_handlers = {}

    def _log_final_stats(self, result: CrawlResult):
        self.logger.info("=== CRAWL COMPLETE ===" if not result.partial else "=== CRAWL INTERRUPTED ===")
        self.logger.info(f"Pages scanned: {len(result.visited)}")
        self.logger.info(f"Pages failed: {len(result.failed)}")
        self.logger.info(f"Pages abandoned: {len(result.abandoned)}")
        self.logger.info(f"External redirects: {len(result.redirects)}")
        self.logger.info(f"Total links found: {self.stats.links_found}")
        self.logger.info(f"New links discovered: {self.stats.new_links_found}")
        self.logger.info(f"Pages with truncated links: {self.stats.links_truncated}")
        self.logger.info(f"Errors encountered: {len(self.stats.errors)}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
