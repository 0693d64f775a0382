"""Tests for a single fetch worker."""

from unittest.mock import AsyncMock

import pytest

from sitecrawl.crawler.cancellation import CancellationToken
from sitecrawl.crawler.fetcher import PageFetcher
from sitecrawl.crawler.hooks import CrawlHooks
from sitecrawl.crawler.parser import LinkExtractor
from sitecrawl.crawler.results import CrawlStats
from sitecrawl.crawler.url_frontier import URLFrontier, FrontierEntry
from sitecrawl.crawler.worker import FetchWorker
from sitecrawl.utils.monitoring import CrawlerMonitor

from conftest import FakeContext, anchors


ORIGIN = "https://x.test"


class VisitRecorder(CrawlHooks):
    def __init__(self, fail=False):
        self.fail = fail
        self.visits = []

    async def on_page_visit(self, page, url, depth, response):
        self.visits.append((url, depth, page.url))
        if self.fail:
            raise RuntimeError("audit failed")


@pytest.fixture
def build_worker(site, crawler_config):
    async def factory(hooks=None, monitor=None, **config_overrides):
        config = crawler_config(**config_overrides)
        frontier = URLFrontier(config.max_pages, config.max_depth)
        fetcher = PageFetcher(FakeContext(site), ORIGIN, hooks=hooks)
        await fetcher.open()
        worker = FetchWorker(
            "worker-0",
            config,
            frontier,
            fetcher,
            LinkExtractor(ORIGIN, config.max_links_per_page),
            CrawlStats(),
            CancellationToken(),
            hooks=hooks,
            monitor=monitor
        )
        return worker
    return factory


async def claim(worker, url, depth=0):
    await worker.frontier.enqueue(url, depth)
    return await worker.frontier.claim_next()


class TestProcess:
    """Tests for processing one claimed entry."""

    @pytest.mark.asyncio
    async def test_page_visited_and_links_enqueued(self, site, build_worker):
        site.add("https://x.test/", html=anchors("/a/", "/b?utm_source=x", "https://other.test/c"))
        hooks = VisitRecorder()
        worker = await build_worker(hooks=hooks)

        entry = await claim(worker, "https://x.test/")
        await worker.process(entry)

        assert worker.frontier.visited == {"https://x.test/"}
        assert worker.frontier.abandoned() == ["https://x.test/a", "https://x.test/b"]
        assert hooks.visits == [("https://x.test/", 0, "https://x.test/")]
        assert worker.stats.pages_scanned == 1
        assert worker.stats.links_found == 2
        assert worker.stats.new_links_found == 2

        child = await worker.frontier.claim_next()
        assert child.depth == 1
        assert child.parent_url == "https://x.test/"

    @pytest.mark.asyncio
    async def test_known_links_not_counted_as_new(self, site, build_worker):
        site.add("https://x.test/", html=anchors("/", "/a"))
        worker = await build_worker()

        await worker.process(await claim(worker, "https://x.test/"))

        assert worker.stats.links_found == 2
        assert worker.stats.new_links_found == 1

    @pytest.mark.asyncio
    async def test_hook_error_does_not_fail_url(self, site, build_worker):
        site.add("https://x.test/", html=anchors("/a"))
        worker = await build_worker(hooks=VisitRecorder(fail=True))

        await worker.process(await claim(worker, "https://x.test/"))

        assert "https://x.test/" in worker.frontier.visited
        assert worker.stats.hook_errors[0].url == "https://x.test/"
        assert worker.stats.hook_errors[0].error == "audit failed"
        assert len(worker.frontier) == 1

    @pytest.mark.asyncio
    async def test_external_redirect_recorded_without_extraction(self, site, build_worker):
        site.add("https://x.test/old", redirect_to="https://other.test/new",
                 html=anchors("/should-not-be-seen"))
        hooks = VisitRecorder()
        worker = await build_worker(hooks=hooks)

        await worker.process(await claim(worker, "https://x.test/old"))

        assert worker.frontier.visited == {"https://x.test/old"}
        assert len(worker.frontier) == 0
        assert hooks.visits == []
        record = worker.stats.redirects["https://x.test/old"]
        assert record.to_url == "https://other.test/new"
        assert record.chain == ("https://x.test/old", "https://other.test/new")
        assert worker.stats.redirects_external == 1

    @pytest.mark.asyncio
    async def test_truncation_counted(self, site, build_worker):
        site.add("https://x.test/", html=anchors(*[f"/p{i}" for i in range(4)]))
        worker = await build_worker(max_links_per_page=2)

        await worker.process(await claim(worker, "https://x.test/"))

        assert worker.stats.links_truncated == 1
        assert len(worker.frontier) == 2

    @pytest.mark.asyncio
    async def test_extraction_failure_is_retried(self, site, build_worker):
        site.add("https://x.test/", html=anchors("/a"))
        worker = await build_worker()
        worker.fetcher.content = AsyncMock(side_effect=RuntimeError("page detached"))

        await worker.process(await claim(worker, "https://x.test/"))

        assert "https://x.test/" not in worker.frontier.visited
        retry = await worker.frontier.claim_next()
        assert retry.retry_count == 1
        assert worker.stats.retries == 1

    @pytest.mark.asyncio
    async def test_hook_skipped_for_failed_attempts(self, site, build_worker):
        site.add("https://x.test/", html=anchors("/a"))
        hooks = VisitRecorder()
        worker = await build_worker(hooks=hooks, max_retries=2)
        worker.fetcher.content = AsyncMock(side_effect=RuntimeError("page detached"))

        entry = await claim(worker, "https://x.test/")
        while entry is not None:
            await worker.process(entry)
            entry = await worker.frontier.claim_next()

        assert worker.frontier.failed == {"https://x.test/"}
        assert worker.fetcher.content.await_count == 3
        assert hooks.visits == []

    @pytest.mark.asyncio
    async def test_hook_runs_once_after_retry_succeeds(self, site, build_worker):
        site.add("https://x.test/", html=anchors("/a"))
        hooks = VisitRecorder()
        worker = await build_worker(hooks=hooks)
        worker.fetcher.content = AsyncMock(side_effect=[RuntimeError("page detached"), anchors("/a")])

        await worker.process(await claim(worker, "https://x.test/"))
        await worker.process(await worker.frontier.claim_next())

        assert worker.frontier.visited == {"https://x.test/"}
        assert hooks.visits == [("https://x.test/", 0, "https://x.test/")]


class TestFailureHandling:
    """Tests for retry bookkeeping."""

    @pytest.mark.asyncio
    async def test_retry_then_terminal_failure(self, build_worker):
        monitor = CrawlerMonitor()
        worker = await build_worker(monitor=monitor, max_retries=1)

        entry = await claim(worker, "https://x.test/a", depth=2)
        await worker.handle_failure(entry, "boom")
        retry = await worker.frontier.claim_next()
        assert retry == FrontierEntry(
            "https://x.test/a", 2, retry_count=1, discovered_time=entry.discovered_time
        )

        await worker.handle_failure(retry, "boom again")

        assert worker.frontier.failed == {"https://x.test/a"}
        assert worker.stats.retries == 1
        assert worker.stats.errors[0].attempts == 2
        assert worker.stats.errors[0].error == "boom again"
        assert monitor.value('sitecrawl_fetch_failures_total', {'outcome': 'retry'}) == 1
        assert monitor.value('sitecrawl_fetch_failures_total', {'outcome': 'terminal'}) == 1

    @pytest.mark.asyncio
    async def test_no_retries_fails_immediately(self, build_worker):
        worker = await build_worker(max_retries=0)

        entry = await claim(worker, "https://x.test/a")
        await worker.handle_failure(entry, "boom")

        assert worker.frontier.failed == {"https://x.test/a"}
        assert worker.stats.retries == 0


class TestRun:
    """Tests for the worker loop."""

    @pytest.mark.asyncio
    async def test_drains_frontier(self, site, build_worker):
        site.add("https://x.test/", html=anchors("/a"))
        site.add("https://x.test/a", html=anchors("/"))
        monitor = CrawlerMonitor()
        worker = await build_worker(monitor=monitor)
        await worker.frontier.enqueue("https://x.test/", 0)

        processed = await worker.run()

        assert processed == 2
        assert worker.frontier.visited == {"https://x.test/", "https://x.test/a"}
        assert monitor.value('sitecrawl_active_workers') == 0
        assert monitor.value('sitecrawl_pages_scanned_total') == 2

    @pytest.mark.asyncio
    async def test_stops_when_cancelled(self, site, build_worker):
        site.add("https://x.test/", html=anchors("/a"))
        worker = await build_worker()
        await worker.frontier.enqueue("https://x.test/", 0)
        worker.token.cancel()

        assert await worker.run() == 0
        assert worker.frontier.abandoned() == ["https://x.test/"]

    @pytest.mark.asyncio
    async def test_unexpected_error_goes_through_retry(self, site, build_worker):
        worker = await build_worker(max_retries=0)
        worker.fetcher.fetch = AsyncMock(side_effect=RuntimeError("driver crashed"))
        await worker.frontier.enqueue("https://x.test/", 0)

        await worker.run()

        assert worker.frontier.failed == {"https://x.test/"}
        assert not worker.frontier.in_flight
        assert worker.stats.errors[0].error == "Unexpected error: driver crashed"
