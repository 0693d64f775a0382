"""Tests for metrics and logging utilities."""

import asyncio
import json
import logging

import pytest

from sitecrawl.crawler.cancellation import CancellationToken
from sitecrawl.utils.logger import CrawlerLogAdapter, JSONFormatter, PerformanceFilter, get_crawler_logger
from sitecrawl.utils.monitoring import CrawlerMonitor


class TestCrawlerMonitor:
    """Tests for Prometheus counters."""

    def test_monitors_do_not_share_registries(self):
        first = CrawlerMonitor()
        second = CrawlerMonitor()

        first.record_page(3, 2, truncated=True)

        assert first.value('sitecrawl_pages_scanned_total') == 1
        assert second.value('sitecrawl_pages_scanned_total') == 0

    def test_page_counters(self):
        monitor = CrawlerMonitor()

        monitor.record_page(5, 4, truncated=False)
        monitor.record_page(2, 0, truncated=True)
        monitor.record_redirect()

        assert monitor.value('sitecrawl_links_found_total') == 7
        assert monitor.value('sitecrawl_new_links_total') == 4
        assert monitor.value('sitecrawl_links_truncated_total') == 1
        assert monitor.value('sitecrawl_redirects_external_total') == 1

    def test_gauges_and_histogram(self):
        monitor = CrawlerMonitor()

        monitor.worker_started()
        monitor.worker_started()
        monitor.worker_stopped()
        monitor.update_frontier_size(12)
        monitor.record_fetch(0.25)

        assert monitor.value('sitecrawl_active_workers') == 1
        assert monitor.value('sitecrawl_frontier_size') == 12
        assert monitor.value('sitecrawl_fetch_duration_seconds_count') == 1

    def test_summary(self):
        monitor = CrawlerMonitor()
        monitor.record_page(1, 1, truncated=False)

        summary = monitor.get_summary()

        assert summary['pages_scanned'] == 1
        assert summary['links_found'] == 1
        assert summary['runtime_seconds'] >= 0


class TestLogging:
    """Tests for structured log output."""

    def test_adapter_prefixes_worker_id(self, caplog):
        logger = get_crawler_logger("sitecrawl.test", worker_id="worker-2")

        with caplog.at_level(logging.INFO, logger="sitecrawl.test"):
            logger.log_url_event(logging.INFO, "https://x.test/a", "Visiting page")

        record = caplog.records[-1]
        assert record.getMessage() == "[worker-2] Visiting page"
        assert record.url == "https://x.test/a"
        assert record.event_type == "url_event"

    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("sitecrawl", logging.WARNING, __file__, 10, "slow page", None, None)
        record.worker_id = "worker-0"
        record.url = "https://x.test/"

        entry = json.loads(JSONFormatter().format(record))

        assert entry['level'] == "WARNING"
        assert entry['message'] == "slow page"
        assert entry['worker_id'] == "worker-0"
        assert entry['url'] == "https://x.test/"
        assert 'event_type' not in entry

    def test_adapter_without_context(self):
        adapter = CrawlerLogAdapter(logging.getLogger("sitecrawl.plain"))
        msg, kwargs = adapter.process("hello", {})
        assert msg == "hello"
        assert kwargs['extra'] == {}

    def test_performance_filter(self):
        noisy = logging.LogRecord("aiohttp.access", logging.INFO, __file__, 1, "GET /", None, None)
        ours = logging.LogRecord("sitecrawl.worker", logging.INFO, __file__, 1, "ok", None, None)

        assert not PerformanceFilter().filter(noisy)
        assert PerformanceFilter().filter(ours)


class TestCancellationToken:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)

        started = loop.time()
        assert await token.sleep(30)
        assert loop.time() - started < 5

    @pytest.mark.asyncio
    async def test_sleep_times_out(self):
        token = CancellationToken()
        assert not await token.sleep(0.01)
        assert not await token.sleep(0)
        assert not token.is_cancelled
