"""
Monitoring and metrics collection for the site crawler.
"""

import time
import logging
from typing import Dict, Optional, Any

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, start_http_server


class CrawlerMonitor:
    """
    Prometheus metrics for one crawl.

    Each monitor owns its registry so several crawls (or tests) in one
    process do not collide on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()
        self.start_time = time.time()

        self.pages_scanned = Counter(
            'sitecrawl_pages_scanned_total',
            'Same-origin documents fetched and processed',
            registry=self.registry
        )
        self.links_found = Counter(
            'sitecrawl_links_found_total',
            'Links kept by link extraction',
            registry=self.registry
        )
        self.new_links = Counter(
            'sitecrawl_new_links_total',
            'Links added to the frontier',
            registry=self.registry
        )
        self.links_truncated = Counter(
            'sitecrawl_links_truncated_total',
            'Pages whose links exceeded the per-page cap',
            registry=self.registry
        )
        self.redirects_external = Counter(
            'sitecrawl_redirects_external_total',
            'Navigations that ended on another origin',
            registry=self.registry
        )
        self.fetch_failures = Counter(
            'sitecrawl_fetch_failures_total',
            'Failed fetch attempts',
            ['outcome'],
            registry=self.registry
        )
        self.fetch_duration = Histogram(
            'sitecrawl_fetch_duration_seconds',
            'Time spent navigating to a page',
            registry=self.registry
        )
        self.frontier_size = Gauge(
            'sitecrawl_frontier_size',
            'Entries waiting in the frontier',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'sitecrawl_active_workers',
            'Workers currently running',
            registry=self.registry
        )

    def start_server(self, port: int):
        """Start Prometheus metrics HTTP server."""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")

    def record_fetch(self, duration: float):
        self.fetch_duration.observe(duration)

    def record_page(self, links_found: int, new_links: int, truncated: bool):
        self.pages_scanned.inc()
        self.links_found.inc(links_found)
        self.new_links.inc(new_links)
        if truncated:
            self.links_truncated.inc()

    def record_redirect(self):
        self.redirects_external.inc()

    def record_failure(self, terminal: bool):
        self.fetch_failures.labels(outcome='terminal' if terminal else 'retry').inc()

    def update_frontier_size(self, size: int):
        self.frontier_size.set(size)

    def worker_started(self):
        self.active_workers.inc()

    def worker_stopped(self):
        self.active_workers.dec()

    def value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of a sample, 0.0 if it was never recorded."""
        return self.registry.get_sample_value(name, labels or {}) or 0.0

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the main counters."""
        runtime = time.time() - self.start_time
        pages = self.value('sitecrawl_pages_scanned_total')
        return {
            'runtime_seconds': runtime,
            'pages_scanned': pages,
            'links_found': self.value('sitecrawl_links_found_total'),
            'redirects_external': self.value('sitecrawl_redirects_external_total'),
            'pages_per_minute': pages / (runtime / 60) if runtime > 0 else 0,
        }
