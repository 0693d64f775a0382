"""
Crawl statistics and the result handed back to callers.
"""

import time
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field, asdict


@dataclass(frozen=True)
class CrawlError:
    """Terminal failure of a single URL."""
    url: str
    error: str
    attempts: int = 1


@dataclass(frozen=True)
class RedirectRecord:
    """Evidence that a same-origin URL's navigation left the origin."""
    from_url: str
    to_url: str
    chain: Tuple[str, ...] = ()
    reason: str = "external_origin"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from': self.from_url,
            'to': self.to_url,
            'chain': list(self.chain),
            'reason': self.reason,
        }


@dataclass
class CrawlStats:
    """
    Monotonic counters shared by all workers.

    Workers run on one event loop and none of the record_* methods awaits,
    so each update is applied atomically with respect to other workers.
    """
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    pages_scanned: int = 0
    links_found: int = 0
    new_links_found: int = 0
    links_truncated: int = 0
    redirects_external: int = 0
    depth_skipped: int = 0
    retries: int = 0
    errors: List[CrawlError] = field(default_factory=list)
    hook_errors: List[CrawlError] = field(default_factory=list)
    redirects: Dict[str, RedirectRecord] = field(default_factory=dict)

    @property
    def elapsed_time(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_scanned / elapsed_minutes if elapsed_minutes > 0 else 0

    def finish(self):
        """Stop the clock; elapsed_time is fixed from here on."""
        if self.end_time is None:
            self.end_time = time.time()

    def record_page(self, links_found: int, new_links: int, truncated: bool):
        self.pages_scanned += 1
        self.links_found += links_found
        self.new_links_found += new_links
        if truncated:
            self.links_truncated += 1

    def record_redirect(self, record: RedirectRecord) -> bool:
        """Store a redirect once per source URL. Returns True if it was new."""
        if record.from_url in self.redirects:
            return False
        self.redirects[record.from_url] = record
        self.redirects_external += 1
        return True

    def record_retry(self):
        self.retries += 1

    def record_failure(self, url: str, error: str, attempts: int):
        self.errors.append(CrawlError(url=url, error=error, attempts=attempts))

    def record_hook_error(self, url: str, error: str):
        self.hook_errors.append(CrawlError(url=url, error=error))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pagesScanned': self.pages_scanned,
            'linksFound': self.links_found,
            'newLinksFound': self.new_links_found,
            'linksTruncated': self.links_truncated,
            'redirectsExternal': self.redirects_external,
            'depthSkipped': self.depth_skipped,
            'retries': self.retries,
            'elapsedSeconds': round(self.elapsed_time, 3),
            'errors': [asdict(error) for error in self.errors],
            'hookErrors': [asdict(error) for error in self.hook_errors],
        }


@dataclass(frozen=True)
class CrawlResult:
    """Summary of a finished (or interrupted) crawl. Never mutated."""
    timestamp: str
    partial: bool
    visited: Tuple[str, ...]
    failed: Tuple[str, ...]
    abandoned: Tuple[str, ...]
    redirects: Tuple[RedirectRecord, ...]
    stats: CrawlStats
    config: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Report layout written by the CLI."""
        return {
            'timestamp': self.timestamp,
            'partial': self.partial,
            'pagesScanned': list(self.visited),
            'pagesFailed': list(self.failed),
            'pagesAbandoned': list(self.abandoned),
            'pagesRedirectedExternal': [record.to_dict() for record in self.redirects],
            'crawlStats': self.stats.to_dict(),
            'config': dict(self.config),
        }
