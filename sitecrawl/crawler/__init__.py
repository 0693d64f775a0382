"""
Site crawler core components.
"""

from .normalizer import normalize_url, get_origin, validate_seed_url, InvalidSeedURLError
from .url_frontier import URLFrontier, FrontierEntry
from .hooks import CrawlHooks, RequestDecision
from .results import CrawlResult, CrawlStats, RedirectRecord, CrawlError
from .scheduler import CrawlerScheduler, CrawlDeclinedError, ForcedShutdownError

__all__ = [
    'normalize_url', 'get_origin', 'validate_seed_url', 'InvalidSeedURLError',
    'URLFrontier', 'FrontierEntry',
    'CrawlHooks', 'RequestDecision',
    'CrawlResult', 'CrawlStats', 'RedirectRecord', 'CrawlError',
    'CrawlerScheduler', 'CrawlDeclinedError', 'ForcedShutdownError'
]
