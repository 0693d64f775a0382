"""
Utility modules for the site crawler.
"""

from .config import Config, CrawlerConfig, ConfigManager, ConfigError, load_config

__all__ = ['Config', 'CrawlerConfig', 'ConfigManager', 'ConfigError', 'load_config']
