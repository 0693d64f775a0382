"""
Configuration management for the site crawler.

Values are layered: built-in defaults, then an optional YAML file, then
environment variables, then command-line overrides.
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Mapping
from dataclasses import dataclass, field, fields


class ConfigError(ValueError):
    """Raised for invalid or missing configuration values."""
    pass


@dataclass(frozen=True)
class CrawlerConfig:
    """Immutable crawl settings consumed by the crawl core."""
    base_url: str
    max_pages: int = 50000
    max_links_per_page: int = 1000
    max_depth: int = 10
    concurrency: int = 5
    max_retries: int = 2
    delay_ms: int = 1000
    navigation_timeout_ms: int = 30000
    wait_until: str = "networkidle"
    idle_poll_ms: int = 250
    headless: bool = False
    quiet: bool = False
    skip_confirmation: bool = False
    user_agent: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        """Settings echoed back in the crawl result."""
        return {
            'baseUrl': self.base_url,
            'maxPages': self.max_pages,
            'maxDepth': self.max_depth,
            'maxLinksPerPage': self.max_links_per_page,
            'concurrency': self.concurrency,
            'maxRetries': self.max_retries,
            'delayMs': self.delay_ms,
        }


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000
    report_interval: float = 30.0


@dataclass
class ReportsConfig:
    """Where crawl reports are written."""
    directory: str = "reports"
    output_file: Optional[str] = None


@dataclass
class RedisConfig:
    """Configuration for the Redis checkpoint store."""
    url: Optional[str] = None
    key_prefix: str = "sitecrawl:checkpoint"


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    reports: ReportsConfig = field(default_factory=ReportsConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)


# Environment variable -> (section, field, CLI flag used in error messages)
ENV_VARIABLES = {
    'BASE_URL': ('crawler', 'base_url', '--base-url'),
    'MAX_PAGES': ('crawler', 'max_pages', '--max-pages'),
    'MAX_LINKS_PER_PAGE': ('crawler', 'max_links_per_page', '--max-links-per-page'),
    'MAX_DEPTH': ('crawler', 'max_depth', '--max-depth'),
    'CONCURRENCY': ('crawler', 'concurrency', '--concurrency'),
    'MAX_RETRIES': ('crawler', 'max_retries', '--max-retries'),
    'DELAY_MS': ('crawler', 'delay_ms', '--delay-ms'),
    'NAVIGATION_TIMEOUT_MS': ('crawler', 'navigation_timeout_ms', '--timeout-ms'),
    'HEADLESS': ('crawler', 'headless', '--headless'),
    'QUIET': ('crawler', 'quiet', '--quiet'),
    'SKIP_CONFIRMATION': ('crawler', 'skip_confirmation', '--yes'),
    'USER_AGENT': ('crawler', 'user_agent', '--user-agent'),
    'OUTPUT_FILE': ('reports', 'output_file', '--output-file'),
    'REPORTS_DIR': ('reports', 'directory', '--reports-dir'),
    'LOG_LEVEL': ('logging', 'level', '--log-level'),
    'REDIS_URL': ('redis', 'url', '--redis-url'),
}

SECTION_TYPES = {
    'crawler': CrawlerConfig,
    'logging': LoggingConfig,
    'monitoring': MonitoringConfig,
    'reports': ReportsConfig,
    'redis': RedisConfig,
}


def _field_type(section: str, name: str):
    for f in fields(SECTION_TYPES[section]):
        if f.name == name:
            return f.type
    raise ConfigError(f"Unknown configuration key: {section}.{name}")


def _coerce(section: str, name: str, raw: Any, label: str) -> Any:
    """Convert a raw YAML/env/CLI value to the declared field type."""
    expected = _field_type(section, name)

    if raw is None:
        return None

    if expected is bool:
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() == 'true'

    if expected is int:
        if isinstance(raw, bool):
            raise ConfigError(f"{label} must be a number")
        try:
            return int(str(raw).strip(), 10)
        except ValueError:
            raise ConfigError(f"{label} must be a number") from None

    if expected is float:
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise ConfigError(f"{label} must be a number") from None

    return str(raw)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None,
                 env: Optional[Mapping[str, str]] = None):
        self.config_path = Path(config_path) if config_path else None
        self.env = os.environ if env is None else env
        self.logger = logging.getLogger(__name__)
        self._config: Optional[Config] = None

    def load_config(self, overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> Config:
        """
        Resolve the effective configuration.

        Args:
            overrides: per-section values from the command line; None entries
                are ignored so unset flags fall through to env and file values

        Raises:
            ConfigError: on unreadable files, non-numeric limits or
                out-of-range values
        """
        sections: Dict[str, Dict[str, Any]] = {name: {} for name in SECTION_TYPES}

        for section, values in self._load_file().items():
            if section not in SECTION_TYPES:
                raise ConfigError(f"Unknown configuration section: {section}")
            for key, value in (values or {}).items():
                sections[section][key] = _coerce(section, key, value, f"{section}.{key}")

        for variable, (section, key, flag) in ENV_VARIABLES.items():
            raw = self.env.get(variable)
            if raw is not None and raw != '':
                sections[section][key] = _coerce(section, key, raw, f"{variable}/{flag}")

        for section, values in (overrides or {}).items():
            for key, value in values.items():
                if value is None:
                    continue
                flag = '--' + key.replace('_', '-')
                env_name = next(
                    (var for var, target in ENV_VARIABLES.items() if target[:2] == (section, key)),
                    key.upper(),
                )
                sections[section][key] = _coerce(section, key, value, f"{env_name}/{flag}")

        if not sections['crawler'].get('base_url'):
            raise ConfigError("BASE_URL environment variable is required (or pass --base-url)")

        self._config = Config(
            crawler=CrawlerConfig(**sections['crawler']),
            logging=LoggingConfig(**sections['logging']),
            monitoring=MonitoringConfig(**sections['monitoring']),
            reports=ReportsConfig(**sections['reports']),
            redis=RedisConfig(**sections['redis']),
        )

        self._validate_config()
        return self._config

    def _load_file(self) -> Dict[str, Any]:
        if self.config_path is None:
            return {}

        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as file:
                data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {self.config_path}")
        return data

    def _validate_config(self):
        """Validate configuration values."""
        crawler = self._config.crawler

        if crawler.max_pages < 1:
            raise ConfigError("max_pages must be at least 1")

        if crawler.max_links_per_page < 1:
            raise ConfigError("max_links_per_page must be at least 1")

        if crawler.max_depth < 0:
            raise ConfigError("max_depth must be non-negative")

        if crawler.concurrency < 1:
            raise ConfigError("concurrency must be at least 1")

        if crawler.max_retries < 0:
            raise ConfigError("max_retries must be non-negative")

        if crawler.delay_ms < 0:
            raise ConfigError("delay_ms must be non-negative")

        if crawler.navigation_timeout_ms < 1:
            raise ConfigError("navigation_timeout_ms must be positive")

        if crawler.wait_until not in ('load', 'domcontentloaded', 'networkidle', 'commit'):
            raise ConfigError(f"Unsupported wait_until value: {crawler.wait_until}")

        self.logger.debug("Configuration validation passed")


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict[str, Dict[str, Any]]] = None,
                env: Optional[Mapping[str, str]] = None) -> Config:
    """Load configuration from file, environment and overrides."""
    return ConfigManager(config_path, env).load_config(overrides)

