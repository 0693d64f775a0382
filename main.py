#!/usr/bin/env python3
"""
Main entry point for the site crawler.
"""

import asyncio
import argparse
import logging
import os
import sys
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from sitecrawl import __version__
from sitecrawl.audit import CspValidationHooks, CspPolicyBuilder
from sitecrawl.crawler import (
    CrawlerScheduler, CrawlDeclinedError, ForcedShutdownError,
    CrawlHooks, CrawlResult, get_origin, validate_seed_url,
)
from sitecrawl.crawler.fetcher import probe_url
from sitecrawl.crawler.hooks import LoggingHooks
from sitecrawl.storage import ReportStore, ReportStorageError, CheckpointStore
from sitecrawl.utils.config import Config, ConfigError, load_config
from sitecrawl.utils.logger import setup_logging, log_system_info
from sitecrawl.utils.monitoring import CrawlerMonitor


# action -> (label shown before the crawl, report file prefix)
ACTIONS = {
    'crawl': ('ANALYZE', 'csp-crawl'),
    'validate': ('VALIDATE Content Security Policy', 'csp-violations'),
    'create': ('CREATE Content Security Policy', 'csp-policy'),
}

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FORCED = 130


def build_overrides(args: argparse.Namespace) -> Dict[str, Dict[str, Any]]:
    """Map command-line flags onto config sections. Unset flags stay None."""
    return {
        'crawler': {
            'base_url': args.base_url,
            'max_pages': args.max_pages,
            'max_links_per_page': args.max_links_per_page,
            'max_depth': args.max_depth,
            'concurrency': args.concurrency,
            'max_retries': args.max_retries,
            'delay_ms': args.delay_ms,
            'navigation_timeout_ms': args.timeout_ms,
            'headless': args.headless,
            'quiet': True if args.quiet else None,
            'skip_confirmation': True if args.yes else None,
            'user_agent': args.user_agent,
        },
        'reports': {
            'output_file': args.output_file,
            'directory': args.reports_dir,
        },
        'logging': {
            'level': args.log_level,
        },
        'redis': {
            'url': args.redis_url,
        },
    }


class CrawlerApp:
    """Main application class for the site crawler."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def setup_logging(self, config: Config, json_logs: bool = False):
        """Setup logging configuration."""
        setup_logging(
            {
                'level': config.logging.level,
                'file': config.logging.file,
                'format': config.logging.format,
            },
            enable_json=json_logs or config.logging.json,
            quiet=config.crawler.quiet
        )
        log_system_info()

    def build_hooks(self, action: str, config: Config) -> CrawlHooks:
        if action == 'validate':
            return CspValidationHooks()
        if action == 'create':
            origin = get_origin(validate_seed_url(config.crawler.base_url))
            return CspPolicyBuilder(origin)
        return LoggingHooks()

    def build_report(self, action: str, result: CrawlResult, hooks: CrawlHooks) -> Dict[str, Any]:
        """Assemble the JSON report for an action."""
        if action == 'validate':
            return {
                'timestamp': result.timestamp,
                'partial': result.partial,
                'pagesScanned': list(result.visited),
                **hooks.report(),
                'crawlStats': result.stats.to_dict(),
            }

        if action == 'create':
            return {
                'timestamp': result.timestamp,
                'partial': result.partial,
                'pagesScanned': len(result.visited),
                'pagesRedirectedExternal': [record.to_dict() for record in result.redirects],
                **hooks.report(),
            }

        return result.to_dict()

    async def run(self, args: argparse.Namespace) -> int:
        """Run the site crawler."""
        if args.action == 'clear-reports':
            reports_dir = args.reports_dir or os.environ.get('REPORTS_DIR') or 'reports'
            deleted = ReportStore(reports_dir).clear()
            print(f"Deleted {deleted} report(s)")
            return EXIT_OK

        try:
            config = load_config(args.config, build_overrides(args))
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

        self.setup_logging(config, args.json_logs)

        if args.dry_run:
            return await self._dry_run(config)

        label, prefix = ACTIONS[args.action]

        monitor = CrawlerMonitor()
        if config.monitoring.metrics_enabled:
            try:
                monitor.start_server(config.monitoring.prometheus_port)
            except OSError as e:
                self.logger.error(f"Failed to start Prometheus server: {e}")

        checkpoint: Optional[CheckpointStore] = None
        if config.redis.url:
            checkpoint = CheckpointStore.from_url(config.redis.url, config.redis.key_prefix)
        elif args.resume:
            self.logger.warning("--resume requires a Redis URL (REDIS_URL or --redis-url); starting fresh")

        try:
            hooks = self.build_hooks(args.action, config)
            scheduler = CrawlerScheduler(
                config.crawler,
                hooks=hooks,
                monitor=monitor,
                checkpoint=checkpoint,
                report_interval=config.monitoring.report_interval
            )
            result = await scheduler.crawl(action=label, resume=args.resume)

        except ConfigError as e:
            self.logger.error(f"Configuration error: {e}")
            return EXIT_ERROR

        except CrawlDeclinedError:
            print("Crawl cancelled by user.")
            return EXIT_OK

        except ForcedShutdownError as e:
            self.logger.error(f"{e} - no report saved")
            return EXIT_FORCED

        finally:
            if checkpoint is not None:
                await checkpoint.close()

        self.logger.debug(f"Metrics summary: {monitor.get_summary()}")

        payload = self.build_report(args.action, result, hooks)
        try:
            ReportStore(config.reports.directory).save(payload, prefix, config.reports.output_file)
        except ReportStorageError as e:
            self.logger.error(str(e))
            return EXIT_ERROR

        if args.action == 'create':
            self.logger.info(f"Generated CSP Header: {payload['header']}")
        elif args.action == 'validate':
            self.logger.info(f"CSP violations found: {payload['totalViolations']}")
            self.logger.info(f"Pages without CSP header: {len(payload['pagesWithoutCsp'])}")

        return EXIT_OK

    async def _dry_run(self, config: Config) -> int:
        """Check configuration and seed reachability without launching a browser."""
        self.logger.info("DRY RUN MODE: No actual crawling will be performed")

        try:
            seed = validate_seed_url(config.crawler.base_url)
        except ConfigError as e:
            self.logger.error(f"Invalid base URL: {e}")
            return EXIT_ERROR

        result = await probe_url(
            seed,
            timeout=config.crawler.navigation_timeout_ms / 1000,
            user_agent=config.crawler.user_agent
        )
        if result.error:
            self.logger.error(f"Seed fetch failed: {result.error}")
            return EXIT_ERROR

        self.logger.info(f"Seed fetch successful: {result.status_code} {result.final_url}")
        if get_origin(result.final_url) != get_origin(seed):
            self.logger.warning(f"Seed redirects off-origin to {result.final_url}")

        self.logger.info("Dry run completed")
        return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bounded same-origin site crawler with CSP audits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py crawl --base-url https://example.com
  python main.py validate --base-url https://example.com --max-pages 200 --yes
  python main.py create --config config.yaml --headless
  python main.py crawl --dry-run
  python main.py clear-reports
        """
    )

    parser.add_argument('action', nargs='?', default='crawl',
                        choices=[*ACTIONS, 'clear-reports'],
                        help='What to do (default: crawl)')
    parser.add_argument('--config', help='Path to a YAML configuration file')
    parser.add_argument('--base-url', '--baseUrl', dest='base_url', help='Seed URL')
    parser.add_argument('--max-pages', '--maxPages', dest='max_pages',
                        help='Maximum number of pages to visit')
    parser.add_argument('--max-links-per-page', '--maxLinksPerPage', dest='max_links_per_page',
                        help='Maximum links kept per page')
    parser.add_argument('--max-depth', '--maxDepth', dest='max_depth', help='Maximum crawl depth')
    parser.add_argument('--concurrency', help='Number of concurrent workers')
    parser.add_argument('--max-retries', '--maxRetries', dest='max_retries',
                        help='Retries per URL after the first attempt')
    parser.add_argument('--delay-ms', dest='delay_ms', help='Pause per worker between pages')
    parser.add_argument('--timeout-ms', dest='timeout_ms', help='Navigation timeout')
    parser.add_argument('--headless', action=argparse.BooleanOptionalAction, default=None,
                        help='Run the browser headless')
    parser.add_argument('--user-agent', dest='user_agent', help='Browser user agent')
    parser.add_argument('--yes', '-y', action='store_true', help='Skip the confirmation prompt')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only log warnings and errors')
    parser.add_argument('--output-file', '--outputFile', dest='output_file',
                        help='Report path (default: timestamped file in the reports directory)')
    parser.add_argument('--reports-dir', dest='reports_dir', help='Reports directory')
    parser.add_argument('--log-level', dest='log_level', help='Log level')
    parser.add_argument('--json-logs', action='store_true', help='Emit JSON log lines')
    parser.add_argument('--redis-url', dest='redis_url', help='Redis URL for checkpoints')
    parser.add_argument('--resume', action='store_true',
                        help='Resume from the checkpoint of an interrupted crawl')
    parser.add_argument('--dry-run', action='store_true',
                        help='Validate configuration and probe the seed URL only')
    parser.add_argument('--version', action='version', version=f'sitecrawl {__version__}')
    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return EXIT_FORCED


if __name__ == '__main__':
    sys.exit(main())
