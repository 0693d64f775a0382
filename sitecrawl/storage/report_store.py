"""
File storage for crawl reports.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from datetime import datetime, timezone


class ReportStorageError(Exception):
    """Custom exception for report storage."""
    pass


class ReportStore:
    """Writes JSON reports into a reports directory."""

    KEEP_FILES = frozenset(('.gitkeep',))

    def __init__(self, reports_dir: str = "reports"):
        self.reports_dir = Path(reports_dir)
        self.logger = logging.getLogger(__name__)

    def timestamped_path(self, prefix: str, now: Optional[datetime] = None) -> Path:
        """<reports_dir>/<prefix>-YYYY-MM-DDTHH-MM-SS.json"""
        now = now or datetime.now(timezone.utc)
        timestamp = now.strftime('%Y-%m-%dT%H-%M-%S')
        return self.reports_dir / f"{prefix}-{timestamp}.json"

    def save(self, payload: Dict[str, Any], prefix: str = "crawl",
             output_file: Optional[str] = None) -> Path:
        """
        Write a report and return its path.

        Args:
            payload: JSON-serialisable report
            prefix: file name prefix used when no output file is given
            output_file: explicit destination, overrides the timestamped name
        """
        file_path = Path(output_file) if output_file else self.timestamped_path(prefix)

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
        except (OSError, TypeError, ValueError) as e:
            raise ReportStorageError(f"Failed to write report {file_path}: {e}") from e

        self.logger.info(f"Results saved to: {file_path}")
        return file_path

    def clear(self) -> int:
        """Delete every report file. Returns the number deleted."""
        if not self.reports_dir.exists():
            self.logger.info("No reports directory found.")
            return 0

        deleted = 0
        for path in self.reports_dir.iterdir():
            if path.name in self.KEEP_FILES or not path.is_file():
                continue
            path.unlink()
            deleted += 1

        self.logger.info(f"Deleted {deleted} report(s)")
        return deleted
