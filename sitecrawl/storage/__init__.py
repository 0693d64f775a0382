"""
Storage layer for crawl reports and checkpoints.
"""

from .report_store import ReportStore, ReportStorageError
from .checkpoint import CheckpointStore, CheckpointError

__all__ = ['ReportStore', 'ReportStorageError', 'CheckpointStore', 'CheckpointError']
