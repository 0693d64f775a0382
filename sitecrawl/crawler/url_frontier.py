"""
URL Frontier shared by all fetch workers.
Implements atomic claims, page/depth budgets and retry re-queueing.
"""

import asyncio
import logging
import time
from typing import Deque, Dict, List, Optional, Set, Any
from dataclasses import dataclass, field, replace
from collections import deque


@dataclass(frozen=True)
class FrontierEntry:
    """A URL waiting for a fetch attempt."""
    url: str
    depth: int
    retry_count: int = 0
    parent_url: Optional[str] = None
    discovered_time: float = field(default_factory=time.time)

    def next_attempt(self) -> 'FrontierEntry':
        """Entry for the retry of this one; claimed entries are never mutated."""
        return replace(self, retry_count=self.retry_count + 1)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'depth': self.depth,
            'retry_count': self.retry_count,
            'parent_url': self.parent_url,
            'discovered_time': self.discovered_time
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'FrontierEntry':
        """Create FrontierEntry from dictionary."""
        return cls(
            url=data['url'],
            depth=data['depth'],
            retry_count=data.get('retry_count', 0),
            parent_url=data.get('parent_url'),
            discovered_time=data.get('discovered_time', time.time())
        )


class URLFrontier:
    """
    Ordered work list of FrontierEntry plus visited/failed/pending sets.

    All reads and writes go through one asyncio.Lock, so no worker ever
    observes a half-applied claim or transition. URLs are expected to be
    normalized already.
    """

    def __init__(self, max_pages: int, max_depth: int):
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.logger = logging.getLogger(__name__)

        self._queue: Deque[FrontierEntry] = deque()
        self._lock = asyncio.Lock()

        self.visited: Set[str] = set()
        self.failed: Set[str] = set()
        self.pending: Set[str] = set()
        # Claimed, fetch in progress, not yet terminal
        self.in_flight: Set[str] = set()

        self.depth_skipped = 0

    def _is_known(self, url: str) -> bool:
        return (url in self.visited or url in self.failed
                or url in self.pending or url in self.in_flight)

    def _budget_reached(self) -> bool:
        return len(self.visited) >= self.max_pages

    async def enqueue(self, url: str, depth: int, retry_count: int = 0,
                      parent_url: Optional[str] = None) -> bool:
        """
        Append a URL at the tail.
        Returns True if it was added, False if already known.
        """
        async with self._lock:
            if self._is_known(url):
                return False

            self._queue.append(FrontierEntry(
                url=url,
                depth=depth,
                retry_count=retry_count,
                parent_url=parent_url
            ))
            self.pending.add(url)
            self.logger.debug(f"Enqueued {url} (depth {depth})")
            return True

    async def claim_next(self) -> Optional[FrontierEntry]:
        """
        Claim the head entry.

        Returns None when the queue is empty or when visited plus in-flight
        URLs already fill the page budget. Entries beyond the max depth are
        discarded here.
        """
        async with self._lock:
            while self._queue:
                if len(self.visited) + len(self.in_flight) >= self.max_pages:
                    return None

                entry = self._queue.popleft()
                self.pending.discard(entry.url)

                if entry.depth > self.max_depth:
                    self.depth_skipped += 1
                    self.logger.debug(
                        f"Skipping {entry.url} - max depth ({self.max_depth}) reached"
                    )
                    continue

                self.in_flight.add(entry.url)
                return entry

            return None

    async def mark_visited(self, url: str):
        """Record a terminal success (or a URL resolved as external)."""
        async with self._lock:
            self.in_flight.discard(url)
            self.failed.discard(url)
            self.visited.add(url)

    async def mark_failed(self, url: str):
        """Record a terminal failure."""
        async with self._lock:
            self.in_flight.discard(url)
            if url not in self.visited:
                self.failed.add(url)

    async def requeue(self, entry: FrontierEntry) -> Optional[FrontierEntry]:
        """
        Re-queue a claimed entry for another attempt at the same depth.
        Returns the new entry, or None if the URL already reached a terminal state.
        """
        retry = entry.next_attempt()
        async with self._lock:
            self.in_flight.discard(entry.url)
            if entry.url in self.visited or entry.url in self.failed:
                return None
            self._queue.append(retry)
            self.pending.add(retry.url)
        self.logger.debug(f"Re-queued {retry.url} (attempt {retry.retry_count + 1})")
        return retry

    async def is_exhausted(self) -> bool:
        """True when no further claim can ever succeed."""
        async with self._lock:
            if self._budget_reached():
                return True
            return not self._queue and not self.in_flight

    def abandoned(self) -> List[str]:
        """
        URLs still unclaimed in the queue, in queue order.
        Entries already beyond the max depth are left out since they could
        never be fetched.
        """
        return [entry.url for entry in self._queue if entry.depth <= self.max_depth]

    def __len__(self) -> int:
        return len(self._queue)

    def export_state(self) -> Dict[str, Any]:
        """Snapshot for checkpointing. Call only once workers have stopped."""
        return {
            'visited': sorted(self.visited),
            'failed': sorted(self.failed),
            'queue': [entry.to_dict() for entry in self._queue],
        }

    def restore(self, state: Dict[str, Any]) -> int:
        """
        Load a snapshot produced by export_state().
        Returns the number of queued entries restored.
        """
        self.visited = set(state.get('visited', []))
        self.failed = set(state.get('failed', [])) - self.visited
        self._queue.clear()
        self.pending.clear()
        self.in_flight.clear()

        for data in state.get('queue', []):
            entry = FrontierEntry.from_dict(data)
            if self._is_known(entry.url):
                continue
            self._queue.append(entry)
            self.pending.add(entry.url)

        self.logger.info(
            f"Restored frontier: {len(self.visited)} visited, "
            f"{len(self.failed)} failed, {len(self._queue)} queued"
        )
        return len(self._queue)

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': len(self._queue),
            'in_flight': len(self.in_flight),
            'total_visited': len(self.visited),
            'total_failed': len(self.failed),
            'depth_skipped': self.depth_skipped
        }
