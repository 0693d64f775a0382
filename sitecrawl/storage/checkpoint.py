"""
Redis-backed checkpoint of frontier state so an interrupted crawl can resume.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError


class CheckpointError(Exception):
    """Custom exception for checkpoint operations."""
    pass


class CheckpointStore:
    """
    Stores visited/failed sets and queued entries per crawl origin.

    Keys, for prefix P and origin O:
        P:O:visited   set of URLs
        P:O:failed    set of URLs
        P:O:queue     list of JSON-encoded frontier entries
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "sitecrawl:checkpoint"):
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "sitecrawl:checkpoint") -> 'CheckpointStore':
        return cls(redis.Redis.from_url(url, decode_responses=False), key_prefix)

    def _keys(self, origin: str) -> Dict[str, str]:
        base = f"{self.key_prefix}:{origin}"
        return {
            'visited': f"{base}:visited",
            'failed': f"{base}:failed",
            'queue': f"{base}:queue",
        }

    @staticmethod
    def _decode(value: Any) -> str:
        return value.decode('utf-8') if isinstance(value, bytes) else value

    async def save(self, origin: str, state: Dict[str, Any]):
        """Replace the checkpoint for an origin with a frontier snapshot."""
        keys = self._keys(origin)
        try:
            await self.redis_client.delete(*keys.values())
            if state.get('visited'):
                await self.redis_client.sadd(keys['visited'], *state['visited'])
            if state.get('failed'):
                await self.redis_client.sadd(keys['failed'], *state['failed'])
            if state.get('queue'):
                await self.redis_client.rpush(
                    keys['queue'],
                    *[json.dumps(entry) for entry in state['queue']]
                )
        except RedisError as e:
            raise CheckpointError(f"Failed to save checkpoint for {origin}: {e}") from e

        self.logger.info(
            f"Saved checkpoint for {origin}: {len(state.get('visited', []))} visited, "
            f"{len(state.get('queue', []))} queued"
        )

    async def load(self, origin: str) -> Optional[Dict[str, Any]]:
        """Return the saved snapshot for an origin, or None if there is none."""
        keys = self._keys(origin)
        try:
            visited = await self.redis_client.smembers(keys['visited'])
            failed = await self.redis_client.smembers(keys['failed'])
            queue = await self.redis_client.lrange(keys['queue'], 0, -1)
        except RedisError as e:
            raise CheckpointError(f"Failed to load checkpoint for {origin}: {e}") from e

        if not visited and not failed and not queue:
            return None

        return {
            'visited': sorted(self._decode(url) for url in visited),
            'failed': sorted(self._decode(url) for url in failed),
            'queue': [json.loads(self._decode(item)) for item in queue],
        }

    async def clear(self, origin: str):
        """Remove the checkpoint for an origin."""
        try:
            await self.redis_client.delete(*self._keys(origin).values())
        except RedisError as e:
            raise CheckpointError(f"Failed to clear checkpoint for {origin}: {e}") from e
        self.logger.debug(f"Cleared checkpoint for {origin}")

    async def close(self):
        await self.redis_client.aclose()
