"""
Storage Module - Black Box Interface

Purpose: Abstract all data persistence
Interface: StorageModule.connect(), KeyedPartitionStore put/get/delete/list/atomic
Hidden: Redis specifics, WATCH/MULTI transactions, JSON encoding

Can be replaced with any storage backend that offers per-key linearizable
access without affecting other modules.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from .partition import KeyedPartitionStore, Partition

logger = logging.getLogger(__name__)


class StorageModule:
    """Black box storage abstraction."""

    def __init__(self, connection_url: str, password: Optional[str] = None):
        """
        Initialize storage with connection URL.

        Args:
            connection_url: redis:// URL without credentials
            password: Optional Redis password, passed separately to avoid URL encoding issues
        """
        self.url = connection_url
        self.password = password
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            self._client = redis.from_url(
                self.url,
                password=self.password,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info(f"Storage connected to {self.url}")
        return self._client

    async def ping(self) -> bool:
        """Check that the backend is reachable."""
        if not self._client:
            return False
        try:
            return bool(await self._client.ping())
        except redis.RedisError as e:
            logger.warning(f"Storage ping failed: {e}")
            return False

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = ["StorageModule", "KeyedPartitionStore", "Partition"]
