"""
Per-key linearizable storage over Redis.

Each logical key owns one partition: a Redis hash named ``<namespace>:<key>``
whose fields are record ids and whose values are JSON documents.

Single reads and writes are single Redis commands. Read-check-write
sequences go through ``atomic()``, which runs them as an optimistic
WATCH/MULTI/EXEC transaction on the partition's hash and retries when
another writer, in this process or any other, touched the hash first.
Operations on different keys never wait on each other.
"""

import asyncio
import json
import logging
import weakref
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import redis.asyncio as redis
from redis.exceptions import WatchError

from ...exceptions import InternalError, InvalidInput, StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 25

# Marks a record id deleted inside a pending transaction
_DELETED = object()


def _check_name(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidInput(f"{what} must be a non-empty string")
    return value


def _encode(value: Dict[str, Any]) -> str:
    if not isinstance(value, dict):
        raise InvalidInput("value must be a dict")
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"value is not JSON serializable: {e}") from e


def _decode(raw: str, where: str) -> Dict[str, Any]:
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error(f"Corrupt record at {where}: {e}")
        raise InternalError(f"Corrupt record at {where}: {e}") from e
    if not isinstance(value, dict):
        logger.error(f"Corrupt record at {where}: not an object")
        raise InternalError(f"Corrupt record at {where}: not an object")
    return value


class Partition:
    """
    Transactional view of one partition, handed to ``atomic()`` operations.

    Reads go to Redis under WATCH. Writes are queued and applied together
    by EXEC when the operation returns; later reads in the same operation
    see them.
    """

    def __init__(self, store: "KeyedPartitionStore", key: str, pipe):
        self._pipe = pipe
        self._name = store._redis_key(key)
        self._pending: Dict[str, Any] = {}
        self.key = key

    async def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        _check_name(record_id, "id")
        if record_id in self._pending:
            pending = self._pending[record_id]
            return None if pending is _DELETED else json.loads(pending)
        raw = await self._pipe.hget(self._name, record_id)
        return None if raw is None else _decode(raw, f"{self._name}/{record_id}")

    async def list(self) -> List[Dict[str, Any]]:
        fields = await self._pipe.hgetall(self._name)
        merged = {f: _decode(v, f"{self._name}/{f}") for f, v in fields.items()}
        for record_id, pending in self._pending.items():
            if pending is _DELETED:
                merged.pop(record_id, None)
            else:
                merged[record_id] = json.loads(pending)
        return list(merged.values())

    def put(self, record_id: str, value: Dict[str, Any]) -> None:
        self._pending[_check_name(record_id, "id")] = _encode(value)

    def delete(self, record_id: str) -> None:
        self._pending[_check_name(record_id, "id")] = _DELETED

    def _queue_writes(self) -> None:
        for record_id, pending in self._pending.items():
            if pending is _DELETED:
                self._pipe.hdel(self._name, record_id)
            else:
                self._pipe.hset(self._name, record_id, pending)


class KeyedPartitionStore:
    """
    Generic per-key linearizable store.

    A weak-valued table of per-key ``asyncio.Lock`` objects serializes
    ``atomic()`` calls within this process so they do not retry against
    each other; correctness across processes comes from WATCH alone.
    ``atomic()`` is not reentrant for the same key.
    """

    def __init__(self, redis_client, namespace: str):
        """
        Initialize partitioned store.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            namespace: Prefix separating this store's partitions from others
        """
        self.redis = redis_client
        self.namespace = _check_name(namespace, "namespace")
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _redis_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def atomic(self, key: str, operation: Callable[[Partition], Awaitable[T]]) -> T:
        """
        Run a read-check-write operation as one atomic step on a partition.

        Args:
            key: Partition key
            operation: Coroutine function taking a ``Partition``. It may run
                more than once, so it must not have side effects beyond the
                partition writes it queues.

        Returns:
            Whatever the committed run of ``operation`` returned

        Raises:
            StorageUnavailable: Redis fault, or the partition stayed
                contended for MAX_ATTEMPTS attempts
            Anything ``operation`` raises; its queued writes are discarded
        """
        _check_name(key, "key")
        name = self._redis_key(key)

        async with self._lock_for(key):
            for attempt in range(1, MAX_ATTEMPTS + 1):
                try:
                    async with self.redis.pipeline(transaction=True) as pipe:
                        await pipe.watch(name)
                        partition = Partition(self, key, pipe)
                        result = await operation(partition)
                        pipe.multi()
                        partition._queue_writes()
                        await pipe.execute()
                        return result
                except WatchError:
                    logger.debug(f"Concurrent write to {name}, retrying (attempt {attempt})")
                except redis.RedisError as e:
                    logger.error(f"Storage transaction failed for {name}: {e}")
                    raise StorageUnavailable(str(e)) from e

        logger.error(f"Gave up on {name} after {MAX_ATTEMPTS} contended attempts")
        raise StorageUnavailable(f"Partition {name} is contended")

    async def put(
        self, key: str, record_id: str, value: Dict[str, Any], ttl: Optional[int] = None
    ) -> None:
        """
        Store a record.

        Args:
            ttl: Optional lifetime in seconds for the whole partition
        """
        name = self._redis_key(_check_name(key, "key"))
        _check_name(record_id, "id")
        encoded = _encode(value)

        try:
            if ttl is None:
                await self.redis.hset(name, record_id, encoded)
            else:
                async with self.redis.pipeline(transaction=True) as pipe:
                    pipe.hset(name, record_id, encoded)
                    pipe.expire(name, ttl)
                    await pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Storage put failed for {name}/{record_id}: {e}")
            raise StorageUnavailable(str(e)) from e

    async def get(self, key: str, record_id: str) -> Optional[Dict[str, Any]]:
        name = self._redis_key(_check_name(key, "key"))
        _check_name(record_id, "id")
        try:
            raw = await self.redis.hget(name, record_id)
        except redis.RedisError as e:
            logger.error(f"Storage get failed for {name}/{record_id}: {e}")
            raise StorageUnavailable(str(e)) from e

        return None if raw is None else _decode(raw, f"{name}/{record_id}")

    async def delete(self, key: str, record_id: str) -> None:
        name = self._redis_key(_check_name(key, "key"))
        _check_name(record_id, "id")
        try:
            await self.redis.hdel(name, record_id)
        except redis.RedisError as e:
            logger.error(f"Storage delete failed for {name}/{record_id}: {e}")
            raise StorageUnavailable(str(e)) from e

    async def list(self, key: str) -> List[Dict[str, Any]]:
        name = self._redis_key(_check_name(key, "key"))
        try:
            values = await self.redis.hvals(name)
        except redis.RedisError as e:
            logger.error(f"Storage list failed for {name}: {e}")
            raise StorageUnavailable(str(e)) from e

        return [_decode(v, name) for v in values]
