"""
Shared pytest fixtures for Tunnelgate tests.

This module provides common fixtures including:
- FakeRedis: In-memory async stand-in for the subset of Redis commands used
- RSA key pairs for signing challenges
- A static configuration provider and a controllable clock
- A fully wired orchestrator over FakeRedis
"""

import asyncio
import os
import sys
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from redis.exceptions import WatchError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tunnelgate.config.provider import APIConfig, AuthConfig, WebhookConfig
from tunnelgate.modules.auth import AuthFactory

JWT_SECRET = "test-jwt-secret-that-is-at-least-32-bytes-long"
INTERNAL_SECRET = "internal-shared-secret"


# =============================================================================
# Redis Double
# =============================================================================


class FakeRedis:
    """
    In-memory async Redis double.

    Every command yields to the event loop before touching state so that
    concurrent callers genuinely interleave, the way they would against a
    real server. Each key carries a write version so that WATCH/EXEC
    transactions from separate clients (standing in for separate worker
    processes) detect each other's writes. Set ``fail = True`` to make every
    command raise ``redis.ConnectionError``.
    """

    def __init__(self):
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.lists: Dict[str, List[str]] = {}
        self.ttls: Dict[str, int] = {}
        self.versions: Dict[str, int] = {}
        self.fail = False

    async def _io(self):
        await asyncio.sleep(0)
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def _touch(self, name: str) -> None:
        self.versions[name] = self.versions.get(name, 0) + 1

    # Synchronous primitives; a transaction applies them without yielding

    def _hset(self, name: str, key: str, value: str) -> int:
        is_new = key not in self.hashes.setdefault(name, {})
        self.hashes[name][key] = value
        self._touch(name)
        return int(is_new)

    def _hdel(self, name: str, *keys: str) -> int:
        bucket = self.hashes.get(name, {})
        removed = sum(1 for k in keys if bucket.pop(k, None) is not None)
        if name in self.hashes and not bucket:
            del self.hashes[name]
            self.ttls.pop(name, None)
        if removed:
            self._touch(name)
        return removed

    def _expire(self, name: str, seconds: int) -> bool:
        if name not in self.hashes and name not in self.lists:
            return False
        self.ttls[name] = seconds
        self._touch(name)
        return True

    def _hget(self, name: str, key: str) -> Optional[str]:
        return self.hashes.get(name, {}).get(key)

    def _hvals(self, name: str) -> List[str]:
        return list(self.hashes.get(name, {}).values())

    def _hgetall(self, name: str) -> Dict[str, str]:
        return dict(self.hashes.get(name, {}))

    async def hset(self, name: str, key: str, value: str) -> int:
        await self._io()
        return self._hset(name, key, value)

    async def hget(self, name: str, key: str) -> Optional[str]:
        await self._io()
        return self._hget(name, key)

    async def hdel(self, name: str, *keys: str) -> int:
        await self._io()
        return self._hdel(name, *keys)

    async def hvals(self, name: str) -> List[str]:
        await self._io()
        return self._hvals(name)

    async def hgetall(self, name: str) -> Dict[str, str]:
        await self._io()
        return self._hgetall(name)

    async def expire(self, name: str, seconds: int) -> bool:
        await self._io()
        return self._expire(name, seconds)

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    async def lpush(self, name: str, *values: str) -> int:
        await self._io()
        bucket = self.lists.setdefault(name, [])
        for value in values:
            bucket.insert(0, value)
        self._touch(name)
        return len(bucket)

    async def ltrim(self, name: str, start: int, end: int) -> bool:
        await self._io()
        bucket = self.lists.get(name, [])
        self.lists[name] = bucket[start:end + 1] if end >= 0 else bucket[start:]
        self._touch(name)
        return True

    async def lrange(self, name: str, start: int, end: int) -> List[str]:
        await self._io()
        bucket = self.lists.get(name, [])
        return bucket[start:end + 1] if end >= 0 else bucket[start:]

    async def ping(self) -> bool:
        await self._io()
        return True

    async def aclose(self) -> None:
        pass


class FakePipeline:
    """
    MULTI/EXEC pipeline over FakeRedis with redis-py's calling convention.

    After ``watch()`` and before ``multi()`` commands run immediately and
    must be awaited; otherwise they are queued and applied by ``execute()``,
    which raises ``WatchError`` if a watched key was written in between.
    """

    def __init__(self, fake: FakeRedis):
        self._fake = fake
        self._watched: Dict[str, int] = {}
        self._queue: List[tuple] = []
        self._explicit_multi = False

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.reset()

    async def reset(self) -> None:
        self._watched = {}
        self._queue = []
        self._explicit_multi = False

    async def watch(self, *names: str) -> bool:
        await self._fake._io()
        for name in names:
            self._watched[name] = self._fake.versions.get(name, 0)
        return True

    def multi(self) -> None:
        self._explicit_multi = True

    def _command(self, command: str, *args):
        if self._watched and not self._explicit_multi:
            return getattr(self._fake, command)(*args)
        self._queue.append((command, args))
        return self

    def hget(self, *args):
        return self._command("hget", *args)

    def hvals(self, *args):
        return self._command("hvals", *args)

    def hgetall(self, *args):
        return self._command("hgetall", *args)

    def hset(self, *args):
        return self._command("hset", *args)

    def hdel(self, *args):
        return self._command("hdel", *args)

    def expire(self, *args):
        return self._command("expire", *args)

    async def execute(self) -> List:
        await self._fake._io()
        try:
            for name, version in self._watched.items():
                if self._fake.versions.get(name, 0) != version:
                    raise WatchError(f"Watched variable changed: {name}")
            return [getattr(self._fake, f"_{command}")(*args) for command, args in self._queue]
        finally:
            await self.reset()


class FakeClock:
    """Controllable time source in seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticConfigProvider:
    """ConfigProvider with fixed values."""

    def __init__(
        self,
        authorized_clients: Dict[str, str],
        internal_secret: Optional[str] = INTERNAL_SECRET,
        secret_bundle: Optional[Dict[str, str]] = None,
        webhook_url: Optional[str] = None,
    ):
        self.authorized_clients = authorized_clients
        self.internal_secret = internal_secret
        self.secret_bundle = secret_bundle if secret_bundle is not None else {"GITHUB_TOKEN": "ghp_test"}
        self.webhook_url = webhook_url

    def get_auth_config(self) -> AuthConfig:
        return AuthConfig(
            authorized_clients=self.authorized_clients,
            jwt_secret=JWT_SECRET,
            internal_secret=self.internal_secret,
        )

    def get_api_config(self) -> APIConfig:
        return APIConfig(port=8080, host="127.0.0.1", debug=False)

    def get_webhook_config(self) -> WebhookConfig:
        return WebhookConfig(base_url=self.webhook_url)

    def get_secret_bundle(self) -> Dict[str, str]:
        return dict(self.secret_bundle)


# =============================================================================
# Key Material
# =============================================================================


def public_pem(private_key: rsa.RSAPrivateKey) -> str:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


@pytest.fixture(scope="session")
def client_key() -> rsa.RSAPrivateKey:
    """Private key of the provisioned test client 'c1'."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_key() -> rsa.RSAPrivateKey:
    """A private key that no provisioned client owns."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repositories():
    """Mock webhook worker client."""
    repos = AsyncMock()
    repos.is_configured = True
    repos.update_repo = AsyncMock(return_value=None)
    repos.list_repos = AsyncMock(return_value=["https://github.com/acme/app"])
    return repos


@pytest.fixture
def config_provider(client_key) -> StaticConfigProvider:
    return StaticConfigProvider({"c1": public_pem(client_key)})


@pytest.fixture
def orchestrator(config_provider, fake_redis, repositories):
    """Orchestrator built by the factory over FakeRedis."""
    return AuthFactory.build(config_provider, fake_redis, repositories=repositories)
