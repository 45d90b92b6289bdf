import base64
import logging
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..storage import KeyedPartitionStore

logger = logging.getLogger("tunnelgate.challenge")

# Redis keeps an unclaimed challenge this long past its expiry
EXPIRY_GRACE_SECONDS = 60


class ConsumeResult(str, Enum):
    """Outcome of presenting a challenge for verification."""

    OK = "ok"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    NOT_FOUND = "not_found"


@dataclass
class Challenge:
    """A single-use nonce issued to one client."""

    value: str
    issued_for: str
    expires_at: int  # epoch milliseconds

    def to_dict(self) -> dict:
        return {"challenge": self.value, "expiresAt": self.expires_at}


def generate_challenge() -> str:
    """32 random bytes from the OS CSPRNG, standard base64."""
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class ChallengeLedger:
    def __init__(
        self,
        store: KeyedPartitionStore,
        ttl_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize challenge ledger.

        Args:
            store: Partitioned store; one partition per client identity
            ttl_seconds: Challenge lifetime in seconds (5 minutes)
            clock: Returns the current time in seconds
        """
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def issue(self, identity: str) -> Challenge:
        """
        Issue a fresh challenge for a client.

        Any challenge still outstanding for the same client is overwritten,
        so at most one is ever valid per identity.
        """
        challenge = Challenge(
            value=generate_challenge(),
            issued_for=identity,
            expires_at=self._now_ms() + self.ttl_seconds * 1000,
        )

        await self.store.put(
            identity,
            identity,
            {"challenge": challenge.value, "expiresAt": challenge.expires_at},
            ttl=self.ttl_seconds + EXPIRY_GRACE_SECONDS,
        )

        logger.info(f"Challenge issued for client: {identity}")
        return challenge

    async def consume(self, identity: str, presented: str) -> ConsumeResult:
        """
        Consume the outstanding challenge for a client.

        Args:
            identity: Client identity
            presented: Challenge value sent back by the client

        Returns:
            ConsumeResult

        Logic (one atomic step on the client's partition, even across
        processes sharing the same Redis):
        1. No entry -> NOT_FOUND
        2. Past expiry -> delete, EXPIRED (regardless of the presented value)
        3. Value differs -> MISMATCH, entry kept for a correct retry
        4. Value matches -> delete, OK
        """
        async def check_and_take(partition) -> ConsumeResult:
            stored = await partition.get(identity)
            if stored is None:
                return ConsumeResult.NOT_FOUND

            if self._now_ms() > stored["expiresAt"]:
                partition.delete(identity)
                return ConsumeResult.EXPIRED

            if not secrets.compare_digest(
                presented.encode("utf-8"), stored["challenge"].encode("utf-8")
            ):
                return ConsumeResult.MISMATCH

            partition.delete(identity)
            return ConsumeResult.OK

        return await self.store.atomic(identity, check_and_take)
