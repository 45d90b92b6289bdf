"""
Tunnel registry.

Holds one record per client binding it to its currently advertised tunnel
URL. All records live in a single global partition. The token check in
``store`` runs in the same Redis transaction as the write, so a writer
holding a stale token can never overwrite a rotation made by another
request or another process.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ...exceptions import AuthenticationFailed, NotFound
from ..storage import KeyedPartitionStore

logger = logging.getLogger("tunnelgate.tunnel")

GLOBAL_PARTITION = "global"


@dataclass
class TunnelRecord:
    """Current tunnel endpoint of one client."""

    client_id: str
    endpoint_url: str
    token: str
    created_at: int  # epoch milliseconds
    updated_at: int

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation."""
        return {
            "clientId": self.client_id,
            "tunnelUrl": self.endpoint_url,
            "token": self.token,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TunnelRecord":
        return cls(
            client_id=data["clientId"],
            endpoint_url=data["tunnelUrl"],
            token=data.get("token", ""),
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
        )

    def token_matches(self, presented: Optional[str]) -> bool:
        if not presented or not self.token:
            return False
        return secrets.compare_digest(presented.encode("utf-8"), self.token.encode("utf-8"))


class TunnelRegistry:
    def __init__(self, store: KeyedPartitionStore, clock: Callable[[], float] = time.time):
        """
        Initialize tunnel registry.

        Args:
            store: Partitioned store; records use the global partition keyed by client id
            clock: Returns the current time in seconds
        """
        self._store = store
        self.clock = clock

    async def store(
        self,
        identity: str,
        endpoint_url: str,
        token: str,
        *,
        rotate: bool = False,
        must_exist: bool = False,
    ) -> TunnelRecord:
        """
        Create or update a client's tunnel record.

        Args:
            identity: Client identity
            endpoint_url: Tunnel URL to advertise
            token: Token presented by the caller, stored on the record
            rotate: Replace the stored token without checking it. Only for
                callers that already proved key possession (``/verify``).
            must_exist: Refuse to create a new record

        Returns:
            The stored record

        Raises:
            AuthenticationFailed: Record missing while must_exist, or the
                presented token does not match the stored one. The stored
                record is left unchanged.
        """
        async def check_and_write(partition):
            data = await partition.get(identity)
            existing = TunnelRecord.from_dict(data) if data else None

            if existing is None and must_exist:
                raise AuthenticationFailed(
                    "tunnel_not_registered", f"No existing tunnel for client: {identity}"
                )

            if existing is not None and not rotate and not existing.token_matches(token):
                raise AuthenticationFailed(
                    "tunnel_token_mismatch", f"Invalid tunnel token for client: {identity}"
                )

            now = int(self.clock() * 1000)
            record = TunnelRecord(
                client_id=identity,
                endpoint_url=endpoint_url,
                token=token,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            partition.put(identity, record.to_dict())
            return record, existing is not None

        record, updated = await self._store.atomic(GLOBAL_PARTITION, check_and_write)
        logger.info(
            f"Tunnel URL {'updated' if updated else 'registered'} for client: {identity}"
        )
        return record

    async def fetch(self, identity: str) -> TunnelRecord:
        """
        Get a client's tunnel record.

        Raises:
            NotFound: No record for this client
        """
        data = await self._store.get(GLOBAL_PARTITION, identity)
        if not data:
            raise NotFound(f"Tunnel not found for client: {identity}", "Tunnel not found")
        return TunnelRecord.from_dict(data)

    async def list(self) -> List[TunnelRecord]:
        """All records, ordered by client id."""
        records = [TunnelRecord.from_dict(d) for d in await self._store.list(GLOBAL_PARTITION)]
        records.sort(key=lambda r: r.client_id)
        return records

    async def delete(self, identity: str) -> None:
        """
        Remove a client's tunnel record.

        Raises:
            NotFound: No record for this client
        """
        async def check_and_delete(partition):
            if await partition.get(identity) is None:
                raise NotFound(f"Tunnel not found for client: {identity}", "Tunnel not found")
            partition.delete(identity)

        await self._store.atomic(GLOBAL_PARTITION, check_and_delete)

        logger.info(f"Tunnel deleted for client: {identity}")
