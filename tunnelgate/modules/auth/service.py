"""
Authentication Orchestrator following Black Box Design principles.

This module composes the challenge ledger, signature verifier, credential
issuer and tunnel registry into the two-phase protocol:

1. ``issue_challenge`` - a provisioned client asks for a nonce
2. ``verify`` - the client returns the nonce signed with its private key and
   receives credentials

plus the tunnel registry operations gated by those credentials.

Every failure cause is logged and audited with its specific reason but
surfaces to callers only as ``AuthenticationFailed``.
"""

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Dict, List, NoReturn, Optional

import redis.asyncio as redis

from ...exceptions import (
    AuthenticationFailed,
    BadRequest,
    CollaboratorError,
    InternalError,
    NotFound,
    StorageUnavailable,
    TunnelGateError,
)
from ..challenge import Challenge, ChallengeLedger, ConsumeResult
from ..tunnel import TunnelRecord, TunnelRegistry
from .credentials import CredentialIssuer
from .interfaces import RepositoryCollaborator, SecretSource
from .signature import KeyRing, SignatureVerifier

logger = logging.getLogger(__name__)

AUDIT_KEY = "auth:audit"
AUDIT_MAX_EVENTS = 10000


@dataclass
class VerifyOutcome:
    """Credentials and extras returned by a successful verification."""
    token: str
    access_token: str
    secret_data: Dict[str, str]
    repo_list: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": True,
            "token": self.token,
            "accessToken": self.access_token,
            "secretData": self.secret_data,
        }
        if self.repo_list is not None:
            body["repoList"] = self.repo_list
        return body


class AuthenticationOrchestrator:
    """
    Protocol state machine per client:
    NoChallenge -> ChallengeIssued -> (Consumed | Expired)
    """

    def __init__(
        self,
        challenge_ledger: ChallengeLedger,
        tunnel_registry: TunnelRegistry,
        key_ring: KeyRing,
        jwt_secret: str,
        secret_source: SecretSource,
        repositories: Optional[RepositoryCollaborator] = None,
        internal_secret: Optional[str] = None,
        token_ttl: int = 3600,
        redis_client=None,
    ):
        """
        Initialize with injected dependencies.

        Args:
            challenge_ledger: Outstanding challenges per client
            tunnel_registry: Client tunnel records
            key_ring: Imported public keys of provisioned clients
            jwt_secret: Signing secret for compact tokens
            secret_source: Resolves the secret bundle per request
            repositories: Optional webhook worker client
            internal_secret: Shared secret identifying internal callers
            token_ttl: Compact token lifetime in seconds
            redis_client: Optional async Redis client for the audit trail
        """
        self.challenges = challenge_ledger
        self.tunnels = tunnel_registry
        self.key_ring = key_ring
        self.jwt_secret = jwt_secret
        self.secret_source = secret_source
        self.repositories = repositories
        self.internal_secret = internal_secret
        self.token_ttl = token_ttl
        self.redis = redis_client

    def is_internal_caller(self, presented_secret: Optional[str]) -> bool:
        """Constant-time check of the internal shared secret."""
        if not self.internal_secret or not presented_secret:
            return False
        return secrets.compare_digest(
            presented_secret.encode("utf-8"), self.internal_secret.encode("utf-8")
        )

    async def issue_challenge(self, client_id: Optional[str]) -> Challenge:
        """
        Issue a challenge to a provisioned client.

        Raises:
            BadRequest: client_id missing
            AuthenticationFailed: client not provisioned
        """
        if not client_id:
            logger.error("Missing clientId in challenge request")
            raise BadRequest("Missing clientId")

        if client_id not in self.key_ring:
            await self._reject(client_id, "unknown_client")

        challenge = await self.challenges.issue(client_id)
        await self._audit("challenge_issued", {"client_id": client_id})
        return challenge

    async def verify(
        self,
        client_id: Optional[str],
        challenge: Optional[str],
        signature: Optional[str],
        repo_url: Optional[str] = None,
        grpc_endpoint: Optional[str] = None,
        tunnel_url: Optional[str] = None,
        include_repo_list: bool = False,
    ) -> VerifyOutcome:
        """
        Verify a signed challenge and issue credentials.

        Returns:
            VerifyOutcome

        Raises:
            BadRequest: Required field missing
            AuthenticationFailed: Challenge not found/expired/mismatched,
                unknown client, or bad signature

        Logic:
        1. Consume the challenge (single use, even if later checks fail)
        2. Look up the client's key and check the signature
        3. Mint opaque and compact tokens, resolve the secret bundle
        4. Best-effort: repository sync, tunnel registration, repo listing
        """
        if not client_id or not challenge or not signature:
            logger.error("Missing fields in verify request")
            raise BadRequest("Missing clientId, challenge or signature")

        result = await self.challenges.consume(client_id, challenge)
        if result is not ConsumeResult.OK:
            await self._reject(client_id, f"challenge_{result.value}")

        public_key = self.key_ring.get(client_id)
        if public_key is None:
            await self._reject(client_id, "unknown_client")

        if not SignatureVerifier.verify(public_key, challenge, signature):
            await self._reject(client_id, "invalid_signature")

        access_token = CredentialIssuer.opaque_token()
        compact_token = CredentialIssuer.compact_token(
            client_id, self.jwt_secret, ttl_seconds=self.token_ttl
        )
        outcome = VerifyOutcome(
            token=compact_token,
            access_token=access_token,
            secret_data=self.secret_source(),
        )

        if repo_url and grpc_endpoint:
            await self._sync_repository(repo_url, grpc_endpoint)

        if tunnel_url:
            try:
                await self.tunnels.store(client_id, tunnel_url, access_token, rotate=True)
            except TunnelGateError as e:
                logger.error(f"Error storing tunnel URL for client {client_id}: {e.detail}")

        if include_repo_list:
            outcome.repo_list = await self._fetch_repo_list()

        logger.info(f"Authentication successful for client: {client_id}")
        await self._audit("auth_succeeded", {"client_id": client_id})
        return outcome

    async def register_tunnel(
        self, client_id: Optional[str], tunnel_url: Optional[str], token: Optional[str]
    ) -> TunnelRecord:
        """
        Move an already registered client to a new tunnel URL.

        New registrations go through ``verify``; this path only updates.

        Raises:
            BadRequest: Required field missing
            AuthenticationFailed: No record for this client or token mismatch
            InternalError: Storage failure
        """
        if not client_id or not tunnel_url or not token:
            logger.error("Missing fields in tunnel register request")
            raise BadRequest("Missing clientId, tunnelUrl or token")

        try:
            record = await self.tunnels.store(client_id, tunnel_url, token, must_exist=True)
        except AuthenticationFailed as e:
            await self._reject(client_id, e.reason)
        except StorageUnavailable as e:
            logger.error(f"Failed to update tunnel URL for client {client_id}: {e.detail}")
            raise InternalError(e.detail, "Failed to register tunnel") from e

        await self._audit("tunnel_updated", {"client_id": client_id})
        return record

    async def get_tunnel(
        self, client_id: str, internal: bool, bearer_token: Optional[str] = None
    ) -> TunnelRecord:
        """
        Get a client's tunnel record.

        Internal callers may read any record. External callers must present
        the record's current access token; a missing record is reported to
        them as an authentication failure, not as not-found.

        Raises:
            NotFound: Internal caller, no record
            AuthenticationFailed: External caller without the matching token
        """
        if internal:
            return await self.tunnels.fetch(client_id)

        if not bearer_token:
            await self._reject(client_id, "tunnel_read_unauthenticated")

        try:
            record = await self.tunnels.fetch(client_id)
        except NotFound:
            record = None

        if record is None or not record.token_matches(bearer_token):
            await self._reject(client_id, "tunnel_read_token_mismatch")
        return record

    async def list_tunnels(self, internal: bool) -> List[TunnelRecord]:
        """
        List all tunnel records. Internal callers only.

        Raises:
            AuthenticationFailed: External caller
            InternalError: Storage failure
        """
        if not internal:
            await self._reject("*", "tunnel_list_external")

        try:
            return await self.tunnels.list()
        except StorageUnavailable as e:
            logger.error(f"Failed to list tunnels: {e.detail}")
            raise InternalError(e.detail, "Failed to list tunnels") from e

    async def delete_tunnel(self, client_id: str, internal: bool) -> None:
        """
        Remove a client's tunnel record. Internal callers only.

        Raises:
            AuthenticationFailed: External caller
            NotFound: No record
        """
        if not internal:
            await self._reject(client_id, "tunnel_delete_external")

        await self.tunnels.delete(client_id)
        await self._audit("tunnel_deleted", {"client_id": client_id})

    async def _sync_repository(self, repo_url: str, grpc_endpoint: str) -> None:
        if not self.repositories or not self.repositories.is_configured:
            logger.debug("Webhook worker not configured - skipping repo sync")
            return
        try:
            await self.repositories.update_repo(repo_url, grpc_endpoint)
        except CollaboratorError as e:
            logger.error(f"Error calling webhook worker: {e.detail}")

    async def _fetch_repo_list(self) -> Optional[List[str]]:
        if not self.repositories or not self.repositories.is_configured:
            logger.debug("Webhook worker not configured - skipping repo list")
            return None
        try:
            return await self.repositories.list_repos()
        except CollaboratorError as e:
            logger.error(f"Error retrieving repo list: {e.detail}")
            return None

    async def _reject(self, client_id: str, reason: str) -> NoReturn:
        """Log and audit the specific cause, then raise the generic failure."""
        logger.error(f"Authentication failed for client {client_id}: {reason}")
        await self._audit("auth_failed", {"client_id": client_id, "reason": reason})
        raise AuthenticationFailed(reason, f"{reason} for client: {client_id}")

    async def _audit(self, event_type: str, data: dict) -> None:
        """
        Append a security event to the audit trail.

        Audit failures are logged and never fail the request.
        """
        if not self.redis:
            return

        event = {
            "type": event_type,
            "data": data,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            await self.redis.lpush(AUDIT_KEY, json.dumps(event))
            await self.redis.ltrim(AUDIT_KEY, 0, AUDIT_MAX_EVENTS - 1)
        except redis.RedisError as e:
            logger.warning(f"Failed to write audit event {event_type}: {e}")
