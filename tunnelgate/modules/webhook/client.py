"""
Client for the repository webhook worker.

The webhook worker is an external service that keeps repository metadata.
Tunnelgate only calls it on behalf of freshly authenticated clients, and
every call is best-effort: callers catch ``CollaboratorError``.
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx

from ...config.provider import WebhookConfig
from ...exceptions import CollaboratorError

logger = logging.getLogger(__name__)


class WebhookClient:
    def __init__(
        self,
        config: WebhookConfig,
        internal_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize webhook client.

        Args:
            config: Webhook worker location and timeout
            internal_secret: Shared secret identifying us as an internal caller
            transport: Optional httpx transport (tests)
        """
        self.config = config
        self.internal_secret = internal_secret
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def _headers(self) -> Dict[str, str]:
        headers = {"X-Service-Binding": "true"}
        if self.internal_secret:
            headers["X-Internal-Token"] = self.internal_secret
        return headers

    def _client(self) -> httpx.AsyncClient:
        if not self.is_configured:
            raise CollaboratorError("Webhook worker URL not configured")
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    async def update_repo(self, repo_url: str, grpc_endpoint: str) -> None:
        """
        Point a repository at a client's gRPC endpoint.

        Raises:
            CollaboratorError: Worker unreachable or returned an error status
        """
        path = f"/repo/{quote(repo_url, safe='')}"
        try:
            async with self._client() as client:
                response = await client.patch(path, json={"grpcEndpoint": grpc_endpoint})
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Webhook worker request failed: {e}") from e

        if response.is_error:
            raise CollaboratorError(
                f"Failed to update webhook worker for repo {repo_url}: "
                f"{response.status_code} {response.text}"
            )

        logger.info(f"Successfully updated webhook worker for repo: {repo_url}")

    async def list_repos(self) -> List[str]:
        """
        Get all repository URLs known to the worker.

        Raises:
            CollaboratorError: Worker unreachable, error status, or unexpected payload
        """
        try:
            async with self._client() as client:
                response = await client.get("/repos")
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Webhook worker request failed: {e}") from e

        if response.is_error:
            raise CollaboratorError(f"Failed to retrieve repo list: {response.status_code}")

        try:
            payload = response.json()
            if not payload.get("success"):
                raise CollaboratorError("Webhook worker reported failure listing repos")
            repos = [item["repo"] for item in payload.get("data") or []]
        except (ValueError, AttributeError, KeyError, TypeError) as e:
            raise CollaboratorError(f"Unexpected repo list payload: {e}") from e

        logger.info(f"Retrieved {len(repos)} repos from webhook worker")
        return repos
