"""
Authentication Factory following Black Box Design principles.

This factory:
- Constructs the authentication stack based on configuration
- Wires dependencies together
- Returns only the orchestrator facade (hiding implementation)
"""

import logging
from typing import Any, Optional

from ...config.provider import ConfigProvider
from ..challenge import ChallengeLedger
from ..storage import KeyedPartitionStore
from ..tunnel import TunnelRegistry
from ..webhook import WebhookClient
from .service import AuthenticationOrchestrator
from .signature import KeyRing

logger = logging.getLogger(__name__)

CHALLENGE_NAMESPACE = "challenge"
TUNNEL_NAMESPACE = "tunnel"


class AuthFactory:
    """
    Factory for building the authentication stack.

    This is the composition root that:
    - Creates all auth components
    - Wires them together via dependency injection
    - Returns only the public interface
    """

    @staticmethod
    def build(
        config_provider: ConfigProvider,
        redis_client: Any,
        repositories: Optional[Any] = None,
    ) -> AuthenticationOrchestrator:
        """
        Build the complete authentication stack.

        Args:
            config_provider: Configuration provider
            redis_client: Async Redis client backing challenges, tunnels and audit
            repositories: Optional override for the webhook worker client

        Returns:
            AuthenticationOrchestrator facade

        Raises:
            ValueError: If authentication configuration is missing or invalid
        """
        auth_config = config_provider.get_auth_config()

        key_ring = KeyRing(auth_config.authorized_clients)
        if len(key_ring) == 0:
            logger.warning("No usable client public keys configured - every challenge will be refused")

        challenge_ledger = ChallengeLedger(
            KeyedPartitionStore(redis_client, CHALLENGE_NAMESPACE),
            ttl_seconds=auth_config.challenge_ttl,
        )
        tunnel_registry = TunnelRegistry(KeyedPartitionStore(redis_client, TUNNEL_NAMESPACE))

        if repositories is None:
            webhook_config = config_provider.get_webhook_config()
            repositories = WebhookClient(webhook_config, internal_secret=auth_config.internal_secret)
            if webhook_config.is_configured:
                logger.info(f"Webhook worker configured at {webhook_config.base_url}")
            else:
                logger.info("Webhook worker not configured - repository sync disabled")

        if not auth_config.internal_secret:
            logger.warning("INTERNAL_API_SECRET not set - internal-only endpoints will refuse all callers")

        return AuthenticationOrchestrator(
            challenge_ledger=challenge_ledger,
            tunnel_registry=tunnel_registry,
            key_ring=key_ring,
            jwt_secret=auth_config.jwt_secret,
            secret_source=config_provider.get_secret_bundle,
            repositories=repositories,
            internal_secret=auth_config.internal_secret,
            token_ttl=auth_config.token_ttl,
            redis_client=redis_client,
        )
