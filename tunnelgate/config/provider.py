"""Configuration provider following Black Box Design principles."""
import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

# Never handed out in a secret bundle, even when listed in SECRET_BUNDLE_KEYS
PROTECTED_SECRET_NAMES = frozenset(
    {"AUTHORIZED_CLIENTS", "JWT_SECRET", "INTERNAL_API_SECRET", "REDIS_PASSWORD"}
)


@dataclass
class AuthConfig:
    """Authentication configuration."""
    authorized_clients: Dict[str, str]
    jwt_secret: str
    internal_secret: Optional[str] = None
    challenge_ttl: int = 300
    token_ttl: int = 3600


@dataclass
class APIConfig:
    """API configuration."""
    port: int
    host: str
    debug: bool
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class WebhookConfig:
    """Webhook worker configuration."""
    base_url: Optional[str]
    timeout: float = 5.0

    @property
    def is_configured(self) -> bool:
        """Check if the webhook worker location is known."""
        return bool(self.base_url)


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_auth_config(self) -> AuthConfig:
        """Get authentication configuration."""
        ...

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...

    def get_webhook_config(self) -> WebhookConfig:
        """Get webhook worker configuration."""
        ...

    def get_secret_bundle(self) -> Dict[str, str]:
        """Get the secrets returned to authenticated clients."""
        ...


def parse_authorized_clients(raw: Optional[str]) -> Dict[str, str]:
    """
    Parse the identity -> PEM public key mapping.

    Args:
        raw: JSON object text, e.g. '{"client-a": "-----BEGIN PUBLIC KEY-----\\n..."}'

    Raises:
        ValueError: If the value is missing, not JSON, or not a string mapping
    """
    if not raw:
        raise ValueError(
            "AUTHORIZED_CLIENTS environment variable is required. "
            'Format: JSON object mapping client id to PEM public key, e.g. {"client-a": "-----BEGIN PUBLIC KEY-----..."}'
        )

    try:
        clients = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"AUTHORIZED_CLIENTS is not valid JSON: {e}") from e

    if not isinstance(clients, dict):
        raise ValueError("AUTHORIZED_CLIENTS must be a JSON object")

    for client_id, pem in clients.items():
        if not client_id or not isinstance(pem, str):
            raise ValueError(f"AUTHORIZED_CLIENTS entry for '{client_id}' must map to a PEM string")

    return clients


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_auth_config(self) -> AuthConfig:
        """Get authentication configuration from environment variables."""
        authorized_clients = parse_authorized_clients(os.getenv("AUTHORIZED_CLIENTS"))

        # Signing secret for compact tokens - no default for security
        jwt_secret = os.getenv("JWT_SECRET") or os.getenv("SECRET_DATA")
        if not jwt_secret:
            raise ValueError(
                "JWT_SECRET environment variable is required (SECRET_DATA is accepted as a fallback)."
            )

        return AuthConfig(
            authorized_clients=authorized_clients,
            jwt_secret=jwt_secret,
            internal_secret=os.getenv("INTERNAL_API_SECRET") or None,
            challenge_ttl=int(os.getenv("CHALLENGE_TTL_SECONDS", "300")),
            token_ttl=int(os.getenv("TOKEN_TTL_SECONDS", "3600")),
        )

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        return APIConfig(
            port=int(os.getenv("API_PORT", "8080")),
            host=os.getenv("API_HOST", "0.0.0.0"),
            debug=os.getenv("API_DEBUG", "false").lower() == "true",
            cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
        )

    def get_webhook_config(self) -> WebhookConfig:
        """Get webhook worker configuration from environment variables."""
        return WebhookConfig(
            base_url=os.getenv("WEBHOOK_WORKER_URL") or None,
            timeout=float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "5")),
        )

    def get_secret_bundle(self) -> Dict[str, str]:
        """
        Resolve the secret bundle from the current environment.

        Only names listed in SECRET_BUNDLE_KEYS are returned, and never the
        service's own credentials. Re-read on every call so rotated values
        are picked up without a restart.
        """
        allowed = [k.strip() for k in os.getenv("SECRET_BUNDLE_KEYS", "").split(",") if k.strip()]

        bundle = {}
        for name in allowed:
            if name in PROTECTED_SECRET_NAMES:
                continue
            value = os.getenv(name)
            if value is not None:
                bundle[name] = value
        return bundle
