import base64
import secrets
import time
from typing import Optional

import jwt


class CredentialIssuer:
    """
    Mints the credentials handed out after a successful verification.

    The opaque token is the real authorization artifact for tunnel registry
    mutations. The compact token is an HS256 JWT kept for older clients; no
    endpoint validates it.
    """

    @staticmethod
    def opaque_token() -> str:
        """32 bytes from the OS CSPRNG, standard base64."""
        return base64.b64encode(secrets.token_bytes(32)).decode("ascii")

    @staticmethod
    def compact_token(
        identity: str,
        secret: str,
        ttl_seconds: int = 3600,
        now: Optional[float] = None,
    ) -> str:
        """
        Build a signed claims token.

        Args:
            identity: Client identity placed in the ``clientId`` claim
            secret: HMAC-SHA256 signing secret
            ttl_seconds: Lifetime, 1 hour by default
            now: Issue time in seconds (defaults to current time)

        Returns:
            header.payload.signature, each base64url without padding
        """
        issued_at = int(now if now is not None else time.time())
        claims = {
            "clientId": identity,
            "iat": issued_at,
            "exp": issued_at + ttl_seconds,
        }
        return jwt.encode(claims, secret, algorithm="HS256")
