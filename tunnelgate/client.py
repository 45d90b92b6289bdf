"""
Tunnelgate client helper.

Reference implementation of the client side of the protocol:

1. POST /challenge {clientId} -> {challenge, expiresAt}
2. Sign the challenge string itself - the UTF-8 bytes of the base64 text as
   received, NOT the decoded nonce - with RSASSA-PKCS1-v1_5 over SHA-256.
3. POST /verify {clientId, challenge, signature (base64), ...extras}
   -> {success, token, accessToken, secretData, repoList?}

Keep ``accessToken``: it is the credential for later /tunnel/register calls
and for reading your own tunnel record.
"""

import base64
import logging
from typing import Any, Dict, Optional, Union

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

logger = logging.getLogger(__name__)


def load_private_key(private_key_pem: Union[str, bytes], password: Optional[bytes] = None) -> rsa.RSAPrivateKey:
    """Load an RSA private key from PEM."""
    if isinstance(private_key_pem, str):
        private_key_pem = private_key_pem.encode("utf-8")
    key = serialization.load_pem_private_key(private_key_pem, password=password)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError(f"Expected an RSA private key, got {type(key).__name__}")
    return key


def sign_challenge(private_key: Union[rsa.RSAPrivateKey, str, bytes], challenge: str) -> str:
    """
    Sign a challenge the way the server verifies it.

    Args:
        private_key: RSA private key or its PEM
        challenge: Challenge string exactly as returned by /challenge

    Returns:
        Base64-encoded signature
    """
    if not isinstance(private_key, rsa.RSAPrivateKey):
        private_key = load_private_key(private_key)

    signature = private_key.sign(challenge.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


class RequestRejected(Exception):
    """Raised when the server rejects a request."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class TunnelGateClient:
    """Async HTTP client for a Tunnelgate server."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            base_url: Server URL, e.g. https://auth.example.com
            timeout: Request timeout in seconds
            transport: Optional httpx transport (e.g. ASGITransport in tests)
        """
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "TunnelGateClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post(path, json=payload)
        body = response.json()
        if response.is_error:
            raise RequestRejected(response.status_code, body.get("error", response.text))
        return body

    async def request_challenge(self, client_id: str) -> Dict[str, Any]:
        """Step 1: returns {challenge, expiresAt}."""
        return await self._post("/challenge", {"clientId": client_id})

    async def verify(self, client_id: str, challenge: str, signature: str, **extras: Any) -> Dict[str, Any]:
        """
        Step 3: present the signed challenge.

        Extras are passed through as wire fields, e.g. ``tunnelUrl``,
        ``repoUrl``, ``grpcEndpoint``, ``includeRepoList``.
        """
        payload = {"clientId": client_id, "challenge": challenge, "signature": signature}
        payload.update({k: v for k, v in extras.items() if v is not None})
        return await self._post("/verify", payload)

    async def authenticate(
        self, client_id: str, private_key: Union[rsa.RSAPrivateKey, str, bytes], **extras: Any
    ) -> Dict[str, Any]:
        """Run the full challenge-response flow and return the /verify response."""
        challenge = (await self.request_challenge(client_id))["challenge"]
        signature = sign_challenge(private_key, challenge)
        result = await self.verify(client_id, challenge, signature, **extras)
        logger.info(f"Authenticated as {client_id}")
        return result

    async def register_tunnel(self, client_id: str, tunnel_url: str, access_token: str) -> Dict[str, Any]:
        """Move an existing tunnel to a new URL; returns the updated record."""
        body = await self._post(
            "/tunnel/register",
            {"clientId": client_id, "tunnelUrl": tunnel_url, "token": access_token},
        )
        return body["data"]
