"""
RSA signature verification for challenge responses.

Protocol contract for client implementers: the client signs the challenge
string exactly as it was received, i.e. the UTF-8 bytes of the base64 text,
not the 32 bytes it decodes to. The signature scheme is RSASSA-PKCS1-v1_5
with SHA-256 and the signature is sent base64-encoded.
"""

import base64
import binascii
import logging
from typing import Dict, Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ...exceptions import KeyFormatError

logger = logging.getLogger(__name__)


class SignatureVerifier:
    """
    Stateless RSA verifier.

    Verification failure is an expected outcome and is always reported as
    ``False``; nothing in ``verify`` raises.
    """

    @staticmethod
    def import_key(pem: Union[str, bytes]) -> rsa.RSAPublicKey:
        """
        Parse a PEM SubjectPublicKeyInfo block.

        Raises:
            KeyFormatError: If the PEM is malformed or not an RSA key
        """
        if isinstance(pem, str):
            pem = pem.encode("utf-8")

        try:
            key = serialization.load_pem_public_key(pem)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyFormatError(f"Invalid PEM public key: {e}") from e

        if not isinstance(key, rsa.RSAPublicKey):
            raise KeyFormatError(f"Unsupported public key type: {type(key).__name__}")

        return key

    @staticmethod
    def verify(key: rsa.RSAPublicKey, challenge: str, signature_b64: str) -> bool:
        """
        Check a base64 RSASSA-PKCS1-v1_5/SHA-256 signature over a challenge.

        Args:
            key: Imported public key
            challenge: Challenge string exactly as issued
            signature_b64: Base64-encoded signature

        Returns:
            True only for a valid signature
        """
        try:
            signature = base64.b64decode(signature_b64, validate=True)
            key.verify(
                signature,
                challenge.encode("utf-8"),
                padding.PKCS1v15(),
                hashes.SHA256(),
            )
            return True
        except InvalidSignature:
            return False
        except (binascii.Error, ValueError, TypeError, AttributeError) as e:
            logger.debug(f"Signature could not be checked: {e}")
            return False


class KeyRing:
    """Imported public keys for every provisioned client, built once per process."""

    def __init__(self, authorized_clients: Dict[str, str]):
        """
        Import all configured keys.

        Args:
            authorized_clients: Mapping of client identity to PEM public key

        Identities whose PEM fails to import are logged and left out, which
        makes them indistinguishable from unknown identities.
        """
        self._keys: Dict[str, rsa.RSAPublicKey] = {}
        for identity, pem in authorized_clients.items():
            try:
                self._keys[identity] = SignatureVerifier.import_key(pem)
            except KeyFormatError as e:
                logger.error(f"Skipping client {identity}: {e.detail}")

        logger.info(f"Loaded public keys for {len(self._keys)} client(s)")

    def __contains__(self, identity: object) -> bool:
        return identity in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def get(self, identity: str) -> Optional[rsa.RSAPublicKey]:
        return self._keys.get(identity)
