"""
Tests for RSA signature verification and the key ring.
"""

import base64

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding

from tunnelgate.client import sign_challenge
from tunnelgate.exceptions import KeyFormatError
from tunnelgate.modules.auth import KeyRing, SignatureVerifier
from tunnelgate.modules.challenge.challenge import generate_challenge

from conftest import public_pem


@pytest.fixture
def public_key(client_key):
    return SignatureVerifier.import_key(public_pem(client_key))


class TestImportKey:
    def test_import_rsa_pem(self, client_key):
        key = SignatureVerifier.import_key(public_pem(client_key))
        assert key.key_size == 2048

    def test_import_accepts_bytes(self, client_key):
        key = SignatureVerifier.import_key(public_pem(client_key).encode("ascii"))
        assert key.public_numbers() == client_key.public_key().public_numbers()

    @pytest.mark.parametrize("pem", [
        "",
        "not a pem",
        "-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----\n",
    ])
    def test_malformed_pem(self, pem):
        with pytest.raises(KeyFormatError):
            SignatureVerifier.import_key(pem)

    def test_non_rsa_key_rejected(self):
        ec_pem = ec.generate_private_key(ec.SECP256R1()).public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        with pytest.raises(KeyFormatError):
            SignatureVerifier.import_key(ec_pem)


class TestVerify:
    def test_valid_signature(self, client_key, public_key):
        challenge = generate_challenge()
        assert SignatureVerifier.verify(public_key, challenge, sign_challenge(client_key, challenge))

    def test_wrong_key(self, other_key, public_key):
        challenge = generate_challenge()
        assert not SignatureVerifier.verify(public_key, challenge, sign_challenge(other_key, challenge))

    def test_different_challenge(self, client_key, public_key):
        signature = sign_challenge(client_key, generate_challenge())
        assert not SignatureVerifier.verify(public_key, generate_challenge(), signature)

    def test_mutated_signature(self, client_key, public_key):
        challenge = generate_challenge()
        raw = bytearray(base64.b64decode(sign_challenge(client_key, challenge)))
        raw[0] ^= 0x01
        mutated = base64.b64encode(bytes(raw)).decode("ascii")

        assert not SignatureVerifier.verify(public_key, challenge, mutated)

    def test_signature_over_decoded_bytes_rejected(self, client_key, public_key):
        challenge = generate_challenge()
        signature = client_key.sign(base64.b64decode(challenge), padding.PKCS1v15(), hashes.SHA256())

        assert not SignatureVerifier.verify(
            public_key, challenge, base64.b64encode(signature).decode("ascii")
        )

    @pytest.mark.parametrize("signature", ["", "!!!not-base64!!!", "AAAA", None])
    def test_garbage_signature_returns_false(self, public_key, signature):
        assert SignatureVerifier.verify(public_key, generate_challenge(), signature) is False


class TestKeyRing:
    def test_skips_malformed_entries(self, client_key):
        ring = KeyRing({"c1": public_pem(client_key), "broken": "not a pem"})

        assert len(ring) == 1
        assert "c1" in ring
        assert "broken" not in ring
        assert ring.get("broken") is None

    def test_get_returns_imported_key(self, client_key):
        ring = KeyRing({"c1": public_pem(client_key)})
        assert ring.get("c1").public_numbers() == client_key.public_key().public_numbers()
