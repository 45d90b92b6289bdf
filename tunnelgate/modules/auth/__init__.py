"""
Authentication Module - Black Box Interface

Purpose: Challenge-response authentication and credential issuing
Interface: AuthFactory.build(), AuthenticationOrchestrator
Hidden: Key import, signature checks, token formats, audit storage

This module can be replaced with any other authentication scheme without
affecting the HTTP layer, as long as it exposes the orchestrator interface.
"""

from .credentials import CredentialIssuer
from .factory import AuthFactory
from .service import AuthenticationOrchestrator, VerifyOutcome
from .signature import KeyRing, SignatureVerifier

__all__ = [
    "AuthFactory",
    "AuthenticationOrchestrator",
    "CredentialIssuer",
    "KeyRing",
    "SignatureVerifier",
    "VerifyOutcome",
]
