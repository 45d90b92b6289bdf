"""
Webhook Module - Black Box Interface

Purpose: Talk to the external repository webhook worker
Interface: update_repo(), list_repos()
Hidden: HTTP client, URL encoding, trust headers

Failures surface as CollaboratorError and never decide an authentication.
"""

from .client import WebhookClient

__all__ = ["WebhookClient"]
