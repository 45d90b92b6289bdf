"""
Error taxonomy for Tunnelgate.

Every error carries the HTTP status it maps to and a short public message.
The public message is the only thing a caller ever sees; the specific cause
(unknown identity, expired challenge, bad signature, ...) stays in the logs
and the audit trail so that failures cannot be used to enumerate clients.
"""

from typing import Optional


class TunnelGateError(Exception):
    """Base class for all errors raised by Tunnelgate modules."""

    status_code = 500
    public_message = "Internal error"

    def __init__(self, detail: Optional[str] = None, public_message: Optional[str] = None):
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message
        if public_message is not None:
            self.public_message = public_message


class BadRequest(TunnelGateError):
    """Malformed request or missing required fields."""

    status_code = 400
    public_message = "Bad request"


class InvalidInput(BadRequest):
    """Storage operation called with a malformed key, id or value."""


class AuthenticationFailed(TunnelGateError):
    """
    Any identity, challenge, signature or token problem.

    ``reason`` is for internal diagnostics only and is never rendered.
    """

    status_code = 401
    public_message = "Authentication failed"

    def __init__(self, reason: str, detail: Optional[str] = None):
        super().__init__(detail or reason)
        self.reason = reason


class NotFound(TunnelGateError):
    """Requested resource does not exist."""

    status_code = 404
    public_message = "Not found"


class InternalError(TunnelGateError):
    """Unexpected fault."""


class StorageUnavailable(TunnelGateError):
    """Storage backend fault. Callers should treat it as retryable."""

    status_code = 503
    public_message = "Storage unavailable"


class KeyFormatError(TunnelGateError):
    """PEM public key could not be parsed."""


class CollaboratorError(TunnelGateError):
    """External collaborator call failed or returned an error status."""

    status_code = 502
    public_message = "Upstream error"
