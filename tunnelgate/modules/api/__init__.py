"""
API Module - Black Box Interface

Purpose: HTTP request and response contracts
Interface: Pydantic models used by the FastAPI entry point
Hidden: Alias handling, field validation

The API layer only orchestrates - it contains no business logic.
All logic is delegated to the auth module's orchestrator.
"""

from .models import (
    ChallengeRequest,
    ChallengeResponse,
    ErrorResponse,
    TunnelListResponse,
    TunnelRecordModel,
    TunnelRegisterRequest,
    TunnelResponse,
    VerifyRequest,
    VerifyResponse,
)

__all__ = [
    "ChallengeRequest",
    "ChallengeResponse",
    "ErrorResponse",
    "TunnelListResponse",
    "TunnelRecordModel",
    "TunnelRegisterRequest",
    "TunnelResponse",
    "VerifyRequest",
    "VerifyResponse",
]
