"""
Tunnelgate HTTP data models.

Wire field names are camelCase (``clientId``, ``tunnelUrl``, ...) as
existing clients send them; Python attributes are snake_case.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base model accepting camelCase aliases or field names."""

    model_config = ConfigDict(populate_by_name=True)


# Request Models (API Input)


class ChallengeRequest(WireModel):
    """Request for a new challenge."""

    client_id: str = Field(..., alias="clientId", min_length=1, max_length=256)


class VerifyRequest(WireModel):
    """Signed challenge plus optional registration extras."""

    client_id: str = Field(..., alias="clientId", min_length=1, max_length=256)
    challenge: str = Field(..., min_length=1, max_length=1024)
    signature: str = Field(..., min_length=1, max_length=4096)
    repo_url: Optional[str] = Field(None, alias="repoUrl")
    grpc_endpoint: Optional[str] = Field(None, alias="grpcEndpoint")
    tunnel_url: Optional[str] = Field(None, alias="tunnelUrl")
    include_repo_list: bool = Field(False, alias="includeRepoList")


class TunnelRegisterRequest(WireModel):
    """Tunnel URL update authorized by the current access token."""

    client_id: str = Field(..., alias="clientId", min_length=1, max_length=256)
    tunnel_url: str = Field(..., alias="tunnelUrl", min_length=1, max_length=2048)
    token: str = Field(..., min_length=1)


# Response Models (API Output)


class ChallengeResponse(WireModel):
    challenge: str
    expires_at: int = Field(..., alias="expiresAt")


class VerifyResponse(WireModel):
    success: bool = True
    token: str
    access_token: str = Field(..., alias="accessToken")
    secret_data: Dict[str, str] = Field(default_factory=dict, alias="secretData")
    repo_list: Optional[List[str]] = Field(None, alias="repoList")


class TunnelRecordModel(WireModel):
    client_id: str = Field(..., alias="clientId")
    tunnel_url: str = Field(..., alias="tunnelUrl")
    token: str
    created_at: int = Field(..., alias="createdAt")
    updated_at: int = Field(..., alias="updatedAt")


class TunnelResponse(WireModel):
    success: bool = True
    data: TunnelRecordModel


class TunnelListResponse(WireModel):
    success: bool = True
    data: List[TunnelRecordModel]
    count: int


class ErrorResponse(WireModel):
    """Shape shared by every error response."""

    success: bool = False
    error: str
