#!/usr/bin/env python3
"""
Tunnelgate - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the HTTP API

All business logic is in the modules, following black box principles.
"""

import logging
import logging.config as log_config
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tunnelgate import __version__
from tunnelgate.config.provider import ConfigProvider, EnvConfigProvider
from tunnelgate.exceptions import TunnelGateError
from tunnelgate.logging_config import get_logging_config
from tunnelgate.modules.api import (
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
from tunnelgate.modules.auth import AuthenticationOrchestrator, AuthFactory
from tunnelgate.modules.config import get_config
from tunnelgate.modules.storage import StorageModule
from tunnelgate.modules.tunnel import TunnelRecord

# Get configuration
config = get_config()

# Configure logging with health check suppression
log_config.dictConfig(get_logging_config(config.get("log_level")))
logger = logging.getLogger(__name__)

# Configuration provider (centralized config access)
config_provider: ConfigProvider = EnvConfigProvider()

# Module instances (initialized at startup)
storage: Optional[StorageModule] = None
orchestrator: Optional[AuthenticationOrchestrator] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    global storage, orchestrator

    logger.info("Starting Tunnelgate API...")

    storage = StorageModule(config.redis_url(), password=config.get("redis_password"))
    redis_client = await storage.connect()

    # Build authentication stack via factory (dependency injection)
    orchestrator = AuthFactory.build(config_provider, redis_client)
    logger.info("Authentication orchestrator initialized via factory")

    logger.info("Tunnelgate API started successfully")

    yield

    logger.info("Shutting down Tunnelgate API...")
    if storage:
        await storage.disconnect()
    logger.info("Tunnelgate API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Tunnelgate API",
    description="Challenge-response client authentication and tunnel registry",
    version=__version__,
    lifespan=lifespan,
)

api_config = config_provider.get_api_config()
app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Internal-Token"],
)


def _error_responses(*status_codes: int) -> dict:
    """OpenAPI entries for the shared error shape."""
    return {code: {"model": ErrorResponse} for code in status_codes}


# Dependency injection helpers


def get_orchestrator() -> AuthenticationOrchestrator:
    """Return the orchestrator or fail if startup has not completed."""
    if not orchestrator:
        raise HTTPException(503, "Service not initialized")
    return orchestrator


async def verify_internal_caller(
    x_internal_token: Optional[str] = Header(None, description="Shared secret for internal callers"),
    service: AuthenticationOrchestrator = Depends(get_orchestrator),
) -> bool:
    """Whether the caller presented the internal shared secret."""
    return service.is_internal_caller(x_internal_token)


async def bearer_token(
    authorization: Optional[str] = Header(None, description="Bearer access token"),
) -> Optional[str]:
    """Extract the bearer credential, if any."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


def _record_model(record: TunnelRecord) -> TunnelRecordModel:
    return TunnelRecordModel(**record.to_dict())


# Authentication Endpoints


@app.post("/challenge", response_model=ChallengeResponse, responses=_error_responses(400, 401, 503))
async def create_challenge(
    request: ChallengeRequest,
    service: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Issue a single-use challenge to a provisioned client.

    Returns:
        200: Challenge and its expiry (epoch ms)
        400: Missing clientId
        401: Authentication failed
    """
    challenge = await service.issue_challenge(request.client_id)
    return ChallengeResponse(challenge=challenge.value, expires_at=challenge.expires_at)


@app.post(
    "/verify",
    response_model=VerifyResponse,
    response_model_exclude_none=True,
    responses=_error_responses(400, 401, 503),
)
async def verify_challenge(
    request: VerifyRequest,
    service: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Verify a signed challenge and issue credentials.

    Optionally registers the client's tunnel URL, syncs repository metadata
    and returns the repository list. Those extras never fail the request.

    Returns:
        200: Compact token, access token, secret bundle, optional repo list
        400: Missing fields
        401: Authentication failed
    """
    outcome = await service.verify(
        request.client_id,
        request.challenge,
        request.signature,
        repo_url=request.repo_url,
        grpc_endpoint=request.grpc_endpoint,
        tunnel_url=request.tunnel_url,
        include_repo_list=request.include_repo_list,
    )
    return VerifyResponse(**outcome.to_dict())


# Tunnel Registry Endpoints


@app.post("/tunnel/register", response_model=TunnelResponse, responses=_error_responses(400, 401, 500))
async def register_tunnel(
    request: TunnelRegisterRequest,
    service: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Update an existing client's tunnel URL.

    Returns:
        200: Updated record
        400: Missing fields
        401: No existing record or token mismatch
        500: Storage failure
    """
    record = await service.register_tunnel(request.client_id, request.tunnel_url, request.token)
    return TunnelResponse(data=_record_model(record))


@app.get("/tunnel/{client_id}", response_model=TunnelResponse, responses=_error_responses(401, 404))
async def get_tunnel(
    client_id: str,
    internal: bool = Depends(verify_internal_caller),
    token: Optional[str] = Depends(bearer_token),
    service: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Get a client's tunnel record.

    Internal callers (X-Internal-Token) may read any record; external callers
    must present the record's access token as a bearer credential.

    Returns:
        200: Tunnel record
        401: Unauthorized
        404: Tunnel not found (internal callers only)
    """
    record = await service.get_tunnel(client_id, internal=internal, bearer_token=token)
    return TunnelResponse(data=_record_model(record))


@app.delete("/tunnel/{client_id}", responses=_error_responses(401, 404))
async def delete_tunnel(
    client_id: str,
    internal: bool = Depends(verify_internal_caller),
    service: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Delete a client's tunnel record (internal callers only).

    Returns:
        200: Deleted
        401: Unauthorized
        404: Tunnel not found
    """
    await service.delete_tunnel(client_id, internal=internal)
    return {"success": True, "message": f"Tunnel for {client_id} deleted"}


@app.get("/tunnels", response_model=TunnelListResponse, responses=_error_responses(401, 500))
async def list_tunnels(
    internal: bool = Depends(verify_internal_caller),
    service: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    List all tunnel records (internal callers only).

    Returns:
        200: All records with count
        401: Unauthorized
        500: Storage failure
    """
    records = await service.list_tunnels(internal=internal)
    return TunnelListResponse(data=[_record_model(r) for r in records], count=len(records))


# Health/Monitoring Endpoints


@app.get("/health")
async def health_check():
    """
    Liveness check. Unauthenticated, touches no dependencies.

    Returns:
        200: Service is running
    """
    return {"status": "ok"}


@app.get("/readyz")
async def readiness_check():
    """
    Readiness check including storage connectivity.

    Returns:
        200: Ready to serve
        503: Storage unreachable or not initialized
    """
    if storage and orchestrator and await storage.ping():
        return {"status": "ready"}
    return JSONResponse(status_code=503, content={"status": "unavailable"})


# Error handlers


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(TunnelGateError)
async def tunnelgate_error_handler(request: Request, exc: TunnelGateError):
    """Render domain errors with their generic public message only."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.debug(f"{request.method} {request.url.path} rejected: {exc.detail}")
    return _error(exc.status_code, exc.public_message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Handle malformed or incomplete request bodies."""
    logger.error(f"Bad request to {request.url.path}: {exc.errors()}")
    return _error(400, "Bad request")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Keep framework errors in the shared error shape."""
    message = "Not found" if exc.status_code == 404 else str(exc.detail)
    return _error(exc.status_code, message)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    """Last-resort handler for unexpected faults."""
    logger.exception(f"Internal error handling {request.method} {request.url.path}: {exc}")
    return _error(500, "Internal error")


if __name__ == "__main__":
    uvicorn.run(
        "tunnelgate.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        reload=config.get("debug"),
        log_config=get_logging_config(config.get("log_level")),
    )
