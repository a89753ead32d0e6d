"""
Booking Slot Lock Service - FastAPI Application

HTTP surface for the Lock Service. Customer endpoints reserve, verify, extend
and release booking slot locks; admin endpoints (X-Admin-Token) list and
force-release locks and expose metrics and store health.

Status codes:
    200  positive outcome
    409  business "no" (already_locked, not_found, lock_mismatch), structured body
    400  malformed input
    401  missing admin credential / 403 wrong admin credential
    503  lock store unavailable or service not configured
"""

import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import redis.asyncio as redis

from shared.errors import AuthorizationError, ErrorKind, LockError, TransportError
from shared.observability import get_metrics_response, setup_metrics, setup_tracing
from shared.redis_client import RedisConfig, close_redis_client, get_redis_client
from slot_lock import __version__
from slot_lock.config import LockServiceConfig
from slot_lock.models import (
    AcquireRequest,
    ActiveLocksResponse,
    HealthResponse,
    LockIdRequest,
    MetricsResponse,
    RefreshRequest,
    SlotRequest,
)
from slot_lock.redis_store import RedisLockStore
from slot_lock.service import LockService
from slot_lock.store import InMemoryLockStore, LockStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "slot-lock"

# Global state
lock_service: Optional[LockService] = None
config: Optional[LockServiceConfig] = None
app_start_time: float = 0.0

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHORIZATION: 401,
    ErrorKind.TRANSPORT: 503,
}


# ============================================================================
# Lifespan Management
# ============================================================================

async def _create_store(service_config: LockServiceConfig) -> LockStore:
    if service_config.store_backend == "memory":
        logger.warning("Using in-memory lock store: locks are not shared between instances")
        return InMemoryLockStore()

    client = await get_redis_client(
        RedisConfig(
            url=service_config.redis_url,
            socket_timeout=service_config.store_timeout_seconds,
            socket_connect_timeout=service_config.store_timeout_seconds,
        )
    )
    return RedisLockStore(client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage service lifecycle (startup/shutdown)
    """
    global lock_service, config, app_start_time

    logger.info("Starting Booking Slot Lock service...")
    app_start_time = time.time()

    # Load configuration
    try:
        config = LockServiceConfig.from_env()
        logger.info("Configuration loaded")
    except ValueError as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

    setup_metrics(SERVICE_NAME, __version__)
    if config.enable_tracing:
        setup_tracing(SERVICE_NAME, enable_console_export=config.trace_console_export)

    # Initialize lock store
    try:
        store = await _create_store(config)
        lock_service = LockService(store, config)
        logger.info(f"Lock store ready ({store.backend_name})")
    except (redis.RedisError, OSError) as e:
        logger.error(f"Lock store connection failed: {e} - lock endpoints will return 503")
        lock_service = None

    logger.info("Booking Slot Lock service ready")

    yield

    # Shutdown
    logger.info("Shutting down Booking Slot Lock service...")
    lock_service = None
    await close_redis_client()
    logger.info("Service stopped")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Booking Slot Lock Service",
    description="Short-lived mutual exclusion over booking slots during checkout",
    version=__version__,
    lifespan=lifespan
)


@app.exception_handler(LockError)
async def lock_error_handler(request: Request, exc: LockError):
    status = _STATUS_BY_KIND.get(exc.kind, 500)
    if exc.kind == ErrorKind.AUTHORIZATION and exc.reason == "forbidden":
        status = 403

    body = exc.to_dict()
    if exc.kind == ErrorKind.TRANSPORT:
        body["error"] = "store_unavailable"
    return JSONResponse(status_code=status, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg', 'invalid request')}" if field else "invalid request"
    return JSONResponse(status_code=400, content={"error": ErrorKind.VALIDATION.value, "message": message})


def _service() -> LockService:
    if lock_service is None:
        raise TransportError("Service not configured")
    return lock_service


def _respond(result: BaseModel, ok: bool) -> JSONResponse:
    """200 for a positive outcome, 409 with the same body for a business "no"."""
    return JSONResponse(
        status_code=200 if ok else 409,
        content=result.model_dump(by_alias=True, exclude_none=True),
    )


async def require_admin(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    """Admin credential check; constant-time comparison against the configured token."""
    if not x_admin_token:
        raise AuthorizationError("Admin credential required")

    expected = config.admin_token if config else None
    if not expected or not secrets.compare_digest(x_admin_token.encode(), expected.encode()):
        raise AuthorizationError("Invalid admin credential", reason="forbidden")


# ============================================================================
# Customer Endpoints
# ============================================================================

@app.post("/api/v1/locks/acquire")
async def acquire_lock(request: AcquireRequest):
    """
    Reserve a slot for the caller's checkout.

    Returns:
        200 {locked: true, lockId, expiresAt, expiresIn}
        409 {locked: false, reason: "already_locked", remainingTTL}
    """
    result = await _service().acquire(
        request.tenant_id,
        request.resource_id,
        request.date,
        request.start_time,
        duration_min=request.duration_min,
        ttl_ms=request.ttl_ms,
    )
    return _respond(result, result.locked)


@app.post("/api/v1/locks/verify")
async def verify_lock(request: LockIdRequest):
    """Checkout calls this immediately before committing the appointment."""
    result = await _service().verify(
        request.tenant_id, request.resource_id, request.date, request.start_time, request.lock_id
    )
    return _respond(result, result.valid)


@app.post("/api/v1/locks/refresh")
async def refresh_lock(request: RefreshRequest):
    result = await _service().refresh(
        request.tenant_id,
        request.resource_id,
        request.date,
        request.start_time,
        request.lock_id,
        ttl_ms=request.ttl_ms,
    )
    return _respond(result, result.refreshed)


@app.post("/api/v1/locks/release")
async def release_lock(request: LockIdRequest):
    result = await _service().release(
        request.tenant_id, request.resource_id, request.date, request.start_time, request.lock_id
    )
    return _respond(result, result.released)


# ============================================================================
# Admin Endpoints
# ============================================================================

@app.get(
    "/api/v1/locks/admin/active",
    response_model=ActiveLocksResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    dependencies=[Depends(require_admin)],
)
async def list_active_locks(
    tenant_id: str = Query(..., alias="tenantId"),
    limit: int = Query(100),
):
    """Live locks for one tenant, soonest expiry first."""
    return await _service().list_active(tenant_id, limit=limit)


@app.post("/api/v1/locks/admin/force-release", dependencies=[Depends(require_admin)])
async def force_release_lock(request: SlotRequest):
    """Remove a slot's lock regardless of owner."""
    result = await _service().force_release(
        request.tenant_id, request.resource_id, request.date, request.start_time
    )
    return _respond(result, True)


@app.get(
    "/api/v1/locks/admin/metrics",
    response_model=MetricsResponse,
    response_model_by_alias=True,
    dependencies=[Depends(require_admin)],
)
async def get_metrics():
    return await _service().metrics()


@app.get("/api/v1/locks/admin/metrics/prometheus", dependencies=[Depends(require_admin)])
async def get_prometheus_metrics():
    content, content_type = get_metrics_response()
    return Response(content=content, media_type=content_type)


@app.get(
    "/api/v1/locks/admin/health",
    response_model=HealthResponse,
    response_model_by_alias=True,
    dependencies=[Depends(require_admin)],
)
async def health_check():
    """
    Store reachability. Returns 503 when the store cannot be reached.
    """
    if lock_service is None:
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "storeBackend": config.store_backend if config else "unknown",
                "storeConnected": False,
                "latencyMs": 0.0,
                "uptimeSeconds": time.time() - app_start_time if app_start_time else 0.0,
                "details": {"error": "Service not configured"},
            },
        )

    result = await lock_service.health()
    if not result.store_connected:
        return JSONResponse(status_code=503, content=result.model_dump(by_alias=True))
    return result


# ============================================================================
# Root Endpoint
# ============================================================================

@app.get("/")
async def root():
    """
    Root endpoint with service information
    """
    return {
        "service": "Booking Slot Lock Service",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "acquire": "POST /api/v1/locks/acquire",
            "verify": "POST /api/v1/locks/verify",
            "refresh": "POST /api/v1/locks/refresh",
            "release": "POST /api/v1/locks/release",
            "admin_active": "GET /api/v1/locks/admin/active?tenantId=&limit=",
            "admin_force_release": "POST /api/v1/locks/admin/force-release",
            "admin_metrics": "GET /api/v1/locks/admin/metrics",
            "admin_prometheus": "GET /api/v1/locks/admin/metrics/prometheus",
            "admin_health": "GET /api/v1/locks/admin/health",
        }
    }


if __name__ == "__main__":
    import uvicorn
    import os

    port = int(os.getenv("SLOT_LOCK_PORT", "8010"))
    uvicorn.run(
        "slot_lock.app:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        log_level="info"
    )
