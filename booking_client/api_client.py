"""
Lock API clients used by the booking front end.

HttpLockClient talks to the Lock Service over HTTP; LocalLockClient calls a
LockService in the same process. Both return the service's response models
for business outcomes ({locked|valid|refreshed|released: false} included) and
raise LockError subclasses only when the call itself failed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel

from booking_client.models import SlotSelection
from shared.errors import AuthorizationError, TransportError, ValidationError
from slot_lock.models import (
    AcquireResponse,
    ActiveLocksResponse,
    HealthResponse,
    MetricsResponse,
    RefreshResponse,
    ReleaseResponse,
    VerifyResponse,
)
from slot_lock.service import LockService

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

API_PREFIX = "/api/v1/locks"
ADMIN_PREFIX = f"{API_PREFIX}/admin"


class LockClient(ABC):
    """Customer-facing lock operations"""

    @abstractmethod
    async def acquire(self, slot: SlotSelection, ttl_ms: Optional[int] = None) -> AcquireResponse:
        ...

    @abstractmethod
    async def verify(self, slot: SlotSelection, lock_id: str) -> VerifyResponse:
        ...

    @abstractmethod
    async def refresh(
        self, slot: SlotSelection, lock_id: str, ttl_ms: Optional[int] = None
    ) -> RefreshResponse:
        ...

    @abstractmethod
    async def release(self, slot: SlotSelection, lock_id: str) -> ReleaseResponse:
        ...


class HttpLockClient(LockClient):
    """
    HTTP client for the Slot Lock Service.

    Status mapping:
        200 / 409 -> response model (business outcome)
        400       -> ValidationError
        401 / 403 -> AuthorizationError
        other     -> TransportError (as are connection errors and timeouts)
    """

    def __init__(
        self,
        base_url: str,
        admin_token: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.admin_token = admin_token
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def _admin_headers(self) -> Dict[str, str]:
        if not self.admin_token:
            raise AuthorizationError("Admin token not configured on this client")
        return {"X-Admin-Token": self.admin_token}

    async def _request(
        self,
        method: str,
        path: str,
        model: Type[M],
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        ok_statuses=(200, 409),
    ) -> M:
        try:
            response = await self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Lock service timed out on {method} {path}: {e}")
            raise TransportError(f"Lock service timed out on {path}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Lock service unreachable on {method} {path}: {e}")
            raise TransportError(f"Lock service unreachable: {e}") from e

        if response.status_code in ok_statuses:
            try:
                return model.model_validate(response.json())
            except ValueError as e:
                raise TransportError(f"Malformed response from lock service on {path}") from e

        message = self._error_message(response)
        if response.status_code == 400:
            raise ValidationError(message)
        if response.status_code == 401:
            raise AuthorizationError(message)
        if response.status_code == 403:
            raise AuthorizationError(message, reason="forbidden")

        logger.warning(f"Lock service returned HTTP {response.status_code} on {path}: {message}")
        raise TransportError(f"Lock service returned HTTP {response.status_code}: {message}")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("detail") or body.get("error") or body)
        return str(body)

    # ------------------------------------------------------------------ #
    # Customer operations
    # ------------------------------------------------------------------ #

    async def acquire(self, slot: SlotSelection, ttl_ms: Optional[int] = None) -> AcquireResponse:
        payload = slot.to_payload()
        if ttl_ms is not None:
            payload["ttlMs"] = ttl_ms
        return await self._request("POST", f"{API_PREFIX}/acquire", AcquireResponse, json=payload)

    async def verify(self, slot: SlotSelection, lock_id: str) -> VerifyResponse:
        payload = {**slot.to_payload(), "lockId": lock_id}
        return await self._request("POST", f"{API_PREFIX}/verify", VerifyResponse, json=payload)

    async def refresh(
        self, slot: SlotSelection, lock_id: str, ttl_ms: Optional[int] = None
    ) -> RefreshResponse:
        payload = {**slot.to_payload(), "lockId": lock_id}
        if ttl_ms is not None:
            payload["ttlMs"] = ttl_ms
        return await self._request("POST", f"{API_PREFIX}/refresh", RefreshResponse, json=payload)

    async def release(self, slot: SlotSelection, lock_id: str) -> ReleaseResponse:
        payload = {**slot.to_payload(), "lockId": lock_id}
        return await self._request("POST", f"{API_PREFIX}/release", ReleaseResponse, json=payload)

    # ------------------------------------------------------------------ #
    # Admin operations
    # ------------------------------------------------------------------ #

    async def list_active(self, tenant_id: str, limit: int = 100) -> ActiveLocksResponse:
        return await self._request(
            "GET",
            f"{ADMIN_PREFIX}/active",
            ActiveLocksResponse,
            params={"tenantId": tenant_id, "limit": limit},
            headers=self._admin_headers(),
            ok_statuses=(200,),
        )

    async def force_release(self, slot: SlotSelection) -> ReleaseResponse:
        return await self._request(
            "POST",
            f"{ADMIN_PREFIX}/force-release",
            ReleaseResponse,
            json=slot.to_payload(),
            headers=self._admin_headers(),
            ok_statuses=(200,),
        )

    async def metrics(self) -> MetricsResponse:
        return await self._request(
            "GET", f"{ADMIN_PREFIX}/metrics", MetricsResponse,
            headers=self._admin_headers(), ok_statuses=(200,),
        )

    async def health(self) -> HealthResponse:
        # 503 carries a HealthResponse body describing the outage
        return await self._request(
            "GET", f"{ADMIN_PREFIX}/health", HealthResponse,
            headers=self._admin_headers(), ok_statuses=(200, 503),
        )


class LocalLockClient(LockClient):
    """In-process adapter around a LockService (single-instance deployments, tests)."""

    def __init__(self, service: LockService):
        self.service = service

    async def acquire(self, slot: SlotSelection, ttl_ms: Optional[int] = None) -> AcquireResponse:
        return await self.service.acquire(
            slot.tenant_id, slot.resource_id, slot.date, slot.start_time,
            duration_min=slot.duration_min, ttl_ms=ttl_ms,
        )

    async def verify(self, slot: SlotSelection, lock_id: str) -> VerifyResponse:
        return await self.service.verify(slot.tenant_id, slot.resource_id, slot.date, slot.start_time, lock_id)

    async def refresh(
        self, slot: SlotSelection, lock_id: str, ttl_ms: Optional[int] = None
    ) -> RefreshResponse:
        return await self.service.refresh(
            slot.tenant_id, slot.resource_id, slot.date, slot.start_time, lock_id, ttl_ms=ttl_ms
        )

    async def release(self, slot: SlotSelection, lock_id: str) -> ReleaseResponse:
        return await self.service.release(slot.tenant_id, slot.resource_id, slot.date, slot.start_time, lock_id)
