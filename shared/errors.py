"""
Error taxonomy for the booking slot lock stack.

Every failure carries an ``ErrorKind`` so callers branch on ``error.kind``
instead of probing exception names, codes or nested causes.

Raised (abort the single operation):
- ValidationError: malformed input (HTTP 400)
- TransportError: store/network failure or timeout (HTTP 503)
- AuthorizationError: non-admin caller on an admin operation (HTTP 401/403)

Returned as values (expected business outcomes):
- ConflictError: slot held by another session
- OwnershipError: presented lockId does not match the current holder
- NotFoundError: no live record for refresh/release/verify
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Closed set of failure kinds"""
    VALIDATION = "validation_error"
    CONFLICT = "conflict"
    OWNERSHIP = "ownership"
    NOT_FOUND = "not_found"
    TRANSPORT = "transport_error"
    AUTHORIZATION = "unauthorized"


# Wire reasons returned in {locked|valid|refreshed|released: false} payloads
REASON_ALREADY_LOCKED = "already_locked"
REASON_NOT_FOUND = "not_found"
REASON_LOCK_MISMATCH = "lock_mismatch"

_REASON_KINDS = {
    REASON_ALREADY_LOCKED: ErrorKind.CONFLICT,
    REASON_LOCK_MISMATCH: ErrorKind.OWNERSHIP,
    REASON_NOT_FOUND: ErrorKind.NOT_FOUND,
}


class LockError(Exception):
    """Base class for all lock errors"""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    @property
    def is_business_outcome(self) -> bool:
        """True for expected "no" answers, False for failures of the call itself"""
        return self.kind in (ErrorKind.CONFLICT, ErrorKind.OWNERSHIP, ErrorKind.NOT_FOUND)

    def to_dict(self) -> dict:
        payload = {"error": self.kind.value, "message": self.message}
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ValidationError(LockError):
    kind = ErrorKind.VALIDATION


class ConflictError(LockError):
    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, remaining_ttl_ms: int = 0):
        super().__init__(message, reason=REASON_ALREADY_LOCKED)
        self.remaining_ttl_ms = remaining_ttl_ms


class OwnershipError(LockError):
    kind = ErrorKind.OWNERSHIP


class NotFoundError(LockError):
    kind = ErrorKind.NOT_FOUND


class TransportError(LockError):
    kind = ErrorKind.TRANSPORT


class AuthorizationError(LockError):
    kind = ErrorKind.AUTHORIZATION


def kind_for_reason(reason: Optional[str]) -> ErrorKind:
    """Map a wire reason string to its error kind (unknown reasons count as NOT_FOUND)"""
    return _REASON_KINDS.get(reason, ErrorKind.NOT_FOUND)


def error_for_reason(reason: Optional[str], message: str) -> LockError:
    """Build the business-outcome error value matching a wire reason"""
    kind = kind_for_reason(reason)
    if kind == ErrorKind.CONFLICT:
        return ConflictError(message)
    if kind == ErrorKind.OWNERSHIP:
        return OwnershipError(message, reason=reason)
    return NotFoundError(message, reason=reason or REASON_NOT_FOUND)
