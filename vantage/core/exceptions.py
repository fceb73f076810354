"""
Domain error taxonomy.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer renders it with, using the same ``{"code", "message"}`` detail shape
as the rest of the API.

``preserve_writes`` tells the request scope whether writes made before the
error may be committed. Business rejections keep deliberate side effects
(e.g. an invite marked Expired while being redeemed); infrastructure failures
and lost optimistic-lock races roll the unit of work back.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for all expected, caller-visible failures."""

    code: str = "DOMAIN_ERROR"
    status_code: int = 400
    default_message: str = "Request could not be completed"
    preserve_writes: bool = True

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.context:
            detail["context"] = self.context
        return detail


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class NotAMember(DomainError):
    code = "NOT_A_MEMBER"
    status_code = 403
    default_message = "You are not a member of this organization"


class InsufficientPermission(DomainError):
    code = "INSUFFICIENT_ROLE"
    status_code = 403
    default_message = "Your role does not allow this action"


class OrganizationSuspended(InsufficientPermission):
    code = "ORG_SUSPENDED"
    default_message = "Organization is suspended and read-only"


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class InviteNotFound(DomainError):
    code = "INVITE_NOT_FOUND"
    status_code = 404
    default_message = "Invitation not found"


class InviteExpired(DomainError):
    code = "INVITE_EXPIRED"
    status_code = 400
    default_message = "Invitation has expired"


class InviteAlreadyUsed(DomainError):
    code = "INVITE_USED"
    status_code = 400
    default_message = "Invitation has already been accepted"


class EmailMismatch(DomainError):
    code = "EMAIL_MISMATCH"
    status_code = 403
    default_message = "Invitation was sent to a different email address"


# ---------------------------------------------------------------------------
# Entities and hierarchy
# ---------------------------------------------------------------------------

class NotFound(DomainError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class HasDependents(DomainError):
    code = "HAS_DEPENDENTS"
    status_code = 409
    default_message = "Resource has dependents; delete with cascade to remove them"


class OrphanedReference(DomainError):
    code = "ORPHANED_REFERENCE"
    status_code = 422
    default_message = "Parent does not exist in this organization"


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Request is invalid"


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

class ConcurrencyConflict(DomainError):
    code = "CONCURRENCY_CONFLICT"
    status_code = 409
    default_message = "Resource was modified concurrently; retry the request"
    preserve_writes = False


class DependencyUnavailable(DomainError):
    code = "DEPENDENCY_UNAVAILABLE"
    status_code = 503
    default_message = "A required service is unavailable"
    preserve_writes = False
