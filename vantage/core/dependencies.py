"""
FastAPI dependency injection functions.

Provides the current principal, the request's entity store, the notification
dispatcher and the service objects built on top of them.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from vantage.core.database import get_db
from vantage.core.notifications import CeleryNotificationDispatcher, NotificationDispatcher
from vantage.core.security import Principal, decode_identity_token
from vantage.core.store import EntityStore, SQLAlchemyEntityStore
from vantage.services.heartbeat_service import HeartbeatService
from vantage.services.objective_service import ObjectiveService
from vantage.services.organization_service import TenancyService
from vantage.services.reminder_service import ReminderService

# ---------------------------------------------------------------------------
# HTTP Bearer scheme (auto_error=False so we can return custom 401)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Current principal
# ---------------------------------------------------------------------------

async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """
    Validate the identity provider's Bearer JWT and return the principal.

    Raises 401 if:
    - No token provided
    - Token is invalid, expired, or lacks sub / email claims
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "MISSING_TOKEN", "message": "Authorization header required"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_identity_token(credentials.credentials)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_TOKEN", "message": "Token is invalid or expired"},
            headers={"WWW-Authenticate": "Bearer"},
        )


# ---------------------------------------------------------------------------
# Store / notifier
# ---------------------------------------------------------------------------

async def get_store(db: AsyncSession = Depends(get_db)) -> EntityStore:
    return SQLAlchemyEntityStore(db)


_dispatcher: NotificationDispatcher | None = None


def get_notifier() -> NotificationDispatcher:
    """Shared dispatcher; it holds no per-request state."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = CeleryNotificationDispatcher()
    return _dispatcher


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

def get_tenancy_service(
    store: EntityStore = Depends(get_store),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> TenancyService:
    return TenancyService(store, notifier)


def get_heartbeat_service(
    store: EntityStore = Depends(get_store),
    tenancy: TenancyService = Depends(get_tenancy_service),
) -> HeartbeatService:
    return HeartbeatService(store, tenancy)


def get_objective_service(
    store: EntityStore = Depends(get_store),
    tenancy: TenancyService = Depends(get_tenancy_service),
    heartbeats: HeartbeatService = Depends(get_heartbeat_service),
) -> ObjectiveService:
    return ObjectiveService(store, tenancy, heartbeats)


def get_reminder_service(
    store: EntityStore = Depends(get_store),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> ReminderService:
    return ReminderService(store, notifier)
