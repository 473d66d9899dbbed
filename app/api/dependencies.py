from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.db.engine import async_session_factory, session_scope
from app.db.stores import memory_stores, pg_stores
from app.models.principal import Principal
from app.services import token_service
from app.services.notifications import (
    DeferredNotificationDispatcher,
    QueueNotificationDispatcher,
)
from app.services.task_queue import task_queue
from app.services.wiring import Services, build_services

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = token_service.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        principal.roles,
    )
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def principal_user_id(principal: Principal) -> UUID:
    """The caller's user id; a non-UUID subject cannot own enrollments."""
    try:
        return UUID(principal.user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


def ensure_can_view(principal: Principal, user_id: UUID) -> None:
    """Learners may only read their own enrollment data; admins read all."""
    if not principal.can_view_user(user_id):
        logger.warning(
            "Access denied: user=%s tried to read data of user=%s",
            principal.user_id,
            user_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view your own enrollments",
        )


_notifier = QueueNotificationDispatcher(task_queue)


async def get_services() -> AsyncGenerator[Services, None]:
    """Request-scoped services.

    With DATABASE_URL set, every repository shares one session and the
    request is one unit of work; notifications raised during it are only
    queued once it has committed.  Otherwise the in-memory stores are used.
    """
    if async_session_factory is None:
        yield build_services(memory_stores, _notifier)
        return
    outbox = DeferredNotificationDispatcher(_notifier)
    async with session_scope() as session:
        yield build_services(pg_stores(session), outbox)
    await outbox.flush()
