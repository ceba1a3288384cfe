from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from quizcore.models.principal import Principal
from quizcore.services.container import Services
from quizcore.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)


def require_user(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_roles: Annotated[str | None, Header()] = None,
) -> Principal:
    """Build the Principal from the identity headers set by the gateway.

    Token validation happens upstream; this service trusts the headers.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        logger.warning("Request rejected: no caller identity")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )

    roles = frozenset(
        r.strip().lower() for r in (x_user_roles or "").split(",") if r.strip()
    )
    principal = Principal(user_id=user_id, roles=roles)
    logger.debug(
        "Caller identified user=%s roles=%s",
        principal.user_id,
        sorted(principal.roles),
        extra={"user_id": principal.user_id},
    )
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
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


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"admin", "instructor"}))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                sorted(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_task_queue(request: Request) -> TaskQueue:
    return request.app.state.task_queue
