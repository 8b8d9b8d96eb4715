"""
FastAPI Dependencies
Dependency injection for the acting user and the claims service
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
"""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.enums import ActorRole
from src.db.connection import get_session
from src.schemas.claim import Actor
from src.services.claims_service import ClaimsService
from src.utils.logging import get_logger

logger = get_logger(__name__)

_KNOWN_ROLES = {role.value for role in ActorRole}


async def get_current_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_roles: str = Header(default=""),
) -> Actor:
    """
    Acting user from the identity gateway headers.

    ``X-Actor-Id`` carries the user id and ``X-Actor-Roles`` a
    comma-separated role list. Unknown roles grant nothing and are dropped.

    Raises:
        HTTPException: 401 when no actor id is supplied
    """
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "actor_required", "message": "X-Actor-Id header is required"},
        )

    roles = []
    for raw in x_actor_roles.split(","):
        role = raw.strip().lower()
        if not role:
            continue
        if role not in _KNOWN_ROLES:
            logger.warning(f"Ignoring unknown role '{role}' for actor {x_actor_id}")
            continue
        roles.append(ActorRole(role))

    return Actor(id=x_actor_id.strip(), roles=tuple(roles))


async def get_claims_service(
    session: AsyncSession = Depends(get_session),
) -> ClaimsService:
    return ClaimsService(session)
