"""
Authentication dependencies for FastAPI.

Resolves the bearer JWT into the acting user and captures request metadata
for audit rows.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.actor import Actor, RequestContext
from backend.app.core.jwt import decode_access_token
from backend.app.models.enums import ActorType, UserRole

# HTTP Bearer security scheme
security = HTTPBearer()

ROLE_ACTOR_TYPES = {
    UserRole.ADMIN.value: ActorType.ADMIN,
    UserRole.DRIVER.value: ActorType.DRIVER,
}


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Returns:
        Decoded token payload containing user information

    Raises:
        HTTPException: 401 if the token is invalid or has no user_id
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("user_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


def actor_from_claims(payload: dict) -> Actor:
    return Actor(
        id=payload.get("user_id"),
        name=payload.get("sub"),
        type=ROLE_ACTOR_TYPES.get(payload.get("role"), ActorType.USER),
    )


async def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
