"""Minimal auth dependency.

Stub implementation that takes the member id straight from the bearer token.
Token verification belongs to the identity provider in front of this
service.
"""

from typing import Annotated

from fastapi import Header, HTTPException, status

from backend.itinerary_engine.db.context import RequestContext

DEV_USER_ID = "dev-user"


async def get_current_context(
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Accepts "Bearer <user_id>"; with no header at all the local development
    user is assumed.

    Args:
        authorization: Authorization header (e.g., "Bearer <token>")

    Returns:
        RequestContext with user_id

    Raises:
        HTTPException: If authorization is invalid
    """
    if not authorization:
        return RequestContext(user_id=DEV_USER_ID)

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:].strip()  # Strip "Bearer "

    if not token or any(ch.isspace() for ch in token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid bearer token (expected user_id)",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return RequestContext(user_id=token)
