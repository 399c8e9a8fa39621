"""
FastAPI dependencies for authentication and authority checks.
"""

from typing import Callable

from fastapi import Depends, HTTPException, Request, status

from commissions.auth.jwt import get_token_from_request, verify_token
from commissions.context import ActorContext
from commissions.utils.audit import get_client_ip


async def get_actor(request: Request) -> ActorContext:
    """
    Build the ActorContext for the current request.

    Raises 401 if no valid token is present.
    """
    token = get_token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    payload = verify_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    return ActorContext(
        user_id=payload["user_id"],
        authority_level=payload["authority_level"],
        ip_address=get_client_ip(request),
    )


def require_authority(level: int) -> Callable:
    """
    Dependency factory: the caller must hold at least `level`.

    Usage:
        actor: ActorContext = Depends(require_authority(4))
    """

    async def checker(actor: ActorContext = Depends(get_actor)) -> ActorContext:
        if actor.authority_level < level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Authority level {level} required",
            )
        return actor

    return checker
