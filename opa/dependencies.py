import uuid

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from opa.auth.service import decode_access_token

logger = structlog.get_logger()
security = HTTPBearer()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> uuid.UUID:
    """Extract and validate the bearer token, return the caller's user id.

    Whether the caller is renter, owner or driver is decided per booking,
    not by the token.
    """
    actor_id = decode_access_token(credentials.credentials)
    if actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        )
    structlog.contextvars.bind_contextvars(actor_id=str(actor_id))
    return actor_id
