"""FastAPI dependency extracting the authenticated user from a Bearer header."""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from threadline.chat.schemas import User
from threadline.errors import AuthError

from .service import identity_resolver

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """Resolve the request's bearer credential.

    Raises:
        HTTPException 401 if the token is missing, invalid, expired, or
        belongs to a user that no longer exists.
    """
    token = credentials.credentials if credentials else None
    try:
        return identity_resolver.resolve(token)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
