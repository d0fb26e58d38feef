"""
auth.py — Authentication dependencies.

Login and registration belong to the identity service. Routes here only need
to know who is calling:

    async def my_route(user: CurrentUser): ...   # 401 without a valid token
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ratemap.core.security import Identity, decode_access_token

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[Optional[HTTPAuthorizationCredentials], Depends(_bearer)]


def _optional_identity(credentials: CredDep) -> Optional[Identity]:
    if not credentials:
        return None
    return decode_access_token(credentials.credentials)


def _current_identity(credentials: CredDep) -> Identity:
    """Raises 401 if the token is missing or invalid."""
    identity = _optional_identity(credentials)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


CurrentUser = Annotated[Identity, Depends(_current_identity)]
