"""
Authentication dependency.

User ids are opaque strings issued by the identity provider; there is no
local user table, so the dependency resolves to the token subject.
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from core.exceptions import UnauthorizedError
from core.security import get_user_id_from_token

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Get the current authenticated user id from the bearer token.

    Raises UnauthorizedError if the token is missing, invalid, expired or
    has no subject.
    """
    if not credentials:
        raise UnauthorizedError()

    user_id = get_user_id_from_token(credentials.credentials)
    if not user_id:
        raise UnauthorizedError("Invalid authentication credentials")

    return str(user_id)
