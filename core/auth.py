"""Authentication and authorization utilities for API."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBasic, HTTPBasicCredentials, HTTPBearer

from core.config import settings
from core.security import codes_match

# HTTPBasic security for admin endpoints
_security = HTTPBasic()

# Bearer session tokens for user endpoints; missing headers are handled below
_bearer = HTTPBearer(auto_error=False)


async def bearer_token(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> str:
    """
    Extract the session token from the Authorization header.

    Raises:
        HTTPException: 401 if the header is missing or not a bearer token
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in to continue",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


async def admin_basic_auth(credentials: HTTPBasicCredentials = Depends(_security)) -> str:
    """
    Validate HTTP Basic Auth credentials for admin endpoints.

    Args:
        credentials: HTTP Basic credentials from request

    Returns:
        Username if authentication successful

    Raises:
        HTTPException: If credentials are invalid
    """
    valid_user = codes_match(credentials.username, settings.admin_user)
    valid_pass = codes_match(credentials.password, settings.admin_pass)
    if not (valid_user and valid_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return str(credentials.username)

