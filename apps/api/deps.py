"""FastAPI dependencies."""

from fastapi import Depends, HTTPException, Request, status

from core.auth import bearer_token
from core.errors import NotFound
from services.container import Services
from services.entities import Session


def get_services(request: Request) -> Services:
    """Domain services built at application startup."""
    return request.app.state.services


async def current_session(
    token: str = Depends(bearer_token),
    services: Services = Depends(get_services),
) -> Session:
    """Resolve the bearer token into a session; fails closed."""
    session = await services.identity.get_session(token)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired, sign in again",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


async def current_user_id(session: Session = Depends(current_session)) -> str:
    return session.user_id


async def dev_tools_enabled(services: Services = Depends(get_services)) -> None:
    """Developer endpoints do not exist in production."""
    if services.settings.is_production:
        raise NotFound("Not Found")
