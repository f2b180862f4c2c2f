"""Sign-in and session endpoints."""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from apps.api.deps import current_session, get_services
from core.auth import bearer_token
from services.container import Services
from services.entities import Session
from services.identity import Credential

router = APIRouter(prefix="/auth", tags=["auth"])


class OtpRequest(BaseModel):
    phone: str


class SessionOut(BaseModel):
    token: str
    session: Session


@router.post("/otp", status_code=status.HTTP_202_ACCEPTED)
async def send_otp(body: OtpRequest, services: Services = Depends(get_services)) -> dict[str, bool]:
    """Send a one-time sign-in code to the phone number."""
    await services.identity.send_otp(body.phone)
    return {"ok": True}


@router.post("/session", status_code=status.HTTP_201_CREATED)
async def create_session(credential: Credential, services: Services = Depends(get_services)) -> SessionOut:
    """
    Establish a session from one of:
    - ``{"phone", "code"}``: phone number and one-time code
    - ``{"email", "password", "create"}``: email sign-in, or sign-up when create is true
    - ``{"user_id"}``: demo profile sign-in (not available in production)
    """
    token, session = await services.identity.establish_session(credential)
    return SessionOut(token=token, session=session)


@router.get("/session")
async def get_session(session: Session = Depends(current_session)) -> Session:
    return session


@router.post("/logout")
async def logout(token: str = Depends(bearer_token), services: Services = Depends(get_services)) -> dict[str, bool]:
    await services.identity.end_session(token)
    return {"ok": True}
