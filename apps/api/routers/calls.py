"""Call lobby and live-call endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from apps.api.deps import current_user_id, get_services
from services.container import Services
from services.entities import CallEvent, CallState, EndCallResult, LobbyStatus

router = APIRouter(prefix="/calls", tags=["calls"])


class CallStateIn(BaseModel):
    state: CallState


class PointerOut(BaseModel):
    call_event_id: str | None


@router.get("/active")
async def get_active_call(
    user_id: str = Depends(current_user_id), services: Services = Depends(get_services)
) -> PointerOut:
    """The call the user is currently in, if any."""
    return PointerOut(call_event_id=await services.calls.get_active_call(user_id))


@router.get("/feedback-due")
async def get_feedback_due(
    user_id: str = Depends(current_user_id), services: Services = Depends(get_services)
) -> PointerOut:
    """The ended call still waiting for the user's feedback, if any."""
    return PointerOut(call_event_id=await services.calls.get_feedback_due(user_id))


@router.get("/{event_id}")
async def get_call_event(
    event_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallEvent:
    return await services.calls.get_participant_call(user_id, event_id)


@router.get("/{event_id}/lobby")
async def get_lobby_status(
    event_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> LobbyStatus:
    event = await services.calls.get_participant_call(user_id, event_id)
    return services.calls.lobby_status(event)


@router.post("/{event_id}/join")
async def join_call(
    event_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallEvent:
    return await services.calls.join_call(user_id, event_id)


@router.post("/{event_id}/end")
async def end_call(
    event_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> EndCallResult:
    return await services.calls.end_call(user_id, event_id)


@router.post("/{event_id}/cancel")
async def cancel_call(
    event_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallEvent:
    return await services.calls.cancel_call(user_id, event_id)


@router.put("/{event_id}/state")
async def set_call_event_state(
    event_id: str,
    body: CallStateIn,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallEvent:
    return await services.calls.set_call_event_state(user_id, event_id, body.state)
