"""Call scheduling endpoints, keyed by call thread."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from apps.api.deps import current_user_id, get_services
from core.errors import InvalidInput, NotFound
from services.container import Services
from services.entities import CallEvent, CallProposal, CallType, SchedulingView
from services.scheduling import SlotPreset, slot_presets

router = APIRouter(prefix="/threads", tags=["threads"])


class ProposalIn(BaseModel):
    call_type: CallType
    slots: list[str]


class ConfirmIn(BaseModel):
    slot: str


@router.get("/slot-presets")
async def get_slot_presets(tz: str | None = None, user_id: str = Depends(current_user_id)) -> list[SlotPreset]:
    """Quick time options for a new proposal, in the caller's time zone (IANA name)."""
    try:
        zone = ZoneInfo(tz) if tz else timezone.utc
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidInput(f"Unknown time zone: {tz}") from None
    return slot_presets(datetime.now(zone))


@router.get("/{thread_id}")
async def get_scheduling_view(
    thread_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> SchedulingView:
    """What the scheduling screen shows: upcoming call, slots to confirm, waiting or propose."""
    return await services.scheduling.get_scheduling_view(user_id, thread_id)


@router.post("/{thread_id}/proposals", status_code=status.HTTP_201_CREATED)
async def create_proposal(
    thread_id: str,
    body: ProposalIn,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallProposal:
    return await services.scheduling.create_proposal(user_id, thread_id, body.call_type, body.slots)


@router.get("/{thread_id}/proposals")
async def list_proposals(
    thread_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> list[CallProposal]:
    await services.scheduling.get_thread(user_id, thread_id)
    return await services.scheduling.list_proposals(thread_id)


@router.get("/{thread_id}/proposals/latest")
async def get_latest_proposal(
    thread_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallProposal:
    await services.scheduling.get_thread(user_id, thread_id)
    proposal = await services.scheduling.get_latest_proposal(thread_id)
    if proposal is None:
        raise NotFound("No proposal yet")
    return proposal


@router.post("/{thread_id}/confirm", status_code=status.HTTP_201_CREATED)
async def confirm_slot(
    thread_id: str,
    body: ConfirmIn,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallEvent:
    """Pick one slot of the latest proposal; schedules the call."""
    return await services.scheduling.confirm_slot(user_id, thread_id, body.slot)


@router.get("/{thread_id}/upcoming-call")
async def get_upcoming_call(
    thread_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallEvent:
    await services.scheduling.get_thread(user_id, thread_id)
    event = await services.scheduling.get_upcoming_call(thread_id)
    if event is None:
        raise NotFound("No upcoming call")
    return event
