"""Blocking, reporting and post-call feedback endpoints."""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from apps.api.deps import current_user_id, get_services
from services.container import Services
from services.entities import Feedback, FeedbackRating, Report, ReportCategory

router = APIRouter(prefix="/safety", tags=["safety"])


class BlockIn(BaseModel):
    """Input model for blocking a user."""

    blocked_id: str


class ReportIn(BaseModel):
    """Input model for creating a report."""

    reported_id: str
    category: ReportCategory
    notes: str | None = None
    block: bool = False  # also block the reported user


class FeedbackIn(BaseModel):
    call_event_id: str
    rating: FeedbackRating


@router.post("/blocks")
async def block_user(
    body: BlockIn,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> dict[str, int | bool]:
    """
    Block another user.

    Effects:
    - Every match with the user becomes blocked (no further scheduling)
    - Neither user appears in the other's candidates again

    Returns:
        {"ok": True, "blocked_matches": <number of matches blocked>}
    """
    affected = await services.safety.block_user(user_id, body.blocked_id)
    return {"ok": True, "blocked_matches": len(affected)}


@router.post("/reports", status_code=status.HTTP_201_CREATED)
async def report_user(
    body: ReportIn,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> Report:
    """File a report; with ``block`` set the reported user is blocked as well."""
    if body.block:
        return await services.safety.report_and_block(user_id, body.reported_id, body.category, body.notes)
    return await services.safety.report_user(user_id, body.reported_id, body.category, body.notes)


@router.post("/feedback", status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    body: FeedbackIn,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> Feedback:
    return await services.safety.submit_feedback(user_id, body.call_event_id, body.rating)
