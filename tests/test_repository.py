"""Contract tests run against both storage backends."""

import asyncio
from datetime import timedelta

import pytest

from core.errors import Conflict
from services.entities import Block, CallEvent, CallProposal, Feedback, Swipe, utcnow
from services.memory_repo import InMemoryRepository
from services.repository import ordered_pair


def _event(thread_id: str, state: str = "scheduled", minutes: int = 60) -> CallEvent:
    return CallEvent(
        thread_id=thread_id,
        scheduled_start=utcnow() + timedelta(minutes=minutes),
        duration_seconds=30,
        call_type="video",
        state=state,
    )


async def _schedule(repo, thread_id: str, minutes: int = 60) -> CallEvent:
    """Propose one slot and confirm it."""
    event = _event(thread_id, minutes=minutes)
    proposal = await repo.add_proposal(
        CallProposal(thread_id=thread_id, proposed_by="amy", call_type="video", slots=[event.scheduled_start_iso])
    )
    return await repo.create_call_event(event, proposal.id)


def test_ordered_pair_is_canonical():
    assert ordered_pair("b", "a") == ("a", "b")
    assert ordered_pair("a", "b") == ("a", "b")


async def test_create_match_with_thread_once_per_pair(repo):
    match, thread, created = await repo.create_match_with_thread("zed", "amy")
    assert created
    assert (match.user_a_id, match.user_b_id) == ("amy", "zed")
    assert thread.match_id == match.id
    assert thread.scheduling_state == "pending"

    again, again_thread, created_again = await repo.create_match_with_thread("amy", "zed")
    assert not created_again
    assert again.id == match.id
    assert again_thread.id == thread.id


async def test_concurrent_match_creation_creates_one(repo):
    results = await asyncio.gather(*(repo.create_match_with_thread("amy", "zed") for _ in range(5)))
    assert sum(1 for _, _, created in results if created) == 1
    assert len({match.id for match, _, _ in results}) == 1
    assert len(await repo.list_matches("amy")) == 1


async def test_swipes_accumulate(repo):
    await repo.add_swipe(Swipe(from_id="amy", to_id="zed", action="pass"))
    await repo.add_swipe(Swipe(from_id="amy", to_id="zed", action="like"))
    assert await repo.has_liked("amy", "zed")
    assert not await repo.has_liked("zed", "amy")
    assert await repo.swiped_ids("amy") == {"zed"}


async def test_proposals_newest_first_and_thread_moves_to_proposed(repo):
    _, thread, _ = await repo.create_match_with_thread("amy", "zed")
    now = utcnow()
    first = CallProposal(thread_id=thread.id, proposed_by="amy", call_type="audio", slots=["a"], created_at=now)
    second = CallProposal(
        thread_id=thread.id,
        proposed_by="zed",
        call_type="video",
        slots=["b"],
        created_at=now + timedelta(microseconds=1),
    )
    await repo.add_proposal(first)
    await repo.add_proposal(second)

    assert [p.id for p in await repo.list_proposals(thread.id)] == [second.id, first.id]
    assert (await repo.get_latest_proposal(thread.id)).id == second.id
    assert (await repo.get_thread(thread.id)).scheduling_state == "proposed"


async def test_one_upcoming_call_per_thread(repo):
    _, thread, _ = await repo.create_match_with_thread("amy", "zed")
    event = await _schedule(repo, thread.id)
    assert (await repo.get_thread(thread.id)).scheduling_state == "confirmed"

    with pytest.raises(Conflict):
        await _schedule(repo, thread.id)

    await repo.transition_call_event(event.id, ("scheduled",), "canceled")
    assert await repo.get_upcoming_call(thread.id) is None
    replacement = await _schedule(repo, thread.id)
    assert (await repo.get_upcoming_call(thread.id)).id == replacement.id


async def test_transition_is_compare_and_set(repo):
    _, thread, _ = await repo.create_match_with_thread("amy", "zed")
    event = await _schedule(repo, thread.id)

    live = await repo.transition_call_event(event.id, ("scheduled",), "live")
    assert live.state == "live"
    assert await repo.transition_call_event(event.id, ("scheduled",), "live") is None

    results = await asyncio.gather(
        repo.transition_call_event(event.id, ("live",), "completed"),
        repo.transition_call_event(event.id, ("live",), "completed"),
    )
    assert sum(1 for r in results if r is not None) == 1
    assert (await repo.get_call_event(event.id)).state == "completed"


async def test_list_scheduled_before(repo):
    _, thread, _ = await repo.create_match_with_thread("amy", "zed")
    past = await _schedule(repo, thread.id, minutes=-30)
    _, other_thread, _ = await repo.create_match_with_thread("amy", "bob")
    await _schedule(repo, other_thread.id, minutes=30)

    due = await repo.list_scheduled_before(utcnow())
    assert [e.id for e in due] == [past.id]
    assert due[0].scheduled_start.tzinfo is not None


async def test_feedback_once_per_user_and_call(repo):
    _, thread, _ = await repo.create_match_with_thread("amy", "zed")
    event = await _schedule(repo, thread.id)
    await repo.add_feedback(Feedback(call_event_id=event.id, user_id="amy", rating="interested"))
    with pytest.raises(Conflict):
        await repo.add_feedback(Feedback(call_event_id=event.id, user_id="amy", rating="not_interested"))
    await repo.add_feedback(Feedback(call_event_id=event.id, user_id="zed", rating="not_interested"))
    assert len(await repo.list_feedback(event.id)) == 2


async def test_block_archives_pair_matches(repo):
    match, _, _ = await repo.create_match_with_thread("amy", "zed")
    other, _, _ = await repo.create_match_with_thread("amy", "bob")

    affected = await repo.add_block_and_archive(Block(blocker_id="zed", blocked_id="amy"))

    assert [m.id for m in affected] == [match.id]
    assert (await repo.get_match(match.id)).state == "blocked"
    assert (await repo.get_match(other.id)).state == "active"
    assert await repo.is_blocked("amy", "zed")
    assert await repo.is_blocked("zed", "amy")
    assert await repo.blocked_ids("amy") == {"zed"}


async def test_call_event_requires_latest_open_proposal(repo):
    _, thread, _ = await repo.create_match_with_thread("amy", "zed")
    event = _event(thread.id)
    first = await repo.add_proposal(
        CallProposal(thread_id=thread.id, proposed_by="amy", call_type="video", slots=[event.scheduled_start_iso])
    )
    await repo.add_proposal(
        CallProposal(
            thread_id=thread.id,
            proposed_by="zed",
            call_type="audio",
            slots=["2030-01-01T10:00:00+00:00"],
            created_at=first.created_at + timedelta(microseconds=1),
        )
    )

    with pytest.raises(Conflict):
        await repo.create_call_event(event, first.id)
    assert await repo.get_upcoming_call(thread.id) is None
    assert (await repo.get_thread(thread.id)).scheduling_state == "proposed"


async def test_no_proposal_while_call_upcoming(repo):
    _, thread, _ = await repo.create_match_with_thread("amy", "zed")
    event = await _schedule(repo, thread.id)

    with pytest.raises(Conflict):
        await repo.add_proposal(CallProposal(thread_id=thread.id, proposed_by="zed", call_type="audio", slots=["x"]))

    assert (await repo.get_thread(thread.id)).scheduling_state == "confirmed"
    assert (await repo.get_latest_proposal(thread.id)).slots == [event.scheduled_start_iso]


async def test_block_cancels_scheduled_calls_of_pair(repo):
    _, thread, _ = await repo.create_match_with_thread("amy", "zed")
    _, other_thread, _ = await repo.create_match_with_thread("amy", "bob")
    event = await _schedule(repo, thread.id)
    other = await _schedule(repo, other_thread.id)

    await repo.add_block_and_archive(Block(blocker_id="zed", blocked_id="amy"))

    assert (await repo.get_call_event(event.id)).state == "canceled"
    assert await repo.get_upcoming_call(thread.id) is None
    assert (await repo.get_call_event(other.id)).state == "scheduled"


async def test_set_match_state_compare_and_set(repo):
    match, _, _ = await repo.create_match_with_thread("amy", "zed")
    await repo.add_block_and_archive(Block(blocker_id="zed", blocked_id="amy"))

    assert await repo.set_match_state(match.id, "archived", from_states=("active",)) is None
    assert (await repo.get_match(match.id)).state == "blocked"

    archived = await repo.set_match_state(match.id, "archived")
    assert archived.state == "archived"


async def test_update_profile_and_reset(repo, make_profile):
    await make_profile("amy")
    updated = await repo.update_profile("amy", {"bio": "hello", "photos": ["p1"]})
    assert updated.bio == "hello"
    assert updated.photos == ["p1"]
    assert await repo.update_profile("nobody", {"bio": "x"}) is None

    await repo.reset()
    assert await repo.get_profile("amy") is None
    assert await repo.list_profiles() == []


async def test_memory_snapshot_survives_restart(tmp_path):
    path = tmp_path / "store.json"
    repo = InMemoryRepository(path)
    match, _, _ = await repo.create_match_with_thread("amy", "zed")

    reloaded = InMemoryRepository(path)
    assert (await reloaded.get_match(match.id)).user_b_id == "zed"
