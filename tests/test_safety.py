from datetime import timedelta

import pytest

from core.errors import Conflict, InvalidInput, PermissionDenied, PreconditionFailed, RateLimited
from services.calls import CallSessionController, feedback_due_key
from services.entities import Feedback
from services.safety import SafetyService, report_rate_key


@pytest.fixture
async def completed_call(repo, redis_client, settings, scheduled_call):
    calls = CallSessionController(repo, redis_client, settings, tick_seconds=60)
    await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    result = await calls.end_call("alice", scheduled_call.id)
    await calls.shutdown()
    return result.call_event


async def test_block_archives_match_and_hides_candidates(services, matched_pair, make_profile):
    match, _ = matched_pair
    await make_profile("carol")

    affected = await services.safety.block_user("bob", "alice")

    assert [m.id for m in affected] == [match.id]
    assert (await services.matching.get_match(match.id)).state == "blocked"
    assert "alice" not in {p.id for p in await services.profiles.list_candidates("bob")}
    assert "bob" not in {p.id for p in await services.profiles.list_candidates("alice")}
    assert "carol" in {p.id for p in await services.profiles.list_candidates("alice")}


async def test_block_is_idempotent(services, matched_pair):
    await services.safety.block_user("bob", "alice")
    assert await services.safety.block_user("bob", "alice") == []
    assert await services.safety.block_user("alice", "bob") == []
    assert await services.repo.blocked_ids("alice") == {"bob"}


async def test_block_validation(services, make_profile):
    await make_profile("alice")
    with pytest.raises(InvalidInput):
        await services.safety.block_user("alice", "alice")
    with pytest.raises(PreconditionFailed):
        await services.safety.block_user("alice", "ghost")


async def test_report_does_not_block(services, matched_pair):
    report = await services.safety.report_user("alice", "bob", "spam", "Sent links")

    assert report.category == "spam"
    assert [r.id for r in await services.repo.list_reports("bob")] == [report.id]
    assert not await services.repo.is_blocked("alice", "bob")


async def test_report_validation(services, make_profile):
    await make_profile("alice")
    await make_profile("bob")
    with pytest.raises(InvalidInput):
        await services.safety.report_user("alice", "bob", "rude")
    with pytest.raises(InvalidInput):
        await services.safety.report_user("alice", "bob", "other", "x" * 1001)
    with pytest.raises(InvalidInput):
        await services.safety.report_user("alice", "alice", "other")


async def test_report_rate_limited(services, redis_client, make_profile):
    for user_id in ("alice", "bob", "carol"):
        await make_profile(user_id)
    await services.safety.report_user("alice", "bob", "fake")

    with pytest.raises(RateLimited):
        await services.safety.report_user("alice", "carol", "spam")
    assert 0 < await redis_client.ttl(report_rate_key("alice")) <= 60


async def test_report_rate_limit_disabled(repo, redis_client, settings, make_profile):
    await make_profile("alice")
    await make_profile("bob")
    safety = SafetyService(repo, redis_client, settings.model_copy(update={"report_rate_limit_seconds": 0}))

    await safety.report_user("alice", "bob", "fake")
    await safety.report_user("alice", "bob", "harassment")

    assert len(await repo.list_reports("bob")) == 2


async def test_report_and_block(services, matched_pair):
    match, _ = matched_pair
    await services.safety.report_and_block("alice", "bob", "harassment")

    assert len(await services.repo.list_reports("bob")) == 1
    assert (await services.matching.get_match(match.id)).state == "blocked"


async def test_report_and_block_still_blocks_when_rate_limited(services, matched_pair, make_profile):
    await make_profile("carol")
    await services.safety.report_and_block("alice", "bob", "harassment")

    with pytest.raises(RateLimited):
        await services.safety.report_and_block("alice", "carol", "spam")

    assert await services.repo.is_blocked("alice", "carol")
    assert await services.repo.list_reports("carol") == []
    assert "carol" not in {p.id for p in await services.profiles.list_candidates("alice")}


async def test_report_and_block_validates_before_blocking(services, matched_pair):
    match, _ = matched_pair
    with pytest.raises(InvalidInput):
        await services.safety.report_and_block("alice", "bob", "rude")
    assert (await services.matching.get_match(match.id)).state == "active"


async def test_feedback_once_per_user(services, redis_client, completed_call):
    assert await redis_client.get(feedback_due_key("alice")) == completed_call.id

    feedback = await services.safety.submit_feedback("alice", completed_call.id, "interested")

    assert feedback.rating == "interested"
    assert await redis_client.get(feedback_due_key("alice")) is None
    with pytest.raises(Conflict):
        await services.safety.submit_feedback("alice", completed_call.id, "not_interested")


async def test_feedback_requires_completed_call(services, scheduled_call):
    with pytest.raises(Conflict):
        await services.safety.submit_feedback("alice", scheduled_call.id, "interested")


async def test_feedback_only_from_participants(services, completed_call, make_profile):
    await make_profile("mallory")
    with pytest.raises(PermissionDenied):
        await services.safety.submit_feedback("mallory", completed_call.id, "interested")
    with pytest.raises(PreconditionFailed):
        await services.safety.submit_feedback("alice", "missing", "interested")


async def test_mutual_not_interested_archives_match(services, matched_pair, completed_call):
    match, _ = matched_pair
    await services.safety.submit_feedback("alice", completed_call.id, "not_interested")
    assert (await services.matching.get_match(match.id)).state == "active"

    await services.safety.submit_feedback("bob", completed_call.id, "not_interested")
    assert (await services.matching.get_match(match.id)).state == "archived"


async def test_block_during_feedback_is_not_overwritten(services, matched_pair, completed_call):
    match, _ = matched_pair
    await services.safety.submit_feedback("alice", completed_call.id, "not_interested")
    # Bob's rating is stored, then the block lands before archival runs
    await services.repo.add_feedback(Feedback(call_event_id=completed_call.id, user_id="bob", rating="not_interested"))
    await services.safety.block_user("bob", "alice")

    await services.safety._archive_if_mutual_pass(completed_call.id, match)
    assert (await services.matching.get_match(match.id)).state == "blocked"


async def test_mixed_feedback_keeps_match_active(services, matched_pair, completed_call):
    match, _ = matched_pair
    await services.safety.submit_feedback("alice", completed_call.id, "interested")
    await services.safety.submit_feedback("bob", completed_call.id, "not_interested")
    assert (await services.matching.get_match(match.id)).state == "active"


async def test_archival_can_be_disabled(repo, redis_client, settings, matched_pair, completed_call):
    match, _ = matched_pair
    safety = SafetyService(repo, redis_client, settings.model_copy(update={"archive_on_mutual_not_interested": False}))
    await safety.submit_feedback("alice", completed_call.id, "not_interested")
    await safety.submit_feedback("bob", completed_call.id, "not_interested")
    assert (await repo.get_match(match.id)).state == "active"


async def test_scheduling_after_completed_call(services, matched_pair, completed_call):
    _, thread = matched_pair
    slot = (completed_call.scheduled_start + timedelta(days=1)).isoformat()
    await services.scheduling.create_proposal("bob", thread.id, "audio", [slot])
    event = await services.scheduling.confirm_slot("alice", thread.id, slot)
    assert event.state == "scheduled"
