import asyncio

import pytest

from core.errors import Conflict, InvalidInput, PreconditionFailed, Unauthenticated
from services.matching import MatchingService


@pytest.fixture
async def pair(make_profile):
    await make_profile("alice", age=25)
    await make_profile("bob", age=27)


async def test_one_sided_like_does_not_match(services, pair):
    result = await services.matching.record_swipe("alice", "bob", "like")
    assert not result.is_match
    assert await services.matching.list_matches("alice") == []


async def test_mutual_like_creates_match_and_pending_thread(services, pair):
    await services.matching.record_swipe("alice", "bob", "like")
    result = await services.matching.record_swipe("bob", "alice", "like")

    assert result.is_match
    match = await services.matching.get_match(result.match_id)
    assert (match.user_a_id, match.user_b_id) == ("alice", "bob")
    assert match.state == "active"
    thread = await services.matching.get_thread_for_match(match.id)
    assert thread.scheduling_state == "pending"
    assert [m.id for m in await services.matching.list_matches("alice")] == [match.id]
    assert [m.id for m in await services.matching.list_matches("bob")] == [match.id]


async def test_pass_never_matches(services, pair):
    await services.matching.record_swipe("alice", "bob", "like")
    result = await services.matching.record_swipe("bob", "alice", "pass")
    assert not result.is_match


async def test_repeated_likes_do_not_create_second_match(services, pair):
    await services.matching.record_swipe("alice", "bob", "like")
    first = await services.matching.record_swipe("bob", "alice", "like")
    again = await services.matching.record_swipe("alice", "bob", "like")
    also = await services.matching.record_swipe("bob", "alice", "like")

    assert first.is_match
    assert not again.is_match
    assert not also.is_match
    assert len(await services.repo.list_matches("alice")) == 1


async def test_simultaneous_mutual_likes_match_exactly_once(services, pair):
    results = await asyncio.gather(
        services.matching.record_swipe("alice", "bob", "like"),
        services.matching.record_swipe("bob", "alice", "like"),
    )
    assert sum(1 for r in results if r.is_match) == 1
    assert len(await services.repo.list_matches("alice")) == 1


async def test_auto_match_on_like(services, pair):
    services.matching.set_auto_match_on_like(True)
    result = await services.matching.record_swipe("alice", "bob", "like")
    assert result.is_match


async def test_auto_match_ignored_in_production(repo, settings, pair):
    production = settings.model_copy(update={"environment": "production", "auto_match_on_like": True})
    matching = MatchingService(repo, production)
    assert not matching.auto_match_on_like
    result = await matching.record_swipe("alice", "bob", "like")
    assert not result.is_match


async def test_blocked_pair_cannot_match(services, pair):
    await services.safety.block_user("bob", "alice")
    with pytest.raises(Conflict):
        await services.matching.record_swipe("alice", "bob", "like")


async def test_swipe_validation(services, pair):
    with pytest.raises(Unauthenticated):
        await services.matching.record_swipe(None, "bob", "like")
    with pytest.raises(InvalidInput):
        await services.matching.record_swipe("alice", "alice", "like")
    with pytest.raises(InvalidInput):
        await services.matching.record_swipe("alice", "bob", "superlike")
    with pytest.raises(PreconditionFailed):
        await services.matching.record_swipe("alice", "nobody", "like")


async def test_blocked_matches_are_hidden(services, matched_pair):
    match, _ = matched_pair
    await services.safety.block_user("alice", "bob")
    assert await services.matching.list_matches("alice") == []
    assert (await services.matching.get_match(match.id)).state == "blocked"
