import asyncio
from datetime import timedelta

import pytest

from apps.workers.missed_call_worker import MissedCallWorker
from core.errors import Conflict, PermissionDenied, PreconditionFailed
from services.calls import CallCountdown, CallSessionController, countdown_label


@pytest.fixture
async def calls(repo, redis_client, settings):
    """Controller whose countdowns never expire during a test."""
    controller = CallSessionController(repo, redis_client, settings, tick_seconds=60)
    yield controller
    await controller.shutdown()


@pytest.mark.parametrize(
    "seconds,label",
    [
        (-5, "Ready to join!"),
        (0, "Ready to join!"),
        (45, "45 seconds"),
        (60, "1 minute"),
        (150, "2 minutes"),
        (3600, "1h 0m"),
        (5430, "1h 30m"),
    ],
)
def test_countdown_label(seconds, label):
    assert countdown_label(seconds) == label


async def test_lobby_status(services, scheduled_call):
    before = services.calls.lobby_status(scheduled_call, scheduled_call.scheduled_start - timedelta(minutes=5))
    assert not before.can_join
    assert before.seconds_until_start == 300
    assert before.label == "5 minutes"

    after = services.calls.lobby_status(scheduled_call, scheduled_call.scheduled_start)
    assert after.can_join
    assert after.label == "Ready to join!"


async def test_cannot_join_before_start(calls, scheduled_call):
    with pytest.raises(PreconditionFailed):
        await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start - timedelta(seconds=1))
    assert (await calls.get_call_event(scheduled_call.id)).state == "scheduled"


async def test_outsider_cannot_join(calls, scheduled_call, make_profile):
    await make_profile("mallory")
    with pytest.raises(PermissionDenied):
        await calls.join_call("mallory", scheduled_call.id, scheduled_call.scheduled_start)


async def test_join_makes_call_live_and_sets_pointer(calls, scheduled_call):
    event = await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    assert event.state == "live"
    assert await calls.get_active_call("alice") == scheduled_call.id

    again = await calls.join_call("bob", scheduled_call.id, scheduled_call.scheduled_start)
    assert again.state == "live"
    assert await calls.get_active_call("bob") == scheduled_call.id
    assert list(calls.countdowns) == [scheduled_call.id]


async def test_block_cancels_scheduled_call_and_refuses_join(services, calls, scheduled_call):
    await services.safety.block_user("bob", "alice")

    assert (await calls.get_call_event(scheduled_call.id)).state == "canceled"
    assert await services.scheduling.get_upcoming_call(scheduled_call.thread_id) is None
    with pytest.raises(Conflict):
        await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    assert await calls.get_active_call("alice") is None


async def test_no_rejoin_after_block_during_live_call(services, calls, scheduled_call):
    await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    await services.safety.block_user("bob", "alice")

    with pytest.raises(Conflict):
        await calls.join_call("bob", scheduled_call.id, scheduled_call.scheduled_start)
    assert (await calls.end_call("alice", scheduled_call.id)).ended


async def test_countdown_ends_call_once(services, scheduled_call):
    await services.calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    countdown = services.calls.countdowns[scheduled_call.id]

    await countdown.wait()

    event = await services.calls.get_call_event(scheduled_call.id)
    assert event.state == "completed"
    assert countdown.remaining == 0
    assert await services.calls.get_active_call("alice") is None
    assert await services.calls.get_feedback_due("alice") == scheduled_call.id
    assert await services.calls.get_feedback_due("bob") is None

    late = await services.calls.end_call("bob", scheduled_call.id)
    assert not late.ended
    assert await services.calls.get_feedback_due("bob") is None


async def test_manual_end_cancels_countdown(calls, scheduled_call, settings):
    await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    await calls.join_call("bob", scheduled_call.id, scheduled_call.scheduled_start)
    countdown = calls.countdowns[scheduled_call.id]

    result = await calls.end_call("bob", scheduled_call.id)
    await countdown.wait()

    assert result.ended
    assert result.call_event.state == "completed"
    assert result.feedback_user_id == "bob"
    assert countdown.done
    assert countdown.remaining == settings.call_duration
    assert scheduled_call.id not in calls.countdowns
    assert await calls.get_active_call("alice") is None
    assert await calls.get_active_call("bob") is None
    assert await calls.get_feedback_due("bob") == scheduled_call.id
    assert await calls.get_feedback_due("alice") is None


async def test_concurrent_ends_complete_exactly_once(calls, scheduled_call):
    await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    results = await asyncio.gather(
        calls.end_call("alice", scheduled_call.id),
        calls.end_call("bob", scheduled_call.id),
    )
    assert sum(1 for r in results if r.ended) == 1
    ender = next(r.feedback_user_id for r in results if r.ended)
    other = "bob" if ender == "alice" else "alice"
    assert await calls.get_feedback_due(ender) == scheduled_call.id
    assert await calls.get_feedback_due(other) is None


async def test_completed_call_cannot_go_live_again(calls, scheduled_call):
    await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    await calls.end_call("alice", scheduled_call.id)

    with pytest.raises(Conflict):
        await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    with pytest.raises(Conflict):
        await calls.set_call_event_state("alice", scheduled_call.id, "live")


async def test_end_before_start_is_conflict(calls, scheduled_call):
    with pytest.raises(Conflict):
        await calls.end_call("alice", scheduled_call.id)


async def test_cancel_only_scheduled(calls, scheduled_call):
    canceled = await calls.cancel_call("bob", scheduled_call.id)
    assert canceled.state == "canceled"
    with pytest.raises(Conflict):
        await calls.cancel_call("bob", scheduled_call.id)


async def test_mark_missed_calls_after_grace(calls, scheduled_call, settings):
    start = scheduled_call.scheduled_start
    assert await calls.mark_missed_calls(start + timedelta(minutes=5)) == []

    missed = await calls.mark_missed_calls(start + timedelta(seconds=settings.missed_call_grace_seconds + 1))

    assert [e.id for e in missed] == [scheduled_call.id]
    assert (await calls.get_call_event(scheduled_call.id)).state == "missed"


async def test_missed_call_worker_sweep(repo, redis_client, settings, scheduled_call):
    # Negative grace puts the cutoff past a call starting in one hour
    eager = settings.model_copy(update={"missed_call_grace_seconds": -7200})
    worker = MissedCallWorker(CallSessionController(repo, redis_client, eager), interval_seconds=0.01)

    assert await worker.run_once() == 1
    assert await worker.run_once() == 0
    assert (await repo.get_call_event(scheduled_call.id)).state == "missed"


async def test_set_call_event_state_dispatch(calls, scheduled_call):
    with pytest.raises(Conflict):
        await calls.set_call_event_state("alice", scheduled_call.id, "completed")

    missed = await calls.set_call_event_state("alice", scheduled_call.id, "missed")
    assert missed.state == "missed"

    with pytest.raises(Conflict):
        await calls.set_call_event_state("alice", scheduled_call.id, "canceled")


async def test_live_call_marked_missed_clears_pointers(calls, scheduled_call):
    await calls.join_call("alice", scheduled_call.id, scheduled_call.scheduled_start)
    await calls.set_call_event_state("bob", scheduled_call.id, "missed")

    assert await calls.get_active_call("alice") is None
    assert scheduled_call.id not in calls.countdowns


async def test_countdown_cancel_before_expiry():
    expired = []

    async def on_expire() -> None:
        expired.append(True)

    countdown = CallCountdown("evt", 100, on_expire, tick_seconds=0.01)
    countdown.start()
    await asyncio.sleep(0.05)
    countdown.cancel()
    await countdown.wait()

    assert countdown.done
    assert 0 < countdown.remaining < 100
    assert expired == []
