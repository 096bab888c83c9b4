import asyncio

from campusguessr.backend.scheduler import AsyncioScheduler, CancelToken, FrameScheduler


def test_frame_scheduler_fires_callbacks_in_due_order() -> None:
    scheduler = FrameScheduler()
    fired: list[str] = []

    scheduler.schedule(2.0, lambda: fired.append("late"))
    scheduler.schedule(1.0, lambda: fired.append("early"))
    scheduler.schedule(1.0, lambda: fired.append("early-second"))

    assert scheduler.tick(0.5) == 0
    assert scheduler.tick(2.0) == 3
    assert fired == ["early", "early-second", "late"]
    assert scheduler.now == 2.5


def test_frame_scheduler_skips_cancelled_tokens() -> None:
    scheduler = FrameScheduler()
    fired: list[str] = []

    token = scheduler.schedule(1.0, lambda: fired.append("cancelled"))
    scheduler.schedule(1.0, lambda: fired.append("kept"))
    token.cancel()

    assert scheduler.pending == 1
    assert scheduler.tick(1.0) == 1
    assert fired == ["kept"]


def test_frame_scheduler_runs_callbacks_scheduled_while_firing() -> None:
    scheduler = FrameScheduler()
    fired: list[float] = []

    def first() -> None:
        fired.append(scheduler.now)
        scheduler.schedule(1.0, lambda: fired.append(scheduler.now))

    scheduler.schedule(1.0, first)
    scheduler.tick(3.0)

    assert fired == [1.0, 2.0]


def test_cancel_token_runs_hooks_once() -> None:
    token = CancelToken(label="test")
    calls: list[str] = []
    token.add_cancel_hook(lambda: calls.append("hook"))

    token.cancel()
    token.cancel()
    token.add_cancel_hook(lambda: calls.append("late"))

    assert token.cancelled
    assert calls == ["hook", "late"]


def test_asyncio_scheduler_fires_and_notifies() -> None:
    async def scenario() -> list[str]:
        events: list[str] = []
        scheduler = AsyncioScheduler(after_fire=lambda: events.append("after"))
        scheduler.schedule(0.01, lambda: events.append("fired"))
        cancelled = scheduler.schedule(0.01, lambda: events.append("cancelled"))
        cancelled.cancel()
        await asyncio.sleep(0.05)
        return events

    assert asyncio.run(scenario()) == ["fired", "after"]
