import asyncio

from exam_api.services.timer import CountdownTimer, TimerState


def test_expiry_fires_once(scheduler) -> None:
    expired = []
    timer = CountdownTimer(on_expire=lambda: expired.append(True), scheduler=scheduler)

    timer.start(1)
    scheduler.advance(1)
    for _ in range(3):
        timer.tick()

    assert expired == [True]
    assert timer.state is TimerState.EXPIRED
    assert timer.remaining == 0
    assert scheduler.pending == []


def test_warning_fires_once_when_crossing_threshold(scheduler) -> None:
    warnings = []
    timer = CountdownTimer(
        on_expire=lambda: None,
        on_warning=warnings.append,
        warning_threshold=300,
        scheduler=scheduler,
    )

    timer.start(400)
    scheduler.advance(99)
    assert warnings == []

    scheduler.advance(1)
    assert warnings == [300]
    assert timer.state is TimerState.WARNING

    scheduler.advance(50)
    assert warnings == [300]
    assert timer.remaining == 250


def test_start_replaces_running_countdown(scheduler) -> None:
    expired = []
    timer = CountdownTimer(on_expire=lambda: expired.append(True), scheduler=scheduler)

    timer.start(10)
    scheduler.advance(2)
    timer.start(5)

    assert len(scheduler.pending) == 1
    scheduler.advance(5)
    assert expired == [True]


def test_restart_resets_warning(scheduler) -> None:
    warnings = []
    timer = CountdownTimer(
        on_expire=lambda: None,
        on_warning=warnings.append,
        warning_threshold=5,
        scheduler=scheduler,
    )
    timer.start(6)
    scheduler.advance(1)
    timer.start(6)
    scheduler.advance(1)

    assert warnings == [5, 5]


def test_cancelled_timer_never_expires(scheduler) -> None:
    expired = []
    timer = CountdownTimer(on_expire=lambda: expired.append(True), scheduler=scheduler)

    timer.start(3)
    scheduler.advance(1)
    timer.cancel()
    scheduler.advance(5)
    timer.tick()

    assert expired == []
    assert timer.state is TimerState.CANCELLED
    assert not timer.is_running


def test_zero_duration_expires_immediately(scheduler) -> None:
    expired = []
    timer = CountdownTimer(on_expire=lambda: expired.append(True), scheduler=scheduler)
    timer.start(0)
    assert expired == [True]
    assert scheduler.pending == []


def test_coroutine_callbacks_are_scheduled(scheduler) -> None:
    expired = []

    async def on_expire() -> None:
        expired.append(True)

    async def scenario() -> None:
        timer = CountdownTimer(on_expire=on_expire, scheduler=scheduler)
        timer.start(2)
        scheduler.advance(2)
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert expired == [True]
