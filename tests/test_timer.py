import asyncio

from conftest import run, wait_for
from exam_session.engine.timer import CountdownTimer, format_time


def test_format_time() -> None:
    assert format_time(0) == "00:00"
    assert format_time(59) == "00:59"
    assert format_time(61) == "01:01"
    assert format_time(90 * 60) == "90:00"
    assert format_time(-5) == "00:00"


def test_counts_down_and_expires_once() -> None:
    ticks = []
    expired = []

    async def on_expire():
        expired.append(True)

    async def scenario():
        timer = CountdownTimer(3, on_expire, tick_seconds=0.01, on_tick=ticks.append)
        timer.start()
        timer.start()
        await wait_for(lambda: expired)
        await asyncio.sleep(0.05)
        return timer

    timer = run(scenario())
    assert ticks == [2, 1, 0]
    assert expired == [True]
    assert timer.remaining == 0
    assert not timer.running


def test_cancel_stops_ticking() -> None:
    expired = []

    async def on_expire():
        expired.append(True)

    async def scenario():
        timer = CountdownTimer(50, on_expire, tick_seconds=0.01)
        timer.start()
        await asyncio.sleep(0.035)
        timer.cancel()
        frozen = timer.remaining
        await asyncio.sleep(0.05)
        return frozen, timer.remaining

    frozen, later = run(scenario())
    assert later == frozen
    assert 0 < later < 50
    assert expired == []


def test_zero_remaining_expires_immediately() -> None:
    expired = []

    async def on_expire():
        expired.append(True)

    async def scenario():
        timer = CountdownTimer(0, on_expire, tick_seconds=10)
        timer.start()
        await wait_for(lambda: expired, timeout=1.0)

    run(scenario())
    assert expired == [True]


def test_cancel_from_expiry_does_not_abort_it() -> None:
    finished = []

    async def scenario():
        timer = None

        async def on_expire():
            timer.cancel()
            await asyncio.sleep(0.01)
            finished.append(True)

        timer = CountdownTimer(1, on_expire, tick_seconds=0.01)
        timer.start()
        await wait_for(lambda: finished)

    run(scenario())
    assert finished == [True]


def test_cancel_from_another_task_after_expiry_began() -> None:
    finished = []

    async def scenario():
        started = asyncio.Event()

        async def on_expire():
            started.set()
            await asyncio.sleep(0.05)
            finished.append(True)

        timer = CountdownTimer(0, on_expire, tick_seconds=0.01)
        timer.start()
        await started.wait()
        timer.cancel()
        await wait_for(lambda: bool(finished))

    run(scenario())
    assert finished == [True]
