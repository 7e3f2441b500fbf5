from datetime import timedelta

import pytest

from cameratogether.domain.countdown import CaptureCountdown


def _stepping_sleep(clock):
    async def sleep(seconds):
        clock.advance(seconds)
    return sleep


@pytest.mark.asyncio
async def test_counts_down_from_five_and_fires_at_capture_time(clock):
    target = clock() + timedelta(seconds=5)
    countdown = CaptureCountdown(target, clock=clock, tick_seconds=0.1, sleep=_stepping_sleep(clock))
    ticks, fired_at = [], []

    completed = await countdown.run(on_tick=ticks.append, on_fire=lambda: fired_at.append(clock()))

    assert completed
    assert ticks[0] == 5
    assert ticks[-1] == 0
    assert ticks == sorted(ticks, reverse=True)
    assert fired_at and fired_at[0] >= target
    assert countdown.fired


@pytest.mark.asyncio
async def test_fires_immediately_when_capture_time_has_passed(clock):
    countdown = CaptureCountdown(clock() - timedelta(seconds=3), clock=clock)
    ticks, fired = [], []

    assert await countdown.run(on_tick=ticks.append, on_fire=lambda: fired.append(True))
    assert fired == [True]
    assert ticks == []
    assert countdown.display == 0


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited(clock):
    countdown = CaptureCountdown(clock() + timedelta(seconds=1), clock=clock, sleep=_stepping_sleep(clock))
    fired = []

    async def on_fire():
        fired.append(True)

    await countdown.run(on_fire=on_fire)
    assert fired == [True]


@pytest.mark.asyncio
async def test_cancel_prevents_firing(clock):
    countdown = CaptureCountdown(clock() + timedelta(seconds=5), clock=clock, sleep=_stepping_sleep(clock))
    fired = []

    def on_tick(value):
        if value == 3:
            countdown.cancel()

    assert await countdown.run(on_tick=on_tick, on_fire=lambda: fired.append(True)) is False
    assert fired == []
    assert not countdown.fired


def test_naive_capture_time_is_treated_as_utc(clock):
    naive = (clock() + timedelta(seconds=2)).replace(tzinfo=None)
    countdown = CaptureCountdown(naive, clock=clock)
    assert countdown.display_value() == 2


def test_local_fallback_counts_from_default(clock):
    countdown = CaptureCountdown.local(seconds=10, clock=clock)
    assert countdown.display_value() == 10
    clock.advance(9.2)
    assert countdown.display_value() == 1
    clock.advance(1)
    assert countdown.display_value() == 0
