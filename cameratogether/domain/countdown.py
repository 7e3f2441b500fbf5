# cameratogether/domain/countdown.py
import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Union

from cameratogether.config.settings import settings

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] [Countdown] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

Clock = Callable[[], datetime]
Callback = Callable[..., Union[None, Awaitable[None]]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _call(callback: Optional[Callback], *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if asyncio.iscoroutine(result):
        await result


class CaptureCountdown:
    """Counts down to a server-issued capture instant.

    Every device derives the remaining time from the same absolute timestamp,
    so devices converge on the same wall-clock shutter moment no matter when
    their countdown screen was opened.
    """

    def __init__(
        self,
        scheduled_time: datetime,
        clock: Clock = utc_now,
        tick_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if scheduled_time.tzinfo is None:
            scheduled_time = scheduled_time.replace(tzinfo=timezone.utc)
        self.scheduled_time = scheduled_time
        self.clock = clock
        self.tick_seconds = tick_seconds or settings.COUNTDOWN_TICK_SECONDS
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.cancelled = False
        self.fired = False
        self.display = self.display_value()

    @classmethod
    def local(cls, seconds: Optional[int] = None, clock: Clock = utc_now, **kwargs) -> "CaptureCountdown":
        """Fallback when the group has no scheduled capture time."""
        seconds = settings.LOCAL_COUNTDOWN_SECONDS if seconds is None else seconds
        return cls(clock() + timedelta(seconds=seconds), clock=clock, **kwargs)

    def remaining(self) -> float:
        return (self.scheduled_time - self.clock()).total_seconds()

    def display_value(self) -> int:
        remaining = self.remaining()
        if remaining <= 0:
            return 0
        return int(math.ceil(remaining))

    async def run(self, on_tick: Optional[Callback] = None, on_fire: Optional[Callback] = None) -> bool:
        """Drive the countdown until the capture instant; returns False if cancelled."""
        if self.remaining() <= 0:
            logger.info("Scheduled time has already passed, capturing immediately.")
            self.display = 0
            await self._fire(on_fire)
            return True

        self.display = self.display_value()
        logger.info(f"Starting countdown from {self.display} seconds.")
        await _call(on_tick, self.display)

        while not self.cancelled:
            await self._sleep(self.tick_seconds)
            if self.cancelled:
                break
            if self.remaining() <= 0:
                self.display = 0
                await _call(on_tick, 0)
                await self._fire(on_fire)
                return True
            value = self.display_value()
            if value != self.display:
                self.display = value
                await _call(on_tick, value)
        return False

    def start(self, on_tick: Optional[Callback] = None, on_fire: Optional[Callback] = None) -> asyncio.Task:
        self._task = asyncio.create_task(self.run(on_tick, on_fire))
        return self._task

    def cancel(self) -> None:
        self.cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _fire(self, on_fire: Optional[Callback]) -> None:
        if self.fired:
            return
        self.fired = True
        await _call(on_fire)
