import asyncio
import math
from datetime import datetime
from typing import Awaitable, Callable, Optional

from core.config import settings
from core.logger import logger
from models.base import as_utc, utcnow

Clock = Callable[[], datetime]


def remaining_seconds(start_time: datetime, duration_limit_minutes: Optional[int], now: datetime) -> Optional[int]:
    """Seconds left in a timed attempt, or None when the quiz is untimed."""
    if not duration_limit_minutes:
        return None
    elapsed = (as_utc(now) - as_utc(start_time)).total_seconds()
    remaining = duration_limit_minutes * 60 - elapsed
    return max(0, math.floor(remaining))


class QuizTimer:
    """
    Countdown derived from the wall clock, so it is correct after a restart.

    The tick loop runs as an asyncio task. on_expired is awaited once, the
    first time a tick observes zero seconds left. When on_overdue is given,
    the loop keeps ticking after that and awaits it on every later tick
    until the timer is stopped.
    """

    def __init__(self, start_time: datetime, duration_limit_minutes: Optional[int],
                 on_expired: Callable[[], Awaitable[None]],
                 clock: Clock = utcnow, tick_seconds: float = None,
                 on_overdue: Optional[Callable[[], Awaitable[None]]] = None):
        self.start_time = start_time
        self.duration_limit_minutes = duration_limit_minutes or None
        self.on_expired = on_expired
        self.on_overdue = on_overdue
        self.clock = clock
        self.tick_seconds = tick_seconds or settings.TIMER_TICK_SECONDS
        self.expired = False
        self._stopped = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_timed(self) -> bool:
        return self.duration_limit_minutes is not None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def remaining(self) -> Optional[int]:
        return remaining_seconds(self.start_time, self.duration_limit_minutes, self.clock())

    async def tick(self) -> Optional[int]:
        left = self.remaining()
        if left != 0:
            return left
        if not self.expired:
            self.expired = True
            logger.info("Quiz timer expired", start_time=self.start_time.isoformat(),
                        duration=self.duration_limit_minutes)
            await self.on_expired()
        elif self.on_overdue and not self._stopped:
            await self.on_overdue()
        return left

    def start(self):
        if not self.is_timed or self._stopped or self.is_running:
            return
        if self.expired and self.on_overdue is None:
            return
        self._task = asyncio.create_task(self._run())

    def stop(self):
        self._stopped = True
        task = self._task
        self._task = None
        # on_expired may stop the timer from inside its own tick
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self):
        try:
            while not self._stopped:
                await self.tick()
                if self._stopped or (self.expired and self.on_overdue is None):
                    break
                await asyncio.sleep(self.tick_seconds)
        except Exception as e:
            logger.exception(f"Quiz timer loop failed: {e}")
