import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .config import settings

logger = logging.getLogger(__name__)


class CountdownState(str, Enum):
    PENDING = "pending"
    TICKING = "ticking"
    FIRED = "fired"


class CountdownTimer:
    """Delay before a Conquest run starts.

    ``run`` counts ``ticks`` down, one every ``interval`` seconds, then fires.
    ``cancel`` puts a ticking timer back to PENDING and makes ``run`` return
    False.
    """

    def __init__(
        self,
        ticks: int = settings.COUNTDOWN_TICKS,
        interval: float = settings.COUNTDOWN_INTERVAL,
        on_tick: Optional[Callable[[int], None]] = None,
        on_fire: Optional[Callable[[], None]] = None,
    ):
        self.ticks = ticks
        self.interval = interval
        self.on_tick = on_tick
        self.on_fire = on_fire
        self.state = CountdownState.PENDING
        self.remaining = ticks
        self._task: Optional[asyncio.Task] = None

    async def run(self) -> bool:
        if self.state is not CountdownState.PENDING:
            raise RuntimeError(f"Countdown already {self.state.value}")
        task = asyncio.current_task()
        self._task = task
        self.state = CountdownState.TICKING
        self.remaining = self.ticks
        try:
            while self.remaining > 0:
                if self.on_tick:
                    self.on_tick(self.remaining)
                await asyncio.sleep(self.interval)
                self.remaining -= 1
        except asyncio.CancelledError:
            if self.state is not CountdownState.PENDING:
                raise
            task.uncancel()
            logger.warning("Countdown cancelled before firing")
            return False
        finally:
            self._task = None

        self.state = CountdownState.FIRED
        if self.on_fire:
            self.on_fire()
        return True

    def cancel(self) -> None:
        if self.state is not CountdownState.TICKING:
            return
        self.state = CountdownState.PENDING
        self.remaining = self.ticks
        if self._task is not None:
            self._task.cancel()
