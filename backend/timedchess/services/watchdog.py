import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class TimeoutWatchdog:
    """Holds the single pending flag-fall timer of one session."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def replace(self, delay_ms: int, on_fire: Callable[[], Awaitable[None]]) -> None:
        self.cancel()
        delay_seconds = max(0, delay_ms) / 1000
        self._task = asyncio.get_running_loop().create_task(self._run(delay_seconds, on_fire))

    def cancel(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self, delay_seconds: float, on_fire: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(delay_seconds)
        # A replacement may have been scheduled after this task already woke up.
        if self._task is not asyncio.current_task():
            return
        self._task = None
        try:
            await on_fire()
        except Exception:
            logger.exception("watchdog callback failed for %s", self.name)
