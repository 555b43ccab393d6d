import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Run an async callable immediately and then every `interval` seconds.

    A failing pass is logged and the loop carries on with the next one.
    stop() cancels the loop, including a pass that is still running.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], Awaitable[None]]):
        self.name = name
        self.interval = interval
        self.func = func
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info("Starting %s every %ss", self.name, self.interval)
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped %s", self.name)

    async def _loop(self) -> None:
        while True:
            try:
                await self.func()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s pass failed", self.name)
            await asyncio.sleep(self.interval)
