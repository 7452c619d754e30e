import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class DeferredTasks:
    """
    One-shot delayed callbacks keyed by name. Scheduling a key again replaces
    the previous task; cancel() drops it before it fires.
    """

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}

    def schedule(self, key: str, delay_seconds: float, callback: Callable[[], Awaitable[None]]) -> None:
        self.cancel(key)
        self._tasks[key] = asyncio.create_task(self._run(key, delay_seconds, callback))

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def pending(self) -> list[str]:
        return sorted(self._tasks)

    async def _run(self, key, delay_seconds, callback):
        try:
            await asyncio.sleep(delay_seconds)
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("deferred task %s failed", key, exc_info=True)
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
