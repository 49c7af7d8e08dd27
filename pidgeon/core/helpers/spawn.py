import asyncio
import logging
from typing import Any, Coroutine


class TaskSpawner:
    """
    Creates and keeps track of the background tasks of the client: read
    loops, write completions and reconnect attempts.

    Holding a reference to every live task keeps them from being garbage
    collected mid-flight. A failed task is logged instead of surfacing as
    "Task exception was never retrieved", and `cancel_all()` gives the
    owner a single place to tear everything down.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = logging.getLogger("core.helpers.spawn")

    @property
    def remaining_tasks(self) -> int:
        return len(self._tasks)

    def on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return

        if ex := task.exception():
            self._logger.error(
                f"Error occurred in task {task.get_name()}: {str(ex)}",
                exc_info=ex
            )

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro, name=name)
        task.add_done_callback(self.on_done)
        self._tasks.add(task)
        return task

    async def cancel_all(self) -> None:
        """Cancel every tracked task and wait for them to unwind."""
        tasks = [task for task in self._tasks if task is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
