from __future__ import annotations
import asyncio
from typing import List, Optional

from lifecycle.shutdown_protocol import IShutdownHandler
from lifecycle.task_registry import TaskRegistry
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SHUTDOWN)

class TaskCancellationHandler(IShutdownHandler):
    """
    Shutdown handler for asyncio tasks.

    Cancels and awaits the given tasks. Without an explicit list, every task
    still active in the TaskRegistry is cancelled (anything the fan
    controller's own stop() did not already finish).

    Priority: 40
    """

    def __init__(self, tasks: Optional[List[asyncio.Task]] = None):
        """
        Args:
            tasks: Tasks to cancel (default: all active tracked tasks)
        """
        self.tasks = tasks

    @property
    def shutdown_priority(self) -> int:
        """Tasks are cancelled after controllers."""
        return 40

    async def shutdown(self) -> None:
        """Cancel and await tasks."""
        current = asyncio.current_task()
        if self.tasks is None:
            tasks = TaskRegistry.instance().get_tasks_for_shutdown(exclude=[current])
        else:
            tasks = [t for t in self.tasks if t is not current]

        pending = [t for t in tasks if not t.done()]
        log.info(f"Cancelling {len(pending)} background tasks...")

        for task in pending:
            task.cancel()
            log.debug(f"Cancelled task: {task.get_name()}")

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        log.debug("All tasks cancelled")
