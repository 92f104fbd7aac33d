"""
Shutdown coordinator that orchestrates graceful shutdown of all components.

Manages signal handlers, shutdown sequencing, and error handling across
multiple shutdown handlers in priority order. While waiting it also watches
critical tasks (the fan control schedule) and shuts down if one of them fails.
"""

import asyncio
import signal
from typing import List, Optional, Dict, Set

from lifecycle.task_registry import TaskRegistry
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SYSTEM)

# Failure of a task in these categories ends the process
CRITICAL_TASK_CATEGORIES: Set[str] = {"HARDWARE"}


class ShutdownCoordinator:
    """
    Coordinates graceful shutdown of multiple components.

    Maintains a list of shutdown handlers and executes them in priority order
    when shutdown is triggered. Handles signal registration, timeout management,
    and error logging.

    Example:
        coordinator = ShutdownCoordinator()
        coordinator.register(FanControllerShutdownHandler(control_loop))
        coordinator.register(TaskCancellationHandler(tasks))
        coordinator.register(GPIOShutdownHandler(gpio_manager))

        coordinator.setup_signal_handlers(loop)
        await coordinator.wait_for_shutdown()
        await coordinator.shutdown_all()
    """

    def __init__(self, timeout_per_handler: float = 5.0, total_timeout: float = 15.0):
        """
        Initialize shutdown coordinator.

        Args:
            timeout_per_handler: Timeout for each individual handler (seconds)
            total_timeout: Total timeout for entire shutdown sequence (seconds)
        """
        self._handlers: List = []
        self._shutdown_event: Optional[asyncio.Event] = None
        self._timeout_per_handler = timeout_per_handler
        self._total_timeout = total_timeout
        self._shutdown_trigger: Dict[str, Optional[str]] = {"reason": None}

    @property
    def reason(self) -> Optional[str]:
        return self._shutdown_trigger["reason"]

    def register(self, handler) -> None:
        """
        Register a shutdown handler.

        Handler must have:
        - shutdown_priority property (int)
        - async shutdown() method
        """
        if not hasattr(handler, "shutdown_priority"):
            raise ValueError(f"Handler {handler} missing shutdown_priority property")
        if not hasattr(handler, "shutdown"):
            raise ValueError(f"Handler {handler} missing shutdown() method")

        self._handlers.append(handler)
        log.debug(f"Registered shutdown handler: {handler.__class__.__name__}")

    def setup_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Install OS signal handlers for graceful shutdown (SIGINT, SIGTERM).

        Args:
            loop: Running asyncio event loop
        """
        self._ensure_event()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: self.trigger(s.name))

        log.info("Signal handlers installed (SIGINT, SIGTERM)")

    def trigger(self, reason: str) -> None:
        """Request shutdown programmatically (signals route through here too)."""
        event = self._ensure_event()
        if not event.is_set():
            self._shutdown_trigger["reason"] = reason
            log.info(f"Shutdown requested → {reason}")
        event.set()

    def _ensure_event(self) -> asyncio.Event:
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        return self._shutdown_event

    # -----------------------------
    # Critical task monitoring
    # -----------------------------

    def _critical_tasks(self) -> List[asyncio.Task]:
        """Active tasks in critical categories."""
        return [
            r.task for r in TaskRegistry.instance().active()
            if r.info.category.name in CRITICAL_TASK_CATEGORIES
        ]

    def _check_critical_task_failures(self) -> bool:
        """
        Check if any critical task has already failed.

        Returns:
            True if a critical task failure was detected (reason is recorded)
        """
        for record in TaskRegistry.instance().failed():
            if record.info.category.name in CRITICAL_TASK_CATEGORIES:
                log.error(
                    f"Critical task failed: {record.info.description}",
                    category=record.info.category.name,
                    error=repr(record.finished_with_error)
                )
                self._shutdown_trigger["reason"] = f"Task failure: {record.info.description}"
                return True
        return False

    async def _wait_for_signal_or_task(self, critical_tasks: List[asyncio.Task]) -> Optional[bool]:
        """
        Wait for either shutdown signal or a critical task to finish.

        Returns:
            True if shutdown signal received
            False if a critical task FAILED
            None if nothing decisive happened (continue monitoring)
        """
        if not critical_tasks:
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=0.2)
                return True
            except asyncio.TimeoutError:
                return None

        shutdown_waiter = asyncio.create_task(self._shutdown_event.wait())
        wait_set: Set[asyncio.Task] = set(critical_tasks)
        wait_set.add(shutdown_waiter)

        try:
            done, _ = await asyncio.wait(wait_set, return_when=asyncio.FIRST_COMPLETED)

            if shutdown_waiter in done:
                return True

            for completed_task in done:
                if self._handle_critical_task_completion(completed_task):
                    return False
            return None
        finally:
            # Only the waiter is ours; critical tasks keep running
            if not shutdown_waiter.done():
                shutdown_waiter.cancel()

    def _handle_critical_task_completion(self, completed_task: asyncio.Task) -> bool:
        """
        Decide whether a finished critical task should end the process.

        Cancellation and clean completion are normal (the schedule and any
        pulse train are cancelled on every stop); only an exception counts.
        """
        if completed_task.cancelled():
            return False

        exc = completed_task.exception()
        if exc is None:
            log.debug(f"Critical task completed cleanly: {completed_task.get_name()}")
            return False

        record = TaskRegistry.instance()._get_record_by_task(completed_task)
        task_name = record.info.description if record else completed_task.get_name()
        log.error(f"Critical task failed: {task_name} - {exc!r}")
        self._shutdown_trigger["reason"] = f"Task failure: {task_name}"
        return True

    async def wait_for_shutdown(self) -> None:
        """
        Wait for shutdown event or critical task failure.

        Raises:
            RuntimeError: If neither setup_signal_handlers() nor trigger() prepared the event
        """
        if self._shutdown_event is None:
            raise RuntimeError("Call setup_signal_handlers() first")

        while not self._shutdown_event.is_set():
            if self._check_critical_task_failures():
                return

            result = await self._wait_for_signal_or_task(self._critical_tasks())

            if result is True or self._shutdown_event.is_set():
                log.debug("Shutdown triggered by signal handler")
                return
            if result is False:
                return

    # -----------------------------
    # Shutdown sequence
    # -----------------------------

    async def shutdown_all(self) -> None:
        """
        Execute graceful shutdown of all handlers in priority order.

        Handlers are called in descending priority order (highest first).
        Each handler has its own timeout (timeout_per_handler) and the entire
        sequence has a global timeout (total_timeout). A failing handler is
        logged and the sequence continues.
        """
        log.info("Initiating graceful shutdown sequence...", reason=self.reason or "UNKNOWN")

        sorted_handlers = sorted(self._handlers, key=lambda h: h.shutdown_priority, reverse=True)

        loop = asyncio.get_running_loop()
        start_time = loop.time()

        for handler in sorted_handlers:
            handler_name = handler.__class__.__name__

            elapsed = loop.time() - start_time
            if elapsed > self._total_timeout:
                log.error(f"Total shutdown timeout exceeded ({elapsed:.1f}s > {self._total_timeout}s)")
                break

            try:
                log.debug(f"Shutting down {handler_name} (priority={handler.shutdown_priority})...")
                await asyncio.wait_for(handler.shutdown(), timeout=self._timeout_per_handler)
                log.debug(f"✓ {handler_name} shutdown complete")

            except asyncio.TimeoutError:
                log.error(f"{handler_name} shutdown timeout ({self._timeout_per_handler}s)")

            except Exception as e:
                log.error(f"Error shutting down {handler_name}: {e}", exc_info=True)

        log.info("✓ Shutdown sequence complete")

    def get_handler(self, handler_type: type):
        """Get a registered handler by type (or None)."""
        for handler in self._handlers:
            if isinstance(handler, handler_type):
                return handler
        return None
