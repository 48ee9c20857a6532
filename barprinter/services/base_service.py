"""
Base service class for worker services.

Provides initialization tracking and ownership of background tasks, so every
service started by the worker can be stopped (and awaited in tests) the same way.
"""

import asyncio
from abc import ABC
from typing import Awaitable, List, Optional

import structlog

logger = structlog.get_logger()


class BaseService(ABC):
    """
    Base class for worker services.

    Provides common patterns:
    - Initialization tracking
    - Background task ownership (spawn, cancel on shutdown)

    Usage:
        class MyService(BaseService):
            async def initialize(self):
                await super().initialize()  # Marks as initialized
                self._spawn(self._loop(), name="my-loop")

            async def shutdown(self):
                # Service-specific cleanup
                await super().shutdown()  # Cancels spawned tasks
    """

    def __init__(self):
        self._initialized = False
        self._tasks: List[asyncio.Task] = []

    async def initialize(self) -> None:
        """
        Initialize service.

        Override in subclasses to add service-specific initialization.
        Always call super().initialize() to mark service as initialized.
        """
        if self._initialized:
            logger.debug(f"{self.__class__.__name__} already initialized")
            return

        self._initialized = True
        logger.debug(f"{self.__class__.__name__} initialized")

    async def shutdown(self) -> None:
        """
        Cancel background tasks and mark the service as stopped.

        Override in subclasses to add service-specific cleanup.
        Always call super().shutdown().
        """
        await self._cancel_tasks()

        if not self._initialized:
            logger.debug(f"{self.__class__.__name__} already shutdown")
            return

        self._initialized = False
        logger.debug(f"{self.__class__.__name__} shutdown")

    def _spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Start a background task owned by this service."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.append(task)
        task.add_done_callback(self._forget_task)
        return task

    def _forget_task(self, task: asyncio.Task) -> None:
        if task in self._tasks:
            self._tasks.remove(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task crashed",
                         service=self.__class__.__name__,
                         task=task.get_name(),
                         error=str(task.exception()))

    async def _cancel_tasks(self) -> None:
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    @property
    def is_initialized(self) -> bool:
        """Check if service is initialized."""
        return self._initialized
