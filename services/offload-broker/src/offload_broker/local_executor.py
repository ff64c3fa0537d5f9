"""
Local task execution for Offload-Broker.

Tasks that fell back to local execution are run on the broker's own
compute capability, shared evenly between the tasks in flight. Each task
sleeps for task_resource / (computation_capability / active_tasks) and
then reports completion to its owner.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from offload_contract import TaskCompletionPayload

logger = logging.getLogger(__name__)

CompletionPublisher = Callable[[TaskCompletionPayload], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class LocalExecutor:
    """Runs locally assigned tasks as background asyncio tasks."""

    def __init__(
        self,
        computation_capability: float,
        local_address: str,
        publish_completion: CompletionPublisher | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if computation_capability <= 0:
            raise ValueError("computation_capability must be positive")
        self.computation_capability = computation_capability
        self.local_address = local_address
        self._publish_completion = publish_completion
        self._sleep = sleep
        self._active = 0
        self._running: set[asyncio.Task[TaskCompletionPayload]] = set()
        self.completed = 0

    @property
    def active(self) -> int:
        return self._active

    def execution_time(self, task_resource: float) -> float:
        """Time to run a task given the tasks currently sharing the capacity."""
        share = self.computation_capability / max(self._active, 1)
        return task_resource / share

    def submit(self, owner_address: str, task_resource: float) -> float:
        """Start a task; returns its scheduled execution time."""
        self._active += 1
        duration = self.execution_time(task_resource)
        logger.info(
            f"Executing task of {owner_address} locally for {duration:.3f}s "
            f"({self._active} tasks active)"
        )
        task = asyncio.create_task(self._run(owner_address, duration))
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return duration

    async def drain(self) -> None:
        """Wait for every task in flight."""
        while self._running:
            await asyncio.gather(*list(self._running))

    async def shutdown(self) -> None:
        """Cancel every task in flight."""
        for task in list(self._running):
            task.cancel()
        await asyncio.gather(*list(self._running), return_exceptions=True)

    async def _run(self, owner_address: str, duration: float) -> TaskCompletionPayload:
        try:
            await self._sleep(duration)
        finally:
            self._active -= 1

        notice = TaskCompletionPayload(
            task_owner=owner_address,
            provider_address=self.local_address,
            result="Task completed",
        )
        self.completed += 1
        logger.info(f"Local task of {owner_address} finished")
        if self._publish_completion:
            await self._publish_completion(notice)
        return notice
