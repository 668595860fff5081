"""
Transfer Runner - background tasks for running batches.

One asyncio task per session. start_transfer submits the batch and returns
right away; callers poll progress, and tests (or shutdown) can wait on the
task through wait().

Shutdown first asks every batch to stop between files, then cancels any
batch that has not finished within the grace period.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional
from uuid import UUID


logger = logging.getLogger("handoff.services.transfer.runner")

BatchFactory = Callable[[asyncio.Event], Awaitable]


class TransferRunner:
    """
    Tracks the in-flight batch task of each session.

    Example:
        runner = TransferRunner()
        runner.submit(session.id, lambda stop: engine.run(session, stop))
        await runner.wait(session.id)
    """

    def __init__(self):
        self._tasks: dict[UUID, asyncio.Task] = {}
        self._stop_events: dict[UUID, asyncio.Event] = {}

    def submit(self, session_id: UUID, batch: BatchFactory) -> asyncio.Task:
        """
        Start a batch in the background.

        Args:
            session_id: the session the batch belongs to
            batch: called with the stop event, returns the coroutine to run

        Raises:
            RuntimeError: a batch for this session is already running
        """
        if self.is_running(session_id):
            raise RuntimeError(f"Batch already running for session {session_id}")

        stop_event = asyncio.Event()
        task = asyncio.create_task(batch(stop_event), name=f"transfer-batch-{session_id}")
        self._tasks[session_id] = task
        self._stop_events[session_id] = stop_event
        task.add_done_callback(lambda t, sid=session_id: self._on_done(sid, t))

        logger.info(f"Submitted batch for session {session_id}")
        return task

    def _on_done(self, session_id: UUID, task: asyncio.Task) -> None:
        if self._tasks.get(session_id) is task:
            del self._tasks[session_id]
            self._stop_events.pop(session_id, None)

        if task.cancelled():
            logger.warning(f"Batch for session {session_id} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Batch for session {session_id} crashed: {error!r}")

    def is_running(self, session_id: UUID) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    async def wait(self, session_id: UUID, timeout: Optional[float] = None) -> bool:
        """
        Wait for a session's batch to finish.

        Returns:
            True if no batch is running any more, False on timeout
        """
        task = self._tasks.get(session_id)
        if task is None:
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        return task in done

    async def shutdown(self, grace_period: float = 5.0) -> None:
        """Stop all batches: cooperative stop first, hard cancel after grace_period."""
        if not self._tasks:
            return

        tasks = list(self._tasks.values())
        logger.info(f"Stopping {len(tasks)} running batch(es)")
        for stop_event in self._stop_events.values():
            stop_event.set()

        _, pending = await asyncio.wait(tasks, timeout=grace_period)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
