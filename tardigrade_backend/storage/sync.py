"""
Blocking wrappers over coroutine operations.

A ``SyncBridge`` owns a private event loop running on a daemon thread.
Blocking callers submit a coroutine and wait on the returned future, so
they work whether or not their own thread already runs an event loop.
Do not call the blocking methods from the bridge's own loop thread.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How often a blocking put checks its cancellation event
CANCEL_POLL_INTERVAL = 0.05


async def _watch_cancellation(coro: Awaitable[T], cancel_event: threading.Event) -> T:
    # Awaiting the task after cancel() lets its cleanup finish before we return
    task = asyncio.ensure_future(coro)
    while not task.done():
        if cancel_event.is_set():
            task.cancel()
            break
        await asyncio.wait({task}, timeout=CANCEL_POLL_INTERVAL)
    return await task


class SyncBridge:
    """
    Runs coroutines on a background event loop for synchronous callers.

    Args:
        name: Thread name, visible in thread dumps
    """

    def __init__(self, name: str = "storage-sync-bridge"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    @property
    def closed(self) -> bool:
        return self._loop.is_closed()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """
        Run ``coro`` to completion and return its result.

        Args:
            coro: Coroutine to run
            timeout: Seconds to wait; None waits indefinitely

        Raises:
            concurrent.futures.TimeoutError: If the timeout elapses. The
                coroutine is cancelled first.
        """
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def run_cancellable(self, coro: Awaitable[T], cancel_event: threading.Event) -> T:
        """
        Run ``coro`` until it finishes or ``cancel_event`` is set.

        Raises:
            concurrent.futures.CancelledError: If the event fired first
        """
        future = asyncio.run_coroutine_threadsafe(
            _watch_cancellation(coro, cancel_event), self._loop)
        return future.result()

    async def _drain(self) -> None:
        # Pending tasks get to run their cleanup, and worker threads finish
        current = asyncio.current_task()
        tasks = [task for task in asyncio.all_tasks() if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._loop.shutdown_default_executor()

    def close(self) -> None:
        """Cancel pending work, wait for its cleanup, then stop the loop thread."""
        if self._loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self._drain(), self._loop).result()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
        logger.debug("Sync bridge stopped")
