"""
Write error drain.

Background task that reports write failures coming from the InfluxDB
write buffer. Failures are logged and never stop polling.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from ..exceptions import WriteError

logger = logging.getLogger(__name__)

# Queued by ``stop`` to end the drain loop.
_CLOSED = object()


class ErrorDrain:
    """Consumes WriteError notifications until stopped."""

    def __init__(self, queue: asyncio.Queue):
        """
        Initialize the drain.

        Args:
            queue: Bounded queue the writer publishes errors to.
        """
        self.queue = queue
        self._task: Optional[asyncio.Task] = None
        self._reported = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the drain task."""
        if self.running:
            return
        self._task = asyncio.create_task(self._drain_loop(), name="influx_error_drain")
        logger.debug("Write error drain started")

    async def stop(self) -> None:
        """
        Report anything still queued, then end the drain task.
        """
        if not self.running:
            return

        # Let errors scheduled from the writer thread land in the queue first
        await asyncio.sleep(0)
        await self.queue.put(_CLOSED)
        await self._task
        self._task = None
        logger.debug(f"Write error drain stopped ({self._reported} errors reported)")

    async def _drain_loop(self) -> None:
        while True:
            item = await self.queue.get()
            try:
                if item is _CLOSED:
                    break
                self._report(item)
            finally:
                self.queue.task_done()

    def _report(self, error: WriteError) -> None:
        self._reported += 1
        logger.error(
            f"encountered error on writing to InfluxDB: {error.message} "
            f"(destination={error.destination}, bytes={error.payload_bytes})"
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "reported": self._reported,
            "pending": self.queue.qsize(),
        }
