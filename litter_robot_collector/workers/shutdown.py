"""
Shutdown coordination.

Waits for SIGINT or SIGTERM and guarantees that buffered points are
flushed to InfluxDB before the process exits.
"""
import asyncio
import logging
import signal
from typing import Optional, Protocol, Sequence

from .error_drain import ErrorDrain

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class FlushableWriter(Protocol):
    async def flush(self) -> None: ...


class ShutdownCoordinator:
    """
    Signal listener and final flush.

    The final flush runs at most once, whether shutdown was triggered by a
    signal or by a fatal error in the poll loop.
    """

    def __init__(
        self,
        writer: FlushableWriter,
        error_drain: Optional[ErrorDrain] = None,
        signals: Sequence[signal.Signals] = SHUTDOWN_SIGNALS,
    ):
        """
        Initialize the coordinator.

        Args:
            writer: Write buffer to flush on shutdown.
            error_drain: Drain to stop once the flush is done.
            signals: Signals that trigger shutdown.
        """
        self.writer = writer
        self.error_drain = error_drain
        self.signals = tuple(signals)
        self.received_signal: Optional[signal.Signals] = None

        self._shutdown_event = asyncio.Event()
        self._flushed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Register the signal handlers on the event loop."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in self.signals:
            try:
                self._loop.add_signal_handler(sig, self.request_shutdown, sig)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(
                    sig,
                    lambda s, f: self._loop.call_soon_threadsafe(
                        self.request_shutdown, signal.Signals(s)
                    ),
                )

    def uninstall(self) -> None:
        """Remove the signal handlers."""
        if self._loop is None:
            return
        for sig in self.signals:
            try:
                self._loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        self._loop = None

    def request_shutdown(self, sig: Optional[signal.Signals] = None) -> None:
        """Trigger shutdown, as if a signal had been received."""
        if self._shutdown_event.is_set():
            return
        self.received_signal = sig
        name = sig.name if sig is not None else "shutdown request"
        logger.info(f"caught signal {name}, flushing data to InfluxDB")
        self._shutdown_event.set()

    async def wait(self) -> Optional[signal.Signals]:
        """Block until shutdown is requested."""
        await self._shutdown_event.wait()
        return self.received_signal

    async def final_flush(self) -> None:
        """
        Flush the write buffer, then stop the error drain.

        Safe to call more than once; only the first call flushes.
        """
        if self._flushed:
            return
        self._flushed = True

        try:
            await self.writer.flush()
        finally:
            if self.error_drain is not None:
                await self.error_drain.stop()
