"""
Poll loop for robot telemetry collection.

Each tick makes sure the API session is valid, fetches every robot,
normalizes the states and hands them to the writer, then sleeps for the
rest of the interval. The interval is measured from the start of the tick
so API latency does not accumulate into drift.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Protocol, Sequence, TypeVar

from ..config import PollingSettings
from ..connection.session import Session, SessionManager
from ..devices.state import NormalizedMeasurement, RawDeviceState, normalize
from ..exceptions import CollectorError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RobotFetcher(Protocol):
    async def fetch_robots(self, session: Session) -> Sequence[RawDeviceState]: ...


class MeasurementWriter(Protocol):
    def write_all(
        self,
        measurements: Iterable[NormalizedMeasurement],
        timestamp: datetime,
    ) -> int: ...


class PollLoop:
    """
    Polls the Litter Robot API on a fixed interval.

    Features:
    - Drift-corrected interval timing
    - Proactive session refresh before every fetch
    - Bounded retry with backoff on transient failures
    - Permanent failures propagate out of ``run``
    """

    def __init__(
        self,
        session_manager: SessionManager,
        fetcher: RobotFetcher,
        writer: MeasurementWriter,
        settings: PollingSettings,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the poll loop.

        Args:
            session_manager: Owner of the API session.
            fetcher: Source of raw robot states.
            writer: Sink for normalized measurements.
            settings: Polling settings.
            clock: Wall clock used for session expiry and point timestamps.
            monotonic: Clock used to measure tick duration.
        """
        self.session_manager = session_manager
        self.fetcher = fetcher
        self.writer = writer
        self.settings = settings
        self._clock = clock
        self._monotonic = monotonic

        # State
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Stats
        self._ticks = 0
        self._successful_ticks = 0
        self._skipped_ticks = 0
        self._consecutive_failures = 0
        self._last_tick_duration: Optional[float] = None
        self._last_query_time: Optional[datetime] = None

    async def run(self) -> None:
        """
        Poll until ``stop`` is called.

        Raises:
            CollectorError: On a permanent refresh or fetch failure.
        """
        logger.info(f"Starting poll loop (interval={self.settings.interval}s)")
        self._running = True
        self._shutdown_event.clear()

        try:
            while self._running:
                started = self._monotonic()
                await self.tick()

                elapsed = self._monotonic() - started
                self._last_tick_duration = elapsed
                if await self._wait(self.sleep_duration(elapsed)):
                    break
        finally:
            self._running = False

        logger.info("Poll loop stopped")

    def stop(self) -> None:
        """Ask the loop to exit after the current tick."""
        self._running = False
        self._shutdown_event.set()

    def sleep_duration(self, elapsed: float) -> float:
        """Time left in the interval, never negative."""
        return max(0.0, self.settings.interval - elapsed)

    def retry_delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1``."""
        delay = self.settings.retry_delay * (self.settings.backoff_multiplier ** attempt)
        return min(delay, self.settings.max_backoff)

    async def tick(self) -> bool:
        """
        Run one refresh, fetch and write cycle.

        Returns:
            True if measurements were written, False if the tick was skipped
            because transient failures outlasted the retries.

        Raises:
            CollectorError: On a permanent failure.
        """
        self._ticks += 1
        poll_start = self._clock()

        operation = "litter-api.refresh"
        try:
            session = await self._with_retry(
                operation,
                lambda: self.session_manager.ensure_valid(poll_start),
            )
            operation = "litter-api.fetch_robots"
            robots = await self._with_retry(
                operation,
                lambda: self.fetcher.fetch_robots(session),
            )
        except CollectorError as e:
            if not e.transient:
                logger.critical(
                    f"Permanent failure (op={operation}), stopping poll loop: {e.message}"
                )
                raise
            self._skipped_ticks += 1
            self._consecutive_failures += 1
            logger.error(
                f"Skipping tick after transient failure: {e.message} "
                f"({self._consecutive_failures} consecutive)"
            )
            return False

        query_time = self._clock()
        self._last_query_time = query_time

        measurements = [normalize(robot) for robot in robots]
        written = self.writer.write_all(measurements, query_time)

        self._successful_ticks += 1
        self._consecutive_failures = 0
        logger.debug(f"Queued {written} points for {query_time.isoformat()}")
        return True

    async def _with_retry(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Retry ``call`` on transient errors with bounded backoff."""
        attempt = 0
        while True:
            try:
                return await call()
            except CollectorError as e:
                if not e.transient or attempt >= self.settings.max_retries:
                    raise
                delay = self.retry_delay(attempt)
                attempt += 1
                logger.warning(
                    f"{operation} failed: {e.message}; "
                    f"retry {attempt}/{self.settings.max_retries} in {delay:.1f}s"
                )
                if await self._wait(delay):
                    raise

    async def _wait(self, timeout: float) -> bool:
        """Sleep for ``timeout`` seconds. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def get_stats(self) -> Dict[str, Any]:
        """
        Get polling statistics.

        Returns:
            Dictionary of polling stats.
        """
        return {
            "running": self._running,
            "ticks": self._ticks,
            "successful_ticks": self._successful_ticks,
            "skipped_ticks": self._skipped_ticks,
            "consecutive_failures": self._consecutive_failures,
            "last_tick_duration": self._last_tick_duration,
            "last_query_time": (
                self._last_query_time.isoformat() if self._last_query_time else None
            ),
        }
