"""
InfluxDB writer for robot measurements.

Points are handed to the influxdb-client batching write API, which flushes
them in the background. Write failures reported by that API are queued for
the error drain instead of being raised to the poll loop.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from influxdb_client import InfluxDBClient, Point, WriteOptions, WritePrecision

from ..config import InfluxDBSettings
from ..devices.state import NormalizedMeasurement
from ..exceptions import StorageConnectionError, WriteError

logger = logging.getLogger(__name__)

MEASUREMENT_NAME = "litter_robot"


def build_point(
    measurement: NormalizedMeasurement,
    timestamp: datetime,
    prefix: str = "",
) -> Point:
    """
    Build the InfluxDB point for one robot.

    Args:
        measurement: Normalized robot measurement.
        timestamp: Query time shared by every robot in the tick.
        prefix: Measurement name prefix.

    Returns:
        The point, tagged with the robot identity.
    """
    return (
        Point(prefix + MEASUREMENT_NAME)
        .tag("robot_id", measurement.litter_robot_id)
        .tag("robot_serial", measurement.litter_robot_serial)
        .tag("robot_name", measurement.name)
        .field("clean_cycle_wait_time_minutes", measurement.clean_cycle_wait_time_minutes)
        .field("cycles_after_drawer_full", measurement.cycles_after_drawer_full)
        .field("cycles_capacity", measurement.cycle_capacity)
        .field("cycles_count", measurement.cycle_count)
        .field("cycles_until_full", measurement.cycles_until_full)
        .field("did_notify_offline", measurement.did_notify_offline)
        .field("dfi_cycle_count", measurement.dfi_cycle_count)
        .field("dfi_triggered", measurement.dfi_triggered)
        .field("night_light_active", measurement.night_light_active)
        .field("panel_lock_active", measurement.panel_lock_active)
        .field("power_status", measurement.power_status)
        .field("sleep_mode_active", measurement.sleep_mode_active)
        .field("unit_status", measurement.unit_status)
        .time(timestamp, WritePrecision.NS)
    )


class InfluxWriter:
    """
    Writes robot measurements to InfluxDB.

    Features:
    - Works with 2.x (token, bucket) and 1.x (user/password, db/rp)
    - Background batching with a configurable flush interval
    - Asynchronous write error reporting through a bounded queue
    """

    def __init__(
        self,
        settings: InfluxDBSettings,
        client_factory: Callable[..., Any] = InfluxDBClient,
    ):
        """
        Initialize the InfluxDB writer.

        Args:
            settings: InfluxDB settings.
            client_factory: Builds the InfluxDB client, replaced in tests.
        """
        self.settings = settings
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._write_api: Optional[Any] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._errors: Optional[asyncio.Queue] = None
        self.destination: Optional[str] = None

        # Stats
        self._points_written = 0
        self._write_errors = 0
        self._dropped_errors = 0

    @property
    def errors(self) -> asyncio.Queue:
        """Queue of WriteError notifications, available after connect."""
        if self._errors is None:
            raise RuntimeError("InfluxWriter is not connected")
        return self._errors

    async def connect(self) -> None:
        """
        Connect to InfluxDB.

        The write destination is resolved before any network access.

        Raises:
            InfluxWriteConfigError: If no bucket or database/retention
                policy is configured.
            StorageConnectionError: If the server does not answer a ping.
        """
        self.destination = self.settings.write_destination()

        self._loop = asyncio.get_running_loop()
        self._errors = asyncio.Queue(maxsize=self.settings.error_queue_size)

        self._client = self._client_factory(
            url=self.settings.address,
            token=self.settings.auth_token(),
            org=self.settings.organization or "-",
            verify_ssl=not self.settings.skip_verify_ssl,
        )

        if self.settings.verify_connection:
            reachable = await asyncio.to_thread(self._client.ping)
            if not reachable:
                self._client.close()
                self._client = None
                raise StorageConnectionError(
                    f"InfluxDB at {self.settings.address} did not answer ping",
                    details={"address": self.settings.address},
                )

        self._write_api = self._client.write_api(
            write_options=WriteOptions(
                batch_size=self.settings.batch_size,
                flush_interval=self.settings.flush_interval * 1000,
            ),
            error_callback=self._on_write_error,
        )
        logger.info(
            f"Connected to InfluxDB at {self.settings.address} "
            f"(destination={self.destination})"
        )

    def write_all(
        self,
        measurements: Iterable[NormalizedMeasurement],
        timestamp: datetime,
    ) -> int:
        """
        Queue one point per measurement.

        Never blocks on the network; failures are reported later through
        ``errors``.

        Args:
            measurements: Normalized measurements for this tick.
            timestamp: Timestamp shared by every point.

        Returns:
            Number of points queued.
        """
        if self._write_api is None:
            raise RuntimeError("InfluxWriter is not connected")

        points: List[Point] = []
        for measurement in measurements:
            logger.debug(f"Writing {measurement}")
            points.append(
                build_point(measurement, timestamp, self.settings.measurement_prefix)
            )

        if points:
            self._write_api.write(bucket=self.destination, record=points)
            self._points_written += len(points)

        return len(points)

    async def flush(self) -> None:
        """
        Persist all buffered points.

        Closing the batching write API writes out everything still pending,
        so no further writes are accepted afterwards.
        """
        if self._write_api is None:
            return

        write_api = self._write_api
        self._write_api = None
        await asyncio.to_thread(write_api.close)
        logger.info("Flushed buffered points to InfluxDB")

    async def disconnect(self) -> None:
        """Flush and close the client."""
        await self.flush()

        if self._client:
            self._client.close()
            self._client = None
            logger.info("Disconnected from InfluxDB")

    def _on_write_error(self, conf: Any, data: Any, exception: Exception) -> None:
        """Write API error callback, runs on the client's worker thread."""
        destination = conf[0] if conf else self.destination
        error = WriteError(
            str(exception),
            destination=destination,
            payload_bytes=len(data) if data else 0,
        )
        if self._loop is None or self._loop.is_closed():
            logger.error(f"Write error after shutdown: {error.message}")
            return
        try:
            self._loop.call_soon_threadsafe(self._publish_error, error)
        except RuntimeError:
            logger.error(f"Write error after shutdown: {error.message}")

    def _publish_error(self, error: WriteError) -> None:
        self._write_errors += 1
        try:
            self.errors.put_nowait(error)
        except asyncio.QueueFull:
            self._dropped_errors += 1
            logger.warning(
                f"Write error queue full, dropping notification: {error.message}"
            )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "destination": self.destination,
            "points_written": self._points_written,
            "write_errors": self._write_errors,
            "dropped_errors": self._dropped_errors,
        }
