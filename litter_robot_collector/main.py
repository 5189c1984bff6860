"""
Litter Robot stats collector - Main Entry Point.

Starts the collector that:
1. Authenticates to the Litter Robot API
2. Connects to InfluxDB
3. Polls robot states on a fixed interval
4. Flushes buffered points on shutdown
"""
import argparse
import asyncio
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Dict, List, Optional

from .config import CollectorSettings, load_configuration
from .connection.litter_api import LitterApiClient
from .connection.session import SessionManager
from .exceptions import CollectorError, ConfigError
from .polling.scheduler import PollLoop
from .storage.influx_writer import InfluxWriter
from .workers.error_drain import ErrorDrain
from .workers.shutdown import ShutdownCoordinator

DISTRIBUTION_NAME = "litter-robot-stats-collector"

logger = logging.getLogger(__name__)


def get_build_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "UNKNOWN"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )


class Collector:
    """
    Main collector orchestrator.

    Runs the poll loop, the write error drain and the signal listener
    concurrently, and makes sure the write buffer is flushed however the
    process ends.
    """

    def __init__(
        self,
        settings: CollectorSettings,
        api_client: Optional[LitterApiClient] = None,
        writer: Optional[InfluxWriter] = None,
    ):
        """
        Initialize the collector.

        Args:
            settings: Collector settings.
            api_client: Litter Robot API client, built from settings if omitted.
            writer: InfluxDB writer, built from settings if omitted.
        """
        self.settings = settings
        self.api_client = api_client or LitterApiClient(settings.litter_robot)
        self.writer = writer or InfluxWriter(settings.influxdb)

        self.session_manager = SessionManager(self.api_client)
        self.error_drain: Optional[ErrorDrain] = None
        self.coordinator: Optional[ShutdownCoordinator] = None
        self.poll_loop: Optional[PollLoop] = None

    async def start(self) -> None:
        """
        Connect to both services.

        Raises:
            AuthError: If the initial login fails.
            ConfigError: If the write destination cannot be resolved.
            StorageConnectionError: If InfluxDB cannot be reached.
        """
        logger.info("Starting Litter Robot stats collector...")

        # Fail on an unresolved write destination before any network call
        self.settings.influxdb.write_destination()

        await self.api_client.connect()
        await self.session_manager.login()
        await self.writer.connect()

        self.error_drain = ErrorDrain(self.writer.errors)
        await self.error_drain.start()

        self.coordinator = ShutdownCoordinator(self.writer, self.error_drain)
        self.coordinator.install()

        self.poll_loop = PollLoop(
            session_manager=self.session_manager,
            fetcher=self.api_client,
            writer=self.writer,
            settings=self.settings.polling,
        )

    async def stop(self) -> None:
        """Flush buffered points and release connections."""
        try:
            if self.coordinator:
                await self.coordinator.final_flush()
        finally:
            if self.coordinator:
                self.coordinator.uninstall()
            try:
                await self.writer.disconnect()
            finally:
                await self.api_client.disconnect()
        logger.info("Litter Robot stats collector stopped")

    async def run(self) -> int:
        """
        Run until a signal arrives or polling fails permanently.

        Returns:
            Process exit code, 0 after a signal and 1 after a fatal error.

        Raises:
            CollectorError: If startup fails.
        """
        try:
            await self.start()
        except CollectorError:
            await self.writer.disconnect()
            await self.api_client.disconnect()
            raise

        poll_task = asyncio.create_task(self.poll_loop.run(), name="poll_loop")
        signal_task = asyncio.create_task(self.coordinator.wait(), name="signal_listener")

        exit_code = 0
        try:
            done, _ = await asyncio.wait(
                {poll_task, signal_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if poll_task in done and poll_task.exception() is not None:
                error = poll_task.exception()
                if isinstance(error, CollectorError):
                    logger.critical(f"Polling failed permanently: {error.to_dict()}")
                else:
                    logger.critical(f"Polling failed unexpectedly: {error!r}")
                exit_code = 1
        finally:
            self.poll_loop.stop()
            for task in (poll_task, signal_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(poll_task, signal_task, return_exceptions=True)
            await self.stop()

        return exit_code

    def get_stats(self) -> Dict[str, Any]:
        """Get collector statistics."""
        stats: Dict[str, Any] = {
            "writer": self.writer.get_stats(),
        }

        if self.poll_loop:
            stats["polling"] = self.poll_loop.get_stats()

        if self.error_drain:
            stats["error_drain"] = self.error_drain.get_stats()

        return stats


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog=DISTRIBUTION_NAME,
        description="Poll Litter Robot stats and write them to InfluxDB",
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Set the location for the YAML config file",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version of litter-robot-stats-collector",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)

    if args.version:
        print(get_build_version())
        return 0

    configure_logging()

    try:
        settings = load_configuration(args.config)
    except ConfigError as e:
        logger.critical(f"failed to parse configuration (op=config.load_configuration): {e}")
        return 1

    configure_logging(settings.log_level)

    try:
        return asyncio.run(Collector(settings).run())
    except CollectorError as e:
        logger.critical(f"failed to start collector: {e.to_dict()}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
