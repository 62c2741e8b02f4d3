"""Telemetry service - reports a heartbeat to the configured endpoint."""

import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

from .config.settings import TelemetrySettings, load_config
from .heartbeat import HeartbeatStats
from .reporter import Reporter
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


class TelemetryService:
    """Long-running service reporting its own heartbeat."""

    def __init__(self, config_file: Optional[str] = None,
                 settings: Optional[TelemetrySettings] = None,
                 configure_logging: bool = True):
        self.config = settings or load_config(config_file)
        self.reporter: Optional[Reporter] = None
        self.heartbeat: Optional[HeartbeatStats] = None
        self._shutdown_event = asyncio.Event()

        if configure_logging:
            setup_logging(self.config.logging, self.config.service_name)
        logger.info("Telemetry Service initialized")

    async def start(self):
        """Start reporting and run until shutdown is requested."""
        logger.info(f"Starting Telemetry Service, reporting to {self.config.reporter.url}")

        self.reporter = Reporter(
            self.config.reporter.url,
            config=self.config.channel,
            default_frequency=self.config.reporter.default_frequency,
        )
        self.heartbeat = HeartbeatStats(
            self.config.service_name,
            reporting=lambda: self.reporter.reporting_count,
        )

        self._setup_signal_handlers()
        self.reporter.start_reporting(self.heartbeat)

        await self._shutdown_event.wait()

        logger.info("Shutting down Telemetry Service")
        await self.stop()
        logger.info("Telemetry Service stopped")

    def request_shutdown(self):
        self._shutdown_event.set()

    async def stop(self):
        """Release the heartbeat and close the reporter's channel."""
        self._remove_signal_handlers()
        if self.heartbeat is not None:
            self.heartbeat.release()
        if self.reporter is not None:
            await self.reporter.aclose()

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Not supported outside the main thread or on Windows
                logger.debug(f"Cannot install handler for signal {signum}")

    def _remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except (NotImplementedError, RuntimeError):
                pass

    def _on_signal(self, signum: int):
        logger.info(f"Received signal {signum}, initiating shutdown")
        self.request_shutdown()

    async def health_check(self) -> dict:
        """Perform health check."""
        health_status = {
            "service": self.config.service_name,
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {}
        }

        if self.reporter is None:
            health_status["status"] = "starting"
            return health_status

        health_status["components"]["reporter"] = {
            "url": self.reporter.url,
            "channel": self.reporter.channel_kind.value,
            "channel_open": not self.reporter.channel.closed,
            "reporting": self.reporter.reporting_count,
        }
        if self.reporter.reporting_count == 0:
            health_status["status"] = "degraded"

        return health_status


async def main():
    """Main entry point."""
    config_file = os.getenv("CONFIG_FILE", "config/local.yaml")
    service = TelemetryService(config_file)

    try:
        await service.start()
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
