#!/usr/bin/env python3
"""
Main entry point for the bus tracker service.
Wires the position store, line translator, ingestion loop and prediction API together.
"""

import asyncio
import logging
import os
import signal
from typing import Optional

from .api.web_server import WebServer
from .core.application import Application
from .core.config import ApplicationConfig
from .core.resource_manager import ResourceManager
from .services.database_service import DatabaseService
from .services.ingestion_service import IngestionService
from .services.line_translator import LineCodeTranslator
from .services.prediction_service import PredictionService

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Optional[str] = None):
    level = (level or os.getenv("BUSTRACKER_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


class BusTrackerSystem:
    """Main system coordinator that integrates all components"""

    def __init__(self, config: Optional[ApplicationConfig] = None):
        self.config = config or ApplicationConfig.from_env()
        self.app: Optional[Application] = None
        self.resource_manager: Optional[ResourceManager] = None
        self.database_service: Optional[DatabaseService] = None
        self.translator: Optional[LineCodeTranslator] = None
        self.ingestion_service: Optional[IngestionService] = None
        self.prediction_service: Optional[PredictionService] = None
        self.web_server: Optional[WebServer] = None

    async def setup(self, with_ingestion: bool = True, with_web: bool = True):
        """Initialize and register all services"""
        logger.info("Setting up bus tracker...")
        self.app = Application()

        self.resource_manager = ResourceManager(
            request_timeout_seconds=self.config.request_timeout_seconds,
            max_connections=self.config.max_concurrent_requests,
        )

        self.database_service = DatabaseService(self.config.db_path)
        await self.database_service.initialize()

        self.translator = LineCodeTranslator(refresh_interval_seconds=self.config.reference_refresh_seconds)
        self.translator.load_legacy_map(self.config.legacy_line_map_path)

        self.prediction_service = PredictionService(
            self.database_service,
            prediction_window_minutes=self.config.prediction_window_minutes,
        )
        self.ingestion_service = IngestionService(
            self.config,
            self.database_service,
            self.translator,
            resource_manager=self.resource_manager,
        )

        # Registration order is start order; stop runs in reverse
        self.app.register_service("database_service", self.database_service)
        self.app.register_service("resource_manager", self.resource_manager)
        if with_ingestion:
            self.app.register_service("ingestion_service", self.ingestion_service)
        if with_web:
            self.web_server = WebServer(self.config, self.prediction_service, self.ingestion_service)
            self.app.register_service("web_server", self.web_server)

        logger.info("All services initialized and registered")

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown"""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._request_shutdown, sig)
            except NotImplementedError:
                signal.signal(sig, lambda signum, frame: self._request_shutdown(signum))

    def _request_shutdown(self, signum):
        logger.info(f"Received signal {signum}, shutting down...")
        if self.app is not None:
            self.app.shutdown_event.set()

    async def run(self):
        """Run until a shutdown signal arrives"""
        await self.setup()
        self._setup_signal_handlers()
        try:
            await self.app.start()
            await self.app.shutdown_event.wait()
        finally:
            await self.stop()

    async def stop(self):
        """Stop the system gracefully"""
        if self.app is None:
            return
        logger.info("Stopping bus tracker...")
        await self.app.stop()
        self.app = None
        logger.info("System stopped gracefully")


async def main():
    """Main entry point"""
    system = BusTrackerSystem()
    await system.run()


def run():
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutdown complete")


if __name__ == "__main__":
    run()
