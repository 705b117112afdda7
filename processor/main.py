"""Main entry point for the analysis processor service."""

import asyncio
import logging
import signal
import sys
from typing import List

import structlog

from processor.config import settings
from processor.database import SessionLocal
from processor.heartbeat import HeartbeatWriter
from processor.processors import AnalyzeReportProcessor
from processor.worker import Worker


def configure_logging() -> None:
    """Configure structlog over stdlib logging."""
    # Stdlib level is required for structlog.stdlib.filter_by_level
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.LOG_FORMAT == "json" else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


class ProcessorService:
    """Main processor service orchestrating worker and heartbeat."""

    def __init__(self):
        self.worker = Worker(SessionLocal)  # Pass factory, not instance
        self.heartbeat = HeartbeatWriter(status_callback=self.worker.get_status)
        self.running = False
        self.tasks: List[asyncio.Task] = []

    async def start(self) -> None:
        """Start all processor components."""
        self.running = True
        logger.info("Starting processor service")

        self.worker.register_processor(AnalyzeReportProcessor)

        self.tasks = [
            asyncio.create_task(self.worker.run(), name="worker"),
            asyncio.create_task(self.heartbeat.run(), name="heartbeat"),
        ]

        logger.info(
            "Processor service started",
            components=[t.get_name() for t in self.tasks],
        )

        try:
            await asyncio.gather(*self.tasks)
        except asyncio.CancelledError:
            logger.info("Tasks cancelled")

    async def stop(self) -> None:
        """Stop all processor components gracefully."""
        logger.info("Stopping processor service")
        self.running = False

        await asyncio.gather(
            self.worker.stop(),
            self.heartbeat.stop(),
        )

        for task in self.tasks:
            if not task.done():
                task.cancel()

        logger.info("Processor service stopped")


async def main() -> None:
    """Main entry point."""
    configure_logging()
    service = ProcessorService()

    loop = asyncio.get_running_loop()

    def shutdown_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    try:
        await service.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        await service.stop()
    except Exception as e:
        logger.error("Processor service error", error=str(e), exc_info=True)
        await service.stop()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
