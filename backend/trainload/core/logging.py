"""
Structured logging configuration.
Designed for easy debugging without exposing secrets or health data.
"""
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

import structlog
from structlog.types import Processor

from trainload.core.config import Settings, settings as default_settings


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure structured logging for the application."""
    config = config or default_settings

    # Common processors
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if config.LOG_FORMAT == "json":
        # JSON format for production
        renderer = structlog.processors.JSONRenderer()
    else:
        # Console format for development
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, config.LOG_LEVEL.upper()))

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def truncate_content(content: str, max_length: int = 0) -> str:
    """Truncate content if max_length is set."""
    if max_length <= 0:
        return content
    if len(content) <= max_length:
        return content
    return content[:max_length] + f"... [truncated, total {len(content)} chars]"


# ========================================
# Ingestion Run Tracking
# ========================================

@dataclass
class IngestionRunLog:
    """Complete log entry for one ingestion run (webhook, poll, link)."""
    run_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    source: str = ""
    user_id: Optional[str] = None
    provider: Optional[str] = None

    # Counts
    received: int = 0
    upserted: int = 0
    skipped: int = 0

    # Timing
    start_time: float = 0.0
    end_time: float = 0.0
    duration_ms: float = 0.0

    # Status
    success: bool = True
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class IngestionTracker:
    """
    Tracker for a single ingestion run.

    Usage:
        with IngestionTracker.track(logger, "webhook", provider="garmin") as run:
            run.set_user(user_id)
            run.add_received(len(payloads))
            ...
            run.add_upserted(count)
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        source: str,
        user_id: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        self.logger = logger
        self.log = IngestionRunLog(source=source, user_id=user_id, provider=provider)

    @classmethod
    @contextmanager
    def track(
        cls,
        logger: structlog.stdlib.BoundLogger,
        source: str,
        user_id: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> Generator["IngestionTracker", None, None]:
        """Context manager for tracking an ingestion run."""
        tracker = cls(logger, source, user_id=user_id, provider=provider)
        tracker.start()
        try:
            yield tracker
        except Exception as e:
            tracker.set_error(type(e).__name__, str(e))
            raise
        finally:
            tracker.finish()

    def start(self) -> None:
        """Mark the start of the run."""
        self.log.start_time = time.time()
        self.logger.debug(
            "Ingestion started",
            run_id=self.log.run_id,
            source=self.log.source,
            user_id=self.log.user_id,
        )

    def set_user(self, user_id: Optional[str], provider: Optional[str] = None) -> None:
        self.log.user_id = user_id
        if provider:
            self.log.provider = provider

    def add_received(self, count: int) -> None:
        self.log.received += count

    def add_upserted(self, count: int) -> None:
        self.log.upserted += count

    def add_skipped(self, count: int = 1) -> None:
        self.log.skipped += count

    def set_error(self, error_type: str, error_message: str) -> None:
        """Set error information."""
        self.log.success = False
        self.log.error_type = error_type
        self.log.error_message = error_message

    def finish(self) -> None:
        """Mark the end of the run and log summary."""
        self.log.end_time = time.time()
        self.log.duration_ms = (self.log.end_time - self.log.start_time) * 1000

        if self.log.success:
            self.logger.info(
                "Ingestion completed",
                **self.get_summary(),
            )
        else:
            self.logger.error(
                "Ingestion failed",
                error_type=self.log.error_type,
                error_message=self.log.error_message,
                **self.get_summary(),
            )

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the run for external use."""
        return {
            "run_id": self.log.run_id,
            "source": self.log.source,
            "user_id": self.log.user_id,
            "provider": self.log.provider,
            "received": self.log.received,
            "upserted": self.log.upserted,
            "skipped": self.log.skipped,
            "duration_ms": round(self.log.duration_ms, 2),
            "success": self.log.success,
        }
