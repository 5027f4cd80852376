"""
Services module - Ingestion and training-load business logic.

Modules:
- analytics: Load engine, ACWR aggregator and numeric utilities
- ingest: Payload normalization, signature checks, webhook and device sync
- external: Terra REST client
- reporting: Training-load dashboard payload
"""
from trainload.services.reporting import TrainingLoadReportService

__all__ = [
    "TrainingLoadReportService",
]
