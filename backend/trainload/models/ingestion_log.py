"""
Ingestion log database model.
One row per webhook delivery or device sync outcome.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from trainload.core.database import Base


class IngestionLog(Base):
    """Audit trail of ingestion attempts."""

    __tablename__ = "ingestion_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # webhook, poll, link
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success, ignored, error
    message: Mapped[Optional[str]] = mapped_column(Text)
