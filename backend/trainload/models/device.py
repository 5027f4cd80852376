"""
User device database model.
Links a local user to a Terra user id for one provider.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from trainload.core.database import Base

STATUS_LINKED = "linked"


class UserDevice(Base):
    """Wearable connection stored in database."""

    __tablename__ = "user_devices"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_user_devices_user_provider"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    terra_user_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=STATUS_LINKED)
    connected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "id": str(self.id),
            "userId": self.user_id,
            "terraUserId": self.terra_user_id,
            "provider": self.provider,
            "status": self.status,
            "connectedAt": self.connected_at.isoformat() if self.connected_at else None,
            "lastSyncedAt": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }
