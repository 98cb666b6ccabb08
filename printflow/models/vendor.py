"""
Per-vendor service availability.

A vendor without a row is treated as open.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from printflow.models.base import Base, utcnow


class VendorSettings(Base):
    """Persisted "service open" toggle that gates new uploads for one vendor."""
    __tablename__ = "vendor_settings"

    vendor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True
    )
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    def __repr__(self):
        return f"<VendorSettings(vendor_id={self.vendor_id}, is_open={self.is_open})>"
