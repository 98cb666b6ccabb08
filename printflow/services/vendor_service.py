"""
Vendor service: availability toggle and vendor directory.

The "service open" flag gates new uploads for one vendor. It is stored in
vendor_settings so it survives restarts and stays scoped per vendor.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from printflow.errors import VendorNotFound
from printflow.logging_config import get_logger
from printflow.models.user import User, UserRole
from printflow.models.vendor import VendorSettings
from printflow.services import broadcaster as events
from printflow.services.broadcaster import RealtimeBroadcaster


class VendorService:
    """Service for vendor availability."""
    
    def __init__(self, db: AsyncSession, broadcaster: RealtimeBroadcaster | None = None):
        self.db = db
        self.broadcaster = broadcaster

    async def get_vendor(self, vendor_id: str) -> User:
        stmt = select(User).where(User.id == vendor_id, User.role == UserRole.VENDOR)
        result = await self.db.execute(stmt)
        vendor = result.scalar_one_or_none()
        if vendor is None:
            raise VendorNotFound(vendor_id)
        return vendor

    async def is_open(self, vendor_id: str) -> bool:
        """Vendors that never toggled the flag are open."""
        stmt = select(VendorSettings.is_open).where(VendorSettings.vendor_id == vendor_id)
        result = await self.db.execute(stmt)
        is_open = result.scalar_one_or_none()
        return True if is_open is None else is_open

    async def get_status(self, vendor_id: str) -> bool:
        await self.get_vendor(vendor_id)
        return await self.is_open(vendor_id)

    async def set_status(self, vendor_id: str, is_open: bool) -> bool:
        """
        Open or close a vendor for new uploads and announce the change.

        Jobs already created are unaffected.
        """
        await self.get_vendor(vendor_id)

        stmt = select(VendorSettings).where(VendorSettings.vendor_id == vendor_id)
        result = await self.db.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            row = VendorSettings(vendor_id=vendor_id, is_open=bool(is_open))
            self.db.add(row)
        else:
            row.is_open = bool(is_open)
        await self.db.commit()

        get_logger(vendor_id=vendor_id).info("service_availability_changed", is_open=row.is_open)
        if self.broadcaster is not None:
            self.broadcaster.publish(events.service_availability_changed(vendor_id, row.is_open))
        return row.is_open

    async def list_vendors(self) -> list[dict]:
        """All vendors with their current open flag."""
        stmt = (
            select(User, VendorSettings.is_open)
            .outerjoin(VendorSettings, VendorSettings.vendor_id == User.id)
            .where(User.role == UserRole.VENDOR)
            .order_by(User.name)
        )
        result = await self.db.execute(stmt)
        return [
            {
                "id": vendor.id,
                "name": vendor.name,
                "is_open": True if is_open is None else is_open,
            }
            for vendor, is_open in result.all()
        ]
