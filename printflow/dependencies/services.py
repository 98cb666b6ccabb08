"""
Service wiring for FastAPI routes.

Collaborators are process-wide singletons; engines are built per request
around the request's database session. Tests swap any of these through
app.dependency_overrides.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from printflow.config import settings
from printflow.database import get_db
from printflow.services.analytics_service import AnalyticsService
from printflow.services.blob_store import BlobStore, FilesystemBlobStore
from printflow.services.broadcaster import RealtimeBroadcaster, broadcaster
from printflow.services.notification_service import SmsNotifier
from printflow.services.payment_gateway import RazorpayGateway
from printflow.services.payment_service import PaymentService
from printflow.services.queue_engine import QueueEngine
from printflow.services.vendor_service import VendorService

blob_store = FilesystemBlobStore(settings.BLOB_STORAGE_PATH)
sms_notifier = SmsNotifier()
payment_gateway = RazorpayGateway()


def get_blob_store() -> BlobStore:
    return blob_store


def get_broadcaster() -> RealtimeBroadcaster:
    return broadcaster


def get_notifier() -> SmsNotifier:
    return sms_notifier


def get_payment_gateway() -> RazorpayGateway:
    return payment_gateway


async def get_queue_engine(
    db: AsyncSession = Depends(get_db),
    hub: RealtimeBroadcaster = Depends(get_broadcaster),
    store: BlobStore = Depends(get_blob_store),
    notifier: SmsNotifier = Depends(get_notifier),
) -> QueueEngine:
    return QueueEngine(db, hub, store, notifier)


async def get_vendor_service(
    db: AsyncSession = Depends(get_db),
    hub: RealtimeBroadcaster = Depends(get_broadcaster),
) -> VendorService:
    return VendorService(db, hub)


async def get_payment_service(
    engine: QueueEngine = Depends(get_queue_engine),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
) -> PaymentService:
    return PaymentService(engine, gateway)


async def get_analytics_service(db: AsyncSession = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)
