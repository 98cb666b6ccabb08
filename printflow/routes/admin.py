"""
Admin API routes.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from printflow.dependencies.auth import require_admin, TokenPayload
from printflow.dependencies.services import get_analytics_service, get_queue_engine
from printflow.routes.schemas import BatchResponse, jobs_with_positions
from printflow.services.analytics_service import AnalyticsService
from printflow.services.queue_engine import QueueEngine


router = APIRouter(prefix="/api/admin", tags=["admin"])


class AdminVerifyRequest(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=255)
    amount: int = Field(ge=0)


@router.get("/analytics")
async def analytics(
    vendor_id: str | None = None,
    current_user: TokenPayload = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Job, revenue and throughput totals, optionally for one vendor."""
    return await service.summary(vendor_id=vendor_id)


@router.post("/jobs/{job_id}/verify-payment", response_model=BatchResponse)
async def verify_payment(
    job_id: str,
    request: AdminVerifyRequest,
    current_user: TokenPayload = Depends(require_admin),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """Record a payment seen out of band for the job's batch."""
    jobs = await engine.verify_payment(request.payment_reference, request.amount, job_id=job_id)
    return BatchResponse(
        batch_id=jobs[0].batch_id,
        total_amount=sum(job.amount for job in jobs),
        jobs=await jobs_with_positions(engine, jobs),
        message="Payment verified",
    )
