"""
Request/response models shared by the API routers.
"""
from collections import defaultdict

from pydantic import BaseModel, Field

from printflow.models.job import PrintJob
from printflow.services.queue_engine import QueueEngine


class JobResponse(BaseModel):
    """Response model for a print job."""
    id: str
    token_number: int
    batch_id: str
    student_id: str
    vendor_id: str
    file_name: str
    content_type: str
    page_count: int
    total_pages: int | None = None
    page_range: str | None = None
    color_mode: str
    copies: int
    duplex: str
    paper_size: str
    orientation: str
    pages_per_sheet: int
    amount: int
    payment_verified: bool
    payment_reference: str | None = None
    status: str
    queue_position: int = 0
    created_at: str | None = None
    updated_at: str | None = None


def job_to_response(job: PrintJob, queue_position: int = 0) -> JobResponse:
    """Convert PrintJob model to JobResponse."""
    return JobResponse(
        id=job.id,
        token_number=job.token_number,
        batch_id=job.batch_id,
        student_id=job.student_id,
        vendor_id=job.vendor_id,
        file_name=job.file_name,
        content_type=job.content_type,
        page_count=job.page_count,
        total_pages=job.total_pages,
        page_range=job.page_range,
        color_mode=job.color_mode.value,
        copies=job.copies,
        duplex=job.duplex.value,
        paper_size=job.paper_size.value,
        orientation=job.orientation.value,
        pages_per_sheet=job.pages_per_sheet,
        amount=job.amount,
        payment_verified=job.payment_verified,
        payment_reference=job.payment_reference,
        status=job.status.value,
        queue_position=queue_position,
        created_at=job.created_at.isoformat() if job.created_at else None,
        updated_at=job.updated_at.isoformat() if job.updated_at else None,
    )


async def jobs_with_positions(engine: QueueEngine, jobs: list[PrintJob]) -> list[JobResponse]:
    """Attach queue positions using one snapshot per vendor."""
    by_vendor: dict[str, dict[str, int]] = defaultdict(dict)
    for vendor_id in {job.vendor_id for job in jobs if job.is_queued}:
        by_vendor[vendor_id] = await engine.queue_positions(vendor_id)
    return [
        job_to_response(job, by_vendor[job.vendor_id].get(job.id, 0) if job.is_queued else 0)
        for job in jobs
    ]


class BatchResponse(BaseModel):
    batch_id: str
    total_amount: int
    jobs: list[JobResponse]
    message: str | None = None


class SubmitPaymentRequest(BaseModel):
    """Student-submitted payment proof for a job's batch (or a batch directly)."""
    payment_reference: str = Field(min_length=1, max_length=255)
    amount: int = Field(ge=0)
    job_id: str | None = None
    batch_id: str | None = None


class ServiceStatusRequest(BaseModel):
    is_open: bool


class ServiceStatusResponse(BaseModel):
    vendor_id: str
    is_open: bool
