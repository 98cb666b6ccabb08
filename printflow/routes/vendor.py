"""
Vendor API routes.

A vendor only ever sees and acts on jobs addressed to it.
"""
from urllib.parse import quote

from fastapi import APIRouter, Depends, Response, status

from printflow.dependencies.auth import require_vendor, TokenPayload
from printflow.dependencies.services import get_queue_engine, get_vendor_service
from printflow.routes.schemas import (
    JobResponse,
    ServiceStatusRequest,
    ServiceStatusResponse,
    job_to_response,
    jobs_with_positions,
)
from printflow.services.queue_engine import QueueEngine
from printflow.services.vendor_service import VendorService


router = APIRouter(prefix="/api/vendor", tags=["vendor"])


@router.get("/jobs", response_model=list[JobResponse])
async def list_jobs(
    current_user: TokenPayload = Depends(require_vendor),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """Every job addressed to this vendor, including done ones."""
    jobs = await engine.list_vendor_jobs(current_user.sub)
    return await jobs_with_positions(engine, jobs)


@router.get("/queue", response_model=list[JobResponse])
async def live_queue(
    current_user: TokenPayload = Depends(require_vendor),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """Live jobs (pending, waiting, printing) in queue order."""
    jobs = await engine.list_live(vendor_id=current_user.sub)
    return await jobs_with_positions(engine, jobs)


@router.post("/jobs/{job_id}/approve", response_model=JobResponse)
async def approve_job(
    job_id: str,
    current_user: TokenPayload = Depends(require_vendor),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """Start printing a paid job (waiting -> printing)."""
    job = await engine.approve(job_id, current_user.sub)
    return job_to_response(job, await engine.position_of(job))


@router.post("/jobs/{job_id}/complete", response_model=JobResponse)
async def complete_job(
    job_id: str,
    current_user: TokenPayload = Depends(require_vendor),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """Mark a printing job done; the student is notified by SMS."""
    job = await engine.complete(job_id, current_user.sub)
    return job_to_response(job)


@router.get("/jobs/{job_id}/download")
async def download_file(
    job_id: str,
    current_user: TokenPayload = Depends(require_vendor),
    engine: QueueEngine = Depends(get_queue_engine),
):
    job, blob = await engine.download_file(job_id, current_user.sub)
    filename = quote(job.file_name)
    return Response(
        content=blob.content,
        media_type=blob.content_type or job.content_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
    )


@router.delete("/jobs/history")
async def clear_history(
    current_user: TokenPayload = Depends(require_vendor),
    engine: QueueEngine = Depends(get_queue_engine),
):
    deleted = await engine.clear_vendor_history(current_user.sub)
    return {"deleted": deleted}


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(
    job_id: str,
    current_user: TokenPayload = Depends(require_vendor),
    engine: QueueEngine = Depends(get_queue_engine),
):
    await engine.delete_job(job_id, current_user.sub)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/service", response_model=ServiceStatusResponse)
async def get_service_status(
    current_user: TokenPayload = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
):
    is_open = await vendors.get_status(current_user.sub)
    return ServiceStatusResponse(vendor_id=current_user.sub, is_open=is_open)


@router.put("/service", response_model=ServiceStatusResponse)
async def set_service_status(
    request: ServiceStatusRequest,
    current_user: TokenPayload = Depends(require_vendor),
    vendors: VendorService = Depends(get_vendor_service),
):
    """Open or close this vendor for new uploads."""
    is_open = await vendors.set_status(current_user.sub, request.is_open)
    return ServiceStatusResponse(vendor_id=current_user.sub, is_open=is_open)
