"""
Student API routes.

Upload a batch of documents, follow its jobs through the queue and submit
payment references.
"""
import json

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from printflow.dependencies.auth import require_student, TokenPayload
from printflow.dependencies.services import get_queue_engine, get_vendor_service
from printflow.errors import JobValidationError
from printflow.routes.schemas import (
    BatchResponse,
    JobResponse,
    SubmitPaymentRequest,
    job_to_response,
    jobs_with_positions,
)
from printflow.services.print_spec import UploadedFile, guess_content_type, parse_print_specs
from printflow.services.queue_engine import QueueEngine
from printflow.services.vendor_service import VendorService


router = APIRouter(prefix="/api/student", tags=["student"])


def _decode_specs(specs: str, file_count: int) -> list[dict]:
    """
    ``specs`` is a JSON array with one object per uploaded file, or a single
    object applied to every file.
    """
    try:
        raw = json.loads(specs) if specs else {}
    except json.JSONDecodeError:
        raise JobValidationError("Print parameters must be valid JSON", {"specs": "Invalid JSON"}) from None

    if isinstance(raw, dict):
        return [raw] * file_count
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise JobValidationError("Print parameters must be an object or a list of objects")
    if len(raw) != file_count:
        raise JobValidationError(
            "Print parameters do not match the uploaded files",
            {"specs": f"Expected {file_count} entries, got {len(raw)}"},
        )
    return raw


@router.post("/jobs", response_model=BatchResponse, status_code=status.HTTP_201_CREATED)
async def upload_batch(
    vendor_id: str = Form(...),
    specs: str = Form("{}"),
    files: list[UploadFile] = File(...),
    current_user: TokenPayload = Depends(require_student),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """
    Upload one or more documents to a vendor.

    Every file becomes a pending job with its own token number; the jobs
    share one batch id and are paid for together.
    """
    print_specs = parse_print_specs(_decode_specs(specs, len(files)))

    uploads = []
    for upload, spec in zip(files, print_specs):
        content = await upload.read()
        uploads.append(UploadedFile(
            filename=upload.filename or "document",
            content=content,
            content_type=guess_content_type(upload.content_type, upload.filename),
            spec=spec,
        ))

    jobs = await engine.create_batch(current_user.sub, vendor_id, uploads)
    responses = await jobs_with_positions(engine, jobs)
    return BatchResponse(
        batch_id=jobs[0].batch_id,
        total_amount=sum(job.amount for job in jobs),
        jobs=responses,
        message=f"{len(jobs)} file(s) uploaded",
    )


@router.get("/jobs", response_model=list[JobResponse])
async def list_live_jobs(
    current_user: TokenPayload = Depends(require_student),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """Jobs that are not done yet, oldest first."""
    jobs = await engine.list_live(student_id=current_user.sub)
    return await jobs_with_positions(engine, jobs)


@router.get("/jobs/history", response_model=list[JobResponse])
async def list_history(
    current_user: TokenPayload = Depends(require_student),
    engine: QueueEngine = Depends(get_queue_engine),
):
    jobs = await engine.list_history(current_user.sub)
    return [job_to_response(job) for job in jobs]


@router.delete("/jobs/history")
async def clear_history(
    current_user: TokenPayload = Depends(require_student),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """Remove the student's done jobs and their files."""
    deleted = await engine.clear_history(current_user.sub)
    return {"deleted": deleted}


@router.get("/jobs/latest", response_model=JobResponse | None)
async def latest_job(
    current_user: TokenPayload = Depends(require_student),
    engine: QueueEngine = Depends(get_queue_engine),
):
    job, position = await engine.get_latest_job(current_user.sub)
    if job is None:
        return None
    return job_to_response(job, position)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    current_user: TokenPayload = Depends(require_student),
    engine: QueueEngine = Depends(get_queue_engine),
):
    job, position = await engine.get_job_for_student(job_id, current_user.sub)
    return job_to_response(job, position)


@router.get("/batches/{batch_id}", response_model=BatchResponse)
async def get_batch(
    batch_id: str,
    current_user: TokenPayload = Depends(require_student),
    engine: QueueEngine = Depends(get_queue_engine),
):
    jobs = await engine.get_batch(batch_id, current_user.sub)
    return BatchResponse(
        batch_id=batch_id,
        total_amount=sum(job.amount for job in jobs),
        jobs=await jobs_with_positions(engine, jobs),
    )


@router.post("/payments", response_model=BatchResponse)
async def submit_payment(
    request: SubmitPaymentRequest,
    current_user: TokenPayload = Depends(require_student),
    engine: QueueEngine = Depends(get_queue_engine),
):
    """
    Submit a payment reference for a job's batch.

    The amount must equal the batch total. A reference can only ever be
    used once.
    """
    jobs = await engine.verify_payment(
        request.payment_reference,
        request.amount,
        job_id=request.job_id,
        batch_id=request.batch_id,
        student_id=current_user.sub,
    )
    return BatchResponse(
        batch_id=jobs[0].batch_id,
        total_amount=sum(job.amount for job in jobs),
        jobs=await jobs_with_positions(engine, jobs),
        message="Payment verified",
    )


@router.get("/vendors")
async def list_vendors(
    current_user: TokenPayload = Depends(require_student),
    vendors: VendorService = Depends(get_vendor_service),
):
    """Vendors a student can upload to, with their open flag."""
    return await vendors.list_vendors()
