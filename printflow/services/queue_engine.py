"""
Queue engine: the print job lifecycle.

    pending --(payment verified)--> waiting --(vendor approves)--> printing
            --(vendor completes)--> done

Every mutation is one transaction against the job repository. State guards
are re-checked inside the UPDATE itself, so a stale read can only ever
produce an InvalidStateTransition, never a lost update. Events are
published after commit, and queue positions for the affected vendor are
recomputed and re-broadcast in full.
"""
import asyncio
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from printflow.config import settings
from printflow.errors import (
    AmountMismatch,
    BlobStoreError,
    DuplicateReference,
    InvalidStateTransition,
    JobNotFound,
    JobValidationError,
    NotAuthorized,
    ServiceClosed,
)
from printflow.logging_config import get_logger, job_logger
from printflow.models.base import utcnow
from printflow.models.job import PrintJob, JobStatus, QUEUED_STATUSES, can_transition
from printflow.routes.metrics import (
    track_job_completed,
    track_jobs_admitted,
    track_jobs_created,
    track_payment_rejection,
    update_queue_depth,
)
from printflow.services import broadcaster as events
from printflow.services.blob_store import BlobStore
from printflow.services.broadcaster import RealtimeBroadcaster
from printflow.services.job_repository import JobRepository
from printflow.services.notification_service import SmsNotifier
from printflow.services.print_spec import UploadedFile, validate_batch
from printflow.services.vendor_service import VendorService

# Strong references to fire-and-forget tasks (pickup SMS)
_background_tasks: set[asyncio.Task] = set()


async def drain_background_tasks() -> None:
    """Wait for outstanding notification tasks; used on shutdown and in tests."""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


class QueueEngine:
    """
    Print job state machine, payment admission and FIFO queue positions.

    One instance per request; it shares the request's AsyncSession.
    """

    def __init__(
        self,
        db: AsyncSession,
        broadcaster: RealtimeBroadcaster,
        blob_store: BlobStore,
        notifier: SmsNotifier | None = None,
        require_payment_before_queue: bool | None = None,
    ):
        self.db = db
        self.repo = JobRepository(db)
        self.vendors = VendorService(db, broadcaster)
        self.broadcaster = broadcaster
        self.blob_store = blob_store
        self.notifier = notifier
        if require_payment_before_queue is None:
            require_payment_before_queue = settings.REQUIRE_PAYMENT_BEFORE_QUEUE
        self.require_payment_before_queue = require_payment_before_queue

    # ------------------------------------------------------------------ #
    # Creation                                                             #
    # ------------------------------------------------------------------ #

    async def create_job(self, student_id: str, vendor_id: str, upload: UploadedFile) -> PrintJob:
        """Create a single job; see create_batch."""
        jobs = await self.create_batch(student_id, vendor_id, [upload])
        return jobs[0]

    async def create_batch(self, student_id: str, vendor_id: str, uploads: list[UploadedFile]) -> list[PrintJob]:
        """
        Create one pending job per uploaded file, sharing a batch id.

        All files are validated before anything is stored. If a blob write
        or the database insert fails, every blob already written for this
        batch is removed and no job exists afterwards.

        Raises:
            JobValidationError, VendorNotFound, ServiceClosed, BlobStoreError
        """
        validate_batch(uploads)

        student = await self.repo.get_user(student_id)
        if student is None:
            raise JobValidationError("Unknown student")
        await self.vendors.get_vendor(vendor_id)
        if not await self.vendors.is_open(vendor_id):
            raise ServiceClosed(vendor_id)

        batch_id = str(uuid.uuid4())
        log = get_logger(batch_id=batch_id, vendor_id=vendor_id, student_id=student_id)

        file_refs: list[str] = []
        try:
            for upload in uploads:
                file_refs.append(await self.blob_store.put(upload.content, {
                    "filename": upload.filename,
                    "content_type": upload.content_type,
                    "student_id": student_id,
                }))
        except BlobStoreError:
            log.error("blob_store_put_failed", stored=len(file_refs))
            await self._discard_blobs(file_refs)
            raise

        try:
            tokens = await self.repo.allocate_tokens(len(uploads))
            jobs = []
            for upload, file_ref, token in zip(uploads, file_refs, tokens):
                spec = upload.spec
                now = utcnow()
                jobs.append(PrintJob(
                    token_number=token,
                    batch_id=batch_id,
                    student_id=student_id,
                    vendor_id=vendor_id,
                    file_ref=file_ref,
                    file_name=upload.filename,
                    content_type=upload.content_type,
                    page_count=spec.page_count,
                    total_pages=spec.total_pages,
                    page_range=spec.page_range,
                    color_mode=spec.color_mode,
                    copies=spec.copies,
                    duplex=spec.duplex,
                    paper_size=spec.paper_size,
                    orientation=spec.orientation,
                    pages_per_sheet=spec.pages_per_sheet,
                    amount=spec.amount(),
                    payment_verified=False,
                    payment_reference=None,
                    status=JobStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                ))
            await self.repo.add_jobs(jobs)

            auto_admitted = False
            if not self.require_payment_before_queue:
                # Same admission path as a real payment, minus the reference.
                await self.repo.admit([job.id for job in jobs], reference=None)
                auto_admitted = True
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self._discard_blobs(file_refs)
            raise

        track_jobs_created(vendor_id, len(jobs))
        for job in jobs:
            job_logger(job, batch_id=batch_id).info("job_created", amount=job.amount, auto_admitted=auto_admitted)

        if auto_admitted:
            jobs = await self.repo.get_by_ids([job.id for job in jobs])
            for job in jobs:
                self.broadcaster.publish(events.job_created(job))
            for job in jobs:
                self.broadcaster.publish(events.job_status_changed(job, JobStatus.PENDING))
            track_jobs_admitted(vendor_id, len(jobs))
            await self._publish_positions(vendor_id)
        else:
            for job in jobs:
                self.broadcaster.publish(events.job_created(job))
        return jobs

    async def _discard_blobs(self, file_refs: list[str]) -> None:
        for ref in file_refs:
            try:
                await self.blob_store.delete(ref)
            except BlobStoreError as exc:
                get_logger(file_ref=ref).warning("blob_cleanup_failed", error=str(exc))

    # ------------------------------------------------------------------ #
    # Payment admission                                                    #
    # ------------------------------------------------------------------ #

    async def verify_payment(
        self,
        payment_reference: str,
        amount: int,
        job_id: str | None = None,
        batch_id: str | None = None,
        student_id: str | None = None,
    ) -> list[PrintJob]:
        """
        Admit a whole batch with one payment reference.

        ``job_id`` resolves to the job's batch. When ``student_id`` is given
        only that student's jobs are visible. The reference claim, the
        payment fields and the pending -> waiting move commit together.

        Raises:
            JobValidationError, JobNotFound, InvalidStateTransition,
            AmountMismatch, DuplicateReference
        """
        reference = (payment_reference or "").strip()
        if not reference:
            raise JobValidationError("Payment reference is required")
        if job_id is None and batch_id is None:
            raise JobValidationError("A job or batch must be given")

        if job_id is not None:
            job = await self._get_student_job(job_id, student_id)
            batch_id = job.batch_id
        jobs = await self.repo.get_batch(batch_id, student_id)
        if not jobs:
            raise JobNotFound(job_id)

        for job in jobs:
            if job.payment_verified or not can_transition(job.status, JobStatus.WAITING):
                track_payment_rejection("already_admitted")
                raise InvalidStateTransition(job.id, job.status.value, JobStatus.WAITING.value)

        first = jobs[0]
        expected = sum(job.amount for job in jobs)
        if amount != expected:
            track_payment_rejection("amount_mismatch")
            raise AmountMismatch(expected, amount, batch_id, first.id, first.status.value)

        log = get_logger(batch_id=batch_id, vendor_id=first.vendor_id)
        first_id = first.id
        try:
            await self.repo.claim_reference(reference, batch_id, expected)
        except IntegrityError:
            await self.db.rollback()
            track_payment_rejection("duplicate_reference")
            log.warning("payment_reference_rejected", reason="duplicate")
            current = await self.repo.get_by_id(first_id, fresh=True)
            status = current.status.value if current is not None else JobStatus.PENDING.value
            raise DuplicateReference(reference, batch_id, first_id, status) from None

        job_ids = [job.id for job in jobs]
        admitted = await self.repo.admit(job_ids, reference)
        if admitted != len(job_ids):
            # Another request admitted (part of) this batch first.
            await self.db.rollback()
            current = await self.repo.get_by_ids(job_ids)
            stale = next((j for j in current if j.status != JobStatus.PENDING or j.payment_verified), None)
            track_payment_rejection("already_admitted")
            if stale is None:
                raise JobNotFound(job_id)
            raise InvalidStateTransition(stale.id, stale.status.value, JobStatus.WAITING.value)
        await self.db.commit()

        jobs = await self.repo.get_by_ids(job_ids)
        track_jobs_admitted(jobs[0].vendor_id, len(jobs))
        log.info("payment_verified", job_ids=job_ids, amount=expected)
        for job in jobs:
            self.broadcaster.publish(events.job_status_changed(job, JobStatus.PENDING))
        await self._publish_positions(jobs[0].vendor_id)
        return jobs

    # ------------------------------------------------------------------ #
    # Vendor actions                                                       #
    # ------------------------------------------------------------------ #

    async def approve(self, job_id: str, acting_vendor_id: str) -> PrintJob:
        """waiting -> printing."""
        job = await self._get_vendor_job(job_id, acting_vendor_id)
        return await self._advance(job, JobStatus.PRINTING)

    async def complete(self, job_id: str, acting_vendor_id: str) -> PrintJob:
        """printing -> done, then fire the pickup SMS without waiting for it."""
        job = await self._get_vendor_job(job_id, acting_vendor_id)
        job = await self._advance(job, JobStatus.DONE)
        track_job_completed(job.vendor_id)
        await self._schedule_pickup_notification(job)
        return job

    async def _advance(self, job: PrintJob, to_status: JobStatus) -> PrintJob:
        """Take the single forward step into ``to_status`` from the job's current status."""
        from_status = JobStatus(job.status)
        if not can_transition(from_status, to_status) or (to_status in QUEUED_STATUSES and not job.payment_verified):
            raise InvalidStateTransition(job.id, from_status.value, to_status.value)

        if not await self.repo.transition(job.id, from_status, to_status):
            await self.db.rollback()
            current = await self.repo.get_by_id(job.id, fresh=True)
            if current is None:
                raise JobNotFound(job.id)
            raise InvalidStateTransition(job.id, current.status.value, to_status.value)
        await self.db.commit()

        job = await self.repo.get_by_id(job.id, fresh=True)
        job_logger(job).info("job_status_changed", from_status=from_status.value, to_status=to_status.value)
        self.broadcaster.publish(events.job_status_changed(job, from_status))
        await self._publish_positions(job.vendor_id)
        return job

    async def _schedule_pickup_notification(self, job: PrintJob) -> None:
        if self.notifier is None:
            return
        student = await self.repo.get_user(job.student_id)
        phone = student.phone if student else None
        summary = {"job_id": job.id, "token_number": job.token_number, "file_name": job.file_name}
        task = asyncio.create_task(self._notify_pickup(phone, summary))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    async def _notify_pickup(self, phone: str | None, summary: dict) -> None:
        try:
            await self.notifier.notify_pickup(phone, summary)
        except Exception as exc:
            get_logger(job_id=summary["job_id"]).warning("pickup_notification_error", error=str(exc))

    # ------------------------------------------------------------------ #
    # Deletion                                                             #
    # ------------------------------------------------------------------ #

    async def delete_job(self, job_id: str, acting_vendor_id: str) -> None:
        """Vendor removes one of its jobs in any status, along with the file."""
        job = await self._get_vendor_job(job_id, acting_vendor_id)
        was_queued = job.is_queued
        file_ref, vendor_id = job.file_ref, job.vendor_id

        if await self.repo.delete_jobs([job.id]) != 1:
            await self.db.rollback()
            raise JobNotFound(job_id)
        await self.db.commit()

        get_logger(job_id=job_id, vendor_id=vendor_id).info("job_deleted")
        await self._discard_blobs([file_ref])
        self.broadcaster.publish(events.job_deleted(job_id, vendor_id))
        if was_queued:
            await self._publish_positions(vendor_id)

    async def clear_history(self, student_id: str) -> int:
        """Delete the student's own done jobs. Returns how many were removed."""
        done = await self.repo.list_done(student_id=student_id)
        return await self._delete_done(done, get_logger(student_id=student_id))

    async def clear_vendor_history(self, vendor_id: str) -> int:
        """Delete the vendor's done jobs and their files."""
        done = await self.repo.list_done(vendor_id=vendor_id)
        return await self._delete_done(done, get_logger(vendor_id=vendor_id))

    async def _delete_done(self, done: list[PrintJob], log) -> int:
        if not done:
            return 0
        removed = [(job.id, job.vendor_id, job.file_ref) for job in done]
        deleted = await self.repo.delete_done([job_id for job_id, _, _ in removed])
        await self.db.commit()

        log.info("history_cleared", count=deleted)
        await self._discard_blobs([file_ref for _, _, file_ref in removed])
        for job_id, vendor_id, _ in removed:
            self.broadcaster.publish(events.job_deleted(job_id, vendor_id))
        return deleted

    # ------------------------------------------------------------------ #
    # Queue positions and read projections                                 #
    # ------------------------------------------------------------------ #

    async def get_queue_position(self, job_id: str) -> int:
        """1-based FIFO rank among the vendor's admitted live jobs; 0 when not queued."""
        job = await self.repo.get_by_id(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return await self.position_of(job)

    async def position_of(self, job: PrintJob) -> int:
        if not job.is_queued:
            return 0
        return 1 + await self.repo.count_ahead(job)

    async def queue_positions(self, vendor_id: str) -> dict[str, int]:
        """Position of every queued job of a vendor, computed from one snapshot."""
        queue = await self.repo.queue_for_vendor(vendor_id)
        return {job.id: index for index, job in enumerate(queue, start=1)}

    async def _publish_positions(self, vendor_id: str) -> None:
        queue = await self.repo.queue_for_vendor(vendor_id)
        update_queue_depth(vendor_id, len(queue))
        for position, job in enumerate(queue, start=1):
            self.broadcaster.publish(
                events.queue_position_changed(vendor_id, job.id, job.token_number, position)
            )

    async def get_job_for_student(self, job_id: str, student_id: str) -> tuple[PrintJob, int]:
        job = await self._get_student_job(job_id, student_id)
        return job, await self.position_of(job)

    async def get_latest_job(self, student_id: str) -> tuple[PrintJob | None, int]:
        job = await self.repo.get_latest_for_student(student_id)
        if job is None:
            return None, 0
        return job, await self.position_of(job)

    async def get_batch(self, batch_id: str, student_id: str) -> list[PrintJob]:
        jobs = await self.repo.get_batch(batch_id, student_id)
        if not jobs:
            raise JobNotFound()
        return jobs

    async def list_live(self, vendor_id: str | None = None, student_id: str | None = None) -> list[PrintJob]:
        if vendor_id is None and student_id is None:
            raise JobValidationError("vendor_id or student_id is required")
        return await self.repo.list_live(vendor_id=vendor_id, student_id=student_id)

    async def list_history(self, student_id: str) -> list[PrintJob]:
        return await self.repo.list_done(student_id=student_id)

    async def list_vendor_jobs(self, vendor_id: str) -> list[PrintJob]:
        return await self.repo.list_for_vendor(vendor_id)

    async def download_file(self, job_id: str, acting_vendor_id: str):
        """Return (job, StoredBlob) for a vendor's own job."""
        job = await self._get_vendor_job(job_id, acting_vendor_id)
        blob = await self.blob_store.get(job.file_ref)
        return job, blob

    # ------------------------------------------------------------------ #
    # Ownership                                                            #
    # ------------------------------------------------------------------ #

    async def _get_vendor_job(self, job_id: str, vendor_id: str) -> PrintJob:
        job = await self.repo.get_by_id(job_id, fresh=True)
        if job is None:
            raise JobNotFound(job_id)
        if job.vendor_id != vendor_id:
            raise NotAuthorized()
        return job

    async def _get_student_job(self, job_id: str, student_id: str | None) -> PrintJob:
        # Another student's job is reported as missing, not forbidden.
        if student_id is None:
            job = await self.repo.get_by_id(job_id, fresh=True)
        else:
            job = await self.repo.get_by_id_and_student(job_id, student_id)
        if job is None:
            raise JobNotFound(job_id)
        return job
