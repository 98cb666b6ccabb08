"""
Job repository: all SQL touching print jobs lives here.

Status changes are conditional UPDATEs ("set status=X only where status=Y"),
so two handlers racing on the same job cannot both win. The caller owns the
transaction and decides when to commit or roll back.
"""
from sqlalchemy import select, update, delete, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from printflow.config import settings
from printflow.models.base import utcnow
from printflow.models.job import (
    PrintJob, PaymentIntent, PaymentReference, TokenCounter, JobStatus, QUEUED_STATUSES, LIVE_STATUSES,
)
from printflow.models.user import User, UserRole

TOKEN_COUNTER_NAME = "print_jobs"


class JobRepository:
    """Data access for print jobs, token numbers and payment references."""
    
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------ #
    # Creation                                                             #
    # ------------------------------------------------------------------ #

    async def allocate_tokens(self, count: int) -> list[int]:
        """
        Reserve ``count`` consecutive token numbers.

        A single UPDATE ... RETURNING bumps the counter, so concurrent
        uploads never see the same value.
        """
        stmt = (
            update(TokenCounter)
            .where(TokenCounter.name == TOKEN_COUNTER_NAME)
            .values(value=TokenCounter.value + count)
            .returning(TokenCounter.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        last = result.scalar_one_or_none()
        if last is None:
            last = await self._seed_counter(count)
        return list(range(last - count + 1, last + 1))

    async def _seed_counter(self, count: int) -> int:
        """Create the counter row on a database that was never initialised."""
        stmt = select(func.max(PrintJob.token_number))
        highest = (await self.db.execute(stmt)).scalar_one_or_none()
        first = max(settings.TOKEN_NUMBER_START, (highest or 0) + 1)
        counter = TokenCounter(name=TOKEN_COUNTER_NAME, value=first + count - 1)
        self.db.add(counter)
        await self.db.flush()
        return counter.value

    async def add_jobs(self, jobs: list[PrintJob]) -> None:
        self.db.add_all(jobs)
        await self.db.flush()

    # ------------------------------------------------------------------ #
    # Lookups                                                              #
    # ------------------------------------------------------------------ #

    async def get_by_id(self, job_id: str, fresh: bool = False) -> PrintJob | None:
        """Get job by ID. ``fresh`` bypasses the session's identity map."""
        stmt = select(PrintJob).where(PrintJob.id == job_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_ids(self, job_ids: list[str]) -> list[PrintJob]:
        stmt = (
            select(PrintJob)
            .where(PrintJob.id.in_(job_ids))
            .order_by(PrintJob.token_number)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_id_and_student(self, job_id: str, student_id: str) -> PrintJob | None:
        stmt = select(PrintJob).where(
            PrintJob.id == job_id,
            PrintJob.student_id == student_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_batch(self, batch_id: str, student_id: str | None = None) -> list[PrintJob]:
        """All jobs of a batch, in token order."""
        stmt = select(PrintJob).where(PrintJob.batch_id == batch_id)
        if student_id is not None:
            stmt = stmt.where(PrintJob.student_id == student_id)
        stmt = stmt.order_by(PrintJob.token_number).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_latest_for_student(self, student_id: str) -> PrintJob | None:
        stmt = (
            select(PrintJob)
            .where(PrintJob.student_id == student_id)
            .order_by(PrintJob.created_at.desc(), PrintJob.token_number.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_live(self, vendor_id: str | None = None, student_id: str | None = None) -> list[PrintJob]:
        """Jobs not yet done, oldest first."""
        stmt = select(PrintJob).where(PrintJob.status.in_(LIVE_STATUSES))
        if vendor_id is not None:
            stmt = stmt.where(PrintJob.vendor_id == vendor_id)
        if student_id is not None:
            stmt = stmt.where(PrintJob.student_id == student_id)
        stmt = stmt.order_by(PrintJob.created_at, PrintJob.token_number)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_done(self, student_id: str | None = None, vendor_id: str | None = None) -> list[PrintJob]:
        """Completed jobs, most recently finished first."""
        stmt = select(PrintJob).where(PrintJob.status == JobStatus.DONE)
        if student_id is not None:
            stmt = stmt.where(PrintJob.student_id == student_id)
        if vendor_id is not None:
            stmt = stmt.where(PrintJob.vendor_id == vendor_id)
        stmt = stmt.order_by(PrintJob.updated_at.desc(), PrintJob.token_number.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_vendor(self, vendor_id: str) -> list[PrintJob]:
        """Every job routed to a vendor, newest first."""
        stmt = (
            select(PrintJob)
            .where(PrintJob.vendor_id == vendor_id)
            .order_by(PrintJob.created_at.desc(), PrintJob.token_number.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_user(self, user_id: str) -> User | None:
        stmt = select(User).where(User.id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_vendor(self, vendor_id: str) -> User | None:
        stmt = select(User).where(User.id == vendor_id, User.role == UserRole.VENDOR)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------ #
    # Queue ordering                                                       #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _queued_for_vendor(vendor_id: str):
        return and_(
            PrintJob.vendor_id == vendor_id,
            PrintJob.status.in_(QUEUED_STATUSES),
            PrintJob.payment_verified.is_(True),
        )

    async def queue_for_vendor(self, vendor_id: str) -> list[PrintJob]:
        """Admitted waiting/printing jobs of a vendor in FIFO order."""
        stmt = (
            select(PrintJob)
            .where(self._queued_for_vendor(vendor_id))
            .order_by(PrintJob.created_at, PrintJob.token_number)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_ahead(self, job: PrintJob) -> int:
        """Number of admitted live jobs of the same vendor created before ``job``."""
        stmt = select(func.count(PrintJob.id)).where(
            self._queued_for_vendor(job.vendor_id),
            PrintJob.id != job.id,
            or_(
                PrintJob.created_at < job.created_at,
                and_(
                    PrintJob.created_at == job.created_at,
                    PrintJob.token_number < job.token_number,
                ),
            ),
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    # ------------------------------------------------------------------ #
    # Conditional mutations                                                #
    # ------------------------------------------------------------------ #

    async def claim_reference(self, reference: str, batch_id: str, amount: int) -> None:
        """
        Record that ``reference`` paid for ``batch_id``.

        Raises sqlalchemy.exc.IntegrityError if the reference was already claimed.
        """
        self.db.add(PaymentReference(reference=reference, batch_id=batch_id, amount=amount))
        await self.db.flush()

    async def record_intent(self, order_id: str, batch_id: str, student_id: str, amount: int) -> PaymentIntent:
        intent = PaymentIntent(order_id=order_id, batch_id=batch_id, student_id=student_id, amount=amount)
        self.db.add(intent)
        await self.db.flush()
        return intent

    async def get_intent(self, order_id: str) -> PaymentIntent | None:
        stmt = select(PaymentIntent).where(PaymentIntent.order_id == order_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def admit(self, job_ids: list[str], reference: str | None) -> int:
        """
        pending -> waiting for unpaid jobs, setting the payment fields in the
        same statement. Returns the number of rows changed.
        """
        stmt = (
            update(PrintJob)
            .where(
                PrintJob.id.in_(job_ids),
                PrintJob.status == JobStatus.PENDING,
                PrintJob.payment_verified.is_(False),
            )
            .values(
                payment_verified=True,
                payment_reference=reference,
                status=JobStatus.WAITING,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def transition(self, job_id: str, from_status: JobStatus, to_status: JobStatus) -> bool:
        """Move one job forward only if it is still in ``from_status``."""
        conditions = [PrintJob.id == job_id, PrintJob.status == from_status]
        if to_status in QUEUED_STATUSES:
            conditions.append(PrintJob.payment_verified.is_(True))
        stmt = (
            update(PrintJob)
            .where(*conditions)
            .values(status=to_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def delete_jobs(self, job_ids: list[str]) -> int:
        if not job_ids:
            return 0
        stmt = (
            delete(PrintJob)
            .where(PrintJob.id.in_(job_ids))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def delete_done(self, job_ids: list[str]) -> int:
        """Delete jobs, skipping any that are not (or no longer) done."""
        if not job_ids:
            return 0
        stmt = (
            delete(PrintJob)
            .where(PrintJob.id.in_(job_ids), PrintJob.status == JobStatus.DONE)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount
