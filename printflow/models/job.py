"""
Print job model.

A job moves strictly forward through pending -> waiting -> printing -> done.
Payment admission (pending -> waiting) is the only way into the live queue,
so a job in waiting/printing always has payment_verified set.
"""
import uuid
import enum
from datetime import datetime
from sqlalchemy import (
    String, Integer, Boolean, DateTime, ForeignKey, Index, UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column
from printflow.models.base import Base, TimestampMixin, utcnow


class JobStatus(str, enum.Enum):
    """Job status enum."""
    PENDING = "pending"
    WAITING = "waiting"
    PRINTING = "printing"
    DONE = "done"


class ColorMode(str, enum.Enum):
    BLACK_WHITE = "black-white"
    COLOR = "color"


class DuplexMode(str, enum.Enum):
    SINGLE_SIDED = "single-sided"
    DOUBLE_SIDED = "double-sided"
    DOUBLE_SIDED_FLIP_LONG = "double-sided-flip-long"
    DOUBLE_SIDED_FLIP_SHORT = "double-sided-flip-short"


class PaperSize(str, enum.Enum):
    A4 = "A4"
    A3 = "A3"
    LETTER = "Letter"
    LEGAL = "Legal"


class Orientation(str, enum.Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


PAGES_PER_SHEET_CHOICES = (1, 2, 4, 6, 9)
MAX_COPIES = 10

# The only legal forward step from each status. done is terminal.
NEXT_STATUS = {
    JobStatus.PENDING: JobStatus.WAITING,
    JobStatus.WAITING: JobStatus.PRINTING,
    JobStatus.PRINTING: JobStatus.DONE,
}


def _enum_type(enum_cls):
    """Store enum values (not member names) in a VARCHAR column."""
    return SQLEnum(enum_cls, native_enum=False, values_callable=lambda e: [m.value for m in e])


# Statuses that occupy a slot in a vendor's queue.
QUEUED_STATUSES = (JobStatus.WAITING, JobStatus.PRINTING)
LIVE_STATUSES = (JobStatus.PENDING, JobStatus.WAITING, JobStatus.PRINTING)


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return NEXT_STATUS.get(JobStatus(current)) == JobStatus(target)


def compute_amount(page_count: int, color_mode: ColorMode, copies: int,
                   rate_black_white: int = 2, rate_color: int = 5) -> int:
    """Price of a job: pages x per-page rate x copies."""
    rate = rate_color if ColorMode(color_mode) == ColorMode.COLOR else rate_black_white
    return page_count * rate * copies


class PrintJob(Base, TimestampMixin):
    """
    One uploaded document with its print parameters and lifecycle status.

    Print parameters, amount, file_ref and token_number never change after
    creation. payment_verified flips to True at most once.
    """
    __tablename__ = "print_jobs"
    __table_args__ = (
        Index("ix_print_jobs_vendor_queue", "vendor_id", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    token_number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    batch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    vendor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Document
    file_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)

    # Print parameters
    page_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_pages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    page_range: Mapped[str | None] = mapped_column(String(255), nullable=True)
    color_mode: Mapped[ColorMode] = mapped_column(
        _enum_type(ColorMode),
        nullable=False,
        default=ColorMode.BLACK_WHITE
    )
    copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    duplex: Mapped[DuplexMode] = mapped_column(
        _enum_type(DuplexMode),
        nullable=False,
        default=DuplexMode.SINGLE_SIDED
    )
    paper_size: Mapped[PaperSize] = mapped_column(
        _enum_type(PaperSize),
        nullable=False,
        default=PaperSize.A4
    )
    orientation: Mapped[Orientation] = mapped_column(
        _enum_type(Orientation),
        nullable=False,
        default=Orientation.PORTRAIT
    )
    pages_per_sheet: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Money
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    status: Mapped[JobStatus] = mapped_column(
        _enum_type(JobStatus),
        nullable=False,
        default=JobStatus.PENDING
    )

    @property
    def is_queued(self) -> bool:
        return self.payment_verified and self.status in QUEUED_STATUSES

    def __repr__(self):
        return f"<PrintJob(id={self.id}, token={self.token_number}, status={self.status})>"


class PaymentReference(Base):
    """
    Claim on an external payment reference.

    One row per verified batch; the unique constraint on ``reference`` is
    what stops a single payment from admitting two batches.
    """
    __tablename__ = "payment_references"
    __table_args__ = (
        UniqueConstraint("reference", name="uq_payment_references_reference"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    reference: Mapped[str] = mapped_column(String(255), nullable=False)
    batch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<PaymentReference(reference={self.reference}, batch_id={self.batch_id})>"


class PaymentIntent(Base):
    """
    Gateway order created for a batch.

    ``amount`` is what the order charges, in major currency units; a
    checkout callback for this order can only admit this batch, and only
    while the batch still costs exactly this much.
    """
    __tablename__ = "payment_intents"

    order_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    batch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<PaymentIntent(order_id={self.order_id}, batch_id={self.batch_id}, amount={self.amount})>"


class TokenCounter(Base):
    """Named monotonic counter; token numbers are drawn from the "print_jobs" row."""
    __tablename__ = "token_counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
