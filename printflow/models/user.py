"""
User model.

Students upload and pay; vendors run a print counter; admins see analytics.
"""
import uuid
from sqlalchemy import String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
import enum
from printflow.models.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    """User role enum for role-based access control."""
    STUDENT = "student"
    VENDOR = "vendor"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    """
    A person using PrintFlow.

    Phone is only needed for the pickup SMS sent when a job is done.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    student_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.STUDENT
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
