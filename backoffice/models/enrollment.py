# backoffice/models/enrollment.py - One student's seat in one class for one year
from __future__ import annotations
import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Integer, Numeric, Date, DateTime, Text, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from backoffice.models.base import Base, utcnow


class EnrollmentStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    RENEWED = "renewed"
    TRANSFERRED = "transferred"
    WITHDRAWN = "withdrawn"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


# Statuses that hold a seat
ACTIVE_STATUSES = frozenset({EnrollmentStatus.ENROLLED, EnrollmentStatus.RENEWED})

# Allowed status moves; active enrollments leave through transfer or withdrawal
STATUS_TRANSITIONS = {
    EnrollmentStatus.ENROLLED: {EnrollmentStatus.TRANSFERRED, EnrollmentStatus.WITHDRAWN},
    EnrollmentStatus.RENEWED: {EnrollmentStatus.TRANSFERRED, EnrollmentStatus.WITHDRAWN},
    EnrollmentStatus.TRANSFERRED: {EnrollmentStatus.WITHDRAWN},
    EnrollmentStatus.WITHDRAWN: set(),
}

_ACTIVE_SQL = "status IN ('enrolled','renewed')"


class Enrollment(Base):
    """
    Enrollment links a student to a class section for one academic year.
    amount_due and amount_paid are derived columns kept in sync by the gateway.
    """
    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    class_section_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("class_sections.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    academic_year_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("academic_years.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    prior_enrollment_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("enrollments.id", ondelete="SET NULL"), nullable=True
    )

    enrollment_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    registration_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tuition_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    payment_plan: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    observations: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=EnrollmentStatus.ENROLLED.value)
    withdrawn_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status_reason: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    # Not clamped: a negative amount_due is a data-entry warning
    amount_due: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    class_section: Mapped["ClassSection"] = relationship("ClassSection", back_populates="enrollments")
    payments: Mapped[list["PaymentRecord"]] = relationship(
        "PaymentRecord",
        back_populates="enrollment",
        order_by="PaymentRecord.id",
    )

    __table_args__ = (
        # One active enrollment per student per year
        Index(
            "uq_enrollment_active_student_year",
            "student_id",
            "academic_year_id",
            unique=True,
            sqlite_where=text(_ACTIVE_SQL),
            postgresql_where=text(_ACTIVE_SQL),
        ),
        Index("ix_enrollments_year_class_status", "academic_year_id", "class_section_id", "status"),
        CheckConstraint(
            "status IN ('enrolled','renewed','transferred','withdrawn')", name="ck_enrollment_status"
        ),
        CheckConstraint("registration_fee >= 0", name="ck_enrollment_registration_positive"),
        CheckConstraint("tuition_fee >= 0", name="ck_enrollment_tuition_positive"),
        CheckConstraint("discount >= 0", name="ck_enrollment_discount_positive"),
    )
