from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Integer, Numeric, ForeignKey, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.models.base import Base, utcnow


class FeeSchedule(Base):
    __tablename__ = "fee_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level_id: Mapped[int] = mapped_column(Integer, ForeignKey("levels.id", ondelete="RESTRICT"), nullable=False, index=True)
    academic_year_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("academic_years.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    tuition_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    registration_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    file_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    academic_year: Mapped["AcademicYear"] = relationship("AcademicYear", back_populates="fee_schedules")

    __table_args__ = (
        CheckConstraint("tuition_amount >= 0", name="ck_fee_schedules_tuition_positive"),
        CheckConstraint("registration_fee >= 0", name="ck_fee_schedules_registration_positive"),
        CheckConstraint("file_fee >= 0", name="ck_fee_schedules_file_fee_positive"),
        UniqueConstraint("level_id", "academic_year_id", name="uix_fee_schedule_level_year"),
    )
