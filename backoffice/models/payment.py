# backoffice/models/payment.py - Append-only payment records
from __future__ import annotations
import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Integer, Numeric, Date, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from backoffice.models.base import Base, utcnow


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CHEQUE = "cheque"
    TRANSFER = "transfer"
    MOBILE = "mobile"


class PaymentRecord(Base):
    __tablename__ = "payment_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    enrollment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("enrollments.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    paid_on: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    method: Mapped[str] = mapped_column(String(16), nullable=False, default=PaymentMethod.CASH.value)
    reference: Mapped[Optional[str]] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    enrollment: Mapped["Enrollment"] = relationship("Enrollment", back_populates="payments")

    __table_args__ = (
        CheckConstraint("method IN ('cash','cheque','transfer','mobile')", name="ck_payment_method"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("ix_payment_records_enrollment_date", "enrollment_id", "paid_on"),
    )
