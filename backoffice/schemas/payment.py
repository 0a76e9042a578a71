# backoffice/schemas/payment.py - Payment record and financial summary schemas
import enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import date
from decimal import Decimal

from backoffice.models.payment import PaymentMethod


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    paid_on: date = Field(default_factory=date.today)
    method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = Field(None, max_length=64)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Ensure payment amount has at most 2 decimal places"""
        if v <= 0:
            raise ValueError("Payment amount must be greater than zero")
        return v.quantize(Decimal("0.01"))


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    enrollment_id: int
    amount: Decimal
    paid_on: date
    method: PaymentMethod
    reference: Optional[str] = None


class PaymentStatus(str, enum.Enum):
    """Derived from amount paid against amount due; never stored"""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"


class FinancialSummary(BaseModel):
    """Fees, payments and balance of one enrollment"""
    registration_fee: Decimal
    tuition_fee: Decimal
    discount: Decimal
    amount_due: Decimal
    amount_paid: Decimal
    balance: Decimal
    monthly_estimate: Decimal
    payment_status: PaymentStatus
    overpaid: bool = False
    currency: str = "MGA"


class StudentBalance(BaseModel):
    """What one student owes for one academic year, over all their enrollments"""
    student_id: int
    academic_year_id: int
    enrollment_ids: List[int] = []
    amount_due: Decimal
    amount_paid: Decimal
    balance: Decimal
    payment_status: PaymentStatus
    currency: str = "MGA"
