# backoffice/schemas/enrollment.py - Enrollment schemas
import enum
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backoffice.models.enrollment import EnrollmentStatus, ACTIVE_STATUSES
from backoffice.schemas.payment import FinancialSummary

_MONEY_FIELDS = ("registration_fee", "tuition_fee", "discount")


class EnrollmentCreate(BaseModel):
    student_id: int = Field(..., gt=0)
    class_section_id: int
    academic_year_id: int
    enrollment_date: date = Field(default_factory=date.today)
    registration_fee: Decimal = Field(Decimal("0.00"), ge=0)
    tuition_fee: Decimal = Field(..., ge=0)
    discount: Decimal = Field(Decimal("0.00"), ge=0)
    payment_plan: str = Field("", max_length=64)
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED
    prior_enrollment_id: Optional[int] = None
    observations: Optional[str] = None

    @field_validator(*_MONEY_FIELDS)
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.01"))

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: EnrollmentStatus) -> EnrollmentStatus:
        if v not in ACTIVE_STATUSES:
            raise ValueError("A new enrollment starts as enrolled or renewed")
        return v


class EnrollmentPatch(BaseModel):
    """Fields a user may edit in place; None means untouched"""
    class_section_id: Optional[int] = None
    enrollment_date: Optional[date] = None
    registration_fee: Optional[Decimal] = Field(None, ge=0)
    tuition_fee: Optional[Decimal] = Field(None, ge=0)
    discount: Optional[Decimal] = Field(None, ge=0)
    payment_plan: Optional[str] = Field(None, max_length=64)
    observations: Optional[str] = None

    @field_validator(*_MONEY_FIELDS)
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return v.quantize(Decimal("0.01")) if v is not None else None

    def provided(self) -> dict:
        return {key: value for key, value in self.model_dump().items() if value is not None}


class EnrollmentUpdate(EnrollmentPatch):
    """Full update accepted by PUT /api/enrollments/{id}"""
    status: Optional[EnrollmentStatus] = None
    withdrawn_date: Optional[date] = None
    status_reason: Optional[str] = Field(None, max_length=256)


class EnrollmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    class_section_id: int
    academic_year_id: int
    enrollment_date: date
    registration_fee: Decimal
    tuition_fee: Decimal
    discount: Decimal
    payment_plan: str = ""
    status: EnrollmentStatus
    amount_due: Decimal
    amount_paid: Decimal
    prior_enrollment_id: Optional[int] = None
    observations: Optional[str] = None
    withdrawn_date: Optional[date] = None
    status_reason: Optional[str] = None

    @property
    def balance(self) -> Decimal:
        return self.amount_due - self.amount_paid

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class StatusChange(BaseModel):
    reason: Optional[str] = Field(None, max_length=256)


class FieldChange(BaseModel):
    field: str
    old: Any = None
    new: Any = None


class EditOutcome(str, enum.Enum):
    SAVED = "saved"
    UNCHANGED = "unchanged"


class EditResult(BaseModel):
    enrollment: EnrollmentOut
    outcome: EditOutcome
    changes: List[FieldChange] = []
    negative_balance_warning: bool = False
    summary: FinancialSummary

    @property
    def saved(self) -> bool:
        return self.outcome == EditOutcome.SAVED
