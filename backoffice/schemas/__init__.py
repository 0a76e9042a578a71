from backoffice.schemas.academic import AcademicYearCreate, AcademicYearOut, LevelCreate, LevelOut
from backoffice.schemas.class_schema import ClassSectionCreate, ClassSectionOut, ClassSectionDetail
from backoffice.schemas.fee_schema import (
    FeeScheduleCreate, FeeScheduleOut, Fees, CopyForwardRequest, CopyForwardResult
)
from backoffice.schemas.payment import (
    PaymentCreate, PaymentOut, PaymentStatus, FinancialSummary, StudentBalance,
)
from backoffice.schemas.enrollment import (
    EnrollmentCreate, EnrollmentPatch, EnrollmentUpdate, EnrollmentOut,
    StatusChange, FieldChange, EditOutcome, EditResult,
)

__all__ = [
    "AcademicYearCreate",
    "AcademicYearOut",
    "LevelCreate",
    "LevelOut",
    "ClassSectionCreate",
    "ClassSectionOut",
    "ClassSectionDetail",
    "FeeScheduleCreate",
    "FeeScheduleOut",
    "Fees",
    "CopyForwardRequest",
    "CopyForwardResult",
    "PaymentCreate",
    "PaymentOut",
    "PaymentStatus",
    "FinancialSummary",
    "StudentBalance",
    "EnrollmentCreate",
    "EnrollmentPatch",
    "EnrollmentUpdate",
    "EnrollmentOut",
    "StatusChange",
    "FieldChange",
    "EditOutcome",
    "EditResult",
]
