# backoffice/models/__init__.py - Import all models so SQLAlchemy can discover them

from backoffice.models.base import Base

from backoffice.models.academic import AcademicYear, Level, YearStatus
from backoffice.models.class_model import ClassSection
from backoffice.models.fee import FeeSchedule
from backoffice.models.enrollment import Enrollment, EnrollmentStatus, ACTIVE_STATUSES
from backoffice.models.payment import PaymentRecord, PaymentMethod

__all__ = [
    "Base",
    "AcademicYear",
    "Level",
    "YearStatus",
    "ClassSection",
    "FeeSchedule",
    "Enrollment",
    "EnrollmentStatus",
    "ACTIVE_STATUSES",
    "PaymentRecord",
    "PaymentMethod",
]
