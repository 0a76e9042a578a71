# backoffice/gateways/base.py - Persistence collaborator contract
from typing import Iterable, List, Optional, Protocol, runtime_checkable

from backoffice.models.enrollment import EnrollmentStatus
from backoffice.schemas.academic import AcademicYearCreate, AcademicYearOut, LevelCreate, LevelOut
from backoffice.schemas.class_schema import ClassSectionCreate, ClassSectionOut
from backoffice.schemas.fee_schema import FeeScheduleCreate, FeeScheduleOut
from backoffice.schemas.enrollment import EnrollmentCreate, EnrollmentOut, EnrollmentUpdate
from backoffice.schemas.payment import PaymentCreate, PaymentOut, StudentBalance


@runtime_checkable
class SchoolGateway(Protocol):
    """
    Everything the engine reads or writes goes through a gateway.

    SqlGateway talks to the database directly and is authoritative for
    capacity; ApiGateway talks to the HTTP API that wraps a SqlGateway.
    Every method is a single round-trip: it either applies fully or raises.
    """

    # Academic years
    async def list_academic_years(self) -> List[AcademicYearOut]: ...

    async def create_academic_year(self, data: AcademicYearCreate) -> AcademicYearOut: ...

    async def activate_academic_year(self, year_id: int) -> AcademicYearOut: ...

    async def set_current_year(self, year_id: int) -> AcademicYearOut: ...

    async def close_year(self, year_id: int) -> AcademicYearOut: ...

    async def archive_year(self, year_id: int) -> AcademicYearOut: ...

    # Levels and classes
    async def list_levels(self) -> List[LevelOut]: ...

    async def create_level(self, data: LevelCreate) -> LevelOut: ...

    async def list_class_sections(self, year_id: Optional[int] = None) -> List[ClassSectionOut]: ...

    async def get_class_section(self, class_section_id: int) -> ClassSectionOut: ...

    async def create_class_section(self, data: ClassSectionCreate) -> ClassSectionOut: ...

    # Fee schedules
    async def get_fee_schedule(self, level_id: int, year_id: int) -> Optional[FeeScheduleOut]: ...

    async def list_fee_schedules(
        self, year_id: Optional[int] = None, level_id: Optional[int] = None
    ) -> List[FeeScheduleOut]: ...

    async def create_fee_schedule(self, data: FeeScheduleCreate) -> FeeScheduleOut: ...

    # Enrollments and payments
    async def list_enrollments(
        self,
        year_id: Optional[int] = None,
        class_section_id: Optional[int] = None,
        statuses: Optional[Iterable[EnrollmentStatus]] = None,
        student_id: Optional[int] = None,
    ) -> List[EnrollmentOut]: ...

    async def get_enrollment(self, enrollment_id: int) -> EnrollmentOut: ...

    async def create_enrollment(self, data: EnrollmentCreate) -> EnrollmentOut: ...

    async def update_enrollment(self, enrollment_id: int, data: EnrollmentUpdate) -> EnrollmentOut: ...

    async def list_payments(self, enrollment_id: int) -> List[PaymentOut]: ...

    async def record_payment(self, enrollment_id: int, data: PaymentCreate) -> PaymentOut: ...

    async def get_student_balance(self, student_id: int, year_id: int) -> StudentBalance: ...
