# backoffice/gateways/sql.py - Authoritative gateway over a SQLAlchemy session
import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Type

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.core.exceptions import (
    ConflictError,
    DuplicateEnrollmentError,
    DuplicateFeeScheduleError,
    CapacityExceededError,
    FeeScheduleMissingError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from backoffice.models import (
    AcademicYear, Level, YearStatus, ClassSection, FeeSchedule,
    Enrollment, EnrollmentStatus, ACTIVE_STATUSES, PaymentRecord,
)
from backoffice.models.enrollment import STATUS_TRANSITIONS
from backoffice.schemas.academic import AcademicYearCreate, AcademicYearOut, LevelCreate, LevelOut
from backoffice.schemas.class_schema import ClassSectionCreate, ClassSectionOut
from backoffice.schemas.fee_schema import FeeScheduleCreate, FeeScheduleOut
from backoffice.schemas.enrollment import EnrollmentCreate, EnrollmentOut, EnrollmentUpdate
from backoffice.schemas.payment import PaymentCreate, PaymentOut, StudentBalance
from backoffice.services import finance

logger = logging.getLogger(__name__)

_ACTIVE_VALUES = sorted(status.value for status in ACTIVE_STATUSES)
_CLOSING_STATUSES = (EnrollmentStatus.TRANSFERRED, EnrollmentStatus.WITHDRAWN)


class SqlGateway:
    """Gateway backed by the database; re-validates capacity at commit time"""

    def __init__(self, db: Session):
        self.db = db

    # ==================== HELPERS ====================

    @contextmanager
    def _writing(self, conflict_message: str, conflict_cls: Type[ConflictError] = ConflictError):
        """Commit on success; roll back and re-raise on any failure"""
        try:
            yield
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity error: {e.orig}")
            raise conflict_cls(conflict_message) from e
        except Exception:
            self.db.rollback()
            raise

    def _get(self, model, obj_id: int, label: str, lock: bool = False):
        query = select(model).where(model.id == obj_id)
        if lock:
            query = query.with_for_update()
        obj = self.db.execute(query).scalar_one_or_none()
        if obj is None:
            raise NotFoundError(f"{label} {obj_id} not found", id=obj_id)
        return obj

    def _fee_schedule(self, level_id: int, year_id: int) -> Optional[FeeSchedule]:
        return self.db.execute(
            select(FeeSchedule).where(
                FeeSchedule.level_id == level_id,
                FeeSchedule.academic_year_id == year_id,
            )
        ).scalar_one_or_none()

    def _active_count(self, class_section_id: int, excluding_id: Optional[int] = None) -> int:
        query = select(func.count(Enrollment.id)).where(
            Enrollment.class_section_id == class_section_id,
            Enrollment.status.in_(_ACTIVE_VALUES),
        )
        if excluding_id is not None:
            query = query.where(Enrollment.id != excluding_id)
        return self.db.execute(query).scalar_one()

    def _claim_seat(self, section: ClassSection, excluding_id: Optional[int] = None):
        taken = self._active_count(section.id, excluding_id)
        if taken >= section.capacity:
            raise CapacityExceededError(
                f"Class {section.name} is full ({taken}/{section.capacity})",
                class_section_id=section.id,
            )

    def _ensure_single_active(self, student_id: int, year_id: int, excluding_id: Optional[int] = None):
        query = select(Enrollment.id).where(
            Enrollment.student_id == student_id,
            Enrollment.academic_year_id == year_id,
            Enrollment.status.in_(_ACTIVE_VALUES),
        )
        if excluding_id is not None:
            query = query.where(Enrollment.id != excluding_id)
        if self.db.execute(query).first() is not None:
            raise DuplicateEnrollmentError(
                f"Student {student_id} is already enrolled in academic year {year_id}",
                student_id=student_id,
                academic_year_id=year_id,
            )

    def _paid_total(self, enrollment_id: int) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(PaymentRecord.amount), 0)).where(
                PaymentRecord.enrollment_id == enrollment_id
            )
        ).scalar_one()
        return finance.to_money(total)

    def _finish_current_year(self, except_id: Optional[int] = None):
        query = select(AcademicYear).where(AcademicYear.status == YearStatus.CURRENT.value)
        if except_id is not None:
            query = query.where(AcademicYear.id != except_id)
        for previous in self.db.execute(query).scalars():
            previous.status = YearStatus.FINISHED.value
            logger.info(f"Academic year {previous.label} marked finished")

    async def _move_year(self, year_id: int, target: YearStatus) -> AcademicYearOut:
        with self._writing("Academic year update conflicts with existing data"):
            year = self._get(AcademicYear, year_id, "Academic year", lock=True)
            status = YearStatus(year.status)
            if status != target:
                if not status.can_become(target):
                    raise InvalidTransitionError(
                        f"Academic year {year.label} cannot go from {status.value} to {target.value}",
                        academic_year_id=year.id,
                    )
                if target == YearStatus.CURRENT:
                    self._finish_current_year(except_id=year.id)
                year.status = target.value
        logger.info(f"Academic year {year.label} is now {year.status}")
        return AcademicYearOut.model_validate(year)

    # ==================== ACADEMIC YEARS ====================

    async def list_academic_years(self) -> List[AcademicYearOut]:
        years = self.db.execute(
            select(AcademicYear).order_by(AcademicYear.start_date, AcademicYear.id)
        ).scalars().all()
        return [AcademicYearOut.model_validate(year) for year in years]

    async def create_academic_year(self, data: AcademicYearCreate) -> AcademicYearOut:
        with self._writing(f"Academic year '{data.label}' already exists"):
            if data.status == YearStatus.CURRENT:
                self._finish_current_year()
            year = AcademicYear(
                label=data.label,
                start_date=data.start_date,
                end_date=data.end_date,
                status=data.status.value,
            )
            self.db.add(year)
        self.db.refresh(year)
        logger.info(f"Academic year created: {year.label} ({year.status})")
        return AcademicYearOut.model_validate(year)

    async def activate_academic_year(self, year_id: int) -> AcademicYearOut:
        with self._writing("Could not activate academic year"):
            year = self._get(AcademicYear, year_id, "Academic year")
            others = self.db.execute(
                select(AcademicYear).where(AcademicYear.id != year.id, AcademicYear.is_active.is_(True))
            ).scalars()
            for other in others:
                other.is_active = False
            year.is_active = True
        logger.info(f"Academic year {year.label} activated")
        return AcademicYearOut.model_validate(year)

    async def set_current_year(self, year_id: int) -> AcademicYearOut:
        return await self._move_year(year_id, YearStatus.CURRENT)

    async def close_year(self, year_id: int) -> AcademicYearOut:
        return await self._move_year(year_id, YearStatus.FINISHED)

    async def archive_year(self, year_id: int) -> AcademicYearOut:
        return await self._move_year(year_id, YearStatus.ARCHIVED)

    # ==================== LEVELS & CLASSES ====================

    async def list_levels(self) -> List[LevelOut]:
        levels = self.db.execute(select(Level).order_by(Level.order, Level.id)).scalars().all()
        return [LevelOut.model_validate(level) for level in levels]

    async def create_level(self, data: LevelCreate) -> LevelOut:
        with self._writing(f"Level '{data.name}' already exists"):
            level = Level(name=data.name, cycle=data.cycle, order=data.order)
            self.db.add(level)
        self.db.refresh(level)
        logger.info(f"Level created: {level.name} (order {level.order})")
        return LevelOut.model_validate(level)

    async def list_class_sections(self, year_id: Optional[int] = None) -> List[ClassSectionOut]:
        query = select(ClassSection)
        if year_id is not None:
            query = query.where(ClassSection.academic_year_id == year_id)
        sections = self.db.execute(query.order_by(ClassSection.name, ClassSection.id)).scalars().all()
        return [ClassSectionOut.model_validate(section) for section in sections]

    async def get_class_section(self, class_section_id: int) -> ClassSectionOut:
        return ClassSectionOut.model_validate(self._get(ClassSection, class_section_id, "Class section"))

    async def create_class_section(self, data: ClassSectionCreate) -> ClassSectionOut:
        with self._writing(f"Class '{data.name}' already exists in this academic year"):
            level = self._get(Level, data.level_id, "Level")
            self._get(AcademicYear, data.academic_year_id, "Academic year")
            if self._fee_schedule(data.level_id, data.academic_year_id) is None:
                raise FeeScheduleMissingError(
                    f"No fee schedule for level {level.name} in academic year {data.academic_year_id}",
                    level_id=data.level_id,
                    academic_year_id=data.academic_year_id,
                )
            section = ClassSection(**data.model_dump())
            self.db.add(section)
        self.db.refresh(section)
        logger.info(f"Class section created: {section.name} (capacity {section.capacity})")
        return ClassSectionOut.model_validate(section)

    # ==================== FEE SCHEDULES ====================

    async def get_fee_schedule(self, level_id: int, year_id: int) -> Optional[FeeScheduleOut]:
        schedule = self._fee_schedule(level_id, year_id)
        return FeeScheduleOut.model_validate(schedule) if schedule else None

    async def list_fee_schedules(
        self, year_id: Optional[int] = None, level_id: Optional[int] = None
    ) -> List[FeeScheduleOut]:
        query = select(FeeSchedule)
        if year_id is not None:
            query = query.where(FeeSchedule.academic_year_id == year_id)
        if level_id is not None:
            query = query.where(FeeSchedule.level_id == level_id)
        schedules = self.db.execute(
            query.order_by(FeeSchedule.academic_year_id, FeeSchedule.level_id)
        ).scalars().all()
        return [FeeScheduleOut.model_validate(schedule) for schedule in schedules]

    async def create_fee_schedule(self, data: FeeScheduleCreate) -> FeeScheduleOut:
        duplicate_message = f"Level {data.level_id} already has a fee schedule for academic year {data.academic_year_id}"
        with self._writing(duplicate_message, DuplicateFeeScheduleError):
            self._get(Level, data.level_id, "Level")
            self._get(AcademicYear, data.academic_year_id, "Academic year")
            if self._fee_schedule(data.level_id, data.academic_year_id) is not None:
                raise DuplicateFeeScheduleError(
                    duplicate_message, level_id=data.level_id, academic_year_id=data.academic_year_id
                )
            schedule = FeeSchedule(**data.model_dump())
            self.db.add(schedule)
        self.db.refresh(schedule)
        logger.info(f"Fee schedule created for level {schedule.level_id}, year {schedule.academic_year_id}")
        return FeeScheduleOut.model_validate(schedule)

    # ==================== ENROLLMENTS ====================

    async def list_enrollments(
        self,
        year_id: Optional[int] = None,
        class_section_id: Optional[int] = None,
        statuses: Optional[Iterable[EnrollmentStatus]] = None,
        student_id: Optional[int] = None,
    ) -> List[EnrollmentOut]:
        query = select(Enrollment)
        if year_id is not None:
            query = query.where(Enrollment.academic_year_id == year_id)
        if class_section_id is not None:
            query = query.where(Enrollment.class_section_id == class_section_id)
        if statuses is not None:
            query = query.where(Enrollment.status.in_([EnrollmentStatus(s).value for s in statuses]))
        if student_id is not None:
            query = query.where(Enrollment.student_id == student_id)
        enrollments = self.db.execute(query.order_by(Enrollment.id)).scalars().all()
        return [EnrollmentOut.model_validate(enrollment) for enrollment in enrollments]

    async def get_enrollment(self, enrollment_id: int) -> EnrollmentOut:
        return EnrollmentOut.model_validate(self._get(Enrollment, enrollment_id, "Enrollment"))

    async def create_enrollment(self, data: EnrollmentCreate) -> EnrollmentOut:
        with self._writing("Enrollment conflicts with an existing one", DuplicateEnrollmentError):
            # Row lock on the class serialises concurrent seat claims
            section = self._get(ClassSection, data.class_section_id, "Class section", lock=True)
            if section.academic_year_id != data.academic_year_id:
                raise ValidationError(
                    f"Class {section.name} does not belong to academic year {data.academic_year_id}",
                    class_section_id=section.id,
                )
            if data.prior_enrollment_id is not None:
                self._get(Enrollment, data.prior_enrollment_id, "Enrollment")
            self._ensure_single_active(data.student_id, data.academic_year_id)
            self._claim_seat(section)

            enrollment = Enrollment(
                **data.model_dump(exclude={"status"}),
                status=data.status.value,
                amount_due=finance.amount_due(data.registration_fee, data.tuition_fee, data.discount),
                amount_paid=finance.ZERO,
            )
            self.db.add(enrollment)
        self.db.refresh(enrollment)
        logger.info(
            f"Enrollment {enrollment.id} created: student {enrollment.student_id} "
            f"in class {section.name} ({enrollment.status}), due {enrollment.amount_due}"
        )
        return EnrollmentOut.model_validate(enrollment)

    async def update_enrollment(self, enrollment_id: int, data: EnrollmentUpdate) -> EnrollmentOut:
        changes = data.provided()
        new_status = changes.pop("status", None)
        withdrawn_date = changes.pop("withdrawn_date", None)

        with self._writing("Enrollment update conflicts with existing data", DuplicateEnrollmentError):
            enrollment = self._get(Enrollment, enrollment_id, "Enrollment", lock=True)
            status = EnrollmentStatus(enrollment.status)

            field_edits = {key: value for key, value in changes.items() if key != "status_reason"}
            if field_edits and status not in ACTIVE_STATUSES:
                raise ValidationError(
                    f"Enrollment {enrollment.id} is {status.value} and can no longer be edited",
                    enrollment_id=enrollment.id,
                )

            if new_status is not None and new_status != status:
                if new_status not in STATUS_TRANSITIONS[status]:
                    raise InvalidTransitionError(
                        f"Enrollment {enrollment.id} cannot go from {status.value} to {new_status.value}",
                        enrollment_id=enrollment.id,
                    )
                enrollment.status = new_status.value
                if new_status in _CLOSING_STATUSES:
                    enrollment.withdrawn_date = withdrawn_date or date.today()
            elif withdrawn_date is not None:
                enrollment.withdrawn_date = withdrawn_date

            new_class_id = field_edits.get("class_section_id")
            if new_class_id is not None and new_class_id != enrollment.class_section_id:
                section = self._get(ClassSection, new_class_id, "Class section", lock=True)
                if section.academic_year_id != enrollment.academic_year_id:
                    raise ValidationError(
                        f"Class {section.name} does not belong to academic year {enrollment.academic_year_id}",
                        class_section_id=section.id,
                    )
                if EnrollmentStatus(enrollment.status) in ACTIVE_STATUSES:
                    self._claim_seat(section, excluding_id=enrollment.id)

            for key, value in changes.items():
                setattr(enrollment, key, value)
            enrollment.amount_due = finance.amount_due(
                enrollment.registration_fee, enrollment.tuition_fee, enrollment.discount
            )
            enrollment.amount_paid = self._paid_total(enrollment.id)
        logger.info(f"Enrollment {enrollment.id} updated ({enrollment.status}), due {enrollment.amount_due}")
        return EnrollmentOut.model_validate(enrollment)

    # ==================== PAYMENTS ====================

    async def list_payments(self, enrollment_id: int) -> List[PaymentOut]:
        self._get(Enrollment, enrollment_id, "Enrollment")
        payments = self.db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.enrollment_id == enrollment_id)
            .order_by(PaymentRecord.paid_on, PaymentRecord.id)
        ).scalars().all()
        return [PaymentOut.model_validate(payment) for payment in payments]

    async def record_payment(self, enrollment_id: int, data: PaymentCreate) -> PaymentOut:
        with self._writing("Could not record payment"):
            enrollment = self._get(Enrollment, enrollment_id, "Enrollment", lock=True)
            payment = PaymentRecord(
                enrollment_id=enrollment.id,
                amount=data.amount,
                paid_on=data.paid_on,
                method=data.method.value,
                reference=data.reference,
            )
            self.db.add(payment)
            self.db.flush()
            enrollment.amount_paid = self._paid_total(enrollment.id)
        self.db.refresh(payment)
        logger.info(f"Payment of {payment.amount} recorded on enrollment {enrollment.id}")
        return PaymentOut.model_validate(payment)

    async def get_student_balance(self, student_id: int, year_id: int) -> StudentBalance:
        self._get(AcademicYear, year_id, "Academic year")
        enrollments = await self.list_enrollments(year_id=year_id, student_id=student_id)
        return finance.student_balance(student_id, year_id, enrollments)
