# backoffice/services/enrollment_service.py - Create, edit, renew and close enrollments
import logging
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from backoffice.core.exceptions import (
    ActiveYearMismatchError, CapacityExceededError, ValidationError,
)
from backoffice.gateways.base import SchoolGateway
from backoffice.models.enrollment import EnrollmentStatus, ACTIVE_STATUSES
from backoffice.schemas.class_schema import ClassSectionOut
from backoffice.schemas.enrollment import (
    EditOutcome, EditResult, EnrollmentCreate, EnrollmentOut, EnrollmentPatch, EnrollmentUpdate, FieldChange,
)
from backoffice.schemas.fee_schema import Fees
from backoffice.services import finance
from backoffice.services.academic_years import AcademicYearRegistry
from backoffice.services.fee_schedules import FeeScheduleResolver
from backoffice.services.occupancy import ClassOccupancyIndex

logger = logging.getLogger(__name__)


class EnrollmentService:
    """
    Enrollment lifecycle: Draft -> {enrolled, renewed} -> {transferred, withdrawn}.

    Draft lives in the caller's form only. Preconditions are checked against
    the occupancy snapshot; the gateway re-checks capacity when it commits
    and its CapacityExceededError is surfaced after reloading occupancy.
    Mutations are never retried.
    """

    def __init__(
        self,
        gateway: SchoolGateway,
        registry: AcademicYearRegistry,
        resolver: FeeScheduleResolver,
        occupancy: ClassOccupancyIndex,
    ):
        self.gateway = gateway
        self.registry = registry
        self.resolver = resolver
        self.occupancy = occupancy

    # ==================== HELPERS ====================

    def _require_active_year(self, year_id: int):
        active = self.registry.require_active()
        if year_id != active.id:
            raise ActiveYearMismatchError(
                f"Academic year {year_id} is not the active year ({active.label})",
                academic_year_id=year_id,
                active_year_id=active.id,
            )
        return active

    async def _class_in_year(self, class_section_id: int, year_id: int) -> ClassSectionOut:
        section = await self.gateway.get_class_section(class_section_id)
        if section.academic_year_id != year_id:
            raise ValidationError(
                f"Class {section.name} does not belong to academic year {year_id}",
                class_section_id=class_section_id,
            )
        return section

    async def _ensure_occupancy(self, year_id: int):
        if not self.occupancy.is_available(year_id):
            await self.occupancy.load(year_id)

    async def _reload_occupancy(self, year_id: int):
        if self.occupancy.is_loaded(year_id):
            await self.occupancy.load(year_id)

    async def _open(
        self,
        status: EnrollmentStatus,
        student_id: int,
        class_section_id: int,
        year_id: int,
        fees: Optional[Fees],
        discount: Any,
        payment_plan: str,
        enrollment_date: Optional[date],
        observations: Optional[str],
        prior_enrollment_id: Optional[int] = None,
    ) -> EnrollmentOut:
        self._require_active_year(year_id)
        finance.ensure_non_negative(discount=discount)
        if fees is not None:
            finance.ensure_non_negative(registration_fee=fees.registration_fee, tuition_fee=fees.tuition_fee)

        section = await self._class_in_year(class_section_id, year_id)
        await self._ensure_occupancy(year_id)
        self.occupancy.require_selectable(year_id, section.id)

        if fees is None:
            fees = Fees.from_schedule(await self.resolver.require(section.level_id, year_id))

        payload = EnrollmentCreate(
            student_id=student_id,
            class_section_id=section.id,
            academic_year_id=year_id,
            enrollment_date=enrollment_date or date.today(),
            registration_fee=fees.registration_fee,
            tuition_fee=fees.tuition_fee,
            discount=finance.to_money(discount),
            payment_plan=payment_plan or "",
            status=status,
            prior_enrollment_id=prior_enrollment_id,
            observations=observations,
        )
        try:
            enrollment = await self.gateway.create_enrollment(payload)
        except CapacityExceededError:
            logger.warning(f"Seat race lost for class {section.name}; reloading occupancy")
            await self.occupancy.load(year_id)
            raise

        await self._reload_occupancy(year_id)
        logger.info(
            f"Student {student_id} {status.value} in {section.name}: "
            f"due {enrollment.amount_due}, balance {enrollment.balance}"
        )
        return enrollment

    @staticmethod
    def _diff(current: EnrollmentOut, patch: EnrollmentPatch) -> List[FieldChange]:
        changes = []
        for field_name, new_value in patch.provided().items():
            old_value = getattr(current, field_name)
            if isinstance(new_value, Decimal):
                differs = finance.to_money(old_value) != finance.to_money(new_value)
            else:
                differs = old_value != new_value
            if differs:
                changes.append(FieldChange(field=field_name, old=old_value, new=new_value))
        return changes

    # ==================== OPERATIONS ====================

    async def create(
        self,
        student_id: int,
        class_section_id: int,
        year_id: int,
        fees: Optional[Fees] = None,
        discount: Any = 0,
        payment_plan: str = "",
        enrollment_date: Optional[date] = None,
        observations: Optional[str] = None,
    ) -> EnrollmentOut:
        """
        Enroll a student into a class of the active year.

        Fees default to the class level's fee schedule; without one the
        call fails with FeeScheduleMissingError instead of charging zero.
        """
        return await self._open(
            EnrollmentStatus.ENROLLED, student_id, class_section_id, year_id,
            fees, discount, payment_plan, enrollment_date, observations,
        )

    async def renew(
        self,
        student_id: int,
        prior_enrollment_id: int,
        class_section_id: int,
        year_id: int,
        fees: Optional[Fees] = None,
        discount: Any = 0,
        payment_plan: str = "",
        enrollment_date: Optional[date] = None,
        observations: Optional[str] = None,
    ) -> EnrollmentOut:
        """Re-enroll a returning student; payment history starts from zero"""
        prior = await self.gateway.get_enrollment(prior_enrollment_id)
        if prior.student_id != student_id:
            raise ValidationError(
                f"Enrollment {prior.id} belongs to student {prior.student_id}, not {student_id}",
                enrollment_id=prior.id,
            )
        if prior.academic_year_id == year_id:
            raise ValidationError(
                f"Renewal must target a different academic year than enrollment {prior.id}",
                enrollment_id=prior.id,
            )
        return await self._open(
            EnrollmentStatus.RENEWED, student_id, class_section_id, year_id,
            fees, discount, payment_plan, enrollment_date, observations,
            prior_enrollment_id=prior.id,
        )

    async def suggest_renewal_class(self, prior_enrollment_id: int, year_id: int) -> Optional[int]:
        """
        Pre-fill for the renewal form: an eligible class of the next level,
        else the prior class id. The choice is still checked on submit.
        """
        prior = await self.gateway.get_enrollment(prior_enrollment_id)
        prior_class = await self.gateway.get_class_section(prior.class_section_id)
        levels = {level.id: level for level in await self.gateway.list_levels()}
        prior_level = levels.get(prior_class.level_id)

        if prior_level is not None:
            await self._ensure_occupancy(year_id)
            for section in self.occupancy.eligible_classes(year_id):
                level = levels.get(section.level_id)
                if level is None or level.order != prior_level.order + 1:
                    continue
                if await self.resolver.fetch(section.level_id, year_id) is not None:
                    return section.id
        return prior.class_section_id

    async def edit(self, enrollment_id: int, patch: EnrollmentPatch) -> EditResult:
        """
        Apply an in-place edit.

        An empty diff writes nothing and returns outcome=unchanged. Moving to
        another class requires a free seat there; keeping the current class
        never does, and the new class level needs a fee schedule. Lowering amount_due below what was already paid is
        allowed and flagged with negative_balance_warning.
        """
        self.registry.require_active()
        current = await self.gateway.get_enrollment(enrollment_id)
        if current.status not in ACTIVE_STATUSES:
            raise ValidationError(
                f"Enrollment {current.id} is {current.status.value} and can no longer be edited",
                enrollment_id=current.id,
            )

        changes = self._diff(current, patch)
        if not changes:
            logger.info(f"No changes detected for enrollment {enrollment_id}")
            return EditResult(
                enrollment=current,
                outcome=EditOutcome.UNCHANGED,
                summary=finance.summarize_enrollment(current),
            )

        changed = {change.field: change.new for change in changes}
        new_class_id = changed.get("class_section_id")
        if new_class_id is not None:
            section = await self._class_in_year(new_class_id, current.academic_year_id)
            await self.resolver.require(section.level_id, current.academic_year_id)
            await self._ensure_occupancy(current.academic_year_id)
            self.occupancy.require_selectable(current.academic_year_id, new_class_id, held_by=current.id)

        payments = await self.gateway.list_payments(enrollment_id)
        paid = finance.amount_paid(payments)
        new_due = finance.amount_due(
            changed.get("registration_fee", current.registration_fee),
            changed.get("tuition_fee", current.tuition_fee),
            changed.get("discount", current.discount),
        )
        warning = paid > 0 and new_due < paid

        try:
            updated = await self.gateway.update_enrollment(enrollment_id, EnrollmentUpdate(**changed))
        except CapacityExceededError:
            logger.warning(f"Seat race lost moving enrollment {enrollment_id}; reloading occupancy")
            await self.occupancy.load(current.academic_year_id)
            raise

        if new_class_id is not None:
            await self._reload_occupancy(current.academic_year_id)
        if warning:
            logger.warning(f"Enrollment {enrollment_id} now owes {new_due} but {paid} was already paid")
        logger.info(f"Enrollment {enrollment_id} saved: {', '.join(change.field for change in changes)}")
        return EditResult(
            enrollment=updated,
            outcome=EditOutcome.SAVED,
            changes=changes,
            negative_balance_warning=warning,
            summary=finance.summarize_enrollment(updated, payments),
        )

    async def _close(self, enrollment_id: int, status: EnrollmentStatus, reason: Optional[str]) -> EnrollmentOut:
        current = await self.gateway.get_enrollment(enrollment_id)
        if current.status == status:
            return current
        updated = await self.gateway.update_enrollment(
            enrollment_id,
            EnrollmentUpdate(status=status, withdrawn_date=date.today(), status_reason=reason),
        )
        await self._reload_occupancy(updated.academic_year_id)
        logger.info(f"Enrollment {enrollment_id} {status.value}" + (f": {reason}" if reason else ""))
        return updated

    async def cancel(self, enrollment_id: int, reason: Optional[str] = None) -> EnrollmentOut:
        """Withdraw the enrollment; never blocked by capacity or fee rules"""
        return await self._close(enrollment_id, EnrollmentStatus.WITHDRAWN, reason)

    async def transfer(self, enrollment_id: int, reason: Optional[str] = None) -> EnrollmentOut:
        return await self._close(enrollment_id, EnrollmentStatus.TRANSFERRED, reason)
