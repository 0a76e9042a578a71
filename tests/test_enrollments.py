import asyncio
from decimal import Decimal

import pytest

from backoffice.core.exceptions import (
    ActiveYearMismatchError,
    CapacityExceededError,
    DuplicateEnrollmentError,
    FeeScheduleMissingError,
    NoActiveYearError,
    ValidationError,
)
from backoffice.models.enrollment import EnrollmentStatus, ACTIVE_STATUSES
from backoffice.schemas.enrollment import EditOutcome, EnrollmentCreate, EnrollmentPatch
from backoffice.schemas.fee_schema import Fees
from backoffice.schemas.payment import PaymentCreate
from backoffice.services.fee_schedules import FeeScheduleResolver
from backoffice.services.session import BackOfficeSession
from backoffice.schemas.class_schema import ClassSectionCreate


@pytest.fixture
def session(gateway, school):
    session = BackOfficeSession(gateway)
    asyncio.run(session.start())
    yield session
    session.close()


def _create(session, student_id, class_id, year_id, **kwargs):
    return asyncio.run(session.enrollments.create(student_id, class_id, year_id, **kwargs))


def _active_count(gateway, class_id):
    return len(asyncio.run(gateway.list_enrollments(class_section_id=class_id, statuses=ACTIVE_STATUSES)))


def test_single_seat_scenario(session, gateway, school):
    first = _create(session, 1, school.cp_a.id, school.y1.id)
    assert first.status == EnrollmentStatus.ENROLLED
    assert first.amount_due == Decimal("300000.00")
    assert first.amount_paid == Decimal("0.00")

    with pytest.raises(CapacityExceededError):
        _create(session, 2, school.cp_a.id, school.y1.id)

    asyncio.run(gateway.record_payment(first.id, PaymentCreate(amount=Decimal("50000"))))
    result = asyncio.run(session.enrollments.edit(first.id, EnrollmentPatch(discount=Decimal("300000"))))

    assert result.outcome == EditOutcome.SAVED
    assert result.enrollment.amount_due == Decimal("0.00")
    assert result.enrollment.amount_paid == Decimal("50000.00")
    assert result.enrollment.balance == Decimal("-50000.00")
    assert result.negative_balance_warning is True
    assert result.summary.overpaid is True
    assert [c.field for c in result.changes] == ["discount"]


def test_financial_identity_holds_across_edits(session, gateway, school):
    enrollment = _create(session, 1, school.cp_b.id, school.y1.id, discount=10000)
    asyncio.run(gateway.record_payment(enrollment.id, PaymentCreate(amount=Decimal("20000"))))
    result = asyncio.run(session.enrollments.edit(enrollment.id, EnrollmentPatch(tuition_fee=Decimal("200000"))))

    for record in (enrollment, result.enrollment):
        assert record.amount_due == record.registration_fee + record.tuition_fee - record.discount
    stored = asyncio.run(gateway.get_enrollment(enrollment.id))
    assert stored.amount_due == Decimal("240000.00")
    assert stored.balance == Decimal("220000.00")
    assert result.summary.balance == stored.balance
    assert result.negative_balance_warning is False


def test_create_requires_the_active_year(session, gateway, school):
    with pytest.raises(ActiveYearMismatchError):
        _create(session, 1, school.cp_next.id, school.y2.id)

    idle = BackOfficeSession(gateway)
    with pytest.raises(NoActiveYearError):
        asyncio.run(idle.enrollments.create(1, school.cp_a.id, school.y1.id))
    assert asyncio.run(gateway.list_enrollments()) == []


def test_create_without_fee_schedule_is_blocked(session, school):
    with pytest.raises(FeeScheduleMissingError):
        _create(session, 1, school.ce2_a.id, school.y1.id)

    explicit = _create(session, 1, school.ce2_a.id, school.y1.id,
                       fees=Fees(registration_fee=Decimal("40000"), tuition_fee=Decimal("320000")))
    assert explicit.amount_due == Decimal("360000.00")


def test_create_rejects_negative_discount(session, gateway, school):
    with pytest.raises(ValidationError):
        _create(session, 1, school.cp_b.id, school.y1.id, discount=-5)
    assert asyncio.run(gateway.list_enrollments()) == []


def test_create_rejects_class_of_another_year(session, school):
    with pytest.raises(ValidationError):
        _create(session, 1, school.cp_next.id, school.y1.id)


def test_student_holds_one_active_enrollment_per_year(session, school):
    _create(session, 1, school.cp_b.id, school.y1.id)
    with pytest.raises(DuplicateEnrollmentError):
        _create(session, 1, school.ce1_a.id, school.y1.id)


def test_gateway_rechecks_capacity_at_commit(session, gateway, school):
    # Another client takes the last seat after this session loaded occupancy
    asyncio.run(gateway.create_enrollment(EnrollmentCreate(
        student_id=9, class_section_id=school.cp_a.id, academic_year_id=school.y1.id, tuition_fee=1,
    )))
    assert school.cp_a.id not in session.occupancy.occupied_class_ids(school.y1.id)

    with pytest.raises(CapacityExceededError):
        _create(session, 1, school.cp_a.id, school.y1.id)

    assert school.cp_a.id in session.occupancy.occupied_class_ids(school.y1.id)
    assert _active_count(gateway, school.cp_a.id) == 1


def test_edit_keeping_a_full_class_never_hits_capacity(session, school):
    enrollment = _create(session, 1, school.cp_a.id, school.y1.id)
    result = asyncio.run(session.enrollments.edit(
        enrollment.id, EnrollmentPatch(class_section_id=school.cp_a.id, payment_plan="monthly"),
    ))
    assert result.outcome == EditOutcome.SAVED
    assert result.enrollment.class_section_id == school.cp_a.id
    assert [c.field for c in result.changes] == ["payment_plan"]
    assert school.cp_a.id in [c.id for c in session.reference.eligible_classes(excluding_enrollment_id=enrollment.id)]


def test_edit_without_changes_is_reported_as_unchanged(session, gateway, school):
    enrollment = _create(session, 1, school.cp_b.id, school.y1.id)
    result = asyncio.run(session.enrollments.edit(enrollment.id, EnrollmentPatch(
        class_section_id=school.cp_b.id, discount=Decimal("0"), tuition_fee=Decimal("250000.00"),
    )))
    assert result.outcome == EditOutcome.UNCHANGED
    assert result.saved is False
    assert result.changes == []
    assert asyncio.run(gateway.get_enrollment(enrollment.id)) == enrollment


def test_edit_cannot_move_into_a_full_class(session, gateway, school):
    holder = _create(session, 1, school.cp_a.id, school.y1.id)
    mover = _create(session, 2, school.cp_b.id, school.y1.id)

    with pytest.raises(CapacityExceededError):
        asyncio.run(session.enrollments.edit(mover.id, EnrollmentPatch(class_section_id=school.cp_a.id)))
    assert asyncio.run(gateway.get_enrollment(mover.id)).class_section_id == school.cp_b.id

    moved = asyncio.run(session.enrollments.edit(holder.id, EnrollmentPatch(class_section_id=school.ce1_a.id)))
    assert moved.enrollment.class_section_id == school.ce1_a.id
    # The freed seat shows up again
    assert school.cp_a.id in [c.id for c in session.reference.eligible_classes()]


def test_cancel_frees_the_seat_and_is_repeatable(session, gateway, school):
    enrollment = _create(session, 1, school.cp_a.id, school.y1.id)
    withdrawn = asyncio.run(session.enrollments.cancel(enrollment.id, "moved abroad"))

    assert withdrawn.status == EnrollmentStatus.WITHDRAWN
    assert withdrawn.status_reason == "moved abroad"
    assert withdrawn.withdrawn_date is not None
    assert asyncio.run(session.enrollments.cancel(enrollment.id)).status == EnrollmentStatus.WITHDRAWN

    replacement = _create(session, 2, school.cp_a.id, school.y1.id)
    assert replacement.class_section_id == school.cp_a.id


def test_seat_count_never_exceeds_capacity(session, gateway, school):
    outcomes = []
    for student_id in range(1, 5):
        try:
            outcomes.append(_create(session, student_id, school.cp_b.id, school.y1.id))
        except CapacityExceededError:
            outcomes.append(None)
    assert [o is not None for o in outcomes] == [True, True, False, False]

    asyncio.run(session.enrollments.cancel(outcomes[0].id))
    _create(session, 5, school.cp_b.id, school.y1.id)
    assert _active_count(gateway, school.cp_b.id) <= school.cp_b.capacity


def test_closed_enrollments_cannot_be_edited(session, school):
    enrollment = _create(session, 1, school.cp_b.id, school.y1.id)
    transferred = asyncio.run(session.enrollments.transfer(enrollment.id, "changed school"))
    assert transferred.status == EnrollmentStatus.TRANSFERRED

    with pytest.raises(ValidationError):
        asyncio.run(session.enrollments.edit(enrollment.id, EnrollmentPatch(payment_plan="monthly")))

    # withdrawal stays possible after a transfer
    assert asyncio.run(session.enrollments.cancel(enrollment.id)).status == EnrollmentStatus.WITHDRAWN


def test_renewal_suggests_next_level_and_starts_unpaid(session, gateway, school):
    prior = _create(session, 1, school.cp_a.id, school.y1.id)
    asyncio.run(gateway.record_payment(prior.id, PaymentCreate(amount=Decimal("100000"))))

    # Nothing for CE1 in the next year yet: fall back to the prior class
    assert asyncio.run(session.enrollments.suggest_renewal_class(prior.id, school.y2.id)) == school.cp_a.id

    asyncio.run(FeeScheduleResolver(gateway).copy_forward(school.y1.id, school.y2.id))
    ce1_next = asyncio.run(gateway.create_class_section(ClassSectionCreate(
        name="CE1-A 2025", level_id=school.ce1.id, academic_year_id=school.y2.id, capacity=25,
    )))
    asyncio.run(session.switch_year(school.y2.id))

    suggested = asyncio.run(session.enrollments.suggest_renewal_class(prior.id, school.y2.id))
    assert suggested == ce1_next.id

    renewed = asyncio.run(session.enrollments.renew(1, prior.id, suggested, school.y2.id))
    assert renewed.status == EnrollmentStatus.RENEWED
    assert renewed.prior_enrollment_id == prior.id
    assert renewed.amount_paid == Decimal("0.00")
    assert renewed.amount_due == Decimal("350000.00")


def test_renewal_checks_prior_enrollment(session, school):
    prior = _create(session, 1, school.cp_a.id, school.y1.id)
    with pytest.raises(ValidationError):
        asyncio.run(session.enrollments.renew(2, prior.id, school.cp_b.id, school.y1.id))
    with pytest.raises(ValidationError):
        asyncio.run(session.enrollments.renew(1, prior.id, school.cp_b.id, school.y1.id))


def test_payments_update_amount_paid(session, gateway, school):
    enrollment = _create(session, 1, school.cp_b.id, school.y1.id)
    asyncio.run(gateway.record_payment(enrollment.id, PaymentCreate(amount=Decimal("100000"), method="mobile")))
    asyncio.run(gateway.record_payment(enrollment.id, PaymentCreate(amount=Decimal("25000.50"))))

    stored = asyncio.run(gateway.get_enrollment(enrollment.id))
    payments = asyncio.run(gateway.list_payments(enrollment.id))
    assert stored.amount_paid == Decimal("125000.50")
    assert stored.balance == Decimal("174999.50")
    assert [p.method.value for p in payments] == ["mobile", "cash"]


def test_edit_cannot_move_into_a_class_without_fee_schedule(session, gateway, school):
    enrollment = _create(session, 1, school.cp_b.id, school.y1.id)
    assert school.ce2_a.id not in [c.id for c in session.reference.eligible_classes()]

    with pytest.raises(FeeScheduleMissingError):
        asyncio.run(session.enrollments.edit(enrollment.id, EnrollmentPatch(class_section_id=school.ce2_a.id)))
    assert asyncio.run(gateway.get_enrollment(enrollment.id)).class_section_id == school.cp_b.id


def test_edit_requires_an_active_year(gateway, school):
    enrollment = asyncio.run(gateway.create_enrollment(EnrollmentCreate(
        student_id=1, class_section_id=school.cp_b.id, academic_year_id=school.y1.id, tuition_fee=1,
    )))
    idle = BackOfficeSession(gateway)

    with pytest.raises(NoActiveYearError):
        asyncio.run(idle.enrollments.edit(enrollment.id, EnrollmentPatch(payment_plan="monthly")))
    assert asyncio.run(gateway.get_enrollment(enrollment.id)).payment_plan == ""
