import asyncio
from decimal import Decimal

import pytest

from backoffice.core.exceptions import (
    DuplicateFeeScheduleError, FeeScheduleMissingError, NotFoundError, ValidationError,
)
from backoffice.schemas.class_schema import ClassSectionCreate
from backoffice.schemas.fee_schema import FeeScheduleCreate, Fees
from backoffice.services.fee_schedules import FeeScheduleResolver


def _schedule_set(gateway, year_id):
    return {
        (s.level_id, s.tuition_amount, s.registration_fee, s.file_fee)
        for s in asyncio.run(gateway.list_fee_schedules(year_id=year_id))
    }


def test_copy_forward_skips_levels_already_covered(gateway, school):
    resolver = FeeScheduleResolver(gateway)
    result = asyncio.run(resolver.copy_forward(school.y1.id, school.y2.id))

    assert (result.copied, result.skipped) == (1, 1)
    next_year = {s.level_id: s for s in asyncio.run(gateway.list_fee_schedules(year_id=school.y2.id))}
    # CP kept its own amounts, CE1 was copied as is
    assert next_year[school.cp.id].tuition_amount == Decimal("275000.00")
    assert next_year[school.ce1.id].tuition_amount == Decimal("300000.00")
    assert next_year[school.ce1.id].file_fee == Decimal("10000.00")


def test_copy_forward_is_idempotent(gateway, school):
    resolver = FeeScheduleResolver(gateway)
    asyncio.run(resolver.copy_forward(school.y1.id, school.y2.id))
    before = _schedule_set(gateway, school.y2.id)

    again = asyncio.run(resolver.copy_forward(school.y1.id, school.y2.id))

    assert again.copied == 0
    assert again.skipped == 2
    assert _schedule_set(gateway, school.y2.id) == before


def test_copy_forward_into_same_year_is_rejected(gateway, school):
    with pytest.raises(ValidationError):
        asyncio.run(FeeScheduleResolver(gateway).copy_forward(school.y1.id, school.y1.id))


def test_resolve_uses_loaded_snapshot(gateway, school):
    resolver = FeeScheduleResolver(gateway)
    assert resolver.resolve(school.cp.id, school.y1.id) is None

    assert asyncio.run(resolver.load(school.y1.id)) is True
    assert resolver.resolve(school.cp.id, school.y1.id).tuition_amount == Decimal("250000.00")
    assert resolver.resolve(school.ce2.id, school.y1.id) is None
    assert [s.id for s in resolver.schedules()] == [school.cp_fees.id, school.ce1_fees.id]
    assert resolver.resolve_for_class(school.cp_b.id).id == school.cp_fees.id
    assert resolver.resolve_for_class(school.ce2_a.id) is None

    with pytest.raises(NotFoundError):
        resolver.resolve_for_class(9999)


def test_fetch_and_require_go_to_the_gateway(gateway, school):
    resolver = FeeScheduleResolver(gateway)
    fetched = asyncio.run(resolver.fetch(school.cp.id, school.y2.id))
    assert fetched.id == school.cp_fees_next.id

    with pytest.raises(FeeScheduleMissingError):
        asyncio.run(resolver.require(school.ce2.id, school.y1.id))


def test_fees_default_from_schedule_excludes_file_fee(school):
    fees = Fees.from_schedule(school.cp_fees)
    assert fees.registration_fee == Decimal("50000.00")
    assert fees.tuition_fee == Decimal("250000.00")


def test_duplicate_schedule_is_rejected(gateway, school):
    with pytest.raises(DuplicateFeeScheduleError):
        asyncio.run(gateway.create_fee_schedule(FeeScheduleCreate(
            level_id=school.cp.id, academic_year_id=school.y1.id, tuition_amount=Decimal("1"),
        )))


def test_class_creation_requires_fee_schedule(gateway, school):
    with pytest.raises(FeeScheduleMissingError):
        asyncio.run(gateway.create_class_section(ClassSectionCreate(
            name="CE1-A 2025", level_id=school.ce1.id, academic_year_id=school.y2.id, capacity=20,
        )))

    asyncio.run(FeeScheduleResolver(gateway).copy_forward(school.y1.id, school.y2.id))
    created = asyncio.run(gateway.create_class_section(ClassSectionCreate(
        name="CE1-A 2025", level_id=school.ce1.id, academic_year_id=school.y2.id, capacity=20,
    )))
    assert created.academic_year_id == school.y2.id


def test_copy_forward_rejects_unknown_years(gateway, school):
    resolver = FeeScheduleResolver(gateway)
    with pytest.raises(NotFoundError):
        asyncio.run(resolver.copy_forward(999, school.y2.id))
    with pytest.raises(NotFoundError):
        asyncio.run(resolver.copy_forward(school.y1.id, 999))
    assert _schedule_set(gateway, 999) == set()
    assert len(_schedule_set(gateway, school.y2.id)) == 1
