import asyncio
from decimal import Decimal

import httpx
import pytest

from backoffice.core.db import get_db
from backoffice.core.exceptions import (
    CapacityExceededError,
    DuplicateFeeScheduleError,
    GatewayError,
    NotFoundError,
    ValidationError,
)
from backoffice.gateways.http import ApiGateway
from backoffice.main import app
from backoffice.models.enrollment import EnrollmentStatus
from backoffice.schemas.enrollment import EnrollmentCreate, EnrollmentPatch
from backoffice.schemas.fee_schema import FeeScheduleCreate
from backoffice.schemas.payment import PaymentCreate, PaymentStatus
from backoffice.services.session import BackOfficeSession


@pytest.fixture
def api_gateway(db, school):
    app.dependency_overrides[get_db] = lambda: db
    gateway = ApiGateway(base_url="http://testserver", token="", transport=httpx.ASGITransport(app=app))
    yield gateway
    app.dependency_overrides.clear()


def test_session_runs_over_http(api_gateway, school):
    async def scenario():
        async with api_gateway:
            session = BackOfficeSession(api_gateway)
            await session.start()
            classes = [c.name for c in session.reference.classes_for_active_year()]

            first = await session.enrollments.create(1, school.cp_a.id, school.y1.id)
            with pytest.raises(CapacityExceededError):
                await session.enrollments.create(2, school.cp_a.id, school.y1.id)

            await api_gateway.record_payment(first.id, PaymentCreate(amount=Decimal("50000")))
            edited = await session.enrollments.edit(first.id, EnrollmentPatch(discount=Decimal("300000")))
            active = await api_gateway.list_enrollments(
                year_id=school.y1.id, statuses=[EnrollmentStatus.ENROLLED, EnrollmentStatus.RENEWED],
            )
            session.close()
            return classes, first, edited, active

    classes, first, edited, active = asyncio.run(scenario())

    assert classes == ["CP-A", "CP-B", "CE1-A"]
    assert first.amount_due == Decimal("300000.00")
    assert edited.saved is True
    assert edited.enrollment.balance == Decimal("-50000.00")
    assert edited.negative_balance_warning is True
    assert [e.id for e in active] == [first.id]


def test_typed_errors_survive_the_wire(api_gateway, school):
    async def scenario():
        caught = []
        async with api_gateway:
            await api_gateway.create_enrollment(EnrollmentCreate(
                student_id=1, class_section_id=school.cp_a.id, academic_year_id=school.y1.id, tuition_fee=1,
            ))
            attempts = [
                api_gateway.create_enrollment(EnrollmentCreate(
                    student_id=2, class_section_id=school.cp_a.id, academic_year_id=school.y1.id, tuition_fee=1,
                )),
                api_gateway.get_enrollment(999),
                api_gateway.create_enrollment(EnrollmentCreate(
                    student_id=3, class_section_id=school.cp_next.id, academic_year_id=school.y1.id, tuition_fee=1,
                )),
                api_gateway.create_fee_schedule(FeeScheduleCreate(
                    level_id=school.cp.id, academic_year_id=school.y1.id, tuition_amount=Decimal("1"),
                )),
            ]
            for attempt in attempts:
                try:
                    await attempt
                except Exception as e:
                    caught.append(e)
        return caught

    full, missing, wrong_year, duplicate = asyncio.run(scenario())

    assert isinstance(full, CapacityExceededError)
    assert full.context == {"class_section_id": school.cp_a.id}
    assert isinstance(missing, NotFoundError)
    assert isinstance(wrong_year, ValidationError)
    assert isinstance(duplicate, DuplicateFeeScheduleError)


def test_summary_and_copy_forward_endpoints(api_gateway, school):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
            copied = await client.post(
                "/api/fee-schedules/copy-forward",
                json={"from_year_id": school.y1.id, "to_year_id": school.y2.id},
            )
            created = await client.post("/api/enrollments", json={
                "student_id": 1, "class_section_id": school.cp_b.id, "academic_year_id": school.y1.id,
                "registration_fee": "50000", "tuition_fee": "250000",
            })
            summary = await client.get(f"/api/enrollments/{created.json()['id']}/summary")
            same_year = await client.post(
                "/api/fee-schedules/copy-forward",
                json={"from_year_id": school.y1.id, "to_year_id": school.y1.id},
            )
        return copied, summary, same_year

    copied, summary, same_year = asyncio.run(scenario())

    assert copied.status_code == 200
    assert copied.json() == {"copied": 1, "skipped": 1}
    assert summary.status_code == 200
    body = summary.json()
    assert Decimal(body["balance"]) == Decimal("300000")
    assert Decimal(body["monthly_estimate"]) == Decimal("25000")
    assert body["payment_status"] == "unpaid"
    assert same_year.status_code == 422


def test_unreachable_api_raises_gateway_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    gateway = ApiGateway(base_url="http://backoffice.invalid", transport=httpx.MockTransport(refuse))
    with pytest.raises(GatewayError):
        asyncio.run(gateway.list_academic_years())


def test_server_error_without_json_body_raises_gateway_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="upstream exploded"))
    gateway = ApiGateway(base_url="http://backoffice.invalid", transport=transport)

    with pytest.raises(GatewayError) as exc:
        asyncio.run(gateway.list_levels())
    assert "500" in exc.value.message


def test_error_code_wins_over_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(
        503, json={"detail": "occupancy down", "code": "occupancy_unavailable"},
    ))
    gateway = ApiGateway(base_url="http://backoffice.invalid", transport=transport)

    with pytest.raises(CapacityExceededError) as exc:
        asyncio.run(gateway.list_class_sections(year_id=1))
    assert exc.value.code == "occupancy_unavailable"


def test_withdraw_endpoint_releases_the_seat(api_gateway, school):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
            created = await client.post("/api/enrollments", json={
                "student_id": 1, "class_section_id": school.cp_a.id, "academic_year_id": school.y1.id,
                "tuition_fee": "250000",
            })
            enrollment_id = created.json()["id"]
            withdrawn = await client.post(f"/api/enrollments/{enrollment_id}/withdraw", json={"reason": "moved"})
            again = await client.post(f"/api/enrollments/{enrollment_id}/withdraw", json={})
            replacement = await client.post("/api/enrollments", json={
                "student_id": 2, "class_section_id": school.cp_a.id, "academic_year_id": school.y1.id,
                "tuition_fee": "250000",
            })
        return withdrawn, again, replacement

    withdrawn, again, replacement = asyncio.run(scenario())

    assert withdrawn.json()["status"] == "withdrawn"
    assert withdrawn.json()["status_reason"] == "moved"
    assert again.status_code == 200
    assert again.json()["status"] == "withdrawn"
    assert replacement.status_code == 201


def test_student_balance_over_http(api_gateway, school):
    async def scenario():
        enrollment = await api_gateway.create_enrollment(EnrollmentCreate(
            student_id=1, class_section_id=school.cp_b.id, academic_year_id=school.y1.id,
            registration_fee=Decimal("50000"), tuition_fee=Decimal("250000"),
        ))
        await api_gateway.record_payment(enrollment.id, PaymentCreate(amount=Decimal("100000")))
        balance = await api_gateway.get_student_balance(1, school.y1.id)
        other_year = await api_gateway.get_student_balance(1, school.y2.id)
        return enrollment, balance, other_year

    enrollment, balance, other_year = asyncio.run(scenario())

    assert balance.enrollment_ids == [enrollment.id]
    assert balance.amount_due == Decimal("300000.00")
    assert balance.amount_paid == Decimal("100000.00")
    assert balance.balance == Decimal("200000.00")
    assert balance.payment_status == PaymentStatus.PARTIAL
    assert other_year.amount_due == Decimal("0")
    assert other_year.payment_status == PaymentStatus.PAID

    with pytest.raises(NotFoundError):
        asyncio.run(api_gateway.get_student_balance(1, 999))
