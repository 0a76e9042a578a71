# backoffice/api/routers/enrollments.py - Enrollments and their payments
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
import logging

from backoffice.api.deps.gateway import get_gateway
from backoffice.gateways.sql import SqlGateway
from backoffice.models.enrollment import EnrollmentStatus
from backoffice.schemas.enrollment import EnrollmentCreate, EnrollmentOut, EnrollmentUpdate, StatusChange
from backoffice.schemas.payment import FinancialSummary, PaymentCreate, PaymentOut, StudentBalance
from backoffice.services import finance

logger = logging.getLogger(__name__)
router = APIRouter()
students_router = APIRouter()


@router.get("", response_model=List[EnrollmentOut])
async def list_enrollments(
    year_id: Optional[int] = Query(None),
    class_section_id: Optional[int] = Query(None),
    student_id: Optional[int] = Query(None),
    enrollment_status: Optional[List[EnrollmentStatus]] = Query(None, alias="status"),
    gateway: SqlGateway = Depends(get_gateway),
):
    return await gateway.list_enrollments(
        year_id=year_id,
        class_section_id=class_section_id,
        statuses=enrollment_status,
        student_id=student_id,
    )


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
async def create_enrollment(enrollment_data: EnrollmentCreate, gateway: SqlGateway = Depends(get_gateway)):
    """Create an enrollment; capacity is checked again under a row lock"""
    return await gateway.create_enrollment(enrollment_data)


@router.get("/{enrollment_id}", response_model=EnrollmentOut)
async def get_enrollment(enrollment_id: int, gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.get_enrollment(enrollment_id)


@router.put("/{enrollment_id}", response_model=EnrollmentOut)
async def update_enrollment(
    enrollment_id: int,
    update_data: EnrollmentUpdate,
    gateway: SqlGateway = Depends(get_gateway),
):
    return await gateway.update_enrollment(enrollment_id, update_data)


@router.get("/{enrollment_id}/payments", response_model=List[PaymentOut])
async def list_payments(enrollment_id: int, gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.list_payments(enrollment_id)


@router.post("/{enrollment_id}/payments", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
async def record_payment(
    enrollment_id: int,
    payment_data: PaymentCreate,
    gateway: SqlGateway = Depends(get_gateway),
):
    return await gateway.record_payment(enrollment_id, payment_data)


@router.get("/{enrollment_id}/summary", response_model=FinancialSummary)
async def get_financial_summary(enrollment_id: int, gateway: SqlGateway = Depends(get_gateway)):
    """Fees, payments and balance of one enrollment"""
    enrollment = await gateway.get_enrollment(enrollment_id)
    payments = await gateway.list_payments(enrollment_id)
    return finance.summarize_enrollment(enrollment, payments)


async def _close_enrollment(
    gateway: SqlGateway, enrollment_id: int, new_status: EnrollmentStatus, data: StatusChange
) -> EnrollmentOut:
    current = await gateway.get_enrollment(enrollment_id)
    if current.status == new_status:
        return current
    logger.info(f"Closing enrollment {enrollment_id} as {new_status.value}")
    return await gateway.update_enrollment(
        enrollment_id, EnrollmentUpdate(status=new_status, status_reason=data.reason)
    )


@router.post("/{enrollment_id}/withdraw", response_model=EnrollmentOut)
async def withdraw_enrollment(
    enrollment_id: int,
    data: StatusChange = StatusChange(),
    gateway: SqlGateway = Depends(get_gateway),
):
    """Withdraw a student; the seat is released immediately"""
    return await _close_enrollment(gateway, enrollment_id, EnrollmentStatus.WITHDRAWN, data)


@router.post("/{enrollment_id}/transfer", response_model=EnrollmentOut)
async def transfer_enrollment(
    enrollment_id: int,
    data: StatusChange = StatusChange(),
    gateway: SqlGateway = Depends(get_gateway),
):
    return await _close_enrollment(gateway, enrollment_id, EnrollmentStatus.TRANSFERRED, data)


@students_router.get("/{student_id}/balance", response_model=StudentBalance)
async def get_student_balance(
    student_id: int,
    year_id: int = Query(..., description="Academic year to total"),
    gateway: SqlGateway = Depends(get_gateway),
):
    """Amount due, paid and remaining for one student over a year's enrollments"""
    return await gateway.get_student_balance(student_id, year_id)
