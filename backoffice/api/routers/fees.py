# backoffice/api/routers/fees.py
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from backoffice.api.deps.gateway import get_gateway
from backoffice.gateways.sql import SqlGateway
from backoffice.schemas.fee_schema import (
    CopyForwardRequest, CopyForwardResult, FeeScheduleCreate, FeeScheduleOut,
)
from backoffice.services.fee_schedules import FeeScheduleResolver

router = APIRouter()


@router.get("", response_model=List[FeeScheduleOut])
async def list_fee_schedules(
    year_id: Optional[int] = Query(None),
    level_id: Optional[int] = Query(None),
    gateway: SqlGateway = Depends(get_gateway),
):
    """List fee schedules; with both filters the list holds at most one entry"""
    return await gateway.list_fee_schedules(year_id=year_id, level_id=level_id)


@router.post("", response_model=FeeScheduleOut, status_code=status.HTTP_201_CREATED)
async def create_fee_schedule(data: FeeScheduleCreate, gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.create_fee_schedule(data)


@router.post("/copy-forward", response_model=CopyForwardResult)
async def copy_fee_schedules_forward(data: CopyForwardRequest, gateway: SqlGateway = Depends(get_gateway)):
    """Copy a year's schedules into another year without overwriting existing ones"""
    return await FeeScheduleResolver(gateway).copy_forward(data.from_year_id, data.to_year_id)
