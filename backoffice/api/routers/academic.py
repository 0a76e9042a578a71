# backoffice/api/routers/academic.py - Academic years and levels
from fastapi import APIRouter, Depends, status
from typing import List
import logging

from backoffice.api.deps.gateway import get_gateway
from backoffice.gateways.sql import SqlGateway
from backoffice.schemas.academic import AcademicYearCreate, AcademicYearOut, LevelCreate, LevelOut

logger = logging.getLogger(__name__)
router = APIRouter()
levels_router = APIRouter()

# ==================== ACADEMIC YEARS ====================


@router.get("", response_model=List[AcademicYearOut])
async def list_academic_years(gateway: SqlGateway = Depends(get_gateway)):
    """All academic years, oldest first"""
    return await gateway.list_academic_years()


@router.post("", response_model=AcademicYearOut, status_code=status.HTTP_201_CREATED)
async def create_academic_year(year_data: AcademicYearCreate, gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.create_academic_year(year_data)


@router.patch("/{year_id}/activate", response_model=AcademicYearOut)
async def activate_academic_year(year_id: int, gateway: SqlGateway = Depends(get_gateway)):
    """Remember the year chosen for browsing; does not change its status"""
    return await gateway.activate_academic_year(year_id)


@router.patch("/{year_id}/set-current", response_model=AcademicYearOut)
async def set_current_academic_year(year_id: int, gateway: SqlGateway = Depends(get_gateway)):
    """Make a planned year current; the previous current year becomes finished"""
    return await gateway.set_current_year(year_id)


@router.patch("/{year_id}/close", response_model=AcademicYearOut)
async def close_academic_year(year_id: int, gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.close_year(year_id)


@router.patch("/{year_id}/archive", response_model=AcademicYearOut)
async def archive_academic_year(year_id: int, gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.archive_year(year_id)

# ==================== LEVELS ====================


@levels_router.get("", response_model=List[LevelOut])
async def list_levels(gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.list_levels()


@levels_router.post("", response_model=LevelOut, status_code=status.HTTP_201_CREATED)
async def create_level(level_data: LevelCreate, gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.create_level(level_data)
