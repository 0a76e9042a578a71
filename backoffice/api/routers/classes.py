# backoffice/api/routers/classes.py - Class sections
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from backoffice.api.deps.gateway import get_gateway
from backoffice.gateways.sql import SqlGateway
from backoffice.schemas.class_schema import ClassSectionCreate, ClassSectionOut

router = APIRouter()


@router.get("", response_model=List[ClassSectionOut])
async def list_class_sections(
    year_id: Optional[int] = Query(None, description="Only classes of this academic year"),
    gateway: SqlGateway = Depends(get_gateway),
):
    return await gateway.list_class_sections(year_id=year_id)


@router.get("/{class_section_id}", response_model=ClassSectionOut)
async def get_class_section(class_section_id: int, gateway: SqlGateway = Depends(get_gateway)):
    return await gateway.get_class_section(class_section_id)


@router.post("", response_model=ClassSectionOut, status_code=status.HTTP_201_CREATED)
async def create_class_section(class_data: ClassSectionCreate, gateway: SqlGateway = Depends(get_gateway)):
    """Create a class; its level must already have a fee schedule for the year"""
    return await gateway.create_class_section(class_data)
