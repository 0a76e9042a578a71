# backoffice/schemas/class_schema.py - Class section schemas
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional


class ClassSectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    level_id: int
    academic_year_id: int
    capacity: int = Field(..., gt=0)
    homeroom_teacher_id: Optional[int] = None
    supervisor_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Class name cannot be empty or whitespace")
        return v.strip()


class ClassSectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    level_id: int
    academic_year_id: int
    capacity: int = Field(..., gt=0)
    homeroom_teacher_id: Optional[int] = None
    supervisor_id: Optional[int] = None


class ClassSectionDetail(ClassSectionOut):
    """Class joined with its level, year, seats and fee coverage for display"""
    level_name: str
    cycle: str
    level_order: int
    year_label: str
    enrolled_count: int = 0
    remaining_seats: int = 0
    has_fee_schedule: bool = False
    selectable: bool = False
