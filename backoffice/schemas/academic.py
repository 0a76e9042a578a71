# backoffice/schemas/academic.py - Academic year and level schemas
from datetime import date
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backoffice.models.academic import YearStatus


# Academic Year schemas
class AcademicYearCreate(BaseModel):
    label: str = Field(..., min_length=1, max_length=64)
    start_date: date
    end_date: date
    status: YearStatus = YearStatus.PLANNED

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Label cannot be empty or whitespace")
        return v.strip()

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, v: YearStatus) -> YearStatus:
        if v not in (YearStatus.PLANNED, YearStatus.CURRENT):
            raise ValueError("A new academic year starts as planned or current")
        return v

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class AcademicYearOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    label: str
    start_date: date
    end_date: date
    status: YearStatus
    is_active: bool = False

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    @property
    def is_current(self) -> bool:
        return self.status == YearStatus.CURRENT


# Level schemas
class LevelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    cycle: str = Field(..., min_length=1, max_length=32)
    order: int = Field(..., ge=0)


class LevelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    cycle: str
    order: int
