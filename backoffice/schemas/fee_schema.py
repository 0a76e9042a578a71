# backoffice/schemas/fee_schema.py
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from decimal import Decimal

TWO_PLACES = Decimal("0.01")


def _quantize(v: Decimal) -> Decimal:
    return v.quantize(TWO_PLACES)


# Fee Schedule Schemas
class FeeScheduleCreate(BaseModel):
    level_id: int
    academic_year_id: int
    tuition_amount: Decimal = Field(..., ge=0)
    registration_fee: Decimal = Field(Decimal("0.00"), ge=0)
    file_fee: Decimal = Field(Decimal("0.00"), ge=0)

    @field_validator("tuition_amount", "registration_fee", "file_fee")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Keep amounts at two decimal places"""
        return _quantize(v)


class FeeScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    level_id: int
    academic_year_id: int
    tuition_amount: Decimal
    registration_fee: Decimal
    file_fee: Decimal


class Fees(BaseModel):
    """Fees charged on one enrollment, either typed in or taken from a schedule"""
    registration_fee: Decimal = Field(Decimal("0.00"), ge=0)
    tuition_fee: Decimal = Field(..., ge=0)

    @field_validator("registration_fee", "tuition_fee")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return _quantize(v)

    @classmethod
    def from_schedule(cls, schedule: FeeScheduleOut) -> "Fees":
        return cls(registration_fee=schedule.registration_fee, tuition_fee=schedule.tuition_amount)


# Copy-forward
class CopyForwardRequest(BaseModel):
    from_year_id: int
    to_year_id: int

    @model_validator(mode="after")
    def check_years(self):
        if self.from_year_id == self.to_year_id:
            raise ValueError("Source and target years must differ")
        return self


class CopyForwardResult(BaseModel):
    copied: int = 0
    skipped: int = 0
