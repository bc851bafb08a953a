from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class DelegationCreate(BaseModel):
    delegate_id: int
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class DelegationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    delegator_id: int
    delegate_id: int
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = None
    is_active: bool
