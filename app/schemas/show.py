from pydantic import Field, model_validator
from typing import List, Optional
from datetime import date, datetime

from .common import CamelModel


class ShowCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        return self


class ShowResponse(CamelModel):
    id: str
    name: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: Optional[datetime] = None


class AvailabilityUpdate(CamelModel):
    show_id: str = Field(..., min_length=1, max_length=36)
    available_dates: List[date] = []


class AvailabilityResponse(CamelModel):
    id: str
    staff_id: str
    staff_name: Optional[str] = None
    show_id: str
    available_dates: List[date] = []
    updated_at: Optional[datetime] = None
