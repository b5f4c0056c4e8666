"""Blackout slot schemas"""

from datetime import date as Date, datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field, model_validator

from studio_booking.models.reservation import Studio


class BlackoutCreate(BaseModel):
    """Block one studio interval on one date"""
    studio: Studio
    date: Date
    start_time: str
    end_time: str
    reason: Optional[str] = None


class BulkBlackoutCreate(BaseModel):
    """Block the same studio interval on many dates"""
    studio: Studio
    dates: List[Date] = Field(min_length=1)
    start_time: str
    end_time: str
    reason: Optional[str] = None


class BlackoutDelete(BaseModel):
    """Unblock by ids, or by studio and an inclusive date range"""
    ids: Optional[List[UUID]] = None
    studio: Optional[Studio] = None
    start_date: Optional[Date] = None
    end_date: Optional[Date] = None

    @model_validator(mode="after")
    def check_selector(self):
        if self.ids:
            return self
        if self.studio and self.start_date and self.end_date:
            return self
        raise ValueError("Must provide either 'ids' or 'studio', 'start_date' and 'end_date'")


class BlackoutResponse(BaseModel):
    """Blackout slot"""
    id: UUID
    studio: Studio
    date: Date
    start_time: str
    end_time: str
    is_available: bool
    reason: Optional[str]
    created_by: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class BulkBlackoutResponse(BaseModel):
    """Bulk block outcome"""
    count: int
    dates: List[Date]
    skipped_past: List[Date] = []
    skipped_conflicts: List[Date] = []


class BlackoutDeleteResponse(BaseModel):
    deleted_count: int
