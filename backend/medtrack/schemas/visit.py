"""Module: visit (schemas)."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class VisitStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CamelModel(BaseModel):
    """Backend JSON is camelCase; Python attributes stay snake_case."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Visit(CamelModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    doctor_id: int
    doctor_name: Optional[str] = None
    location_id: Optional[int] = None
    location_name: Optional[str] = None
    visit_date: Optional[date] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    status: VisitStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == VisitStatus.IN_PROGRESS


class StartVisitPayload(CamelModel):
    user_id: Optional[int] = None
    doctor_id: int
    location_id: Optional[int] = None
    notes: Optional[str] = None


class EndVisitPayload(CamelModel):
    notes: Optional[str] = None


class CancelVisitPayload(CamelModel):
    reason: Optional[str] = None


# Administrative correction: metadata only, doctor/location/user are not editable.
class VisitEditPayload(CamelModel):
    notes: Optional[str] = None
    status: Optional[VisitStatus] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    visit_date: Optional[date] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "forbid"
