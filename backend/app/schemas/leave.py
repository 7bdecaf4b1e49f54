from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.models.leave_request import LeaveStatus, LeaveType


class LeaveRequestCreate(BaseModel):
    start_date: date
    end_date: date
    leave_type: LeaveType = LeaveType.vacation
    reason: str = Field(min_length=1, max_length=1000)

    @field_validator("reason")
    @classmethod
    def normalize_reason(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Reason cannot be empty")
        return trimmed


class LeaveRequestReview(BaseModel):
    status: Literal["approved", "rejected"]
    comments: str | None = Field(default=None, max_length=1000)


class LeaveRequestOut(BaseModel):
    id: str
    employee_id: str
    employee_name: str
    start_date: date
    end_date: date
    leave_type: LeaveType
    reason: str
    duration: int
    status: LeaveStatus
    reviewed_by: str | None = None
    reviewed_by_name: str | None = None
    reviewed_at: datetime | None = None
    comments: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class NotificationFailureOut(BaseModel):
    user_id: str
    reason: str


class NotificationDispatchOut(BaseModel):
    delivered: list[str] = Field(default_factory=list)
    failed: list[NotificationFailureOut] = Field(default_factory=list)


class LeaveRequestDispatchOut(LeaveRequestOut):
    """A leave request together with the report of the notifications it triggered."""

    notifications: NotificationDispatchOut


class LeaveTypeCounts(BaseModel):
    vacation: int = 0
    sick: int = 0
    personal: int = 0
    emergency: int = 0
    other: int = 0


class LeaveStatsOut(BaseModel):
    employee_id: str
    total: int
    pending: int
    approved: int
    rejected: int
    cancelled: int
    total_days: int
    by_type: LeaveTypeCounts
