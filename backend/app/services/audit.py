from __future__ import annotations

from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.leave_request import LeaveRequest
from app.models.user import User


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> None:
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)


def log_leave_transition(
    db: Session,
    *,
    user: User,
    action: str,
    request: LeaveRequest,
    details: dict | None = None,
) -> None:
    payload = {
        "employee_id": request.employee_id,
        "status": request.status.value,
        "start_date": request.start_date.isoformat(),
        "end_date": request.end_date.isoformat(),
    }
    payload.update(details or {})
    log_activity(
        db,
        user=user,
        action=action,
        entity_type="leave_request",
        entity_id=request.id,
        details=payload,
    )
