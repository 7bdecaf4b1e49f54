from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.core.config import get_settings
from app.core.exceptions import ValidationError
from app.models.leave_request import LeaveStatus
from app.models.user import User
from app.schemas.leave import (
    LeaveRequestCreate,
    LeaveRequestDispatchOut,
    LeaveRequestOut,
    LeaveRequestReview,
    LeaveStatsOut,
)
from app.services import leaves as leave_service

settings = get_settings()
router = APIRouter()


def _dispatch_out(outcome: leave_service.LeaveOutcome) -> LeaveRequestDispatchOut:
    base = LeaveRequestOut.model_validate(outcome.request)
    return LeaveRequestDispatchOut(**base.model_dump(), notifications=outcome.notifications.summary())


@router.post(
    "/leave-requests",
    response_model=LeaveRequestDispatchOut,
    status_code=status.HTTP_201_CREATED,
)
def create_leave_request(
    payload: LeaveRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LeaveRequestDispatchOut:
    outcome = leave_service.submit_leave_request(
        db,
        actor=current_user,
        start_date=payload.start_date,
        end_date=payload.end_date,
        leave_type=payload.leave_type,
        reason=payload.reason,
    )
    return _dispatch_out(outcome)


@router.get("/leave-requests", response_model=list[LeaveRequestOut])
def list_leave_requests(
    leave_status: str | None = Query(default=None, alias="status"),
    employee_id: str | None = Query(default=None),
    limit: int = Query(default=settings.leave_list_default_limit, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[LeaveRequestOut]:
    status_filter = None
    if leave_status and leave_status != "all":
        try:
            status_filter = LeaveStatus(leave_status)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown leave status '{leave_status}'", details={"status": leave_status}
            ) from exc
    return leave_service.list_leave_requests(
        db,
        actor=current_user,
        status=status_filter,
        employee_id=employee_id,
        limit=limit,
    )


@router.get("/leave-requests/my-requests", response_model=list[LeaveRequestOut])
def list_my_leave_requests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[LeaveRequestOut]:
    return leave_service.list_own_leave_requests(db, actor=current_user, limit=settings.leave_list_default_limit)


@router.get("/leave-requests/team-calendar", response_model=list[LeaveRequestOut])
def get_team_calendar(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[LeaveRequestOut]:
    return leave_service.team_calendar(db, actor=current_user, start_date=start_date, end_date=end_date)


@router.get("/leave-requests/stats/employee/{employee_id}", response_model=LeaveStatsOut)
def get_employee_leave_stats(
    employee_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LeaveStatsOut:
    return leave_service.leave_stats(db, actor=current_user, employee_id=employee_id)


@router.get("/leave-requests/{leave_id}", response_model=LeaveRequestOut)
def get_leave_request(
    leave_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LeaveRequestOut:
    return leave_service.get_visible_leave_request(db, actor=current_user, leave_id=leave_id)


@router.put("/leave-requests/{leave_id}", response_model=LeaveRequestDispatchOut)
def review_leave_request(
    leave_id: str,
    payload: LeaveRequestReview,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LeaveRequestDispatchOut:
    outcome = leave_service.review_leave_request(
        db,
        actor=current_user,
        leave_id=leave_id,
        outcome=LeaveStatus(payload.status),
        comments=payload.comments,
    )
    return _dispatch_out(outcome)


@router.put("/leave-requests/{leave_id}/cancel", response_model=LeaveRequestOut)
def cancel_leave_request(
    leave_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LeaveRequestOut:
    return leave_service.cancel_leave_request(db, actor=current_user, leave_id=leave_id)
