from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import AppError, AuthorizationError, NotFoundError, ValidationError
from app.models.leave_request import BLOCKING_STATUSES, LeaveRequest, LeaveStatus, LeaveType
from app.models.notification import NotificationType
from app.models.user import REVIEWER_ROLES, User
from app.services.audit import log_leave_transition
from app.services.leave_policy import (
    apply_cancellation,
    apply_review,
    check_admission,
    ensure_reviewer,
    require_reason,
    review_notification_text,
    submission_notification_text,
)
from app.services.notifications import NotificationDispatch, notify_roles, notify_users, publish_dispatch

logger = logging.getLogger(__name__)


@dataclass
class LeaveOutcome:
    request: LeaveRequest
    notifications: NotificationDispatch


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_leave_request(db: Session, leave_id: str, *, for_update: bool = False) -> LeaveRequest:
    request = db.get(LeaveRequest, leave_id, with_for_update=for_update)
    if request is None:
        raise NotFoundError("Leave request", leave_id)
    return request


def load_conflict_set(db: Session, employee_id: str) -> list[LeaveRequest]:
    return list(
        db.execute(
            select(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(BLOCKING_STATUSES),
            )
        ).scalars()
    )


def _lock_requester(db: Session, employee_id: str) -> None:
    # Serializes submissions by one worker where the engine honors row locks.
    db.execute(select(User.id).where(User.id == employee_id).with_for_update()).first()


def submit_leave_request(
    db: Session,
    *,
    actor: User,
    start_date: date,
    end_date: date,
    leave_type: LeaveType,
    reason: str,
    today: date | None = None,
) -> LeaveOutcome:
    reason = require_reason(reason)
    now = _utc_now()
    _lock_requester(db, actor.id)
    existing = load_conflict_set(db, actor.id)
    try:
        duration = check_admission(start_date, end_date, existing, today=today or now.date())
    except AppError as exc:
        logger.info("Leave request by %s rejected: %s", actor.id, exc.message)
        raise

    request = LeaveRequest(
        employee_id=actor.id,
        employee_name=actor.name,
        start_date=start_date,
        end_date=end_date,
        leave_type=leave_type,
        reason=reason,
        duration=duration,
        status=LeaveStatus.pending,
        updated_at=now,
    )
    db.add(request)
    db.flush()

    title, message = submission_notification_text(request)
    dispatch = notify_roles(
        db,
        roles=REVIEWER_ROLES,
        title=title,
        message=message,
        notification_type=NotificationType.leave_request,
        related_request_id=request.id,
    )
    log_leave_transition(
        db,
        user=actor,
        action="leave.create",
        request=request,
        details={
            "duration": duration,
            "notified": len(dispatch.delivered),
            "notification_failures": len(dispatch.failed),
        },
    )
    db.commit()
    publish_dispatch(dispatch)
    db.refresh(request)
    logger.info("Leave request %s created for %s (%d day(s))", request.id, actor.id, duration)
    return LeaveOutcome(request=request, notifications=dispatch)


def review_leave_request(
    db: Session,
    *,
    actor: User,
    leave_id: str,
    outcome: LeaveStatus,
    comments: str | None = None,
) -> LeaveOutcome:
    ensure_reviewer(actor)
    request = get_leave_request(db, leave_id, for_update=True)
    apply_review(request, reviewer=actor, outcome=outcome, comments=comments, now=_utc_now())

    title, message = review_notification_text(request)
    dispatch = notify_users(
        db,
        user_ids=[request.employee_id],
        title=title,
        message=message,
        notification_type=NotificationType.leave_status_update,
        related_request_id=request.id,
    )
    log_leave_transition(
        db,
        user=actor,
        action="leave.review",
        request=request,
        details={"comments": request.comments, "notified": len(dispatch.delivered)},
    )
    db.commit()
    publish_dispatch(dispatch)
    db.refresh(request)
    logger.info("Leave request %s %s by %s", request.id, request.status.value, actor.id)
    return LeaveOutcome(request=request, notifications=dispatch)


def cancel_leave_request(db: Session, *, actor: User, leave_id: str) -> LeaveRequest:
    request = get_leave_request(db, leave_id, for_update=True)
    apply_cancellation(request, actor=actor, now=_utc_now())
    log_leave_transition(db, user=actor, action="leave.cancel", request=request)
    db.commit()
    db.refresh(request)
    logger.info("Leave request %s cancelled by requester", request.id)
    return request


def list_leave_requests(
    db: Session,
    *,
    actor: User,
    status: LeaveStatus | None = None,
    employee_id: str | None = None,
    limit: int = 100,
) -> list[LeaveRequest]:
    query = select(LeaveRequest)
    if not actor.is_reviewer:
        # Employees only ever see their own requests; filters are ignored.
        query = query.where(LeaveRequest.employee_id == actor.id)
    else:
        if employee_id:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.where(LeaveRequest.status == status)
    query = query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id).limit(limit)
    return list(db.execute(query).scalars())


def list_own_leave_requests(db: Session, *, actor: User, limit: int = 100) -> list[LeaveRequest]:
    query = (
        select(LeaveRequest)
        .where(LeaveRequest.employee_id == actor.id)
        .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
        .limit(limit)
    )
    return list(db.execute(query).scalars())


def get_visible_leave_request(db: Session, *, actor: User, leave_id: str) -> LeaveRequest:
    request = get_leave_request(db, leave_id)
    if request.employee_id != actor.id and not actor.is_reviewer:
        raise AuthorizationError("Not authorized to view this leave request")
    return request


def leave_stats(db: Session, *, actor: User, employee_id: str) -> dict:
    if employee_id != actor.id and not actor.is_reviewer:
        raise AuthorizationError("Not authorized to view other employees leave statistics")

    requests = list(
        db.execute(select(LeaveRequest).where(LeaveRequest.employee_id == employee_id)).scalars()
    )
    by_status = Counter(item.status for item in requests)
    by_type = Counter(item.leave_type for item in requests)
    return {
        "employee_id": employee_id,
        "total": len(requests),
        "pending": by_status[LeaveStatus.pending],
        "approved": by_status[LeaveStatus.approved],
        "rejected": by_status[LeaveStatus.rejected],
        "cancelled": by_status[LeaveStatus.cancelled],
        "total_days": sum(item.duration for item in requests if item.status == LeaveStatus.approved),
        "by_type": {leave_type.value: by_type[leave_type] for leave_type in LeaveType},
    }


def team_calendar(
    db: Session,
    *,
    actor: User,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[LeaveRequest]:
    if not actor.is_reviewer:
        raise AuthorizationError("Only managers and admins can view team calendar")

    query = select(LeaveRequest).where(LeaveRequest.status.in_(BLOCKING_STATUSES))
    if start_date is not None and end_date is not None:
        if end_date < start_date:
            raise ValidationError(
                "Calendar end date cannot be before start date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        query = query.where(LeaveRequest.start_date <= end_date, LeaveRequest.end_date >= start_date)
    query = query.order_by(LeaveRequest.start_date, LeaveRequest.employee_name)
    return list(db.execute(query).scalars())
