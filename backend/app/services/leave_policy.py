"""Leave request rules that do not touch the database.

Admission (date order, no backdating, no overlap with the worker's pending or
approved requests) and the pending -> approved/rejected/cancelled transitions
live here so they can be checked against fixed calendars.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from app.core.exceptions import AuthorizationError, ConflictError, InvalidStateError, ValidationError
from app.models.leave_request import BLOCKING_STATUSES, LeaveRequest, LeaveStatus
from app.models.user import REVIEWER_ROLES, User

REVIEW_OUTCOMES: frozenset[LeaveStatus] = frozenset({LeaveStatus.approved, LeaveStatus.rejected})


def leave_duration(start_date: date, end_date: date) -> int:
    """Whole days covered by the range, both endpoints included."""
    return (end_date - start_date).days + 1


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    # Closed intervals: a shared boundary day counts as overlap.
    return start_a <= end_b and end_a >= start_b


def find_overlapping_requests(
    start_date: date,
    end_date: date,
    existing: Iterable[LeaveRequest],
) -> list[LeaveRequest]:
    return [
        item
        for item in existing
        if item.status in BLOCKING_STATUSES
        and ranges_overlap(start_date, end_date, item.start_date, item.end_date)
    ]


def require_reason(reason: str | None) -> str:
    trimmed = (reason or "").strip()
    if not trimmed:
        raise ValidationError("Reason is required", details={"field": "reason"})
    return trimmed


def check_admission(
    start_date: date,
    end_date: date,
    existing: Iterable[LeaveRequest],
    *,
    today: date,
) -> int:
    """Validate a candidate range against the worker's conflict set.

    Returns the duration in days when the candidate may be admitted, otherwise
    raises ``ValidationError`` for bad dates or ``ConflictError`` for an overlap.
    """
    if end_date < start_date:
        raise ValidationError(
            "End date cannot be before start date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    if start_date < today:
        raise ValidationError(
            "Start date cannot be in the past",
            details={"start_date": start_date.isoformat(), "today": today.isoformat()},
        )

    conflicts = find_overlapping_requests(start_date, end_date, existing)
    if conflicts:
        raise ConflictError(
            "You already have a pending or approved leave request for this period",
            details={"conflicting_request_ids": [item.id for item in conflicts]},
        )
    return leave_duration(start_date, end_date)


def ensure_reviewer(actor: User) -> None:
    if actor.role not in REVIEWER_ROLES:
        raise AuthorizationError(
            "Only managers and admins can review leave requests",
            details={"role": actor.role.value},
        )


def apply_review(
    request: LeaveRequest,
    *,
    reviewer: User,
    outcome: LeaveStatus,
    comments: str | None,
    now: datetime,
) -> None:
    ensure_reviewer(reviewer)
    if outcome not in REVIEW_OUTCOMES:
        raise ValidationError(
            "Review outcome must be approved or rejected",
            details={"status": outcome.value},
        )
    if request.status != LeaveStatus.pending:
        raise InvalidStateError(
            f"Only pending leave requests can be reviewed; this one is {request.status.value}",
            current_status=request.status.value,
        )

    request.status = outcome
    request.reviewed_by = reviewer.id
    request.reviewed_by_name = reviewer.name
    request.reviewed_at = now
    request.comments = (comments or "").strip()
    request.updated_at = now


def apply_cancellation(request: LeaveRequest, *, actor: User, now: datetime) -> None:
    if request.employee_id != actor.id:
        raise AuthorizationError("Not authorized to cancel this leave request")
    if request.status != LeaveStatus.pending:
        raise InvalidStateError(
            "Only pending leave requests can be cancelled",
            current_status=request.status.value,
        )
    request.status = LeaveStatus.cancelled
    request.updated_at = now


def review_notification_text(request: LeaveRequest) -> tuple[str, str]:
    outcome = request.status.value
    title = f"Leave Request {outcome.capitalize()}"
    message = (
        f"Your {request.leave_type.value} leave request from {request.start_date.isoformat()} "
        f"to {request.end_date.isoformat()} has been {outcome}"
    )
    if request.comments:
        message += f" with comments: {request.comments}"
    return title, message


def submission_notification_text(request: LeaveRequest) -> tuple[str, str]:
    return (
        "New Leave Request",
        f"{request.employee_name} has submitted a {request.leave_type.value} leave request "
        f"for {request.duration} day(s)",
    )
