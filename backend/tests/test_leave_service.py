from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.activity_log import ActivityLog
from app.models.leave_request import LeaveRequest, LeaveStatus, LeaveType
from app.models.notification import Notification, NotificationType
from app.models.user import User, UserRole
from app.services import leaves as leave_service
from app.services import notifications as notification_service

TODAY = date(2024, 1, 1)


def add_user(db, name, role, *, active=True):
    user = User(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        hashed_password="not-used",
        role=role,
        is_active=active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def submit(db, actor, start, end, leave_type=LeaveType.vacation, reason="Planned time off"):
    return leave_service.submit_leave_request(
        db,
        actor=actor,
        start_date=start,
        end_date=end,
        leave_type=leave_type,
        reason=reason,
        today=TODAY,
    )


def notification_count(db, **filters):
    query = select(func.count()).select_from(Notification)
    for column, value in filters.items():
        query = query.where(getattr(Notification, column) == value)
    return db.execute(query).scalar_one()


def test_submission_fans_out_one_notification_per_active_reviewer(db_session):
    admin = add_user(db_session, "Ada Admin", UserRole.admin)
    manager = add_user(db_session, "Max Manager", UserRole.manager)
    add_user(db_session, "Retired Manager", UserRole.manager, active=False)
    add_user(db_session, "Peer Employee", UserRole.employee)
    employee = add_user(db_session, "Erin Employee", UserRole.employee)

    outcome = submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 10))

    assert outcome.request.duration == 1
    assert outcome.request.status == LeaveStatus.pending
    assert sorted(outcome.notifications.delivered_user_ids) == sorted([admin.id, manager.id])
    assert outcome.notifications.failed == []
    assert notification_count(db_session, related_request_id=outcome.request.id) == 2
    assert notification_count(db_session, notification_type=NotificationType.leave_request) == 2


def test_failed_notification_write_does_not_sink_the_batch(db_session, monkeypatch):
    healthy = add_user(db_session, "Healthy Manager", UserRole.manager)
    broken = add_user(db_session, "Broken Manager", UserRole.manager)
    employee = add_user(db_session, "Erin Employee", UserRole.employee)

    original = notification_service._persist_notification

    def flaky_persist(db, *, user_id, **kwargs):
        if user_id == broken.id:
            raise OperationalError("INSERT INTO notifications", {}, Exception("disk I/O error"))
        return original(db, user_id=user_id, **kwargs)

    monkeypatch.setattr(notification_service, "_persist_notification", flaky_persist)

    outcome = submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 12))

    assert outcome.notifications.delivered_user_ids == [healthy.id]
    assert len(outcome.notifications.failed) == 1
    assert outcome.notifications.failed[0].user_id == broken.id
    assert outcome.notifications.failed[0].reason == "OperationalError"
    assert outcome.notifications.summary()["failed"] == [{"user_id": broken.id, "reason": "OperationalError"}]

    db_session.expire_all()
    stored = db_session.get(LeaveRequest, outcome.request.id)
    assert stored is not None
    assert stored.status == LeaveStatus.pending
    assert notification_count(db_session, user_id=healthy.id) == 1
    assert notification_count(db_session, user_id=broken.id) == 0


def test_conflict_leaves_store_untouched(db_session):
    employee = add_user(db_session, "Erin Employee", UserRole.employee)
    submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 15))

    with pytest.raises(ConflictError):
        submit(db_session, employee, date(2024, 1, 15), date(2024, 1, 20))
    db_session.rollback()

    total = db_session.execute(select(func.count()).select_from(LeaveRequest)).scalar_one()
    assert total == 1

    adjacent = submit(db_session, employee, date(2024, 1, 16), date(2024, 1, 20))
    assert adjacent.request.duration == 5


def test_review_notifies_requester_once_and_audits(db_session):
    manager = add_user(db_session, "Max Manager", UserRole.manager)
    employee = add_user(db_session, "Erin Employee", UserRole.employee)
    created = submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 11))

    outcome = leave_service.review_leave_request(
        db_session,
        actor=manager,
        leave_id=created.request.id,
        outcome=LeaveStatus.approved,
    )

    assert outcome.request.status == LeaveStatus.approved
    assert outcome.request.comments == ""
    assert outcome.notifications.delivered_user_ids == [employee.id]
    assert notification_count(db_session, user_id=employee.id) == 1
    assert notification_count(db_session, notification_type=NotificationType.leave_status_update) == 1

    actions = list(
        db_session.execute(
            select(ActivityLog.action).where(ActivityLog.entity_id == created.request.id)
        ).scalars()
    )
    assert sorted(actions) == ["leave.create", "leave.review"]


def test_review_reports_unreachable_requester(db_session):
    manager = add_user(db_session, "Max Manager", UserRole.manager)
    employee = add_user(db_session, "Erin Employee", UserRole.employee)
    created = submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 11))

    employee.is_active = False
    db_session.commit()

    outcome = leave_service.review_leave_request(
        db_session,
        actor=manager,
        leave_id=created.request.id,
        outcome=LeaveStatus.rejected,
        comments="Coverage gap",
    )
    assert outcome.request.status == LeaveStatus.rejected
    assert outcome.notifications.delivered == []
    assert outcome.notifications.failed[0].user_id == employee.id
    assert outcome.notifications.failed[0].reason == notification_service.RECIPIENT_UNAVAILABLE


def test_review_of_missing_request_is_not_found(db_session):
    manager = add_user(db_session, "Max Manager", UserRole.manager)
    with pytest.raises(NotFoundError) as exc_info:
        leave_service.review_leave_request(
            db_session,
            actor=manager,
            leave_id="missing-id",
            outcome=LeaveStatus.approved,
        )
    assert exc_info.value.details == {"resource_type": "Leave request", "resource_id": "missing-id"}


def test_cancellation_sends_no_notification(db_session):
    add_user(db_session, "Max Manager", UserRole.manager)
    employee = add_user(db_session, "Erin Employee", UserRole.employee)
    created = submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 11))
    before = notification_count(db_session)

    cancelled = leave_service.cancel_leave_request(db_session, actor=employee, leave_id=created.request.id)

    assert cancelled.status == LeaveStatus.cancelled
    assert cancelled.reviewed_by is None
    assert notification_count(db_session) == before


@pytest.mark.parametrize("reason", ["", "   ", "\n\t"])
def test_blank_reason_is_rejected_before_anything_is_written(db_session, reason):
    add_user(db_session, "Max Manager", UserRole.manager)
    employee = add_user(db_session, "Erin Employee", UserRole.employee)

    with pytest.raises(ValidationError) as exc_info:
        submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 11), reason=reason)
    assert exc_info.value.message == "Reason is required"
    assert exc_info.value.details == {"field": "reason"}
    db_session.rollback()

    assert db_session.execute(select(func.count()).select_from(LeaveRequest)).scalar_one() == 0
    assert notification_count(db_session) == 0


def test_reason_is_stored_trimmed(db_session):
    employee = add_user(db_session, "Erin Employee", UserRole.employee)
    outcome = submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 11), reason="  Wedding  ")
    assert outcome.request.reason == "Wedding"


def test_own_requests_are_listed_newest_first(db_session):
    employee = add_user(db_session, "Erin Employee", UserRole.employee)
    created_ids = [
        submit(db_session, employee, date(2024, 2, day), date(2024, 2, day)).request.id
        for day in range(1, 9)
    ]

    listed = leave_service.list_own_leave_requests(db_session, actor=employee)

    assert [item.id for item in listed] == list(reversed(created_ids))


def test_realtime_push_happens_for_committed_notifications(db_session, monkeypatch):
    manager = add_user(db_session, "Max Manager", UserRole.manager)
    employee = add_user(db_session, "Erin Employee", UserRole.employee)
    pushed = []

    def record_push(notification, *, event="notification.created"):
        still_open = db_session.in_transaction()
        pushed.append((notification.user_id, event, still_open))

    monkeypatch.setattr(notification_service, "publish_realtime_notification", record_push)

    submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 11))

    assert pushed == [(manager.id, "notification.created", False)]


def test_failed_commit_pushes_nothing(db_session, monkeypatch):
    add_user(db_session, "Max Manager", UserRole.manager)
    employee = add_user(db_session, "Erin Employee", UserRole.employee)
    pushed = []

    def broken_audit(*args, **kwargs):
        raise OperationalError("INSERT INTO activity_logs", {}, Exception("disk full"))

    monkeypatch.setattr(
        notification_service,
        "publish_realtime_notification",
        lambda notification, **kwargs: pushed.append(notification.user_id),
    )
    monkeypatch.setattr(leave_service, "log_leave_transition", broken_audit)

    with pytest.raises(OperationalError):
        submit(db_session, employee, date(2024, 1, 10), date(2024, 1, 11))
    db_session.rollback()

    assert pushed == []
    assert notification_count(db_session) == 0
    assert db_session.execute(select(func.count()).select_from(LeaveRequest)).scalar_one() == 0
