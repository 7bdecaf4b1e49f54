from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

from anyio import from_thread
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationType
from app.models.user import User, UserRole
from app.services.notification_hub import notification_hub

logger = logging.getLogger(__name__)

RECIPIENT_UNAVAILABLE = "Recipient not found or inactive"


@dataclass
class NotificationFailure:
    user_id: str
    reason: str


@dataclass
class NotificationDispatch:
    """Outcome of a notification batch: what was written and who was missed."""

    delivered: list[Notification] = field(default_factory=list)
    failed: list[NotificationFailure] = field(default_factory=list)

    @property
    def delivered_user_ids(self) -> list[str]:
        return [item.user_id for item in self.delivered]

    def summary(self) -> dict:
        return {
            "delivered": self.delivered_user_ids,
            "failed": [{"user_id": item.user_id, "reason": item.reason} for item in self.failed],
        }


def _safe_iso(value: datetime | None) -> str:
    if value is None:
        return datetime.now(timezone.utc).isoformat()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.isoformat()


def notification_to_event_payload(notification: Notification, *, event: str = "notification.created") -> dict:
    return {
        "event": event,
        "notification": {
            "id": notification.id,
            "user_id": notification.user_id,
            "title": notification.title,
            "message": notification.message,
            "notification_type": notification.notification_type.value,
            "related_request_id": notification.related_request_id,
            "is_read": notification.is_read,
            "created_at": _safe_iso(notification.created_at),
        },
    }


def publish_realtime_notification(notification: Notification, *, event: str = "notification.created") -> None:
    payload = notification_to_event_payload(notification, event=event)
    try:
        from_thread.run(notification_hub.publish, notification.user_id, payload)
    except Exception:  # pragma: no cover - runtime environment dependent
        logger.debug("Unable to push realtime notification for user %s", notification.user_id, exc_info=True)


def publish_dispatch(dispatch: NotificationDispatch, *, event: str = "notification.created") -> None:
    """Push delivered notifications to open sockets; call only once they are committed."""
    for record in dispatch.delivered:
        publish_realtime_notification(record, event=event)


def _persist_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType,
    related_request_id: str | None,
) -> Notification:
    record = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        related_request_id=related_request_id,
        is_read=False,
    )
    db.add(record)
    db.flush()
    return record


def _dispatch(
    db: Session,
    recipients: list[User],
    *,
    title: str,
    message: str,
    notification_type: NotificationType,
    related_request_id: str | None,
) -> NotificationDispatch:
    # Each write gets its own savepoint so one bad row cannot sink the batch.
    dispatch = NotificationDispatch()
    for recipient in recipients:
        try:
            with db.begin_nested():
                record = _persist_notification(
                    db,
                    user_id=recipient.id,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    related_request_id=related_request_id,
                )
        except SQLAlchemyError as exc:
            logger.warning("Notification write failed for user %s", recipient.id, exc_info=True)
            dispatch.failed.append(NotificationFailure(user_id=recipient.id, reason=exc.__class__.__name__))
            continue
        dispatch.delivered.append(record)

    if dispatch.failed:
        logger.warning(
            "Notification batch '%s' delivered %d, failed %d",
            title,
            len(dispatch.delivered),
            len(dispatch.failed),
        )
    return dispatch


def notify_users(
    db: Session,
    *,
    user_ids: list[str] | set[str] | tuple[str, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    related_request_id: str | None = None,
    exclude_user_id: str | None = None,
) -> NotificationDispatch:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item and item != exclude_user_id]
    if not requested_ids:
        return NotificationDispatch()

    recipients = list(
        db.execute(
            select(User).where(
                User.id.in_(requested_ids),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    dispatch = _dispatch(
        db,
        recipients,
        title=title,
        message=message,
        notification_type=notification_type,
        related_request_id=related_request_id,
    )
    found_ids = {recipient.id for recipient in recipients}
    for missing_id in requested_ids:
        if missing_id not in found_ids:
            dispatch.failed.append(NotificationFailure(user_id=missing_id, reason=RECIPIENT_UNAVAILABLE))
    return dispatch


def notify_roles(
    db: Session,
    *,
    roles: list[UserRole] | set[UserRole] | frozenset[UserRole] | tuple[UserRole, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    related_request_id: str | None = None,
    exclude_user_id: str | None = None,
) -> NotificationDispatch:
    if not roles:
        return NotificationDispatch()
    recipients = [
        recipient
        for recipient in db.execute(
            select(User)
            .where(
                User.role.in_(list(roles)),
                User.is_active.is_(True),
            )
            .order_by(User.created_at, User.id)
        ).scalars()
        if not (exclude_user_id and recipient.id == exclude_user_id)
    ]
    return _dispatch(
        db,
        recipients,
        title=title,
        message=message,
        notification_type=notification_type,
        related_request_id=related_request_id,
    )
