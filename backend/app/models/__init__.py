from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.leave_request import BLOCKING_STATUSES, LeaveRequest, LeaveStatus, LeaveType  # noqa: F401
from app.models.notification import Notification, NotificationType  # noqa: F401
from app.models.user import REVIEWER_ROLES, User, UserRole  # noqa: F401
