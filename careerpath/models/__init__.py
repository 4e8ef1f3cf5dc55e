from careerpath.models.analytics_entry import AnalyticsEntry
from careerpath.models.audit_log import AuditLog
from careerpath.models.auth_token import EmailVerificationToken, PasswordResetToken
from careerpath.models.notification_delivery import NotificationDelivery
from careerpath.models.recommendation import Recommendation
from careerpath.models.student_profile import StudentProfile
from careerpath.models.user import User

__all__ = [
    "User",
    "PasswordResetToken",
    "EmailVerificationToken",
    "StudentProfile",
    "Recommendation",
    "AnalyticsEntry",
    "AuditLog",
    "NotificationDelivery",
]
