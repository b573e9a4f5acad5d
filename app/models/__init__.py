from app.models.entities import (
    Application,
    ApplicationStatus,
    AuditLog,
    Base,
    Note,
    SubscriptionPlan,
    UserSubscription,
)

__all__ = [
    "Application",
    "ApplicationStatus",
    "AuditLog",
    "Base",
    "Note",
    "SubscriptionPlan",
    "UserSubscription",
]
