from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.logging import get_logger
from app.models import Application, SubscriptionPlan, UserSubscription

logger = get_logger(__name__)
settings = get_settings()

UNLIMITED = -1


@dataclass
class ApplicationQuota:
    subscription: UserSubscription
    plan: SubscriptionPlan
    used: int
    remaining: int

    @property
    def can_submit(self) -> bool:
        return self.remaining == UNLIMITED or self.remaining > 0


def get_user_subscription(db: Session, user_id: str) -> Optional[UserSubscription]:
    return db.scalar(select(UserSubscription).where(UserSubscription.user_id == user_id))


def get_plan(db: Session, plan_name: str) -> Optional[SubscriptionPlan]:
    return db.scalar(select(SubscriptionPlan).where(SubscriptionPlan.plan_name == plan_name))


def ensure_subscription(db: Session, user_id: str) -> tuple[UserSubscription, bool]:
    """Insert the default subscription unless one exists.

    Returns ``(subscription, created)``. The unique index on ``user_id`` decides
    concurrent inserts: the loser rolls back and reads the winner's row.
    """
    existing = get_user_subscription(db, user_id)
    if existing:
        return existing, False

    subscription = UserSubscription(user_id=user_id, plan_name=settings.default_plan_name)
    db.add(subscription)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_user_subscription(db, user_id)
        if existing is None:
            raise
        return existing, False

    db.refresh(subscription)
    logger.info("subscription.created", extra={"user_id": user_id, "plan_name": subscription.plan_name})
    return subscription, True


def set_subscription_plan(db: Session, user_id: str, plan_name: str, creem_id: Optional[str] = None) -> UserSubscription:
    """Point the user's subscription at ``plan_name``, creating the row if needed. Caller commits."""
    subscription = get_user_subscription(db, user_id)
    if subscription is None:
        subscription = UserSubscription(user_id=user_id, plan_name=plan_name, creem_id=creem_id)
        db.add(subscription)
    else:
        subscription.plan_name = plan_name
        if creem_id:
            subscription.creem_id = creem_id
    db.flush()
    return subscription


def count_applications(db: Session, user_id: str) -> int:
    return db.scalar(select(func.count()).select_from(Application).where(Application.user_id == user_id)) or 0


def check_application_limit(db: Session, user_id: str) -> ApplicationQuota:
    subscription, _ = ensure_subscription(db, user_id)
    plan = get_plan(db, subscription.plan_name)
    if plan is None:
        logger.error("subscription.plan_missing", extra={"user_id": user_id, "plan_name": subscription.plan_name})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="subscription_plan_missing")

    used = count_applications(db, user_id)
    if plan.max_applications is None:
        remaining = UNLIMITED
    else:
        remaining = max(0, plan.max_applications - used)
    return ApplicationQuota(subscription=subscription, plan=plan, used=used, remaining=remaining)
