from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.db.session import get_db
from app.schemas.billing import PlanResponse, SubscriptionResponse
from app.services.auth import AuthContext, get_auth_context
from app.services.identity import IdentityClient, get_identity_client
from app.services.migration import check_and_migrate
from app.services.subscription import check_application_limit, ensure_subscription
from app.services.user_directory import LegacyUserDirectory, get_user_directory

router = APIRouter(tags=["subscription"])
logger = get_logger(__name__)


@router.get("/subscriptions/me")
def my_subscription(db: Session = Depends(get_db), ctx: AuthContext = Depends(get_auth_context)) -> dict:
    quota = check_application_limit(db, ctx.user_id)
    return {
        "subscription": SubscriptionResponse.model_validate(quota.subscription).model_dump(),
        "plan": PlanResponse.model_validate(quota.plan).model_dump(),
        "used": quota.used,
        "remaining": quota.remaining,
        "can_submit": quota.can_submit,
    }


@router.post("/subscriptions/ensure")
def ensure_my_subscription(db: Session = Depends(get_db), ctx: AuthContext = Depends(get_auth_context)) -> dict:
    subscription, created = ensure_subscription(db, ctx.user_id)
    return {"user_id": subscription.user_id, "plan_name": subscription.plan_name, "created": created}


@router.post("/session/init")
def init_session(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    identity: Optional[IdentityClient] = Depends(get_identity_client),
    directory: LegacyUserDirectory = Depends(get_user_directory),
) -> dict:
    """Sign-in housekeeping: migrate earlier data, then make sure a subscription exists.

    Both steps are best effort; failures are logged and reported, never raised.
    """
    migration: dict = {"performed": False, "success": True, "migrated_tables": [], "errors": []}
    if ctx.email:
        try:
            outcome = check_and_migrate(db, identity, directory, ctx.user_id, ctx.email)
            migration = {
                "performed": outcome.attempted,
                "success": outcome.success,
                "migrated_tables": outcome.migrated_tables,
                "errors": outcome.errors,
            }
        except Exception:
            db.rollback()
            logger.exception("session_init.migration_failed", extra={"user_id": ctx.user_id})
            migration = {"performed": False, "success": False, "migrated_tables": [], "errors": ["migration_failed"]}

    subscription: dict = {"created": False, "plan_name": None}
    try:
        row, created = ensure_subscription(db, ctx.user_id)
        subscription = {"created": created, "plan_name": row.plan_name}
    except Exception:
        db.rollback()
        logger.exception("session_init.subscription_failed", extra={"user_id": ctx.user_id})

    return {"user_id": ctx.user_id, "migration": migration, "subscription": subscription}
