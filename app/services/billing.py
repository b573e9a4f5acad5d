import hashlib
import hmac
from typing import Optional

import httpx
from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.logging import get_logger
from app.models import SubscriptionPlan
from app.services.audit import write_audit
from app.services.mode import ServiceMode
from app.services.subscription import get_user_subscription, set_subscription_plan

logger = get_logger(__name__)
settings = get_settings()

UPGRADE_EVENTS = {"checkout.completed", "subscription.active", "subscription.paid"}
DOWNGRADE_EVENTS = {"subscription.canceled", "subscription.expired"}


class BillingError(Exception):
    pass


class BillingClient:
    def __init__(self, timeout: float = 10, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.timeout = timeout
        self.transport = transport

    def create_checkout(self, mode: ServiceMode, customer_email: str, product_id: str, metadata: dict) -> dict:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "RedverseApp/1.0.0",
            "x-api-key": mode.billing_api_key,
        }
        body = {"customer": {"email": customer_email}, "product_id": product_id, "metadata": metadata}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(mode.billing_api_url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise BillingError(f"billing_unreachable: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise BillingError(f"billing_status_{response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise BillingError("billing_invalid_body") from exc
        if not isinstance(data, dict):
            raise BillingError("billing_invalid_body")
        return data


def get_billing_client() -> BillingClient:
    return BillingClient(timeout=settings.http_timeout_seconds)


def create_checkout_session(
    db: Session,
    client: BillingClient,
    mode: ServiceMode,
    user_id: str,
    user_email: str,
    plan_name: str,
) -> dict:
    plan = db.scalar(
        select(SubscriptionPlan).where(SubscriptionPlan.plan_name == plan_name, SubscriptionPlan.enable.is_(True))
    )
    if not plan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="plan_not_found")

    product_id = mode.product_id_for(plan)
    if not product_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="product_not_configured")

    metadata = {"userId": user_id, "planName": plan.plan_name, "environment": mode.environment}
    try:
        data = client.create_checkout(mode, user_email, product_id, metadata)
    except BillingError as exc:
        logger.error(
            "checkout.failed",
            extra={"user_id": user_id, "plan_name": plan_name, "environment": mode.environment, "reason": str(exc)},
        )
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="checkout_failed") from exc

    logger.info("checkout.created", extra={"user_id": user_id, "plan_name": plan_name, "checkout_id": data.get("id")})
    return {"success": True, "checkout_url": data.get("checkout_url"), "checkout_id": data.get("id")}


def verify_webhook_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip())


def _string_or_id(value) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("id")
    return value if isinstance(value, str) and value else None


def _product_id(obj: dict) -> Optional[str]:
    product = _string_or_id(obj.get("product"))
    if product:
        return product
    order = obj.get("order")
    if isinstance(order, dict):
        return _string_or_id(order.get("product"))
    return None


def _subscription_id(event_type: str, obj: dict) -> Optional[str]:
    if event_type == "checkout.completed":
        return _string_or_id(obj.get("subscription"))
    return _string_or_id(obj.get("id"))


def plan_for_product(db: Session, product_id: Optional[str]) -> str:
    if not product_id:
        logger.warning("billing_webhook.product_missing")
        return settings.default_plan_name
    plan = db.scalar(
        select(SubscriptionPlan).where(
            or_(SubscriptionPlan.creem_product_id == product_id, SubscriptionPlan.creem_dev_product_id == product_id)
        )
    )
    if not plan:
        logger.warning("billing_webhook.plan_unmatched", extra={"product_id": product_id})
        return settings.default_plan_name
    return plan.plan_name


def apply_billing_event(db: Session, payload: dict) -> dict:
    event_type = payload.get("eventType")
    obj = payload.get("object") or {}
    if not isinstance(obj, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_payload")
    if not isinstance(event_type, str) or event_type not in UPGRADE_EVENTS | DOWNGRADE_EVENTS:
        logger.info("billing_webhook.ignored", extra={"event_type": event_type})
        return {"success": True, "message": "event_type_not_handled"}

    metadata = obj.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_payload")
    user_id = metadata.get("userId") or metadata.get("internal_customer_id")
    if not user_id or not isinstance(user_id, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_user_id")

    if event_type in UPGRADE_EVENTS:
        plan_name = plan_for_product(db, _product_id(obj))
        set_subscription_plan(db, user_id, plan_name, creem_id=_subscription_id(event_type, obj))
    else:
        plan_name = settings.default_plan_name
        if get_user_subscription(db, user_id) is not None:
            set_subscription_plan(db, user_id, plan_name)

    write_audit(db, "billing", f"billing.{event_type}", "user_subscription", user_id, {"plan_name": plan_name})
    db.commit()
    logger.info("billing_webhook.applied", extra={"event_type": event_type, "user_id": user_id, "plan_name": plan_name})
    return {"success": True, "message": f"subscription set to {plan_name} via {event_type}"}
