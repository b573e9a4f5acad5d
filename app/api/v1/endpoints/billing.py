import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.logging import get_logger
from app.db.session import get_db
from app.schemas.billing import CheckoutRequest, CheckoutResponse
from app.services.billing import (
    BillingClient,
    apply_billing_event,
    create_checkout_session,
    get_billing_client,
    verify_webhook_signature,
)
from app.services.mode import ServiceMode, get_service_mode

router = APIRouter(tags=["billing"])
logger = get_logger(__name__)
settings = get_settings()


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    client: BillingClient = Depends(get_billing_client),
    mode: ServiceMode = Depends(get_service_mode),
) -> dict:
    if not payload.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id_required")
    if not payload.user_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_email_required")
    if not payload.plan_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="plan_name_required")

    return create_checkout_session(db, client, mode, payload.user_id, payload.user_email, payload.plan_name)


async def raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/webhooks/billing")
def billing_webhook(
    body: bytes = Depends(raw_body),
    creem_signature: Optional[str] = Header(default=None, alias="creem-signature"),
    db: Session = Depends(get_db),
) -> dict:
    if settings.billing_webhook_secret and not verify_webhook_signature(
        settings.billing_webhook_secret, body, creem_signature
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_signature")

    try:
        payload = json.loads(body or b"{}")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_json") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_json")

    logger.info("billing_webhook.received", extra={"event_type": payload.get("eventType")})
    return apply_billing_event(db, payload)
