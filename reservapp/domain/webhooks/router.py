"""
MercadoPago Webhook Handler
Validates x-signature and hands events to WebhookService
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...config import MERCADOPAGO_WEBHOOK_SECRET
from ...database import get_db
from ...webhook_security import should_skip_validation, verify_mercadopago_signature
from .service import HANDLED_EVENTS, WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/mercadopago")
async def handle_mercadopago_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Receive MercadoPago notifications.

    Invalid signatures get 401. Anything else is acknowledged with 200 so the
    provider does not retry application errors; the stored event can be replayed.
    """
    body = await request.body()
    try:
        event = json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("❌ Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON") from None

    if not isinstance(event, dict):
        logger.error(f"❌ Webhook payload is not an object: {type(event).__name__}")
        raise HTTPException(status_code=400, detail="Invalid JSON")

    # Idempotency is keyed on the notification id
    if not str(event.get("id") or "").strip():
        logger.error("❌ Webhook payload without event id")
        raise HTTPException(status_code=400, detail="Missing event id")

    data_id = str((event.get("data") or {}).get("id") or "")
    logger.info(
        f"📥 MercadoPago webhook: id={event.get('id')} type={event.get('type')} "
        f"action={event.get('action')} resource={data_id}"
    )

    if should_skip_validation():
        logger.warning("⚠️ Signature validation skipped (development mode)")
    elif not verify_mercadopago_signature(
        request.headers.get("x-signature"), data_id, str(event.get("type") or "")
    ):
        logger.error("❌ Invalid webhook signature - rejecting")
        raise HTTPException(
            status_code=401,
            detail={"error": "Invalid signature", "message": "Webhook signature validation failed"},
        )

    try:
        result = await WebhookService(db).handle_event(event)
    except Exception as e:
        db.rollback()
        logger.exception(f"❌ Error processing webhook {event.get('id')}: {e}")
        return {"success": False, "message": "Webhook received but processing failed", "error": str(e)}

    return {"success": True, "message": "Webhook received and processed", **result}


@router.get("/mercadopago")
async def webhook_info():
    return {
        "endpoint": "/api/webhooks/mercadopago",
        "method": "POST",
        "description": "MercadoPago webhook receiver",
        "events": HANDLED_EVENTS,
        "security": {"signature_validation": bool(MERCADOPAGO_WEBHOOK_SECRET), "idempotency": True},
    }
