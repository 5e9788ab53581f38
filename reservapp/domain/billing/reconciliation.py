"""Subscription reconciliation - map MercadoPago preapproval state onto local subscriptions"""

import logging
from datetime import datetime
from typing import Optional

from ...models import Subscription
from ...utils.dates import add_months, utcnow

logger = logging.getLogger(__name__)

# MercadoPago preapproval status -> local subscription status.
# "pending" and unknown statuses leave the subscription untouched.
PROVIDER_STATUS_MAP = {
    "authorized": "active",
    "paused": "suspended",
    "cancelled": "cancelled",
}


def map_provider_status(provider_status: Optional[str]) -> Optional[str]:
    """Local status for a provider status, or None when no change applies"""
    return PROVIDER_STATUS_MAP.get(provider_status or "")


def apply_provider_status(
    subscription: Subscription, preapproval: dict, now: Optional[datetime] = None
) -> dict:
    """
    Mutate ``subscription`` to reflect ``preapproval``; the caller commits.

    Fields are written only when the mapped status differs from the stored one.

    Returns:
        {"previous_status", "status", "changed"}
    """
    now = now or utcnow()
    previous_status = subscription.status
    mapped = map_provider_status(preapproval.get("status"))
    new_status = mapped or previous_status
    changed = new_status != previous_status

    if changed:
        if new_status == "active":
            period_end = add_months(now, 1)
            subscription.status = "active"
            subscription.mercadopago_sub_id = preapproval.get("id")
            subscription.current_period_start = now
            subscription.current_period_end = period_end
            subscription.next_billing_date = period_end
            subscription.grace_period_end = None
            subscription.cancelled_at = None
            subscription.extra = None
        elif new_status == "suspended":
            subscription.status = "suspended"
        elif new_status == "cancelled":
            subscription.status = "cancelled"
            subscription.cancelled_at = subscription.cancelled_at or now

        logger.info(
            f"🔄 Subscription {subscription.id} reconciled: {previous_status} -> {new_status} "
            f"(provider status {preapproval.get('status')})"
        )

    return {"previous_status": previous_status, "status": new_status, "changed": changed}
