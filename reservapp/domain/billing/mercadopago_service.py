"""MercadoPago service - Integration with the MercadoPago REST API"""

import logging
from typing import Any, Optional

import httpx

from ...config import (
    APP_URL,
    MERCADOPAGO_ACCESS_TOKEN,
    MERCADOPAGO_API_URL,
    MERCADOPAGO_BACK_URL,
    MERCADOPAGO_CURRENCY_ID,
    MERCADOPAGO_TEST_PAYER_EMAIL,
    MERCADOPAGO_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


class MercadoPagoError(Exception):
    """Raised when MercadoPago is not configured or answers with an error"""


class MercadoPagoService:
    """Service for MercadoPago API operations"""

    def __init__(self, access_token: Optional[str] = None, base_url: Optional[str] = None):
        self.access_token = access_token or MERCADOPAGO_ACCESS_TOKEN
        self.base_url = (base_url or MERCADOPAGO_API_URL).rstrip("/")

        if not self.access_token:
            logger.warning(
                "MERCADOPAGO_ACCESS_TOKEN not set; billing endpoints will fail until configured"
            )

    def is_available(self) -> bool:
        """Check if MercadoPago credentials are configured"""
        return bool(self.access_token)

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict[str, Any]:
        if not self.access_token:
            raise MercadoPagoError("MercadoPago client not initialized")

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=MERCADOPAGO_TIMEOUT_SECONDS) as client:
                response = await client.request(method, f"{self.base_url}{path}", json=json, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"❌ MercadoPago {method} {path} failed: HTTP {e.response.status_code} {e.response.text[:200]}"
            )
            raise MercadoPagoError(f"MercadoPago returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ MercadoPago {method} {path} request error: {e}")
            raise MercadoPagoError(f"MercadoPago request failed: {e}") from e

    # ============================================================================
    # PREAPPROVALS (recurring subscriptions)
    # ============================================================================

    async def create_subscription_preference(
        self,
        plan_id: int,
        user_id: int,
        plan_price: int,
        plan_name: str,
        payer_email: str,
    ) -> dict:
        """
        Create a monthly preapproval for a plan.

        Returns:
            dict with ``id`` (stored as the subscription preference_id) and ``init_point``
        """
        body = {
            "reason": plan_name,
            "auto_recurring": {
                "frequency": 1,
                "frequency_type": "months",
                "transaction_amount": plan_price,
                "currency_id": MERCADOPAGO_CURRENCY_ID,
            },
            "back_url": MERCADOPAGO_BACK_URL,
            "external_reference": f"{user_id}-{plan_id}",
            "payer_email": MERCADOPAGO_TEST_PAYER_EMAIL or payer_email,
        }
        preapproval = await self._request("POST", "/preapproval", json=body)
        logger.info(f"✅ Subscription preference created: {preapproval.get('id')}")
        return {"id": preapproval.get("id"), "init_point": preapproval.get("init_point")}

    async def get_preapproval(self, preapproval_id: str) -> dict:
        """Fetch preapproval details, including its current status"""
        preapproval = await self._request("GET", f"/preapproval/{preapproval_id}")
        logger.info(f"✅ Fetched preapproval {preapproval_id}: status={preapproval.get('status')}")
        return preapproval

    async def cancel_preapproval(self, preapproval_id: str) -> dict:
        logger.info(f"🔄 Cancelling preapproval: {preapproval_id}")
        result = await self._request("PUT", f"/preapproval/{preapproval_id}", json={"status": "cancelled"})
        logger.info(f"✅ Preapproval cancelled in MercadoPago: {preapproval_id}")
        return result

    async def update_preapproval_amount(self, preapproval_id: str, new_amount: int) -> dict:
        logger.info(f"🔄 Updating preapproval {preapproval_id} amount to {new_amount} {MERCADOPAGO_CURRENCY_ID}")
        return await self._request(
            "PUT",
            f"/preapproval/{preapproval_id}",
            json={
                "auto_recurring": {
                    "transaction_amount": new_amount,
                    "currency_id": MERCADOPAGO_CURRENCY_ID,
                }
            },
        )

    # ============================================================================
    # PAYMENTS
    # ============================================================================

    async def get_payment(self, payment_id: str) -> dict:
        payment = await self._request("GET", f"/v1/payments/{payment_id}")
        logger.info(
            f"✅ Fetched payment {payment_id}: status={payment.get('status')} "
            f"amount={payment.get('transaction_amount')} {payment.get('currency_id')}"
        )
        return payment

    async def create_overdue_payment_preference(
        self, payment_id: int, user_id: int, total_amount: int, plan_name: str
    ) -> dict:
        """
        One-time checkout for an overdue payment including late fees.

        external_reference is "overdue-{payment_id}-{user_id}" so the webhook can
        tell it apart from recurring subscription charges.
        """
        body = {
            "items": [
                {
                    "id": str(payment_id),
                    "title": f"Pago vencido - {plan_name}",
                    "description": "Pago de suscripción con recargo por mora",
                    "quantity": 1,
                    "unit_price": total_amount,
                    "currency_id": MERCADOPAGO_CURRENCY_ID,
                }
            ],
            "external_reference": f"overdue-{payment_id}-{user_id}",
            "back_urls": {
                "success": f"{APP_URL}/subscription/callback/success",
                "failure": f"{APP_URL}/subscription/callback/failure",
                "pending": f"{APP_URL}/subscription/callback/pending",
            },
            "auto_return": "approved",
            "notification_url": f"{APP_URL}/api/webhooks/mercadopago",
        }
        preference = await self._request("POST", "/checkout/preferences", json=body)
        logger.info(f"✅ Overdue payment preference created: {preference.get('id')}")
        return {"id": preference.get("id"), "init_point": preference.get("init_point")}


# Singleton instance
mercadopago_service = MercadoPagoService()
