import logging
import time
from typing import Dict, Optional

import httpx

from config import config
from domain.errors import PaymentError
from domain.models import PaymentRecord, utcnow
from ..interfaces import CustomerInfo, PaymentCallback, PaymentIntent, PaymentProvider

logger = logging.getLogger(__name__)

# diagnostic fee charged up front, LKR
DIAGNOSTIC_FEES: Dict[str, float] = {
    "engine_repair": 2500,
    "hull_repair": 3000,
    "electrical_repair": 2000,
    "maintenance": 1500,
    "emergency": 5000,
    "other": 2000,
}


def get_diagnostic_fee(service_type: Optional[str]) -> float:
    return DIAGNOSTIC_FEES.get(service_type or "", DIAGNOSTIC_FEES["other"])


class PaymentDelegate(PaymentProvider):
    # the card form itself lives in the frontend (stripe elements), we only
    # create the intent on the marketplace backend and take the success callback

    def __init__(
        self,
        token: str,
        api_url: str = None,
        currency: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.token = token
        self.api_url = (api_url or config.repair_api.url).rstrip("/")
        self.currency = currency or config.payment.currency
        self.timeout = timeout or config.repair_api.timeout
        self._transport = transport

    async def create_payment_intent(
        self, amount: float, service_description: str, customer: CustomerInfo
    ) -> PaymentIntent:
        if not amount or amount <= 0:
            raise PaymentError("Invalid payment amount")
        if not customer.name or not customer.email:
            raise PaymentError("Missing customer information")

        service_id = f"REPAIR-{int(time.time() * 1000)}"
        payload = {
            "amount": amount,
            "currency": self.currency,
            "serviceType": "boat_repair",
            "serviceId": service_id,
            "serviceDescription": service_description,
            "customerEmail": customer.email,
            "customerName": customer.name,
            "customerPhone": customer.phone,
        }
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_url}/api/payments/create-payment-intent", json=payload, headers=headers
                )
        except httpx.HTTPError as e:
            logger.error(f"Payment intent request failed: {e}")
            raise PaymentError("Could not reach the payment service. Please try again.") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error or not body.get("success"):
            message = body.get("message") or "Failed to create payment intent"
            logger.error(f"Payment intent rejected ({response.status_code}): {message}")
            raise PaymentError(message)

        data = body.get("data") or {}
        logger.info(f"Payment intent created for {service_id} ({amount} {self.currency})")
        return PaymentIntent(
            client_secret=data.get("clientSecret"),
            payment_id=data.get("paymentId"),
            amount=data.get("amount", amount),
            currency=data.get("currency", self.currency),
            service_id=service_id,
            service_description=service_description,
        )

    def handle_success(self, callback: PaymentCallback, intent: Optional[PaymentIntent] = None) -> PaymentRecord:
        # no id, no payment - there's no polling or optimistic completion
        if not callback.payment_intent_id and not callback.payment_id:
            raise PaymentError("Payment callback did not include a payment identifier")

        amount = callback.amount if callback.amount is not None else (intent.amount if intent else None)
        return PaymentRecord(
            payment_id=callback.payment_id or (intent.payment_id if intent else None),
            stripe_payment_intent_id=callback.payment_intent_id,
            amount=amount,
            currency=intent.currency if intent else self.currency,
            status="paid",
            paid_at=utcnow(),
        )
