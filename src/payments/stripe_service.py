from decimal import Decimal
from typing import Any, Dict, Optional
import json
import logging

import stripe

from src.config import settings
from src.bookings.schemas import CheckoutSession

logger = logging.getLogger(__name__)


class PaymentGatewayNotConfigured(RuntimeError):
    pass


class StripePaymentService:
    """Thin wrapper around Stripe Checkout and webhook verification"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        public_base_url: Optional[str] = None
    ):
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    def create_checkout_session(
        self,
        amount: Decimal,
        currency: str,
        order_reference: str,
        booking_id: int,
        customer_email: Optional[str] = None
    ) -> CheckoutSession:
        if not self.secret_key:
            raise PaymentGatewayNotConfigured("STRIPE_SECRET_KEY is not set")

        session = stripe.checkout.Session.create(
            api_key=self.secret_key,
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": f"Coach ticket {order_reference}"
                    },
                    "unit_amount": int(Decimal(amount) * 100),  # minor units
                },
                "quantity": 1,
            }],
            mode="payment",
            customer_email=customer_email,
            client_reference_id=order_reference,
            metadata={"order_id": str(booking_id), "order_reference": order_reference},
            success_url=f"{self.public_base_url}/booking/success?ref={order_reference}",
            cancel_url=f"{self.public_base_url}/booking/cancelled?ref={order_reference}",
        )
        logger.info("Created checkout session %s for %s", session.id, order_reference)

        return CheckoutSession(
            order_reference=order_reference,
            checkout_url=session.url,
            payment_reference=session.id
        )

    def parse_webhook_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe signature and return the event as a plain dict"""

        if not self.webhook_secret:
            raise PaymentGatewayNotConfigured("STRIPE_WEBHOOK_SECRET is not set")

        try:
            stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except ValueError as e:
            logger.warning("Invalid webhook payload: %s", e)
            raise
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            raise

        return json.loads(payload)
