from fastapi import APIRouter, Depends, HTTPException, Request, status, Header
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from typing import Optional
import stripe

from src.database import get_db
from src.payments.service import PaymentEventHandler
from src.payments.stripe_service import StripePaymentService, PaymentGatewayNotConfigured

router = APIRouter()


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db)
):
    """Receive Checkout events and move the matching booking"""

    payload = await request.body()
    try:
        event = StripePaymentService().parse_webhook_event(payload, stripe_signature)
    except PaymentGatewayNotConfigured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment gateway is not configured"
        )
    except (ValueError, stripe.SignatureVerificationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook")

    # Booking transitions block on DB I/O and trip locks
    return await run_in_threadpool(PaymentEventHandler(db).handle, event)
