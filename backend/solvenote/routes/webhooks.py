"""SolveNote Stripe Webhook Routes

POST /api/solvenote/webhook/stripe - Stripe payment webhook
POST /api/solvenote/payment-webhook - Alias for the same handler

Any parsed and dispatched event is acknowledged with 200 so Stripe does
not retry a processed payment. Unparsable or badly signed bodies get 400;
a failed credit grant gets 500 so Stripe redelivers it.
"""

from fastapi import APIRouter, HTTPException, Request, Header
from typing import Optional
import logging

from solvenote.services.credit_service import CreditStoreError
from solvenote.services.webhook_service import (
    MalformedEventError,
    WebhookSignatureError,
    payment_webhook_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/solvenote", tags=["SolveNote Webhooks"])


async def _handle_stripe_webhook(request: Request, stripe_signature: Optional[str] = None):
    payload = await request.body()

    try:
        await payment_webhook_service.process_webhook(payload, stripe_signature)
    except MalformedEventError as e:
        raise HTTPException(status_code=400, detail=f"Webhook error: {e}")
    except WebhookSignatureError:
        raise HTTPException(status_code=400, detail="Invalid signature")
    except CreditStoreError as e:
        logger.error(f"Stripe webhook grant failed: {e}")
        raise HTTPException(status_code=500, detail="Credit store unavailable")

    return {"received": True}


@router.post("/webhook/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    """Handle Stripe webhooks at /api/solvenote/webhook/stripe"""
    return await _handle_stripe_webhook(request, stripe_signature)


@router.post("/payment-webhook")
async def payment_webhook_alias(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    """Handle Stripe webhooks at /api/solvenote/payment-webhook (alias)"""
    return await _handle_stripe_webhook(request, stripe_signature)
