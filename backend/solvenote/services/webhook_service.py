"""SolveNote Payment Webhook Service

Handles Stripe payment notifications:
1. Signature verification when STRIPE_WEBHOOK_SECRET is set
2. Idempotency: an event id already PROCESSED is acknowledged, not replayed.
   Only events that change state are recorded in stripe_events
3. checkout.session.completed grants unlimited credits to the payer email
   and marks the subscriber premium
4. Every other event type is acknowledged and ignored

The credit grant is the correctness-critical effect. Subscriber bookkeeping
failures are logged and never undo or block it.
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional
import json
import logging
import os

import stripe
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import database
from solvenote.services.credit_service import (
    CreditStoreError,
    credit_service,
    normalize_email,
)
from solvenote.services.subscription_service import subscription_service

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


class MalformedEventError(Exception):
    """Webhook body is not a well-formed event."""
    pass


class WebhookSignatureError(Exception):
    """Stripe-Signature header does not match the payload."""
    pass


def _get_webhook_secret() -> str:
    return (os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip()


def _customer_id(session: Dict[str, Any]) -> Optional[str]:
    customer = session.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    return customer if isinstance(customer, str) else None


def _session(event: Dict[str, Any]) -> Dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def _payer_email(session: Dict[str, Any]) -> Optional[str]:
    """Payer email of a checkout session, from customer_details or customer_email."""
    customer_details = session.get("customer_details")
    if customer_details is None:
        customer_details = {}
    elif not isinstance(customer_details, dict):
        raise MalformedEventError("customer_details must be an object")
    
    for value in (customer_details.get("email"), session.get("customer_email")):
        if value is not None and not isinstance(value, str):
            raise MalformedEventError("Customer email must be a string")
    return normalize_email(customer_details.get("email") or session.get("customer_email"))


class PaymentWebhookService:
    """Stripe webhook handler with idempotency."""
    
    def _get_db(self):
        return database.get_db()
    
    # =========================================================================
    # Event Processing Entry Point
    # =========================================================================
    
    async def process_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify, parse and dispatch one webhook delivery.
        
        Raises WebhookSignatureError / MalformedEventError for bodies that must
        be rejected, CreditStoreError when the grant could not be persisted.
        """
        self._verify_signature(payload, signature)
        event = self._parse_event(payload)
        
        event_id = event.get("id")
        event_type = event["type"]
        logger.info("WEBHOOK_RECEIVED event_id=%s event_type=%s", event_id, event_type)
        
        db = self._get_db()
        if not self._acts_on(event):
            return await self._handle_event(event)
        
        if event_id:
            try:
                existing = await db.stripe_events.find_one({"event_id": event_id}, {"_id": 0})
                if existing and existing.get("status") == "PROCESSED":
                    logger.info(f"Event {event_id} already processed - skipping")
                    return {"handled": False, "duplicate": True, "event_id": event_id}
                await self._record_event_start(db, event_id, event_type, existing)
            except DuplicateKeyError:
                logger.info(f"Event {event_id} duplicate insert (race) - skipping")
                return {"handled": False, "duplicate": True, "event_id": event_id}
            except PyMongoError as e:
                raise CreditStoreError(str(e)) from e
        
        try:
            result = await self._handle_event(event)
        except CreditStoreError as e:
            logger.error(
                "WEBHOOK_PROCESSING_FAILED event_id=%s event_type=%s error=%s",
                event_id, event_type, str(e),
            )
            await self._record_event_end(db, event_id, "FAILED", str(e))
            raise
        
        await self._record_event_end(db, event_id, "PROCESSED")
        logger.info("WEBHOOK_PROCESSED_OK event_id=%s event_type=%s", event_id, event_type)
        return result
    
    def _verify_signature(self, payload: bytes, signature: Optional[str]) -> None:
        webhook_secret = _get_webhook_secret()
        if not webhook_secret:
            # Development mode - accept without verification
            logger.warning("STRIPE_WEBHOOK_SECRET not set - skipping signature verification")
            return
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature or "", webhook_secret
            )
        except UnicodeDecodeError as e:
            raise MalformedEventError("Payload is not UTF-8") from e
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError(str(e)) from e
    
    def _parse_event(self, payload: bytes) -> Dict[str, Any]:
        try:
            event = json.loads(payload)
        except ValueError as e:
            logger.error(f"Webhook parse error: {e}")
            raise MalformedEventError(str(e)) from e
        
        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            logger.error("Webhook parse error: body is not an event object")
            raise MalformedEventError("Event type is required")
        
        data = event.get("data")
        if data is not None and not isinstance(data, dict):
            logger.error("Webhook parse error: data is not an object")
            raise MalformedEventError("Event data must be an object")
        session = (data or {}).get("object")
        if session is not None and not isinstance(session, dict):
            logger.error("Webhook parse error: data.object is not an object")
            raise MalformedEventError("Event data.object must be an object")
        
        if event["type"] == CHECKOUT_COMPLETED:
            try:
                _payer_email(session or {})
            except MalformedEventError as e:
                logger.error(f"Webhook parse error: {e}")
                raise
        return event
    
    def _acts_on(self, event: Dict[str, Any]) -> bool:
        """Only a checkout with a payer email changes state; nothing else is recorded."""
        return event["type"] == CHECKOUT_COMPLETED and _payer_email(_session(event)) is not None
    
    async def _record_event_start(self, db, event_id: str, event_type: str, existing) -> None:
        record = {
            "event_id": event_id,
            "type": event_type,
            "created": datetime.now(timezone.utc),
            "processed_at": None,
            "status": "PROCESSING",
            "error": None,
        }
        if existing:
            await db.stripe_events.update_one({"event_id": event_id}, {"$set": record})
        else:
            await db.stripe_events.insert_one(record)
    
    async def _record_event_end(self, db, event_id: Optional[str], status: str, error: Optional[str] = None) -> None:
        if not event_id:
            return
        try:
            await db.stripe_events.update_one(
                {"event_id": event_id},
                {
                    "$set": {
                        "status": status,
                        "processed_at": datetime.now(timezone.utc),
                        "error": error,
                    }
                },
            )
        except PyMongoError as e:
            logger.warning(f"Failed to mark event {event_id} {status}: {e}")
    
    # =========================================================================
    # Event Handlers
    # =========================================================================
    
    async def _handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Route event to appropriate handler."""
        event_type = event.get("type")
        data = _session(event)
        
        handlers = {
            CHECKOUT_COMPLETED: self._handle_checkout_completed,
        }
        
        handler = handlers.get(event_type)
        if handler:
            return await handler(data)
        
        logger.info(f"Ignoring unhandled event type: {event_type}")
        return {"handled": False, "event_type": event_type}
    
    async def _handle_checkout_completed(self, session: Dict[str, Any]) -> Dict[str, Any]:
        """Grant unlimited credits to the payer and mark them premium."""
        email = _payer_email(session)
        logger.info(f"Checkout session completed session_id={session.get('id')} customer_email={email}")
        
        if not email:
            logger.warning("Checkout session has no customer email - nothing to grant")
            return {"handled": False, "reason": "no_email"}
        
        await credit_service.grant_unlimited(email)
        
        subscription_updated = True
        try:
            await subscription_service.mark_premium(email, _customer_id(session))
        except Exception as e:
            subscription_updated = False
            logger.error(f"ERROR updating subscriber {email}: {e}")
        
        return {"handled": True, "email": email, "subscription_updated": subscription_updated}


# Global service instance
payment_webhook_service = PaymentWebhookService()
