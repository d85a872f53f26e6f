"""SolveNote Credit Service

Handles all credit operations:
- Account fetch-or-create (one account per user)
- Lazy daily reset back to the allowance
- Atomic single-credit decrement
- Unlimited grant on payment
- Ledger recording

Every balance mutation is a single conditional MongoDB update, so concurrent
requests for the same user can never drive the balance below zero.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple, Callable
from zoneinfo import ZoneInfo
import logging

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import database
from solvenote.models.credits import (
    CreditAccount,
    CreditTransaction,
    CreditTransactionType,
    UseCreditResult,
    DEFAULT_DAILY_CREDITS,
    CREDIT_RESET_TIMEZONE,
)

logger = logging.getLogger(__name__)

NO_ID = {"_id": 0}


class CreditStoreError(Exception):
    """Credit store unreachable or failed. Surfaced as a 5xx."""
    pass


def _as_utc(value: datetime) -> datetime:
    # Motor returns naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(now: datetime, tz_name: str = CREDIT_RESET_TIMEZONE) -> datetime:
    """Midnight of the current calendar day in tz_name, expressed in UTC."""
    local = _as_utc(now).astimezone(ZoneInfo(tz_name))
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


def is_reset_due(
    last_reset_at: Optional[datetime],
    now: datetime,
    tz_name: str = CREDIT_RESET_TIMEZONE,
) -> bool:
    """True when the last reset happened before today's boundary."""
    if last_reset_at is None:
        return True
    return _as_utc(last_reset_at) < start_of_day(now, tz_name)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


def _identity_filter(identifier: str) -> Tuple[str, str]:
    """Grant targets are either an email (contains @) or a user id."""
    if "@" in identifier:
        return "email", normalize_email(identifier)
    return "user_id", identifier


class CreditService:
    """Credit accounting and entitlement service."""
    
    def __init__(
        self,
        reset_timezone: str = CREDIT_RESET_TIMEZONE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.reset_timezone = reset_timezone
        self._clock = clock or (lambda: datetime.now(timezone.utc))
    
    def _get_db(self):
        return database.get_db()
    
    # =========================================================================
    # Accounts
    # =========================================================================
    
    async def get_or_create(self, user_id: str, email: Optional[str] = None) -> CreditAccount:
        """Return the user's account, creating it with the daily allowance if absent.
        
        A pending account (created by a payment for this email before the
        user ever signed in) is claimed instead of creating a new one.
        The unique user_id index arbitrates concurrent creation.
        """
        db = self._get_db()
        email = normalize_email(email)
        
        try:
            for _ in range(2):
                doc = await db.credit_accounts.find_one({"user_id": user_id}, NO_ID)
                if doc:
                    if email and not doc.get("email"):
                        doc = await self._attach_email(db, doc, email)
                    return CreditAccount(**doc)
                
                now = self._clock()
                if email:
                    claimed = await db.credit_accounts.find_one_and_update(
                        {"email": email, "user_id": {"$exists": False}},
                        {"$set": {"user_id": user_id, "updated_at": now}},
                        projection=NO_ID,
                        return_document=ReturnDocument.AFTER,
                    )
                    if claimed:
                        logger.info(f"User {user_id} claimed pending credit account for {email}")
                        return CreditAccount(**claimed)
                
                account = CreditAccount(
                    user_id=user_id,
                    email=email,
                    last_reset_at=now,
                    created_at=now,
                    updated_at=now,
                )
                try:
                    await db.credit_accounts.insert_one(account.model_dump(exclude_none=True))
                    logger.info(f"Created credit account for user {user_id} with {account.credits_remaining} credits")
                    return account
                except DuplicateKeyError:
                    logger.info(f"Credit account for user {user_id} created concurrently, re-fetching")
        except PyMongoError as e:
            logger.error(f"Credit store error loading account for user {user_id}: {e}")
            raise CreditStoreError(str(e)) from e
        
        raise CreditStoreError(f"Could not create credit account for user {user_id}")
    
    async def _attach_email(self, db, doc: Dict[str, Any], email: str) -> Dict[str, Any]:
        """Back-fill the email of an account created without one.
        
        If a payment already created a pending account for that email, its
        entitlement is folded into this account and the pending one removed.
        """
        user_id = doc["user_id"]
        pending_filter = {"email": email, "user_id": {"$exists": False}}
        
        pending = await db.credit_accounts.find_one(pending_filter, NO_ID)
        if pending:
            # The paid grant lands on this account before the pending one goes away
            if pending.get("is_unlimited") and not doc.get("is_unlimited"):
                granted = await db.credit_accounts.find_one_and_update(
                    {"user_id": user_id},
                    {"$set": {"is_unlimited": True, "updated_at": self._clock()}},
                    projection=NO_ID,
                    return_document=ReturnDocument.AFTER,
                )
                doc = granted or doc
            await db.credit_accounts.delete_one(pending_filter)
            logger.info(f"Merged pending credit account for {email} into user {user_id}")
        
        updates: Dict[str, Any] = {"email": email, "updated_at": self._clock()}
        
        try:
            merged = await db.credit_accounts.find_one_and_update(
                {"user_id": user_id},
                {"$set": updates},
                projection=NO_ID,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Email already belongs to another signed-in account
            logger.warning(f"Email {email} already attached to another credit account; leaving user {user_id} unchanged")
            return doc
        return merged or doc
    
    async def reset_if_due(self, user_id: str) -> bool:
        """Refill the allowance if the last reset predates today's boundary.
        
        Single conditional update: a second call on the same day matches
        nothing, so no credits are re-granted. Returns whether a reset happened.
        """
        db = self._get_db()
        now = self._clock()
        day_start = start_of_day(now, self.reset_timezone)
        
        try:
            before = await db.credit_accounts.find_one_and_update(
                {
                    "user_id": user_id,
                    "$or": [
                        {"last_reset_at": {"$lt": day_start}},
                        {"last_reset_at": None},
                    ],
                },
                {
                    "$set": {
                        "credits_remaining": DEFAULT_DAILY_CREDITS,
                        "last_reset_at": now,
                        "updated_at": now,
                    }
                },
                projection=NO_ID,
                return_document=ReturnDocument.BEFORE,
            )
        except PyMongoError as e:
            logger.error(f"Credit store error during daily reset for user {user_id}: {e}")
            raise CreditStoreError(str(e)) from e
        
        if not before:
            return False
        
        logger.info(f"Daily credits reset for user {user_id}")
        await self._record_transaction(
            CreditTransaction(
                user_id=user_id,
                transaction_type=CreditTransactionType.DAILY_RESET,
                amount=DEFAULT_DAILY_CREDITS - before.get("credits_remaining", 0),
                balance_after=DEFAULT_DAILY_CREDITS,
                description=f"Daily allowance restored to {DEFAULT_DAILY_CREDITS} credits",
                created_at=now,
            )
        )
        return True
    
    async def get_credits(self, user_id: str, email: Optional[str] = None) -> CreditAccount:
        """Current account state, with today's reset applied first."""
        await self.reset_if_due(user_id)
        return await self.get_or_create(user_id, email)
    
    # =========================================================================
    # Usage
    # =========================================================================
    
    async def use_credit(self, user_id: str, email: Optional[str] = None) -> UseCreditResult:
        """Spend one credit.
        
        Unlimited accounts succeed without mutation. The decrement only
        applies while the stored balance is still positive, so two requests
        racing for the last credit yield exactly one success.
        """
        account = await self.get_credits(user_id, email)
        
        if account.is_unlimited:
            logger.info(f"User {user_id} has unlimited credits")
            return UseCreditResult(
                success=True,
                credits_remaining=account.credits_remaining,
                is_unlimited=True,
            )
        
        if account.credits_remaining <= 0:
            logger.info(f"No credits remaining for user {user_id}")
            return UseCreditResult(success=False, credits_remaining=0, is_unlimited=False)
        
        db = self._get_db()
        now = self._clock()
        try:
            updated = await db.credit_accounts.find_one_and_update(
                {
                    "user_id": user_id,
                    "is_unlimited": False,
                    "credits_remaining": {"$gt": 0},
                },
                {
                    "$inc": {"credits_remaining": -1},
                    "$set": {"updated_at": now},
                },
                projection=NO_ID,
                return_document=ReturnDocument.AFTER,
            )
            if not updated:
                # Lost the race for the last credit, or a grant landed in between
                current = await db.credit_accounts.find_one({"user_id": user_id}, NO_ID)
        except PyMongoError as e:
            logger.error(f"Credit store error using credit for user {user_id}: {e}")
            raise CreditStoreError(str(e)) from e
        
        if not updated:
            if current and current.get("is_unlimited"):
                return UseCreditResult(
                    success=True,
                    credits_remaining=current.get("credits_remaining", 0),
                    is_unlimited=True,
                )
            logger.info(f"No credits remaining for user {user_id} (concurrent use)")
            return UseCreditResult(success=False, credits_remaining=0, is_unlimited=False)
        
        remaining = updated["credits_remaining"]
        logger.info(f"Credit used by user {user_id}. Remaining: {remaining}")
        await self._record_transaction(
            CreditTransaction(
                user_id=user_id,
                transaction_type=CreditTransactionType.USAGE,
                amount=-1,
                balance_after=remaining,
                description="Suggestion request",
                created_at=now,
            )
        )
        return UseCreditResult(success=True, credits_remaining=remaining, is_unlimited=False)
    
    # =========================================================================
    # Entitlement
    # =========================================================================
    
    async def grant_unlimited(self, identifier: str) -> CreditAccount:
        """Mark the account for an email or user id as unlimited.
        
        Creates the account first if absent (pending when keyed by email).
        Idempotent: an already unlimited account is returned untouched, and
        credits_remaining of an existing account is never altered.
        """
        db = self._get_db()
        field, value = _identity_filter(identifier)
        if not value:
            raise ValueError("Grant target is required")
        
        now = self._clock()
        update = {
            "$set": {"is_unlimited": True, "updated_at": now},
            "$setOnInsert": {
                "credits_remaining": DEFAULT_DAILY_CREDITS,
                "last_reset_at": now,
                "created_at": now,
            },
        }
        
        try:
            existing = await db.credit_accounts.find_one({field: value}, NO_ID)
            if existing and existing.get("is_unlimited"):
                logger.info(f"Credit account for {value} is already unlimited")
                return CreditAccount(**existing)
            
            try:
                doc = await db.credit_accounts.find_one_and_update(
                    {field: value},
                    update,
                    projection=NO_ID,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                # Concurrent upsert for the same identity; match the inserted document
                doc = await db.credit_accounts.find_one_and_update(
                    {field: value},
                    {"$set": update["$set"]},
                    projection=NO_ID,
                    return_document=ReturnDocument.AFTER,
                )
        except PyMongoError as e:
            logger.error(f"Credit store error granting unlimited credits to {value}: {e}")
            raise CreditStoreError(str(e)) from e
        
        if not doc:
            raise CreditStoreError(f"Unlimited grant for {value} matched no account")
        
        logger.info(f"Granted unlimited credits to {value}")
        await self._record_transaction(
            CreditTransaction(
                user_id=doc.get("user_id"),
                email=doc.get("email"),
                transaction_type=CreditTransactionType.UNLIMITED_GRANT,
                amount=0,
                balance_after=doc.get("credits_remaining", 0),
                description="Unlimited credits granted",
                reference_id=value,
                created_at=now,
            )
        )
        return CreditAccount(**doc)
    
    # =========================================================================
    # Ledger
    # =========================================================================
    
    async def _record_transaction(self, transaction: CreditTransaction) -> None:
        """Append a ledger entry. Bookkeeping only: never fails the caller."""
        db = self._get_db()
        try:
            await db.credit_transactions.insert_one(transaction.model_dump())
        except PyMongoError as e:
            logger.warning(
                f"Failed to record {transaction.transaction_type.value} transaction "
                f"for user {transaction.user_id}: {e}"
            )
    
    async def get_transaction_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Get credit ledger entries for a user, newest first."""
        db = self._get_db()
        try:
            cursor = db.credit_transactions.find(
                {"user_id": user_id},
                NO_ID,
            ).sort("created_at", -1).skip(offset).limit(limit)
            return await cursor.to_list(limit)
        except PyMongoError as e:
            logger.error(f"Credit store error reading history for user {user_id}: {e}")
            raise CreditStoreError(str(e)) from e


# Global service instance
credit_service = CreditService()
