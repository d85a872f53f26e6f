from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

# Bounded store calls: every Motor operation fails instead of hanging
DB_TIMEOUT_MS = int(os.getenv("DB_TIMEOUT_MS", "5000"))


def _client_options() -> dict:
    return {
        "serverSelectionTimeoutMS": DB_TIMEOUT_MS,
        "connectTimeoutMS": DB_TIMEOUT_MS,
        "socketTimeoutMS": DB_TIMEOUT_MS,
    }


class Database:
    client: AsyncIOMotorClient = None
    db = None
    
    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url, **_client_options())
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")
            
            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise
    
    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")
    
    def get_db(self):
        return self.db
    
    async def _create_indexes(self):
        """Create MongoDB indexes backing the credit invariants."""
        try:
            # One credit account per identity. Sparse: pending accounts
            # created from a payment email have no user_id yet.
            await self.db.credit_accounts.create_index("user_id", unique=True, sparse=True)
            await self.db.credit_accounts.create_index("email", unique=True, sparse=True)
            
            # Credit ledger
            await self.db.credit_transactions.create_index("transaction_id", unique=True)
            await self.db.credit_transactions.create_index([("user_id", 1), ("created_at", -1)])
            
            # Billing collaborator
            await self.db.subscribers.create_index("email", unique=True)
            await self.db.subscribers.create_index("stripe_customer_id", sparse=True)
            
            # Stripe webhook idempotency - duplicate event_id must not process twice
            await self.db.stripe_events.create_index("event_id", unique=True)
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()
