from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError
from dotenv import load_dotenv
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

# (collection, keys, options)
INDEXES = [
    # Users: email login, admin customer list
    ("users", "user_id", {"unique": True}),
    ("users", "email", {"unique": True}),
    ("users", [("role", 1), ("deleted_at", 1), ("created_at", -1)], {}),

    # Packages: storefront listing, active and newest first
    ("packages", "package_id", {"unique": True}),
    ("packages", [("deleted_at", 1), ("created_at", -1)], {}),

    # Orders: customer history, admin fulfilment queue, sold counts
    ("orders", "order_id", {"unique": True}),
    ("orders", [("user_id", 1), ("created_at", -1)], {}),
    ("orders", [("payment_status", 1), ("order_status", 1), ("created_at", -1)], {}),
    ("orders", "package_id", {}),

    # Webhook ledger
    ("payment_notifications", [("order_id", 1), ("received_at", -1)], {}),

    # Audit history per resource
    ("audit_logs", [("resource_type", 1), ("resource_id", 1), ("timestamp", -1)], {}),
    ("audit_logs", [("action", 1), ("timestamp", -1)], {}),

    # Outgoing email log
    ("message_logs", [("order_id", 1), ("created_at", -1)], {}),
]


def _connection_settings():
    return os.environ['MONGO_URL'], os.environ['DB_NAME']


class Database:
    client: AsyncIOMotorClient = None
    db = None
    
    async def connect(self):
        mongo_url, db_name = _connection_settings()
        try:
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[db_name]
            await self.db.command("ping")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise
        logger.info(f"Connected to MongoDB: {db_name}")
        await self.ensure_indexes()
    
    async def close(self):
        if self.client:
            self.client.close()
            self.client = None
            logger.info("MongoDB connection closed")
    
    def get_db(self):
        return self.db
    
    async def ensure_indexes(self):
        """Create the indexes the services query by. Conflicts with existing indexes are logged."""
        for collection, keys, options in INDEXES:
            try:
                await self.db[collection].create_index(keys, **options)
            except PyMongoError as e:
                logger.warning(f"Index on {collection} {keys} not created: {e}")
        logger.info(f"MongoDB indexes verified ({len(INDEXES)})")

# Global database instance
database = Database()

@asynccontextmanager
async def get_db_context():
    """Standalone database handle for scripts run outside the API process.
    
        async with get_db_context() as db:
            await db.users.find_one(...)
    """
    mongo_url, db_name = _connection_settings()
    client = AsyncIOMotorClient(mongo_url)
    try:
        db = client[db_name]
        await db.command("ping")
        logger.info(f"Script connected to MongoDB: {db_name}")
        yield db
    finally:
        client.close()
