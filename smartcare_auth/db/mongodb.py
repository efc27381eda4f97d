import logging

from motor.motor_asyncio import AsyncIOMotorClient
from smartcare_auth.core.config import settings

logger = logging.getLogger(__name__)


class MongoDB:
    client: AsyncIOMotorClient = None

mongodb = MongoDB()


# 🔹 Return database object
async def get_database():
    return mongodb.client[settings.MONGO_DB_NAME]


# 🔹 Connect MongoDB (called on startup)
async def connect_to_mongo():
    mongodb.client = AsyncIOMotorClient(settings.MONGO_URI)
    logger.info("📌 Connected to MongoDB at %s", settings.MONGO_URI)


# 🔹 Close connection (shutdown)
async def close_mongo_connection():
    if mongodb.client is not None:
        mongodb.client.close()
        mongodb.client = None
    logger.info("❌ MongoDB Connection Closed")


def get_client():
    """Return raw MongoDB client"""
    return mongodb.client


async def ensure_indexes(db):
    """Create the indexes the approval flow relies on (run at startup)."""
    await db.devices.create_index([("user_id", 1), ("device_id", 1)], unique=True)
    await db.devices.create_index([("user_id", 1), ("trusted", 1), ("last_used", -1)])
    await db.login_requests.create_index([("user_id", 1), ("device_id", 1)])
    await db.login_requests.create_index([("status", 1), ("device_trust_applied", 1)])
    await db.suspicious_logins.create_index([("user_id", 1), ("status", 1), ("timestamp", -1)])
