import logging
import secrets
from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase

from stemelix import config
from stemelix.errors import Conflict, Internal

logger = logging.getLogger(__name__)


class MongoManager:
    def __init__(self):
        self.client = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        self.client = AsyncIOMotorClient(config.MONGO_URL)
        self.db = self.client[config.MONGO_DB_NAME]
        logger.info("Connected to MongoDB database %s", config.MONGO_DB_NAME)

    async def disconnect(self):
        if self.client:
            self.client.close()
            self.client = None
            self.db = None


manager = MongoManager()


# ==================== DEPENDENCY FUNCTIONS ====================

async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    if manager.db is None:
        raise Internal("Database not configured")
    return manager.db


# ==================== HELPERS ====================

def generate_id(prefix: str) -> str:
    """Generate an authored id with prefix, e.g. CRS_3F9A0C12D4E5B6A7"""
    return f"{prefix}_{secrets.token_hex(8).upper()}"


def serialize_mongo(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


async def replace_versioned(collection: AsyncIOMotorCollection, key: dict, doc: dict) -> dict:
    """
    Replace an aggregate document only if nobody wrote it since it was read.

    ``doc["version"]`` must hold the version that was loaded; on success the
    stored copy carries version + 1. A lost race raises Conflict instead of
    silently overwriting the other writer.
    """
    expected = doc.get("version", 0)
    new_doc = {k: v for k, v in doc.items() if k != "_id"}
    new_doc["version"] = expected + 1
    new_doc["updated_at"] = datetime.utcnow()

    result = await collection.replace_one({**key, "version": expected}, new_doc)
    if result.matched_count == 0:
        logger.warning("Version conflict on %s %s (expected v%s)", collection.name, key, expected)
        raise Conflict(
            "Document was modified concurrently, reload and try again",
            expected_version=expected,
        )
    return new_doc


# ==================== DATABASE INDEXES ====================

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create MongoDB indexes for lookups and uniqueness"""

    # Users
    await db.users.create_index("user_id", unique=True)
    await db.users.create_index("email", unique=True)

    # Courses
    await db.courses.create_index("course_id", unique=True)
    await db.courses.create_index("slug", unique=True)
    await db.courses.create_index([("status", 1), ("featured", -1), ("order", 1)])
    await db.courses.create_index([("category", 1), ("level_number", 1)])

    # Payments
    await db.payments.create_index("payment_id", unique=True)
    await db.payments.create_index("order_id", unique=True)
    await db.payments.create_index([("user_id", 1), ("course_id", 1)])
    await db.payments.create_index([("course_id", 1), ("status", 1)])
    await db.payments.create_index("created_at")

    # Progress
    await db.progress.create_index([("user_id", 1), ("course_id", 1)], unique=True)
    await db.progress.create_index("course_id")

    # Meetings
    await db.meetings.create_index("meeting_id", unique=True)
    await db.meetings.create_index("course_id")
    await db.meetings.create_index("enrolled_students.email")

    # Audit logs
    await db.audit_logs.create_index([("target_type", 1), ("target_id", 1)])
    await db.audit_logs.create_index([("actor_user_id", 1), ("timestamp", -1)])

    logger.info("✅ Database indexes created")
