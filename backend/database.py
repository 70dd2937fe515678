from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional
import logging

import config
from core.atomic_numbering import AtomicSequenceAllocator

logger = logging.getLogger(__name__)

# MongoDB connection
client = AsyncIOMotorClient(config.MONGO_URL)
db = client[config.DB_NAME]


def get_db() -> AsyncIOMotorDatabase:
    """FastAPI dependency; overridden in tests"""
    return db


def get_transaction_client() -> Optional[AsyncIOMotorClient]:
    """Client for multi-document transactions, None when they are disabled"""
    return client if config.MONGO_TRANSACTIONS else None


def build_allocator(database: AsyncIOMotorDatabase) -> AtomicSequenceAllocator:
    """Sequence allocator with the retry policy from the environment"""
    return AtomicSequenceAllocator(
        database,
        max_retries=config.SEQUENCE_MAX_RETRIES,
        retry_delay_ms=config.SEQUENCE_RETRY_DELAY_MS
    )


async def create_indexes(database: AsyncIOMotorDatabase):
    """Secondary indexes used by list and report queries"""
    try:
        await database.projects.create_index([("client_id", 1)], name="idx_project_client")
        await database.projects.create_index([("status", 1), ("is_active", 1)], name="idx_project_status_active")
        await database.projects.create_index([("start_date", 1)], name="idx_project_start_date")
        await database.projects.create_index([("created_at", -1)], name="idx_project_created_at")
        await database.employees.create_index([("email", 1)], unique=True, name="unique_employee_email")
        await database.audit_logs.create_index([("project_id", 1), ("recorded_at", -1)], name="idx_audit_project")
        logger.info("Created query indexes")
    except Exception as e:
        logger.warning(f"Index creation result: {str(e)}")
