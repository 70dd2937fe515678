"""
ATOMIC SEQUENCE ALLOCATOR

Provides:
1. Gap-free, monotonically increasing serial ids per counter key
2. Single findOneAndUpdate($inc) per allocation - no read-then-write
3. Bounded retry on transient storage conflicts
4. Guarded administrative reset / sync

Counter documents live in the ``counters`` collection:
    {"_id": "<key>", "seq": <int>, "created_at": ..., "updated_at": ...}
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import AutoReconnect, DuplicateKeyError, OperationFailure
from datetime import datetime
from typing import Dict, Optional
import logging
import asyncio

from core.errors import (
    AllocationFailedError,
    CounterResetRefusedError,
    LedgerValidationError,
)

logger = logging.getLogger(__name__)

COUNTER_COLLECTION = "counters"

# Counter key per entity collection
SERIAL_KEYS: Dict[str, str] = {
    "projects": "projectId",
    "clients": "clientId",
    "employees": "employeeId",
}

# MongoDB WriteConflict
WRITE_CONFLICT_CODE = 112


def is_transient_conflict(error: Exception) -> bool:
    """Errors that are safe to retry because the $inc was not applied"""
    if isinstance(error, DuplicateKeyError):
        # Two first-time upserts on the same key race on the _id index
        return True
    if isinstance(error, OperationFailure):
        return (
            error.code == WRITE_CONFLICT_CODE
            or error.has_error_label("TransientTransactionError")
        )
    return False


def format_serial(prefix: str, seq: int, width: int = 6) -> str:
    """Human-facing display form, e.g. PRJ-000042"""
    return f"{prefix}-{seq:0{width}d}"


class AtomicSequenceAllocator:
    """
    Atomic serial number generator.

    Uses findOneAndUpdate with $inc and upsert so that read and increment are
    one storage operation. Under N concurrent callers on the same key the
    returned values are exactly {v+1 .. v+N}.
    """

    MAX_RETRIES = 5
    RETRY_DELAY_MS = 100  # Base delay in milliseconds

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None
    ):
        self.db = db
        self.collection = db[COUNTER_COLLECTION]
        self.max_retries = max_retries if max_retries is not None else self.MAX_RETRIES
        self.retry_delay_ms = retry_delay_ms if retry_delay_ms is not None else self.RETRY_DELAY_MS

    @staticmethod
    def _check_key(key: str) -> str:
        if not isinstance(key, str) or not key.strip():
            raise LedgerValidationError("Counter key must be a non-empty string", {"key": key})
        return key.strip()

    async def _increment(self, key: str, session=None) -> int:
        now = datetime.utcnow()
        result = await self.collection.find_one_and_update(
            {"_id": key},
            {
                "$inc": {"seq": 1},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now}
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session
        )
        return int(result["seq"])

    async def allocate(self, key: str, session=None) -> int:
        """
        Atomically increment the counter for ``key`` and return the new value.

        A fresh key starts at 0, so the first call returns 1.

        Raises:
            LedgerValidationError: key is empty
            AllocationFailedError: increment not committed after max retries
        """
        key = self._check_key(key)
        last_error = None

        for attempt in range(self.max_retries):
            try:
                seq = await self._increment(key, session=session)
                logger.debug(f"[SEQUENCE] {key} -> {seq}")
                return seq
            except AutoReconnect as e:
                # The $inc may have been applied before the reply was lost.
                # pymongo has already made its single retryable-write attempt.
                logger.error(f"[SEQUENCE] Connection lost while allocating {key}: {e}")
                raise AllocationFailedError(
                    f"Connection lost while allocating a serial for '{key}'",
                    {"key": key, "outcome": "unknown", "last_error": str(e)}
                )
            except Exception as e:
                if not is_transient_conflict(e):
                    raise
                last_error = e
                logger.warning(f"[SEQUENCE] Conflict on {key}, retry {attempt + 1}/{self.max_retries}: {e}")
                await asyncio.sleep(self.retry_delay_ms * (attempt + 1) / 1000)

        logger.error(f"[SEQUENCE] Allocation failed for {key} after {self.max_retries} attempts")
        raise AllocationFailedError(
            f"Failed to allocate a serial for '{key}' after {self.max_retries} attempts",
            {"key": key, "outcome": "not_applied", "last_error": str(last_error)}
        )

    async def current(self, key: str) -> int:
        """Current cursor for ``key`` (0 if the counter was never used). Read only."""
        key = self._check_key(key)
        counter = await self.collection.find_one({"_id": key})
        return int(counter["seq"]) if counter else 0

    async def list_counters(self) -> Dict[str, int]:
        counters = await self.collection.find({}, sort=[("_id", 1)]).to_list(length=None)
        return {c["_id"]: int(c.get("seq", 0)) for c in counters}

    async def sync_to_collection(self, key: str, collection_name: str, field: str = "serial_id") -> int:
        """
        Raise the counter to the largest ``field`` already present in
        ``collection_name``. Uses $max so the cursor never goes down.
        """
        key = self._check_key(key)
        highest = await self.db[collection_name].find_one(
            {field: {"$exists": True, "$ne": None}},
            sort=[(field, -1)]
        )
        highest_seq = int(highest[field]) if highest else 0

        now = datetime.utcnow()
        result = await self.collection.find_one_and_update(
            {"_id": key},
            {
                "$max": {"seq": highest_seq},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now}
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        logger.info(f"[SEQUENCE] Synced {key} to {collection_name}.{field}: seq={result['seq']}")
        return int(result["seq"])

    async def reset(self, key: str, collection_name: str) -> int:
        """
        Zero the counter for ``key``.

        Refuses unless ``collection_name`` is empty: resetting while entities
        still carry issued serials would hand the same numbers out again.
        """
        key = self._check_key(key)
        remaining = await self.db[collection_name].count_documents({})
        if remaining:
            raise CounterResetRefusedError(
                f"Refusing to reset '{key}': collection '{collection_name}' still holds {remaining} documents",
                {"key": key, "collection": collection_name, "documents": remaining}
            )

        await self.collection.update_one(
            {"_id": key},
            {
                "$set": {"seq": 0, "updated_at": datetime.utcnow()},
                "$setOnInsert": {"created_at": datetime.utcnow()}
            },
            upsert=True
        )
        logger.warning(f"[SEQUENCE] Counter {key} reset to 0 ({collection_name} is empty)")
        return 0

    async def insert_with_serial(
        self,
        collection_name: str,
        document: Dict,
        key: Optional[str] = None,
        client=None
    ) -> Dict:
        """
        Allocate the next serial for ``collection_name`` and persist ``document``.

        With a client, allocation and insert share one transaction so a failed
        insert rolls the counter back. Without one, a failed insert leaves a gap
        that is logged for reconciliation.
        """
        key = key or SERIAL_KEYS[collection_name]

        if client is not None:
            async with await client.start_session() as session:
                async with session.start_transaction():
                    document["serial_id"] = await self.allocate(key, session=session)
                    await self.db[collection_name].insert_one(document, session=session)
            return document

        document["serial_id"] = await self.allocate(key)
        try:
            await self.db[collection_name].insert_one(document)
        except Exception as e:
            logger.error(
                f"[SEQUENCE] Serial {document['serial_id']} for {key} was issued but the "
                f"{collection_name} insert failed: {str(e)}"
            )
            raise
        return document

    async def create_unique_constraints(self):
        """
        Create unique indexes on serial ids so a duplicate can never persist.
        """
        try:
            for collection_name in SERIAL_KEYS:
                await self.db[collection_name].create_index(
                    [("serial_id", 1)],
                    unique=True,
                    name=f"unique_{collection_name}_serial_id"
                )
            logger.info("Created unique serial id constraints")
        except Exception as e:
            logger.warning(f"Index creation result: {str(e)}")
