#!/usr/bin/env python3
"""
MIGRATION SCRIPT: Sequence counters and serial ids

Creates:
1. Unique serial_id indexes on projects, clients and employees
2. Query indexes used by project lists and reports
3. Counters synced to the highest serial id already stored (never lowered)

Run: python migrations/001_sequence_counters.py
"""

import asyncio
import os
import sys
from datetime import datetime

# Run from the migrations directory with the backend modules importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from motor.motor_asyncio import AsyncIOMotorClient

import config
from core.atomic_numbering import SERIAL_KEYS
from database import build_allocator, create_indexes

MIGRATION_ID = "001_sequence_counters"


async def run_migration():
    """Execute the sequence counter migration."""

    print(f"Connecting to: {config.MONGO_URL}")
    print(f"Database: {config.DB_NAME}")

    client = AsyncIOMotorClient(config.MONGO_URL)
    db = client[config.DB_NAME]

    try:
        await client.admin.command('ping')
        print("✓ Connected to MongoDB")

        allocator = build_allocator(db)

        # =====================================================
        # 1. Indexes
        # =====================================================
        await allocator.create_unique_constraints()
        print("✓ Unique serial_id indexes")
        await create_indexes(db)
        print("✓ Query indexes")

        # =====================================================
        # 2. Counter sync
        # =====================================================
        counters = {}
        for collection_name, key in SERIAL_KEYS.items():
            counters[key] = await allocator.sync_to_collection(key, collection_name)
            print(f"✓ {key} synced to {collection_name}: {counters[key]}")

        # =====================================================
        # Migration metadata
        # =====================================================
        await db.migrations.update_one(
            {"migration_id": MIGRATION_ID},
            {"$set": {
                "migration_id": MIGRATION_ID,
                "description": "Sequence counters and unique serial ids",
                "counters": counters,
                "executed_at": datetime.utcnow(),
                "status": "success"
            }},
            upsert=True
        )
        print("\n✓ Migration record saved")

        print("\n" + "=" * 50)
        print("MIGRATION COMPLETE: Sequence counters")
        print("=" * 50)

        return {"status": "success", "counters": counters}

    except Exception as e:
        print(f"\n✗ Migration failed: {str(e)}")
        raise
    finally:
        client.close()


if __name__ == "__main__":
    result = asyncio.run(run_migration())
    print(f"\nResult: {result}")
