#!/usr/bin/env python3
"""
Sequence counter administration.

Usage:
    python manage_counters.py show
    python manage_counters.py sync [--key projectId]
    python manage_counters.py reset --key projectId

``sync`` raises each counter to the highest serial id already stored in its
collection. ``reset`` zeroes a counter and is refused while its collection
still holds documents.
"""

import argparse
import asyncio
import logging
import sys

from motor.motor_asyncio import AsyncIOMotorClient

import config
from core.atomic_numbering import AtomicSequenceAllocator, SERIAL_KEYS
from core.errors import LedgerError
from database import build_allocator

logger = logging.getLogger(__name__)

COLLECTION_BY_KEY = {key: collection for collection, key in SERIAL_KEYS.items()}


async def _show(allocator: AtomicSequenceAllocator, args) -> int:
    counters = await allocator.list_counters()
    if not counters:
        print("No counters yet")
        return 0
    for key, seq in counters.items():
        print(f"{key:<16} {seq}")
    return 0


async def _sync(allocator: AtomicSequenceAllocator, args) -> int:
    keys = [args.key] if args.key else list(COLLECTION_BY_KEY)
    for key in keys:
        seq = await allocator.sync_to_collection(key, COLLECTION_BY_KEY[key])
        print(f"{key:<16} {seq}")
    return 0


async def _reset(allocator: AtomicSequenceAllocator, args) -> int:
    await allocator.reset(args.key, COLLECTION_BY_KEY[args.key])
    print(f"{args.key} reset to 0")
    return 0


async def run(args) -> int:
    client = AsyncIOMotorClient(config.MONGO_URL)
    allocator = build_allocator(client[config.DB_NAME])
    try:
        return await args.func(allocator, args)
    except LedgerError as e:
        print(f"Error [{e.kind}]: {e.message}", file=sys.stderr)
        return 1
    finally:
        client.close()


def main() -> int:
    logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = argparse.ArgumentParser(
        description="Manage serial id counters",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")
    subparsers.required = True

    show_parser = subparsers.add_parser("show", help="Print every counter and its current value")
    show_parser.set_defaults(func=_show)

    sync_parser = subparsers.add_parser("sync", help="Raise counters to the highest stored serial id")
    sync_parser.add_argument("--key", choices=sorted(COLLECTION_BY_KEY), help="Only sync this counter")
    sync_parser.set_defaults(func=_sync)

    reset_parser = subparsers.add_parser("reset", help="Zero a counter whose collection is empty")
    reset_parser.add_argument("--key", required=True, choices=sorted(COLLECTION_BY_KEY))
    reset_parser.set_defaults(func=_reset)

    args = parser.parse_args()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
