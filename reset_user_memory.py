#!/usr/bin/env python3
"""
Reset a user's career memory (account reset).

Shows how many records of each type are stored for the user, then deletes
them all - tracked in-progress items and ingested history alike.

Usage:
    python reset_user_memory.py --user-id u1 --dry-run  # Preview
    python reset_user_memory.py --user-id u1            # Delete
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from collection import CollectionManager
from config import CONFIG, Config
from errors import CareerMemoryError
from memory_store import MemoryStore


class _NoEmbedder:
    """Reset never embeds; refuse loudly if that ever changes."""

    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("reset_user_memory does not compute embeddings")


async def reset_user(user_id: str, dry_run: bool = True, config: Config = CONFIG) -> int:
    """Print the reset plan for ``user_id`` and apply it unless ``dry_run``."""
    if not config.db_path.exists():
        print(f"Error: Database not found at {config.db_path}")
        sys.exit(1)

    print(f"Opening database: {config.db_path} (table '{config.table_name}')")
    store = MemoryStore(CollectionManager(config), _NoEmbedder(), config)
    counts = await store.count_by_type(user_id)
    total = sum(counts.values())

    print("=" * 70)
    print(f"RESET PLAN for user '{user_id}'")
    print("=" * 70)
    if not counts:
        print("\n✓ No records stored for this user")
        return 0

    print()
    for record_type, count in sorted(counts.items()):
        print(f"  {count:4d} {record_type}")
    print(f"\nTotal records to delete: {total}")
    print("\n" + "=" * 70)

    if dry_run:
        print("\n⚠ DRY RUN MODE - No changes applied")
        print("Run without --dry-run to apply")
        return 0

    deleted = await store.delete_all(user_id)
    print(f"\n✓ Reset complete! Deleted {deleted} records")
    return deleted


def main():
    parser = argparse.ArgumentParser(
        description="Delete all career memory stored for one user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python reset_user_memory.py --user-id u1 --dry-run  # Preview
  python reset_user_memory.py --user-id u1            # Delete
        """,
    )
    parser.add_argument("--user-id", required=True, help="User whose records are deleted")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without applying them",
    )

    args = parser.parse_args()

    try:
        asyncio.run(reset_user(args.user_id, dry_run=args.dry_run))
    except CareerMemoryError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nReset cancelled")
        sys.exit(1)


if __name__ == "__main__":
    main()
