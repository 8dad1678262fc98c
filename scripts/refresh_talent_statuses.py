#!/usr/bin/env python
"""
Re-read a talent's verification statuses from the store and print them.

Useful after fixing data directly in the store, or to check what the
status cache would show for a talent.

Usage:
    python scripts/refresh_talent_statuses.py <talent_id> [skill_group_id ...]

Without skill group ids every skill group in the store is refreshed.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Add repo root to path so the src package imports from any directory
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import get_settings
from src.core.logging import setup_logging
from src.domain.services.factory import build_verification_workflow
from src.libs.store_client import StoreClientError


async def refresh(talent_id: int, skill_group_ids: list[int]) -> int:
    workflow = build_verification_workflow()

    if not skill_group_ids:
        groups = await workflow.store.list_skill_groups(exclude_deleted=True)
        skill_group_ids = [group.id for group in groups]
    if not skill_group_ids:
        print("No skill groups found in the store")
        return 1

    try:
        await workflow.refresh_statuses(talent_id, skill_group_ids)
    except StoreClientError as exc:
        print(f"Store refused the refresh: {exc}")
        return 1

    print(f"Talent {talent_id}")
    for group_id in skill_group_ids:
        entry = workflow.cache.get(talent_id, group_id)
        if entry is None:
            print(f"  group {group_id}: not cached")
            continue
        status = entry.status
        line = f"  group {group_id} ({status.skill_group_name or '?'}): {entry.state.value}"
        if status.last_verified_date is not None:
            verifier = status.last_verified_by_expert_name or "unknown expert"
            line += f" on {status.last_verified_date:%Y-%m-%d} by {verifier}"
        if status.reason:
            line += f" - {status.reason}"
        print(line)
    return 0


def main() -> None:
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)

    try:
        talent_id = int(sys.argv[1])
        skill_group_ids = [int(arg) for arg in sys.argv[2:]]
    except ValueError:
        print("talent_id and skill_group_id must be integers")
        sys.exit(2)

    setup_logging(json_logs=False)
    settings = get_settings()
    print(f"Store: {settings.store_base_url} ({settings.environment})")
    sys.exit(asyncio.run(refresh(talent_id, skill_group_ids)))


if __name__ == "__main__":
    main()
