"""
Process-local cache of derived verification statuses.

Entries are advisory: the store is the source of truth. An entry that could
not be refreshed after a change is kept but flagged stale, and reads report
its state as ``UNKNOWN`` so an old passing status is never presented as current.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from src.domain.models import VerificationState, VerificationStatus

CacheKey = tuple[int, int]


@dataclass(slots=True)
class CachedStatus:
    status: VerificationStatus
    refreshed_at: datetime
    stale: bool = False

    @property
    def state(self) -> VerificationState:
        if self.stale:
            return VerificationState.UNKNOWN
        return self.status.state

    @property
    def is_verified(self) -> bool:
        """Verified and trustworthy; a stale entry never counts as verified."""
        return not self.stale and self.status.is_verified and not self.status.needs_reverification


class VerificationStatusCache:
    """Mapping of (talent_id, skill_group_id) to the last known status."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, CachedStatus] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, talent_id: int, skill_group_id: int) -> CachedStatus | None:
        return self._entries.get((talent_id, skill_group_id))

    def for_talent(self, talent_id: int) -> dict[int, CachedStatus]:
        return {
            group_id: entry
            for (owner_id, group_id), entry in self._entries.items()
            if owner_id == talent_id
        }

    def group_ids(self, talent_id: int) -> list[int]:
        return sorted(self.for_talent(talent_id))

    def put(self, status: VerificationStatus, *, refreshed_at: datetime | None = None) -> None:
        self._entries[(status.talent_id, status.skill_group_id)] = CachedStatus(
            status=status,
            refreshed_at=refreshed_at or datetime.now(UTC),
        )

    def put_many(
        self, statuses: Iterable[VerificationStatus], *, refreshed_at: datetime | None = None
    ) -> None:
        stamp = refreshed_at or datetime.now(UTC)
        for status in statuses:
            self.put(status, refreshed_at=stamp)

    def mark_stale(self, talent_id: int, skill_group_ids: Iterable[int] | None = None) -> int:
        """Flag entries as needing a refresh; returns how many were flagged.

        With ``skill_group_ids=None`` every entry of the talent is flagged.
        Unknown groups get a placeholder entry so readers also see ``UNKNOWN``.
        """
        if skill_group_ids is None:
            targets = [key for key in self._entries if key[0] == talent_id]
        else:
            targets = [(talent_id, group_id) for group_id in skill_group_ids]

        for key in targets:
            entry = self._entries.get(key)
            if entry is None:
                entry = CachedStatus(
                    status=VerificationStatus.no_assessment(*key),
                    refreshed_at=datetime.now(UTC),
                )
                self._entries[key] = entry
            entry.stale = True
        return len(targets)

    def invalidate_entry(self, talent_id: int, skill_group_id: int) -> bool:
        return self._entries.pop((talent_id, skill_group_id), None) is not None

    def clear(self, talent_id: int | None = None) -> None:
        if talent_id is None:
            self._entries.clear()
            return
        for key in [key for key in self._entries if key[0] == talent_id]:
            del self._entries[key]
