"""
Availability window validation.

Interval rules for a talent's availability windows:
- start lies between now and now + 6 months
- end, when present, lies strictly after start and at most 6 months later
- windows of one talent never intersect as half-open [start, end) ranges,
  with a missing end treated as the maximum instant

The validators are pure and return plain values; ``AvailabilityService``
turns their results into ``AvailabilityValidationError`` before anything is
written to the store.
"""

from __future__ import annotations

import calendar
import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from src.core.auth import RoleTalentEditPolicy, TalentEditPolicy, ensure_can_edit
from src.core.config import get_settings
from src.domain.models import AvailabilityWindow, User
from src.domain.stores import AvailabilityStore

logger = structlog.get_logger()

HORIZON_MONTHS = 6
MAX_INSTANT = datetime.max.replace(tzinfo=UTC)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def validate_start(
    candidate_start: datetime, now: datetime, *, horizon_months: int = HORIZON_MONTHS
) -> bool:
    return now <= candidate_start <= add_months(now, horizon_months)


def validate_end(
    start: datetime, end: datetime | None, *, horizon_months: int = HORIZON_MONTHS
) -> bool:
    if end is None:
        return True
    return start < end <= add_months(start, horizon_months)


def find_overlap(
    existing_windows: Iterable[AvailabilityWindow],
    candidate_start: datetime,
    candidate_end: datetime | None,
    exclude_id: int | None = None,
) -> AvailabilityWindow | None:
    """Return the first window intersecting [candidate_start, candidate_end).

    Windows are scanned in the order given; use ``sort_windows`` first to get
    the earliest conflict.
    """
    effective_end = candidate_end or MAX_INSTANT
    for window in existing_windows:
        if exclude_id is not None and window.id == exclude_id:
            continue
        window_end = window.end_time or MAX_INSTANT
        if candidate_start < window_end and window.start_time < effective_end:
            return window
    return None


def sort_windows(windows: Iterable[AvailabilityWindow]) -> list[AvailabilityWindow]:
    """Canonical order: ascending start, open-ended last among equal starts, then id."""
    return sorted(windows, key=lambda w: (w.start_time, w.end_time or MAX_INSTANT, w.id))


class WindowErrorKind(str, enum.Enum):
    START_OUT_OF_RANGE = "start_out_of_range"
    END_BEFORE_START = "end_before_start"
    END_TOO_FAR_FROM_START = "end_too_far_from_start"
    OVERLAP_CONFLICT = "overlap_conflict"


@dataclass(frozen=True, slots=True)
class WindowValidationError:
    """One reason a candidate window was rejected."""

    kind: WindowErrorKind
    message: str
    conflicting_window: AvailabilityWindow | None = None


def check_window(
    existing_windows: Sequence[AvailabilityWindow],
    candidate_start: datetime,
    candidate_end: datetime | None,
    *,
    now: datetime,
    exclude_id: int | None = None,
    horizon_months: int = HORIZON_MONTHS,
) -> list[WindowValidationError]:
    """Run every window rule and collect the failures (empty list means valid)."""
    errors: list[WindowValidationError] = []

    if not validate_start(candidate_start, now, horizon_months=horizon_months):
        errors.append(
            WindowValidationError(
                WindowErrorKind.START_OUT_OF_RANGE,
                f"Start time must be between now and {horizon_months} months from now",
            )
        )

    if not validate_end(candidate_start, candidate_end, horizon_months=horizon_months):
        if candidate_end is not None and candidate_end <= candidate_start:
            errors.append(
                WindowValidationError(
                    WindowErrorKind.END_BEFORE_START,
                    "End time must be after start time",
                )
            )
        else:
            errors.append(
                WindowValidationError(
                    WindowErrorKind.END_TOO_FAR_FROM_START,
                    f"End time must be at most {horizon_months} months after start time",
                )
            )

    # Overlap only makes sense for a well-formed range.
    if not errors or all(e.kind is WindowErrorKind.START_OUT_OF_RANGE for e in errors):
        conflict = find_overlap(
            sort_windows(w for w in existing_windows if not w.is_deleted),
            candidate_start,
            candidate_end,
            exclude_id,
        )
        if conflict is not None:
            errors.append(
                WindowValidationError(
                    WindowErrorKind.OVERLAP_CONFLICT,
                    f"Window overlaps existing window {format_window(conflict)}",
                    conflicting_window=conflict,
                )
            )

    return errors


def format_window(window: AvailabilityWindow) -> str:
    end = window.end_time.isoformat() if window.end_time else "open-ended"
    return f"#{window.id} [{window.start_time.isoformat()} -> {end})"


class AvailabilityValidationError(Exception):
    """Raised when a candidate window breaks one or more window rules."""

    def __init__(self, errors: list[WindowValidationError]):
        super().__init__("; ".join(error.message for error in errors))
        self.errors = errors

    @property
    def kinds(self) -> list[WindowErrorKind]:
        return [error.kind for error in self.errors]


class AvailabilityWindowNotFoundError(Exception):
    """Raised when editing a window the talent does not own."""


class AvailabilityService:
    """Validate availability windows against the talent's existing ones, then persist."""

    def __init__(
        self,
        store: AvailabilityStore,
        *,
        policy: TalentEditPolicy | None = None,
        horizon_months: int | None = None,
    ) -> None:
        self.store = store
        self.policy = policy or RoleTalentEditPolicy()
        self.horizon_months = (
            horizon_months
            if horizon_months is not None
            else get_settings().availability_horizon_months
        )

    async def list_windows(self, talent_id: int) -> list[AvailabilityWindow]:
        windows = await self.store.list_windows(talent_id, exclude_deleted=True)
        return sort_windows(w for w in windows if not w.is_deleted)

    async def create_window(
        self,
        *,
        talent_id: int,
        start_time: datetime,
        end_time: datetime | None = None,
        notes: str = "",
        actor: User | None = None,
        now: datetime | None = None,
    ) -> AvailabilityWindow:
        await ensure_can_edit(self.policy, actor, talent_id)
        existing = await self.list_windows(talent_id)
        await self._validate(existing, talent_id, start_time, end_time, now=now)

        window = await self.store.create_window(
            talent_id=talent_id, start_time=start_time, end_time=end_time, notes=notes
        )
        await logger.ainfo(
            "availability_window_created",
            talent_id=talent_id,
            window_id=window.id,
            open_ended=end_time is None,
        )
        return window

    async def update_window(
        self,
        window_id: int,
        *,
        talent_id: int,
        start_time: datetime,
        end_time: datetime | None = None,
        notes: str = "",
        actor: User | None = None,
        now: datetime | None = None,
    ) -> AvailabilityWindow:
        await ensure_can_edit(self.policy, actor, talent_id)
        existing = await self._owned_windows(window_id, talent_id)
        await self._validate(
            existing, talent_id, start_time, end_time, now=now, exclude_id=window_id
        )

        window = await self.store.update_window(
            window_id,
            talent_id=talent_id,
            start_time=start_time,
            end_time=end_time,
            notes=notes,
        )
        await logger.ainfo("availability_window_updated", talent_id=talent_id, window_id=window_id)
        return window

    async def delete_window(
        self, window_id: int, *, talent_id: int, actor: User | None = None
    ) -> None:
        await ensure_can_edit(self.policy, actor, talent_id)
        await self._owned_windows(window_id, talent_id)
        await self.store.delete_window(window_id)
        await logger.ainfo("availability_window_deleted", talent_id=talent_id, window_id=window_id)

    async def _owned_windows(self, window_id: int, talent_id: int) -> list[AvailabilityWindow]:
        """The talent's windows, provided ``window_id`` is one of them."""
        windows = await self.list_windows(talent_id)
        if not any(w.id == window_id for w in windows):
            raise AvailabilityWindowNotFoundError(
                f"Availability window {window_id} not found for talent {talent_id}"
            )
        return windows

    async def _validate(
        self,
        existing: list[AvailabilityWindow],
        talent_id: int,
        start_time: datetime,
        end_time: datetime | None,
        *,
        now: datetime | None,
        exclude_id: int | None = None,
    ) -> None:
        errors = check_window(
            existing,
            start_time,
            end_time,
            now=now or datetime.now(UTC),
            exclude_id=exclude_id,
            horizon_months=self.horizon_months,
        )
        if errors:
            await logger.ainfo(
                "availability_window_rejected",
                talent_id=talent_id,
                window_id=exclude_id,
                errors=[error.kind.value for error in errors],
            )
            raise AvailabilityValidationError(errors)
