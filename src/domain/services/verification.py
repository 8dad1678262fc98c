"""
Skill-group verification workflow.

Per (talent, skill group) pair the verification moves through:
    no assessment -> verified | failed
    verified -> needs reverification (talent skills changed) -> verified | failed
    any active assessment -> invalidated -> no assessment
Exactly one assessment per pair is active; the store deactivates the previous
one when a new assessment is created or the pair is invalidated. Assessment
rows are never removed, so the history is an audit trail.

After every mutation the status cache entry is flagged stale and a refresh is
scheduled in the background; callers get their result without waiting for it.
"""

from __future__ import annotations

import asyncio
import dataclasses
import re
from collections.abc import Coroutine, Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

import structlog
from src.core.auth import RoleTalentEditPolicy, TalentEditPolicy, ensure_can_edit
from src.core.config import get_settings
from src.domain.models import (
    AssessmentDraft,
    SkillGroup,
    SkillGroupAssessment,
    SkillSnapshotEntry,
    TalentSkill,
    User,
    VerificationStatus,
    VerifiedSkill,
)
from src.domain.services.eligibility import ExpertEligibilityResolver
from src.domain.services.status_cache import VerificationStatusCache
from src.domain.services.status_derivation import derive_status
from src.domain.stores import TalentStore
from src.libs.store_client import StoreAPIError, StoreClientError

logger = structlog.get_logger()

_MISSING_SKILLS_PATTERN = re.compile(r"Missing mandatory skills:\s*(.+)", re.IGNORECASE)
_EARLIEST = datetime.min.replace(tzinfo=UTC)


class VerificationWorkflowError(Exception):
    """Base class for rejected verification operations."""


class NoExpertAssignedError(VerificationWorkflowError):
    """Raised when no expert is assigned to the skill group."""

    def __init__(self, skill_group_id: int):
        super().__init__(f"No expert is assigned to skill group {skill_group_id}")
        self.skill_group_id = skill_group_id


class ExpertNotEligibleError(VerificationWorkflowError):
    """Raised when the chosen expert is not assigned to the skill group."""

    def __init__(self, expert_id: int | None, skill_group_id: int):
        super().__init__(f"Expert {expert_id} may not assess skill group {skill_group_id}")
        self.expert_id = expert_id
        self.skill_group_id = skill_group_id


class NoteRequiredOnFailError(VerificationWorkflowError):
    """Raised when a failing assessment has no note."""


class MissingMandatorySkillsError(VerificationWorkflowError):
    """Raised when a passing assessment lacks mandatory skills of the group."""

    def __init__(self, missing_names: Sequence[str]):
        super().__init__("Missing mandatory skills: " + ", ".join(missing_names))
        self.missing_names = list(missing_names)


class NoActiveAssessmentError(VerificationWorkflowError):
    """Raised when invalidating a pair that has no active assessment."""


class SkillGroupNotFoundError(VerificationWorkflowError):
    """Raised when the skill group does not exist."""


class NoSkillsInGroupError(VerificationWorkflowError):
    """Raised when a passing assessment has no talent skills in the group to attest."""


class VerificationWorkflow:
    """Submit, invalidate and inspect skill-group assessments for talents."""

    def __init__(
        self,
        store: TalentStore,
        *,
        cache: VerificationStatusCache | None = None,
        resolver: ExpertEligibilityResolver | None = None,
        policy: TalentEditPolicy | None = None,
        refresh_delay: float | None = None,
    ) -> None:
        self.store = store
        self.cache = cache if cache is not None else VerificationStatusCache()
        self.resolver = resolver or ExpertEligibilityResolver(store)
        self.policy = policy or RoleTalentEditPolicy()
        self.refresh_delay = (
            refresh_delay if refresh_delay is not None else get_settings().refresh_delay
        )
        self._pending: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def submit(
        self,
        talent_id: int,
        skill_group_id: int,
        expert_id: int | None,
        is_verified: bool,
        note: str | None = None,
        talent_skills_in_group: Iterable[TalentSkill] = (),
        *,
        verified_by_name: str | None = None,
        assessment_date: datetime | None = None,
        actor: User | None = None,
    ) -> SkillGroupAssessment:
        """
        Record a pass/fail assessment of a talent's skills in a group.

        Checks run in order: actor rights, an expert is assigned to the group,
        the chosen expert is one of them, a failing result carries a note, and a
        passing result covers every mandatory skill of the group.
        """
        await ensure_can_edit(self.policy, actor, talent_id)

        eligible = await self.resolver.list_eligible_experts(skill_group_id)
        if not eligible:
            raise NoExpertAssignedError(skill_group_id)
        expert = next((e for e in eligible if e.id == expert_id), None)
        if expert is None:
            raise ExpertNotEligibleError(expert_id, skill_group_id)

        note = note.strip() if note else None
        if not is_verified and not note:
            raise NoteRequiredOnFailError("A note explaining the failure is required")

        skills = [s for s in talent_skills_in_group if s.skill_group_id == skill_group_id]
        if is_verified:
            group = await self._get_skill_group(skill_group_id)
            missing = missing_mandatory_skills(group, skills)
            if missing:
                raise MissingMandatorySkillsError(missing)
            if not skills:
                raise NoSkillsInGroupError(
                    f"Talent {talent_id} has no skills in skill group {skill_group_id}"
                )

        draft = AssessmentDraft(
            talent_id=talent_id,
            skill_group_id=skill_group_id,
            expert_id=expert.id,
            verified_by_name=verified_by_name or expert.name,
            assessment_date=assessment_date or datetime.now(UTC),
            is_verified=is_verified,
            note=note,
            skill_snapshot=[SkillSnapshotEntry.from_skill(s) for s in skills],
            verified_skills=(
                [VerifiedSkill(s.skill_id, s.level, s.years_exp) for s in skills]
                if is_verified
                else []
            ),
        )
        try:
            assessment = await self.store.create_assessment(draft)
        except StoreAPIError as exc:
            match = _MISSING_SKILLS_PATTERN.search(str(exc))
            if match:
                names = [name.strip() for name in match.group(1).split(",") if name.strip()]
                raise MissingMandatorySkillsError(names) from exc
            raise

        await logger.ainfo(
            "assessment_submitted",
            talent_id=talent_id,
            skill_group_id=skill_group_id,
            assessment_id=assessment.id,
            expert_id=expert.id,
            is_verified=is_verified,
            skills_attested=len(draft.verified_skills),
            actor_id=actor.user_id if actor else None,
        )

        self.cache.mark_stale(talent_id, [skill_group_id])
        self._schedule(
            self._refresh_after_submit(talent_id, skill_group_id, assessment, skills)
        )
        return assessment

    async def invalidate(
        self,
        talent_id: int,
        skill_group_id: int,
        reason: str | None = None,
        *,
        actor: User | None = None,
    ) -> SkillGroupAssessment:
        """Deactivate the pair's active assessment; returns it as now inactive."""
        await ensure_can_edit(self.policy, actor, talent_id)

        active = await self.store.get_latest_assessment(talent_id, skill_group_id)
        if active is None or not active.is_active or active.is_deleted:
            raise NoActiveAssessmentError(
                f"No active assessment for talent {talent_id} in skill group {skill_group_id}"
            )

        reason = reason.strip() if reason else None
        await self.store.invalidate_assessment(talent_id, skill_group_id, reason)

        await logger.ainfo(
            "assessment_invalidated",
            talent_id=talent_id,
            skill_group_id=skill_group_id,
            assessment_id=active.id,
            reason=reason,
            actor_id=actor.user_id if actor else None,
        )

        self.cache.mark_stale(talent_id, [skill_group_id])
        self._schedule(self._refresh_after_invalidate(talent_id, skill_group_id))
        return dataclasses.replace(active, is_active=False)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_history(self, talent_id: int, skill_group_id: int) -> list[SkillGroupAssessment]:
        """All non-deleted assessments of the pair, newest first."""
        items = await self.store.get_history(talent_id, skill_group_id)
        visible = [
            a
            for a in items
            if not a.is_deleted and a.talent_id == talent_id and a.skill_group_id == skill_group_id
        ]
        return sorted(
            visible,
            key=lambda a: (a.assessment_date, a.created_at or _EARLIEST, a.id),
            reverse=True,
        )

    async def refresh_statuses(
        self, talent_id: int, skill_group_ids: Iterable[int]
    ) -> dict[int, VerificationStatus]:
        """
        Re-read statuses from the store and repopulate the cache.

        Returns the statuses the store answered for. Requested groups it did not
        answer for keep their previous entry, flagged stale. When the call
        itself fails every requested entry is flagged stale and the error
        propagates.
        """
        group_ids = list(dict.fromkeys(skill_group_ids))
        if not group_ids:
            return {}

        try:
            statuses = await self.store.get_statuses(talent_id, group_ids)
        except StoreClientError as exc:
            self.cache.mark_stale(talent_id, group_ids)
            await logger.awarning(
                "verification_status_refresh_failed",
                talent_id=talent_id,
                skill_group_ids=group_ids,
                error=str(exc),
            )
            raise

        requested = set(group_ids)
        refreshed = {
            status.skill_group_id: status
            for status in statuses
            if status.talent_id == talent_id and status.skill_group_id in requested
        }
        self.cache.put_many(refreshed.values())

        missing = [group_id for group_id in group_ids if group_id not in refreshed]
        if missing:
            self.cache.mark_stale(talent_id, missing)
            await logger.awarning(
                "verification_status_partial_refresh",
                talent_id=talent_id,
                missing_skill_group_ids=missing,
            )
        return refreshed

    async def get_status(self, talent_id: int, skill_group_id: int) -> VerificationStatus | None:
        """Cached status, re-fetched when missing or stale; ``None`` if still unknown."""
        entry = self.cache.get(talent_id, skill_group_id)
        if entry is not None and not entry.stale:
            return entry.status
        refreshed = await self.refresh_statuses(talent_id, [skill_group_id])
        return refreshed.get(skill_group_id)

    async def reconcile_status(
        self,
        talent_id: int,
        skill_group_id: int,
        current_skills: Iterable[TalentSkill] | None = None,
    ) -> VerificationStatus:
        """Derive the status locally from the latest assessment and current skills."""
        latest = await self.store.get_latest_assessment(talent_id, skill_group_id)
        if current_skills is None:
            current_skills = await self.store.list_skills(talent_id, exclude_deleted=True)
        status = derive_status(talent_id, skill_group_id, latest, current_skills)
        self.cache.put(status)
        return status

    async def notify_skills_changed(
        self, talent_id: int, skill_group_ids: Iterable[int]
    ) -> dict[int, VerificationStatus]:
        """Entry point for skill edits: distrust cached statuses, then recompute."""
        group_ids = list(dict.fromkeys(skill_group_ids))
        self.cache.mark_stale(talent_id, group_ids)
        await logger.ainfo(
            "talent_skills_changed", talent_id=talent_id, skill_group_ids=group_ids
        )
        return await self.refresh_statuses(talent_id, group_ids)

    async def wait_for_pending_refreshes(self) -> None:
        """Wait for background status refreshes to finish (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get_skill_group(self, skill_group_id: int) -> SkillGroup:
        groups = await self.store.list_skill_groups(exclude_deleted=True)
        group = next((g for g in groups if g.id == skill_group_id), None)
        if group is None:
            raise SkillGroupNotFoundError(f"Skill group {skill_group_id} not found")
        return group

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_refresh_done)

    def _on_refresh_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background_status_refresh_crashed", error=str(exc), exc_info=exc)

    def _refresh_group_ids(self, talent_id: int, skill_group_id: int) -> list[int]:
        return sorted({*self.cache.group_ids(talent_id), skill_group_id})

    async def _refresh_after_submit(
        self,
        talent_id: int,
        skill_group_id: int,
        created: SkillGroupAssessment,
        skills: list[TalentSkill],
    ) -> None:
        if self.refresh_delay > 0:
            await asyncio.sleep(self.refresh_delay)
        try:
            statuses = await self.refresh_statuses(
                talent_id, self._refresh_group_ids(talent_id, skill_group_id)
            )
            status = statuses.get(skill_group_id)
            if status is not None and status.is_verified == created.is_verified:
                return

            # Store has not caught up with the write yet; fall back to the record itself.
            latest = await self.store.get_latest_assessment(talent_id, skill_group_id)
            if latest is not None and latest.id == created.id and latest.is_active:
                self.cache.put(derive_status(talent_id, skill_group_id, latest, skills))
                await logger.ainfo(
                    "verification_status_reconciled",
                    talent_id=talent_id,
                    skill_group_id=skill_group_id,
                    assessment_id=created.id,
                )
                return
        except StoreClientError as exc:
            self.cache.mark_stale(talent_id, [skill_group_id])
            await logger.awarning(
                "verification_status_reconcile_failed",
                talent_id=talent_id,
                skill_group_id=skill_group_id,
                error=str(exc),
            )
            return

        self.cache.mark_stale(talent_id, [skill_group_id])
        await logger.awarning(
            "verification_status_unconfirmed",
            talent_id=talent_id,
            skill_group_id=skill_group_id,
            assessment_id=created.id,
        )

    async def _refresh_after_invalidate(self, talent_id: int, skill_group_id: int) -> None:
        if self.refresh_delay > 0:
            await asyncio.sleep(self.refresh_delay)
        try:
            statuses = await self.refresh_statuses(
                talent_id, self._refresh_group_ids(talent_id, skill_group_id)
            )
            status = statuses.get(skill_group_id)
            if status is not None and not status.is_verified:
                return

            latest = await self.store.get_latest_assessment(talent_id, skill_group_id)
            if latest is None or not latest.is_active:
                self.cache.put(VerificationStatus.no_assessment(talent_id, skill_group_id))
                return
        except StoreClientError as exc:
            self.cache.mark_stale(talent_id, [skill_group_id])
            await logger.awarning(
                "verification_status_reconcile_failed",
                talent_id=talent_id,
                skill_group_id=skill_group_id,
                error=str(exc),
            )
            return

        self.cache.mark_stale(talent_id, [skill_group_id])
        await logger.awarning(
            "verification_status_unconfirmed", talent_id=talent_id, skill_group_id=skill_group_id
        )


def missing_mandatory_skills(group: SkillGroup, skills: Iterable[TalentSkill]) -> list[str]:
    """Names of the group's mandatory skills absent from ``skills``, in group order."""
    present = {skill.skill_id for skill in skills}
    return [ref.skill_name for ref in group.mandatory_skills if ref.skill_id not in present]
