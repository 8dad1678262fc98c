"""
Ports onto the remote authoritative store.

Every method is a request/response call that may raise
``src.libs.store_client.StoreClientError``. List operations always return
plain lists; any response-shape normalisation happens in the adapter.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.domain.models import (
    AssessmentDraft,
    AvailabilityWindow,
    Expert,
    ExpertSkillGroup,
    SkillGroup,
    SkillGroupAssessment,
    TalentSkill,
    VerificationStatus,
)


class SkillDirectory(Protocol):
    async def list_skills(
        self, talent_id: int, *, exclude_deleted: bool = True
    ) -> list[TalentSkill]: ...

    async def list_skill_groups(self, *, exclude_deleted: bool = True) -> list[SkillGroup]: ...


class ExpertDirectory(Protocol):
    async def list_experts(self, *, exclude_deleted: bool = True) -> list[Expert]: ...

    async def get_expert_skill_groups(self, expert_id: int) -> list[ExpertSkillGroup]: ...


class AvailabilityStore(Protocol):
    async def list_windows(
        self, talent_id: int, *, exclude_deleted: bool = True
    ) -> list[AvailabilityWindow]: ...

    async def create_window(
        self,
        *,
        talent_id: int,
        start_time: datetime,
        end_time: datetime | None,
        notes: str,
    ) -> AvailabilityWindow: ...

    async def update_window(
        self,
        window_id: int,
        *,
        talent_id: int,
        start_time: datetime,
        end_time: datetime | None,
        notes: str,
    ) -> AvailabilityWindow: ...

    async def delete_window(self, window_id: int) -> None: ...


class AssessmentStore(Protocol):
    async def create_assessment(self, draft: AssessmentDraft) -> SkillGroupAssessment:
        """Create an active assessment, deactivating the pair's previous active one."""
        ...

    async def get_assessment(self, assessment_id: int) -> SkillGroupAssessment | None: ...

    async def get_latest_assessment(
        self, talent_id: int, skill_group_id: int
    ) -> SkillGroupAssessment | None: ...

    async def get_statuses(
        self, talent_id: int, skill_group_ids: list[int]
    ) -> list[VerificationStatus]: ...

    async def invalidate_assessment(
        self, talent_id: int, skill_group_id: int, reason: str | None = None
    ) -> None: ...

    async def get_history(
        self, talent_id: int, skill_group_id: int
    ) -> list[SkillGroupAssessment]: ...


class TalentStore(SkillDirectory, ExpertDirectory, AvailabilityStore, AssessmentStore, Protocol):
    """The full remote store surface."""
