"""
Unit tests for the skill-group verification workflow.

Tests:
1. submit preconditions (experts, eligibility, notes, mandatory skills)
2. single active assessment per (talent, group) after submit
3. invalidate and history
4. status refresh, partial failure and reconciliation
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from src.core.auth import TalentEditForbiddenError
from src.domain.models import (
    SkillGroupAssessment,
    User,
    VerificationState,
    VerificationStatus,
)
from src.domain.services.verification import (
    ExpertNotEligibleError,
    MissingMandatorySkillsError,
    NoActiveAssessmentError,
    NoExpertAssignedError,
    NoSkillsInGroupError,
    NoteRequiredOnFailError,
    SkillGroupNotFoundError,
    VerificationWorkflow,
)
from src.libs.store_client import StoreAPIError, StoreTimeoutError

from tests.fakes import InMemoryTalentStore
from tests.utils import (
    BACKEND_GROUP_ID,
    DOCKER_SKILL_ID,
    REST_SKILL_ID,
    SQL_SKILL_ID,
    TALENT_ID,
    full_backend_skills,
    talent_skill,
)


async def submit_pass(workflow: VerificationWorkflow, **kwargs) -> SkillGroupAssessment:
    params = {
        "talent_skills_in_group": full_backend_skills(),
    }
    params.update(kwargs)
    return await workflow.submit(TALENT_ID, BACKEND_GROUP_ID, 1, True, **params)


class TestSubmitPreconditions:
    @pytest.mark.asyncio
    async def test_no_expert_assigned(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.expert_groups[1] = []

        with pytest.raises(NoExpertAssignedError):
            await submit_pass(workflow)

    @pytest.mark.asyncio
    async def test_expert_assigned_to_other_group_is_not_eligible(
        self, workflow: VerificationWorkflow
    ) -> None:
        with pytest.raises(ExpertNotEligibleError) as exc_info:
            await workflow.submit(
                TALENT_ID, BACKEND_GROUP_ID, 2, True, None, full_backend_skills()
            )

        assert exc_info.value.expert_id == 2

    @pytest.mark.asyncio
    async def test_missing_expert_id_is_not_eligible(self, workflow: VerificationWorkflow) -> None:
        with pytest.raises(ExpertNotEligibleError):
            await workflow.submit(
                TALENT_ID, BACKEND_GROUP_ID, None, True, None, full_backend_skills()
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("note", [None, "", "   "])
    async def test_failing_assessment_requires_note(
        self, workflow: VerificationWorkflow, note: str | None
    ) -> None:
        with pytest.raises(NoteRequiredOnFailError):
            await workflow.submit(
                TALENT_ID, BACKEND_GROUP_ID, 1, False, note, full_backend_skills()
            )

    @pytest.mark.asyncio
    async def test_missing_mandatory_skills_are_named(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        with pytest.raises(MissingMandatorySkillsError) as exc_info:
            await workflow.submit(
                TALENT_ID,
                BACKEND_GROUP_ID,
                1,
                True,
                None,
                [talent_skill(SQL_SKILL_ID, "SQL")],
            )

        assert exc_info.value.missing_names == ["REST"]
        assert not store.assessments

    @pytest.mark.asyncio
    async def test_skills_from_other_groups_do_not_count(
        self, workflow: VerificationWorkflow
    ) -> None:
        skills = [
            talent_skill(SQL_SKILL_ID, "SQL"),
            talent_skill(REST_SKILL_ID, "REST", group_id=3),
        ]

        with pytest.raises(MissingMandatorySkillsError) as exc_info:
            await workflow.submit(TALENT_ID, BACKEND_GROUP_ID, 1, True, None, skills)

        assert exc_info.value.missing_names == ["REST"]

    @pytest.mark.asyncio
    async def test_failing_assessment_skips_mandatory_check(
        self, workflow: VerificationWorkflow
    ) -> None:
        assessment = await workflow.submit(
            TALENT_ID,
            BACKEND_GROUP_ID,
            1,
            False,
            "REST knowledge too shallow",
            [talent_skill(SQL_SKILL_ID, "SQL")],
        )

        assert assessment.is_verified is False
        assert assessment.verified_skills == []
        assert [entry.skill_name for entry in assessment.skill_snapshot] == ["SQL"]

    @pytest.mark.asyncio
    async def test_unknown_group(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.skill_groups = []

        with pytest.raises(SkillGroupNotFoundError):
            await submit_pass(workflow)

    @pytest.mark.asyncio
    async def test_passing_without_any_group_skills(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.skill_groups[0].mandatory_skills = []

        with pytest.raises(NoSkillsInGroupError):
            await submit_pass(workflow, talent_skills_in_group=[])

    @pytest.mark.asyncio
    async def test_actor_without_rights(
        self, workflow: VerificationWorkflow, outsider: User, store: InMemoryTalentStore
    ) -> None:
        with pytest.raises(TalentEditForbiddenError):
            await submit_pass(workflow, actor=outsider)

        assert not any(name == "list_experts" for name, _ in store.calls)

    @pytest.mark.asyncio
    async def test_store_side_mandatory_rejection_is_structured(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.fail["create_assessment"] = StoreAPIError(
            "Missing mandatory skills: REST, GraphQL", status_code=400
        )

        with pytest.raises(MissingMandatorySkillsError) as exc_info:
            await submit_pass(workflow)

        assert exc_info.value.missing_names == ["REST", "GraphQL"]

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.fail["create_assessment"] = StoreAPIError("Internal error", status_code=500)

        with pytest.raises(StoreAPIError):
            await submit_pass(workflow)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_passing_submission_records_snapshot_and_verified_skills(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore, ta_user: User
    ) -> None:
        assessment = await submit_pass(workflow, actor=ta_user)

        assert assessment.is_active is True
        assert assessment.expert_id == 1
        assert assessment.verified_by_name == "Dana Expert"
        assert {s.skill_id for s in assessment.verified_skills} == {SQL_SKILL_ID, REST_SKILL_ID}
        assert {s.skill_name for s in assessment.skill_snapshot} == {"SQL", "REST"}

    @pytest.mark.asyncio
    async def test_submit_reads_nothing_after_preconditions(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        await submit_pass(workflow)

        names = [name for name, _ in store.calls]
        assert names[-1] == "create_assessment"
        assert "get_latest_assessment" not in names

    @pytest.mark.asyncio
    async def test_single_active_assessment_after_resubmission(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        first = await submit_pass(workflow)
        second = await workflow.submit(
            TALENT_ID, BACKEND_GROUP_ID, 1, False, "Failed live coding", full_backend_skills()
        )

        active = store.active_assessments(TALENT_ID, BACKEND_GROUP_ID)
        assert [a.id for a in active] == [second.id]
        assert second.id > first.id
        previous = await store.get_assessment(first.id)
        assert previous is not None and previous.is_active is False

    @pytest.mark.asyncio
    async def test_backend_scenario_missing_then_added_skill(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        with pytest.raises(MissingMandatorySkillsError) as exc_info:
            await workflow.submit(
                TALENT_ID, BACKEND_GROUP_ID, 1, True, None, store.skills[TALENT_ID]
            )
        assert exc_info.value.missing_names == ["REST"]

        store.skills[TALENT_ID].append(talent_skill(REST_SKILL_ID, "REST"))
        await workflow.submit(TALENT_ID, BACKEND_GROUP_ID, 1, True, None, store.skills[TALENT_ID])

        statuses = await store.get_statuses(TALENT_ID, [BACKEND_GROUP_ID])
        assert statuses[0].is_verified is True

    @pytest.mark.asyncio
    async def test_submit_refreshes_cache_in_background(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.skills[TALENT_ID] = full_backend_skills()

        await submit_pass(workflow)
        entry = workflow.cache.get(TALENT_ID, BACKEND_GROUP_ID)
        assert entry is not None and entry.state is VerificationState.UNKNOWN

        await workflow.wait_for_pending_refreshes()

        entry = workflow.cache.get(TALENT_ID, BACKEND_GROUP_ID)
        assert entry is not None
        assert entry.stale is False
        assert entry.state is VerificationState.VERIFIED

    @pytest.mark.asyncio
    async def test_lagging_store_status_is_reconciled_from_latest_assessment(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.status_overrides[(TALENT_ID, BACKEND_GROUP_ID)] = VerificationStatus.no_assessment(
            TALENT_ID, BACKEND_GROUP_ID
        )

        assessment = await submit_pass(workflow)
        await workflow.wait_for_pending_refreshes()

        entry = workflow.cache.get(TALENT_ID, BACKEND_GROUP_ID)
        assert entry is not None and entry.is_verified is True
        assert entry.status.last_verified_by_expert_id == assessment.expert_id

    @pytest.mark.asyncio
    async def test_failed_background_refresh_leaves_status_unknown(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        workflow.cache.put(
            VerificationStatus(
                talent_id=TALENT_ID,
                skill_group_id=BACKEND_GROUP_ID,
                is_verified=True,
                last_verified_date=datetime(2024, 6, 1, tzinfo=UTC),
            )
        )
        store.fail["get_statuses"] = StoreTimeoutError("timed out")

        await workflow.submit(
            TALENT_ID, BACKEND_GROUP_ID, 1, False, "Outdated skills", full_backend_skills()
        )
        await workflow.wait_for_pending_refreshes()

        entry = workflow.cache.get(TALENT_ID, BACKEND_GROUP_ID)
        assert entry is not None
        assert entry.stale is True
        assert entry.is_verified is False
        assert entry.state is VerificationState.UNKNOWN


class TestInvalidate:
    @pytest.mark.asyncio
    async def test_nothing_to_invalidate(self, workflow: VerificationWorkflow) -> None:
        with pytest.raises(NoActiveAssessmentError):
            await workflow.invalidate(TALENT_ID, BACKEND_GROUP_ID, "no longer valid")

    @pytest.mark.asyncio
    async def test_already_invalidated(self, workflow: VerificationWorkflow) -> None:
        await submit_pass(workflow)
        await workflow.invalidate(TALENT_ID, BACKEND_GROUP_ID)

        with pytest.raises(NoActiveAssessmentError):
            await workflow.invalidate(TALENT_ID, BACKEND_GROUP_ID)

    @pytest.mark.asyncio
    async def test_invalidated_assessment_stays_in_history(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore, ta_user: User
    ) -> None:
        created = await submit_pass(workflow)

        invalidated = await workflow.invalidate(
            TALENT_ID, BACKEND_GROUP_ID, "  expert conflict  ", actor=ta_user
        )

        assert invalidated.id == created.id
        assert invalidated.is_active is False
        assert store.active_assessments(TALENT_ID, BACKEND_GROUP_ID) == []
        assert ("invalidate_assessment", (TALENT_ID, BACKEND_GROUP_ID, "expert conflict")) in (
            store.calls
        )

        history = await workflow.get_history(TALENT_ID, BACKEND_GROUP_ID)
        assert [a.id for a in history] == [created.id]
        assert history[0].is_active is False

    @pytest.mark.asyncio
    async def test_invalidate_resets_cached_status(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.skills[TALENT_ID] = full_backend_skills()
        await submit_pass(workflow)
        await workflow.wait_for_pending_refreshes()

        await workflow.invalidate(TALENT_ID, BACKEND_GROUP_ID)
        await workflow.wait_for_pending_refreshes()

        entry = workflow.cache.get(TALENT_ID, BACKEND_GROUP_ID)
        assert entry is not None
        assert entry.state is VerificationState.NO_ASSESSMENT

    @pytest.mark.asyncio
    async def test_actor_without_rights(
        self, workflow: VerificationWorkflow, outsider: User, store: InMemoryTalentStore
    ) -> None:
        await submit_pass(workflow)

        with pytest.raises(TalentEditForbiddenError):
            await workflow.invalidate(TALENT_ID, BACKEND_GROUP_ID, actor=outsider)

        assert len(store.active_assessments(TALENT_ID, BACKEND_GROUP_ID)) == 1


class TestHistory:
    @pytest.mark.asyncio
    async def test_newest_first_and_soft_deleted_excluded(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        base = datetime(2025, 1, 1, tzinfo=UTC)
        first = await submit_pass(workflow, assessment_date=base)
        second = await submit_pass(workflow, assessment_date=base + timedelta(days=2))
        third = await submit_pass(workflow, assessment_date=base + timedelta(days=1))
        store.assessments[1].is_deleted = True

        history = await workflow.get_history(TALENT_ID, BACKEND_GROUP_ID)

        assert second.id not in [a.id for a in history]
        assert [a.id for a in history] == [third.id, first.id]


class TestStatuses:
    @pytest.mark.asyncio
    async def test_refresh_populates_cache(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        statuses = await workflow.refresh_statuses(TALENT_ID, [BACKEND_GROUP_ID, BACKEND_GROUP_ID])

        assert list(statuses) == [BACKEND_GROUP_ID]
        assert ("get_statuses", (TALENT_ID, (BACKEND_GROUP_ID,))) in store.calls
        entry = workflow.cache.get(TALENT_ID, BACKEND_GROUP_ID)
        assert entry is not None and entry.state is VerificationState.NO_ASSESSMENT

    @pytest.mark.asyncio
    async def test_partial_refresh_keeps_stale_entry(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        old = VerificationStatus(
            talent_id=TALENT_ID,
            skill_group_id=8,
            is_verified=True,
            last_verified_date=datetime(2024, 6, 1, tzinfo=UTC),
        )
        workflow.cache.put(old)
        store.status_overrides[(TALENT_ID, 8)] = None

        statuses = await workflow.refresh_statuses(TALENT_ID, [BACKEND_GROUP_ID, 8])

        assert list(statuses) == [BACKEND_GROUP_ID]
        entry = workflow.cache.get(TALENT_ID, 8)
        assert entry is not None
        assert entry.status is old
        assert entry.stale is True
        assert entry.state is VerificationState.UNKNOWN

    @pytest.mark.asyncio
    async def test_failed_refresh_marks_stale_and_propagates(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.fail["get_statuses"] = StoreAPIError("boom", status_code=503)

        with pytest.raises(StoreAPIError):
            await workflow.refresh_statuses(TALENT_ID, [BACKEND_GROUP_ID])

        entry = workflow.cache.get(TALENT_ID, BACKEND_GROUP_ID)
        assert entry is not None and entry.stale is True

    @pytest.mark.asyncio
    async def test_skill_change_requires_reverification(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.skills[TALENT_ID] = full_backend_skills()
        await submit_pass(workflow)
        await workflow.wait_for_pending_refreshes()

        store.skills[TALENT_ID] = [
            talent_skill(SQL_SKILL_ID, "SQL", level="Junior"),
            talent_skill(REST_SKILL_ID, "REST"),
        ]
        statuses = await workflow.notify_skills_changed(TALENT_ID, [BACKEND_GROUP_ID])

        status = statuses[BACKEND_GROUP_ID]
        assert status.needs_reverification is True
        assert status.state is VerificationState.NEEDS_REVERIFICATION
        assert "SQL level Senior -> Junior" in (status.reason or "")

    @pytest.mark.asyncio
    async def test_added_skill_does_not_require_reverification(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        store.skills[TALENT_ID] = full_backend_skills()
        await submit_pass(workflow)

        store.skills[TALENT_ID].append(talent_skill(DOCKER_SKILL_ID, "Docker"))
        status = await workflow.reconcile_status(TALENT_ID, BACKEND_GROUP_ID)

        assert status.state is VerificationState.VERIFIED

    @pytest.mark.asyncio
    async def test_get_status_uses_fresh_cache_entry(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        cached = VerificationStatus.no_assessment(TALENT_ID, BACKEND_GROUP_ID)
        workflow.cache.put(cached)

        assert await workflow.get_status(TALENT_ID, BACKEND_GROUP_ID) is cached
        assert not any(name == "get_statuses" for name, _ in store.calls)

    @pytest.mark.asyncio
    async def test_get_status_refetches_stale_entry(
        self, workflow: VerificationWorkflow, store: InMemoryTalentStore
    ) -> None:
        workflow.cache.mark_stale(TALENT_ID, [BACKEND_GROUP_ID])

        status = await workflow.get_status(TALENT_ID, BACKEND_GROUP_ID)

        assert status is not None and status.state is VerificationState.NO_ASSESSMENT
        assert workflow.cache.get(TALENT_ID, BACKEND_GROUP_ID).stale is False
