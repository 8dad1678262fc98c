from __future__ import annotations

from datetime import UTC, datetime

from src.domain.models import SkillGroupAssessment, SkillSnapshotEntry, VerificationState
from src.domain.services.status_derivation import derive_status, skill_changes

from tests.utils import DOCKER_SKILL_ID, REST_SKILL_ID, SQL_SKILL_ID, talent_skill

ASSESSED_AT = datetime(2025, 1, 5, tzinfo=UTC)

SNAPSHOT = [
    SkillSnapshotEntry(SQL_SKILL_ID, "SQL", "Senior", 3),
    SkillSnapshotEntry(REST_SKILL_ID, "REST", "Senior", 3),
]


def assessment(*, is_verified: bool = True, note: str | None = None) -> SkillGroupAssessment:
    return SkillGroupAssessment(
        id=1,
        talent_id=42,
        skill_group_id=7,
        assessment_date=ASSESSED_AT,
        is_verified=is_verified,
        is_active=True,
        expert_id=1,
        expert_name="Dana Expert",
        note=note,
        skill_snapshot=list(SNAPSHOT),
    )


class TestSkillChanges:
    def test_unchanged_skills(self) -> None:
        current = [talent_skill(SQL_SKILL_ID, "SQL"), talent_skill(REST_SKILL_ID, "REST")]

        assert skill_changes(SNAPSHOT, current) == []

    def test_reports_level_years_and_removal(self) -> None:
        current = [talent_skill(SQL_SKILL_ID, "SQL", level="Junior", years_exp=4)]

        assert skill_changes(SNAPSHOT, current) == [
            "SQL level Senior -> Junior",
            "SQL years of experience 3 -> 4",
            "REST removed",
        ]

    def test_added_skill_is_not_a_change(self) -> None:
        current = [
            talent_skill(SQL_SKILL_ID, "SQL"),
            talent_skill(REST_SKILL_ID, "REST"),
            talent_skill(DOCKER_SKILL_ID, "Docker"),
        ]

        assert skill_changes(SNAPSHOT, current) == []


class TestDeriveStatus:
    def test_without_assessment(self) -> None:
        status = derive_status(42, 7, None, [], skill_group_name="Backend")

        assert status.state is VerificationState.NO_ASSESSMENT
        assert status.skill_group_name == "Backend"

    def test_inactive_assessment_counts_as_none(self) -> None:
        row = assessment()
        row.is_active = False

        assert derive_status(42, 7, row, []).state is VerificationState.NO_ASSESSMENT

    def test_passing_assessment_with_unchanged_skills(self) -> None:
        current = [talent_skill(SQL_SKILL_ID, "SQL"), talent_skill(REST_SKILL_ID, "REST")]

        status = derive_status(42, 7, assessment(), current)

        assert status.state is VerificationState.VERIFIED
        assert status.last_verified_date == ASSESSED_AT
        assert status.last_verified_by_expert_name == "Dana Expert"

    def test_skills_in_other_groups_are_ignored(self) -> None:
        current = [
            talent_skill(SQL_SKILL_ID, "SQL"),
            talent_skill(REST_SKILL_ID, "REST", group_id=3, level="Junior"),
        ]

        status = derive_status(42, 7, assessment(), current)

        assert status.needs_reverification is True
        assert status.reason == "Skills changed since verification: REST removed"

    def test_failing_assessment_reports_note(self) -> None:
        status = derive_status(42, 7, assessment(is_verified=False, note="Weak SQL"), [])

        assert status.state is VerificationState.FAILED
        assert status.reason == "Weak SQL"
