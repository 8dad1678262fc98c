from __future__ import annotations

from collections.abc import Iterable

from src.domain.models import (
    SkillGroupAssessment,
    SkillSnapshotEntry,
    TalentSkill,
    VerificationStatus,
)


def skill_changes(
    snapshot: Iterable[SkillSnapshotEntry], current_skills: Iterable[TalentSkill]
) -> list[str]:
    """Describe how the attested skills differ from the talent's current ones.

    Only changes to attested skills count (level, years of experience, removal);
    skills added after the assessment do not invalidate it.
    """
    current = {skill.skill_id: skill for skill in current_skills}
    changes: list[str] = []
    for entry in snapshot:
        skill = current.get(entry.skill_id)
        if skill is None:
            changes.append(f"{entry.skill_name} removed")
            continue
        if skill.level != entry.level:
            changes.append(f"{entry.skill_name} level {entry.level} -> {skill.level}")
        if float(skill.years_exp) != float(entry.years_exp):
            changes.append(
                f"{entry.skill_name} years of experience {entry.years_exp:g} -> {skill.years_exp:g}"
            )
    return changes


def derive_status(
    talent_id: int,
    skill_group_id: int,
    active_assessment: SkillGroupAssessment | None,
    current_skills: Iterable[TalentSkill],
    *,
    skill_group_name: str | None = None,
) -> VerificationStatus:
    """Recompute a status from the active assessment and the talent's current skills."""
    if (
        active_assessment is None
        or not active_assessment.is_active
        or active_assessment.is_deleted
    ):
        status = VerificationStatus.no_assessment(talent_id, skill_group_id)
        status.skill_group_name = skill_group_name
        return status

    status = VerificationStatus(
        talent_id=talent_id,
        skill_group_id=skill_group_id,
        skill_group_name=skill_group_name,
        is_verified=active_assessment.is_verified,
        last_verified_date=active_assessment.assessment_date,
        last_verified_by_expert_id=active_assessment.expert_id,
        last_verified_by_expert_name=active_assessment.verifier_display_name,
    )
    if not active_assessment.is_verified:
        status.reason = active_assessment.note
        return status

    in_group = [s for s in current_skills if s.skill_group_id == skill_group_id]
    changes = skill_changes(active_assessment.skill_snapshot, in_group)
    if changes:
        status.is_verified = False
        status.needs_reverification = True
        status.reason = "Skills changed since verification: " + ", ".join(changes)
    return status
