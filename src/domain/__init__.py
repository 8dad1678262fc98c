"""Domain layer: models and services for availability and skill verification."""

from src.domain.models import (
    AssessmentDraft,
    AvailabilityWindow,
    Expert,
    ExpertSkillGroup,
    SkillGroup,
    SkillGroupAssessment,
    SkillRef,
    SkillSnapshotEntry,
    TalentSkill,
    User,
    VerificationState,
    VerificationStatus,
    VerifiedSkill,
)

__all__ = [
    "AssessmentDraft",
    "AvailabilityWindow",
    "Expert",
    "ExpertSkillGroup",
    "SkillGroup",
    "SkillGroupAssessment",
    "SkillRef",
    "SkillSnapshotEntry",
    "TalentSkill",
    "User",
    "VerificationState",
    "VerificationStatus",
    "VerifiedSkill",
]
