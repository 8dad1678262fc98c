from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class User:
    """An authenticated actor acting on a talent record."""

    user_id: str
    roles: list[str] = field(default_factory=list)
    managed_talent_ids: frozenset[int] | None = None


@dataclass(slots=True)
class AvailabilityWindow:
    """A talent-declared interval of availability; ``end_time=None`` is open-ended."""

    id: int
    talent_id: int
    start_time: datetime
    end_time: datetime | None = None
    notes: str = ""
    is_deleted: bool = False


@dataclass(slots=True)
class TalentSkill:
    """A skill recorded on a talent's profile."""

    skill_id: int
    skill_name: str
    skill_group_id: int | None
    level: str
    years_exp: float
    is_mandatory: bool = False


@dataclass(slots=True)
class SkillRef:
    skill_id: int
    skill_name: str


@dataclass(slots=True)
class SkillGroup:
    """A named set of skills assessed together; some members are mandatory."""

    id: int
    name: str
    description: str | None = None
    mandatory_skills: list[SkillRef] = field(default_factory=list)


@dataclass(slots=True)
class Expert:
    id: int
    name: str
    email: str | None = None
    specialization: str | None = None
    is_deleted: bool = False


@dataclass(slots=True)
class ExpertSkillGroup:
    """Assignment of an expert to a skill group they may assess."""

    expert_id: int
    skill_group_id: int
    is_active: bool = True
    is_deleted: bool = False


@dataclass(slots=True)
class SkillSnapshotEntry:
    """A talent skill as it stood when an assessment was made."""

    skill_id: int
    skill_name: str
    level: str
    years_exp: float

    @classmethod
    def from_skill(cls, skill: TalentSkill) -> SkillSnapshotEntry:
        return cls(
            skill_id=skill.skill_id,
            skill_name=skill.skill_name,
            level=skill.level,
            years_exp=skill.years_exp,
        )


@dataclass(slots=True)
class VerifiedSkill:
    skill_id: int
    level: str
    years_exp: float


@dataclass(slots=True)
class AssessmentDraft:
    """Payload for creating a new skill-group assessment."""

    talent_id: int
    skill_group_id: int
    expert_id: int | None
    assessment_date: datetime
    is_verified: bool
    verified_by_name: str | None = None
    note: str | None = None
    skill_snapshot: list[SkillSnapshotEntry] = field(default_factory=list)
    verified_skills: list[VerifiedSkill] = field(default_factory=list)


@dataclass(slots=True)
class SkillGroupAssessment:
    """A single verification event; rows are append-only."""

    id: int
    talent_id: int
    skill_group_id: int
    assessment_date: datetime
    is_verified: bool
    is_active: bool
    expert_id: int | None = None
    expert_name: str | None = None
    verified_by_name: str | None = None
    note: str | None = None
    skill_snapshot: list[SkillSnapshotEntry] = field(default_factory=list)
    verified_skills: list[VerifiedSkill] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_deleted: bool = False

    @property
    def verifier_display_name(self) -> str | None:
        return self.verified_by_name or self.expert_name


class VerificationState(str, enum.Enum):
    NO_ASSESSMENT = "no_assessment"
    VERIFIED = "verified"
    FAILED = "failed"
    NEEDS_REVERIFICATION = "needs_reverification"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class VerificationStatus:
    """Derived verification status of one (talent, skill group) pair."""

    talent_id: int
    skill_group_id: int
    is_verified: bool
    needs_reverification: bool = False
    last_verified_date: datetime | None = None
    last_verified_by_expert_id: int | None = None
    last_verified_by_expert_name: str | None = None
    reason: str | None = None
    skill_group_name: str | None = None

    @property
    def state(self) -> VerificationState:
        if self.needs_reverification:
            return VerificationState.NEEDS_REVERIFICATION
        if self.is_verified:
            return VerificationState.VERIFIED
        if self.last_verified_date is None:
            return VerificationState.NO_ASSESSMENT
        return VerificationState.FAILED

    @classmethod
    def no_assessment(cls, talent_id: int, skill_group_id: int) -> VerificationStatus:
        return cls(talent_id=talent_id, skill_group_id=skill_group_id, is_verified=False)
