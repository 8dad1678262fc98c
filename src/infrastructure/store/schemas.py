"""
Wire schemas for the talent store.

The store speaks camelCase JSON; these models validate it and convert to the
domain dataclasses. List endpoints are normalised by ``parse_collection`` so
nothing above this module cares whether a list arrived bare or wrapped in
``items``/``data``.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
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
    VerificationStatus,
    VerifiedSkill,
)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

_COLLECTION_KEYS = ("items", "data")


class StoreSchemaError(ValueError):
    """Raised when a store payload does not have the expected shape."""


def parse_collection(payload: Any, schema: type[SchemaT]) -> list[SchemaT]:
    """Validate a list response, accepting a bare list or an ``items``/``data`` wrapper."""
    if payload is None:
        return []
    rows = payload
    if isinstance(payload, dict):
        for key in _COLLECTION_KEYS:
            if isinstance(payload.get(key), list):
                rows = payload[key]
                break
        else:
            raise StoreSchemaError(f"Expected a collection, got object with keys {sorted(payload)}")
    if not isinstance(rows, list):
        raise StoreSchemaError(f"Expected a collection, got {type(rows).__name__}")
    return [schema.model_validate(row) for row in rows]


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_wire_datetime(value: datetime) -> str:
    return as_utc(value).isoformat().replace("+00:00", "Z")  # type: ignore[union-attr]


class StoreModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AvailabilityWindowSchema(StoreModel):
    id: int
    talent_id: int
    start_time: datetime
    end_time: datetime | None = None
    notes: str | None = None
    is_deleted: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    def to_domain(self) -> AvailabilityWindow:
        return AvailabilityWindow(
            id=self.id,
            talent_id=self.talent_id,
            start_time=self.start_time,
            end_time=self.end_time,
            notes=self.notes or "",
            is_deleted=self.is_deleted,
        )


class TalentSkillSchema(StoreModel):
    skill_id: int
    skill_name: str = ""
    skill_group_id: int | None = None
    level: str = ""
    years_exp: float = 0
    is_mandatory: bool = False

    def to_domain(self) -> TalentSkill:
        return TalentSkill(
            skill_id=self.skill_id,
            skill_name=self.skill_name,
            skill_group_id=self.skill_group_id,
            level=self.level,
            years_exp=self.years_exp,
            is_mandatory=self.is_mandatory,
        )


class SkillRefSchema(StoreModel):
    skill_id: int = Field(validation_alias=AliasChoices("skillId", "skill_id", "id"))
    skill_name: str = Field(
        default="", validation_alias=AliasChoices("skillName", "skill_name", "name")
    )


class SkillGroupSchema(StoreModel):
    id: int
    name: str
    description: str | None = None
    mandatory_skills: list[SkillRefSchema] = Field(default_factory=list)

    def to_domain(self) -> SkillGroup:
        return SkillGroup(
            id=self.id,
            name=self.name,
            description=self.description,
            mandatory_skills=[
                SkillRef(skill_id=ref.skill_id, skill_name=ref.skill_name)
                for ref in self.mandatory_skills
            ],
        )


class ExpertSchema(StoreModel):
    id: int
    name: str
    email: str | None = None
    specialization: str | None = None
    is_deleted: bool = False

    def to_domain(self) -> Expert:
        return Expert(
            id=self.id,
            name=self.name,
            email=self.email,
            specialization=self.specialization,
            is_deleted=self.is_deleted,
        )


class ExpertSkillGroupSchema(StoreModel):
    expert_id: int
    skill_group_id: int
    is_active: bool = True
    is_deleted: bool = False

    def to_domain(self) -> ExpertSkillGroup:
        return ExpertSkillGroup(
            expert_id=self.expert_id,
            skill_group_id=self.skill_group_id,
            is_active=self.is_active,
            is_deleted=self.is_deleted,
        )


class SkillSnapshotEntrySchema(StoreModel):
    skill_id: int
    skill_name: str = ""
    level: str = ""
    years_exp: float = 0


class VerifiedSkillSchema(StoreModel):
    skill_id: int
    level: str = ""
    years_exp: float = 0


class AssessmentSchema(StoreModel):
    id: int
    talent_id: int
    skill_group_id: int
    assessment_date: datetime
    is_verified: bool
    is_active: bool = True
    expert_id: int | None = None
    expert_name: str | None = None
    verified_by_name: str | None = None
    note: str | None = None
    skill_snapshot: list[SkillSnapshotEntrySchema] = Field(default_factory=list)
    verified_skills: list[VerifiedSkillSchema] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_deleted: bool = False

    @field_validator("assessment_date", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @field_validator("skill_snapshot", mode="before")
    @classmethod
    def _decode_snapshot(cls, value: Any) -> Any:
        # The store keeps the snapshot as a serialized JSON string.
        if value is None or value == "":
            return []
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("skillSnapshot is not valid JSON") from exc
        return value

    @field_validator("verified_skills", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or []

    def to_domain(self) -> SkillGroupAssessment:
        return SkillGroupAssessment(
            id=self.id,
            talent_id=self.talent_id,
            skill_group_id=self.skill_group_id,
            assessment_date=self.assessment_date,
            is_verified=self.is_verified,
            is_active=self.is_active,
            expert_id=self.expert_id,
            expert_name=self.expert_name,
            verified_by_name=self.verified_by_name,
            note=self.note,
            skill_snapshot=[
                SkillSnapshotEntry(
                    skill_id=entry.skill_id,
                    skill_name=entry.skill_name,
                    level=entry.level,
                    years_exp=entry.years_exp,
                )
                for entry in self.skill_snapshot
            ],
            verified_skills=[
                VerifiedSkill(skill_id=item.skill_id, level=item.level, years_exp=item.years_exp)
                for item in self.verified_skills
            ],
            created_at=self.created_at,
            updated_at=self.updated_at,
            is_deleted=self.is_deleted,
        )


class VerificationStatusSchema(StoreModel):
    talent_id: int
    skill_group_id: int
    skill_group_name: str | None = None
    is_verified: bool = False
    last_verified_date: datetime | None = None
    last_verified_by_expert_id: int | None = None
    last_verified_by_expert_name: str | None = None
    needs_reverification: bool = False
    reason: str | None = None

    @field_validator("last_verified_date")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    def to_domain(self) -> VerificationStatus:
        return VerificationStatus(
            talent_id=self.talent_id,
            skill_group_id=self.skill_group_id,
            skill_group_name=self.skill_group_name,
            is_verified=self.is_verified,
            last_verified_date=self.last_verified_date,
            last_verified_by_expert_id=self.last_verified_by_expert_id,
            last_verified_by_expert_name=self.last_verified_by_expert_name,
            needs_reverification=self.needs_reverification,
            reason=self.reason,
        )


def window_payload(
    *, talent_id: int, start_time: datetime, end_time: datetime | None, notes: str
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "talentId": talent_id,
        "startTime": to_wire_datetime(start_time),
        "notes": notes,
    }
    if end_time is not None:
        payload["endTime"] = to_wire_datetime(end_time)
    return payload


def assessment_payload(draft: AssessmentDraft) -> dict[str, Any]:
    """Serialize an assessment draft into the store's create payload."""
    snapshot = [
        {
            "skillId": entry.skill_id,
            "skillName": entry.skill_name,
            "level": entry.level,
            "yearsExp": entry.years_exp,
        }
        for entry in draft.skill_snapshot
    ]
    payload: dict[str, Any] = {
        "talentId": draft.talent_id,
        "skillGroupId": draft.skill_group_id,
        "expertId": draft.expert_id,
        "verifiedByName": draft.verified_by_name,
        "assessmentDate": to_wire_datetime(draft.assessment_date),
        "isVerified": draft.is_verified,
        "note": draft.note,
        "skillSnapshot": json.dumps(snapshot, ensure_ascii=False) if snapshot else None,
        "verifiedSkills": None,
    }
    if draft.is_verified:
        payload["verifiedSkills"] = [
            {"skillId": item.skill_id, "level": item.level, "yearsExp": item.years_exp}
            for item in draft.verified_skills
        ]
    return payload
