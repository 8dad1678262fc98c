from __future__ import annotations

from datetime import datetime
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
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
from src.libs.store_client import StoreAPIError, TalentStoreClient

from .schemas import (
    AssessmentSchema,
    AvailabilityWindowSchema,
    ExpertSchema,
    ExpertSkillGroupSchema,
    SkillGroupSchema,
    StoreSchemaError,
    TalentSkillSchema,
    VerificationStatusSchema,
    assessment_payload,
    parse_collection,
    window_payload,
)

logger = structlog.get_logger()

SchemaT = TypeVar("SchemaT", bound=BaseModel)

ASSESSMENT_PATH = "/TalentSkillGroupAssessment"


class HttpTalentStore:
    """Talent store adapter over the REST API.

    Implements every port in ``src.domain.stores``.
    """

    def __init__(self, client: TalentStoreClient | None = None) -> None:
        self.client = client or TalentStoreClient()

    # Skills -----------------------------------------------------------------

    async def list_skills(
        self, talent_id: int, *, exclude_deleted: bool = True
    ) -> list[TalentSkill]:
        payload = await self.client.get(
            "/talentskill",
            params={"TalentId": talent_id, "ExcludeDeleted": exclude_deleted},
        )
        return [row.to_domain() for row in _collection(payload, TalentSkillSchema)]

    async def list_skill_groups(self, *, exclude_deleted: bool = True) -> list[SkillGroup]:
        payload = await self.client.get("/skillgroup", params={"ExcludeDeleted": exclude_deleted})
        return [row.to_domain() for row in _collection(payload, SkillGroupSchema)]

    # Experts ----------------------------------------------------------------

    async def list_experts(self, *, exclude_deleted: bool = True) -> list[Expert]:
        payload = await self.client.get("/expert", params={"ExcludeDeleted": exclude_deleted})
        return [row.to_domain() for row in _collection(payload, ExpertSchema)]

    async def get_expert_skill_groups(self, expert_id: int) -> list[ExpertSkillGroup]:
        payload = await self.client.get(f"/expert/{expert_id}/skill-groups")
        return [row.to_domain() for row in _collection(payload, ExpertSkillGroupSchema)]

    # Availability windows ---------------------------------------------------

    async def list_windows(
        self, talent_id: int, *, exclude_deleted: bool = True
    ) -> list[AvailabilityWindow]:
        payload = await self.client.get(
            "/talentavailabletime",
            params={"TalentId": talent_id, "ExcludeDeleted": exclude_deleted},
        )
        return [row.to_domain() for row in _collection(payload, AvailabilityWindowSchema)]

    async def create_window(
        self,
        *,
        talent_id: int,
        start_time: datetime,
        end_time: datetime | None,
        notes: str,
    ) -> AvailabilityWindow:
        payload = await self.client.post(
            "/talentavailabletime",
            json=window_payload(
                talent_id=talent_id, start_time=start_time, end_time=end_time, notes=notes
            ),
        )
        return _single(payload, AvailabilityWindowSchema).to_domain()

    async def update_window(
        self,
        window_id: int,
        *,
        talent_id: int,
        start_time: datetime,
        end_time: datetime | None,
        notes: str,
    ) -> AvailabilityWindow:
        body = window_payload(
            talent_id=talent_id, start_time=start_time, end_time=end_time, notes=notes
        )
        payload = await self.client.put(f"/talentavailabletime/{window_id}", json=body)
        if payload is None:
            # Some deployments answer PUT with 204; echo the accepted values.
            return AvailabilityWindow(
                id=window_id,
                talent_id=talent_id,
                start_time=start_time,
                end_time=end_time,
                notes=notes,
            )
        return _single(payload, AvailabilityWindowSchema).to_domain()

    async def delete_window(self, window_id: int) -> None:
        await self.client.delete(f"/talentavailabletime/{window_id}")

    # Assessments ------------------------------------------------------------

    async def create_assessment(self, draft: AssessmentDraft) -> SkillGroupAssessment:
        payload = await self.client.post(
            f"{ASSESSMENT_PATH}/verify", json=assessment_payload(draft)
        )
        return _single(payload, AssessmentSchema).to_domain()

    async def get_assessment(self, assessment_id: int) -> SkillGroupAssessment | None:
        payload = await self.client.get(f"{ASSESSMENT_PATH}/{assessment_id}", allow_not_found=True)
        if payload is None:
            return None
        return _single(payload, AssessmentSchema).to_domain()

    async def get_latest_assessment(
        self, talent_id: int, skill_group_id: int
    ) -> SkillGroupAssessment | None:
        payload = await self.client.get(
            f"{ASSESSMENT_PATH}/latest",
            params={"talentId": talent_id, "skillGroupId": skill_group_id},
            allow_not_found=True,
        )
        if payload is None:
            return None
        return _single(payload, AssessmentSchema).to_domain()

    async def get_statuses(
        self, talent_id: int, skill_group_ids: list[int]
    ) -> list[VerificationStatus]:
        payload = await self.client.post(
            f"{ASSESSMENT_PATH}/statuses",
            params={"talentId": talent_id},
            json=list(skill_group_ids),
        )
        return [row.to_domain() for row in _collection(payload, VerificationStatusSchema)]

    async def invalidate_assessment(
        self, talent_id: int, skill_group_id: int, reason: str | None = None
    ) -> None:
        payload = await self.client.post(
            f"{ASSESSMENT_PATH}/invalidate",
            params={
                "talentId": talent_id,
                "skillGroupId": skill_group_id,
                "reason": reason or None,
            },
        )
        if isinstance(payload, dict) and payload.get("success") is False:
            raise StoreAPIError(
                str(payload.get("message") or "Store refused to invalidate assessment"),
                payload=payload,
            )

    async def get_history(
        self, talent_id: int, skill_group_id: int
    ) -> list[SkillGroupAssessment]:
        payload = await self.client.get(
            f"{ASSESSMENT_PATH}/history",
            params={"talentId": talent_id, "skillGroupId": skill_group_id},
        )
        return [row.to_domain() for row in _collection(payload, AssessmentSchema)]


def _collection(payload: Any, schema: type[SchemaT]) -> list[SchemaT]:
    try:
        return parse_collection(payload, schema)
    except (ValidationError, StoreSchemaError) as exc:
        logger.warning("store_payload_invalid", schema=schema.__name__, error=str(exc))
        raise StoreAPIError(f"Malformed {schema.__name__} collection from store") from exc


def _single(payload: Any, schema: type[SchemaT]) -> SchemaT:
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        logger.warning("store_payload_invalid", schema=schema.__name__, error=str(exc))
        raise StoreAPIError(f"Malformed {schema.__name__} from store") from exc
