from __future__ import annotations

import asyncio

import structlog
from src.core.config import get_settings
from src.domain.models import Expert
from src.domain.stores import ExpertDirectory
from src.libs.store_client import StoreClientError

logger = structlog.get_logger()


class ExpertEligibilityResolver:
    """Find the experts assigned to a skill group.

    One lookup per expert (rosters are small). A failed per-expert lookup only
    drops that expert and is logged; a failure listing the experts propagates.
    """

    def __init__(self, directory: ExpertDirectory, *, concurrency: int | None = None) -> None:
        self.directory = directory
        self.concurrency = max(
            1, concurrency if concurrency is not None else get_settings().eligibility_concurrency
        )

    async def list_eligible_experts(self, skill_group_id: int) -> list[Expert]:
        roster = await self.directory.list_experts(exclude_deleted=True)
        experts = [expert for expert in roster if not expert.is_deleted]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def check(expert: Expert) -> bool:
            async with semaphore:
                return await self._is_assigned(expert, skill_group_id)

        flags = await asyncio.gather(*(check(expert) for expert in experts))
        eligible = [expert for expert, ok in zip(experts, flags, strict=True) if ok]

        await logger.adebug(
            "eligible_experts_resolved",
            skill_group_id=skill_group_id,
            experts_checked=len(experts),
            eligible_count=len(eligible),
        )
        return eligible

    async def _is_assigned(self, expert: Expert, skill_group_id: int) -> bool:
        try:
            assignments = await self.directory.get_expert_skill_groups(expert.id)
        except StoreClientError as exc:
            await logger.awarning(
                "expert_skill_groups_lookup_failed",
                expert_id=expert.id,
                skill_group_id=skill_group_id,
                error=str(exc),
            )
            return False
        return any(
            a.skill_group_id == skill_group_id and a.is_active and not a.is_deleted
            for a in assignments
        )
