from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from src.domain.models import Expert, SkillGroup, SkillRef, User
from src.domain.services.eligibility import ExpertEligibilityResolver
from src.domain.services.status_cache import VerificationStatusCache
from src.domain.services.verification import VerificationWorkflow

from tests.fakes import InMemoryTalentStore
from tests.utils import BACKEND_GROUP_ID, REST_SKILL_ID, SQL_SKILL_ID, TALENT_ID, talent_skill


@pytest.fixture()
def store() -> InMemoryTalentStore:
    """Store seeded with a 'Backend' group (mandatory SQL and REST) and one assigned expert."""
    store = InMemoryTalentStore()
    store.skill_groups = [
        SkillGroup(
            id=BACKEND_GROUP_ID,
            name="Backend",
            mandatory_skills=[
                SkillRef(SQL_SKILL_ID, "SQL"),
                SkillRef(REST_SKILL_ID, "REST"),
            ],
        )
    ]
    store.assign(Expert(id=1, name="Dana Expert"), BACKEND_GROUP_ID)
    store.assign(Expert(id=2, name="Other Expert"), 99)
    store.skills[TALENT_ID] = [talent_skill(SQL_SKILL_ID, "SQL")]
    return store


@pytest.fixture()
def cache() -> VerificationStatusCache:
    return VerificationStatusCache()


@pytest.fixture()
async def workflow(
    store: InMemoryTalentStore, cache: VerificationStatusCache
) -> AsyncIterator[VerificationWorkflow]:
    workflow = VerificationWorkflow(
        store,
        cache=cache,
        resolver=ExpertEligibilityResolver(store, concurrency=2),
        refresh_delay=0,
    )
    yield workflow
    await workflow.wait_for_pending_refreshes()


@pytest.fixture()
def ta_user() -> User:
    return User(user_id="ta-1", roles=["ta_staff"], managed_talent_ids=frozenset({TALENT_ID}))


@pytest.fixture()
def outsider() -> User:
    return User(user_id="ta-2", roles=["ta_staff"], managed_talent_ids=frozenset({1}))
