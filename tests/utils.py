from __future__ import annotations

from src.domain.models import TalentSkill

TALENT_ID = 42
BACKEND_GROUP_ID = 7
SQL_SKILL_ID = 100
REST_SKILL_ID = 101
DOCKER_SKILL_ID = 102


def talent_skill(
    skill_id: int,
    name: str,
    *,
    group_id: int = BACKEND_GROUP_ID,
    level: str = "Senior",
    years_exp: float = 3,
) -> TalentSkill:
    return TalentSkill(
        skill_id=skill_id,
        skill_name=name,
        skill_group_id=group_id,
        level=level,
        years_exp=years_exp,
        is_mandatory=skill_id in (SQL_SKILL_ID, REST_SKILL_ID),
    )


def full_backend_skills() -> list[TalentSkill]:
    """SQL and REST, both mandatory for the Backend group."""
    return [talent_skill(SQL_SKILL_ID, "SQL"), talent_skill(REST_SKILL_ID, "REST")]
