from __future__ import annotations

from src.core.auth import RoleTalentEditPolicy
from src.core.config import get_settings
from src.domain.services.availability import AvailabilityService
from src.domain.services.eligibility import ExpertEligibilityResolver
from src.domain.services.status_cache import VerificationStatusCache
from src.domain.services.verification import VerificationWorkflow
from src.domain.stores import TalentStore
from src.infrastructure.store import HttpTalentStore


def build_verification_workflow(
    store: TalentStore | None = None,
    *,
    cache: VerificationStatusCache | None = None,
) -> VerificationWorkflow:
    """Wire a workflow to the configured store; the caller owns the returned cache."""
    settings = get_settings()
    store = store if store is not None else HttpTalentStore()
    return VerificationWorkflow(
        store,
        cache=cache if cache is not None else VerificationStatusCache(),
        resolver=ExpertEligibilityResolver(store, concurrency=settings.eligibility_concurrency),
        policy=RoleTalentEditPolicy(settings.editor_roles),
        refresh_delay=settings.refresh_delay,
    )


def build_availability_service(store: TalentStore | None = None) -> AvailabilityService:
    settings = get_settings()
    return AvailabilityService(
        store if store is not None else HttpTalentStore(),
        policy=RoleTalentEditPolicy(settings.editor_roles),
        horizon_months=settings.availability_horizon_months,
    )
