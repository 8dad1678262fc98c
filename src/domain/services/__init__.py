"""Domain services."""

from src.domain.services.availability import (
    AvailabilityService,
    AvailabilityValidationError,
    WindowErrorKind,
    WindowValidationError,
    check_window,
    find_overlap,
    validate_end,
    validate_start,
)
from src.domain.services.eligibility import ExpertEligibilityResolver
from src.domain.services.factory import build_availability_service, build_verification_workflow
from src.domain.services.status_cache import CachedStatus, VerificationStatusCache
from src.domain.services.verification import (
    ExpertNotEligibleError,
    MissingMandatorySkillsError,
    NoActiveAssessmentError,
    NoExpertAssignedError,
    NoSkillsInGroupError,
    NoteRequiredOnFailError,
    SkillGroupNotFoundError,
    VerificationWorkflow,
    VerificationWorkflowError,
)

__all__ = [
    "AvailabilityService",
    "AvailabilityValidationError",
    "CachedStatus",
    "ExpertEligibilityResolver",
    "ExpertNotEligibleError",
    "MissingMandatorySkillsError",
    "NoActiveAssessmentError",
    "NoExpertAssignedError",
    "NoSkillsInGroupError",
    "NoteRequiredOnFailError",
    "SkillGroupNotFoundError",
    "VerificationStatusCache",
    "VerificationWorkflow",
    "VerificationWorkflowError",
    "WindowErrorKind",
    "WindowValidationError",
    "build_availability_service",
    "build_verification_workflow",
    "check_window",
    "find_overlap",
    "validate_end",
    "validate_start",
]
