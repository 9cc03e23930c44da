"""First-run installation wizard."""

from .service import (
    INCOMPLETE_STEP_ERROR,
    STEPS,
    InstallationError,
    InstallationService,
    InstallProgress,
    NavigationResult,
)

__all__ = [
    "INCOMPLETE_STEP_ERROR",
    "STEPS",
    "InstallProgress",
    "InstallationError",
    "InstallationService",
    "NavigationResult",
]
