from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import asyncpg

from karyalay.services.postgres import PostgresConnectionTester

logger = logging.getLogger(__name__)

STEPS: dict[int, str] = {
    1: "database",
    2: "migrations",
    3: "admin",
    4: "smtp",
    5: "brand",
}

PROGRESS_FILE = "progress.json"
LOCK_FILE = "installed.lock"
INCOMPLETE_STEP_ERROR = "Please complete the current step before proceeding."


class InstallationError(RuntimeError):
    """Raised when the wizard is driven out of order."""


@dataclass(slots=True)
class InstallProgress:
    current_step: int = 1
    completed_steps: list[int] = field(default_factory=list)
    data: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_step": self.current_step,
            "completed_steps": sorted(self.completed_steps),
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> InstallProgress:
        return cls(
            current_step=int(payload.get("current_step", 1)),
            completed_steps=[int(step) for step in payload.get("completed_steps", [])],
            data={str(key): dict(value) for key, value in (payload.get("data") or {}).items()},
        )


@dataclass(slots=True)
class NavigationResult:
    step: int
    error: str | None = None


class InstallationService:
    """First-run wizard state kept as JSON files under ``state_dir``."""

    def __init__(self, state_dir: str | Path, *, version: str = "1.0.0") -> None:
        self._state_dir = Path(state_dir)
        self._version = version

    @property
    def progress_path(self) -> Path:
        return self._state_dir / PROGRESS_FILE

    @property
    def lock_path(self) -> Path:
        return self._state_dir / LOCK_FILE

    def is_installed(self) -> bool:
        return self.lock_path.exists()

    def get_progress(self) -> InstallProgress:
        if not self.progress_path.exists():
            return InstallProgress()
        try:
            payload = json.loads(self.progress_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Installation progress at %s is unreadable; starting over", self.progress_path)
            return InstallProgress()
        return InstallProgress.from_dict(payload)

    def save_progress(self, progress: InstallProgress) -> None:
        self._state_dir.mkdir(parents=True, exist_ok=True)
        self.progress_path.write_text(json.dumps(progress.to_dict(), indent=2), encoding="utf-8")

    def can_access_step(self, step: int, progress: InstallProgress | None = None) -> bool:
        if step not in STEPS:
            return False
        progress = progress or self.get_progress()
        if step <= progress.current_step:
            return True
        return (step - 1) in progress.completed_steps

    def navigate(self, step: int) -> NavigationResult:
        """Move to ``step`` when allowed; otherwise stay on the current step with an error."""

        progress = self.get_progress()
        if not self.can_access_step(step, progress):
            return NavigationResult(step=progress.current_step, error=INCOMPLETE_STEP_ERROR)
        progress.current_step = step
        self.save_progress(progress)
        return NavigationResult(step=step)

    def complete_step(self, step: int, data: Mapping[str, Any] | None = None) -> InstallProgress:
        progress = self.get_progress()
        if not self.can_access_step(step, progress):
            raise InstallationError(INCOMPLETE_STEP_ERROR)
        if step not in progress.completed_steps:
            progress.completed_steps.append(step)
        if data:
            progress.data[STEPS[step]] = dict(data)
        progress.current_step = min(step + 1, max(STEPS))
        self.save_progress(progress)
        logger.info("Installation step %s (%s) completed", step, STEPS[step])
        return progress

    def get_step_data(self, step: int) -> dict[str, Any]:
        return dict(self.get_progress().data.get(STEPS[step], {}))

    def complete_installation(self) -> dict[str, str]:
        progress = self.get_progress()
        missing = [step for step in STEPS if step not in progress.completed_steps]
        if missing:
            raise InstallationError(f"Installation steps not completed: {', '.join(STEPS[s] for s in missing)}")

        lock = {"installed_at": datetime.now(timezone.utc).isoformat(), "version": self._version}
        self._state_dir.mkdir(parents=True, exist_ok=True)
        self.lock_path.write_text(json.dumps(lock, indent=2), encoding="utf-8")
        self.progress_path.unlink(missing_ok=True)
        logger.info("Installation completed (version %s)", self._version)
        return lock

    async def test_database_connection(self, dsn: str) -> tuple[bool, str | None]:
        tester = PostgresConnectionTester(dsn=dsn)
        try:
            await tester.test_connection()
        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            logger.warning("Database connection test failed: %s", exc)
            return False, str(exc)
        finally:
            await tester.close()
        return True, None
