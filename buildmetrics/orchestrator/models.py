"""Data models for build orchestration."""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from buildmetrics.context import BuildType
from buildmetrics.ledger import StepStatus

# Build commands accepted on the command line, and what "all" expands to
BUILD_COMMANDS = (
    "clean",
    "build",
    "test",
    "analyze",
    "memory",
    "docs",
    "report",
    "coverage",
    "package",
    "status",
    "all",
)
ALL_COMMANDS = ("clean", "build", "test", "analyze", "memory", "docs", "report")


@dataclass
class WorkspaceConfig:
    """Layout and options of a multi-repository calculator workspace.

    Attributes:
        workspace_root: Directory holding every synced repository.
        build_dir: Directory this tooling runs from; artifacts and logs
            are created under it.
        library_path: Static library repository, relative to workspace_root.
        application_path: Application repository, relative to workspace_root.
        build_type: Release or debug make targets.
        parallel_jobs: Value passed to make -j.
        verbose: Echo command output to the console as well as log files.
        ignore_dirty: Build even with uncommitted changes.
    """

    workspace_root: Path
    build_dir: Path
    library_path: str = "libs/calculator"
    application_path: str = "application"
    build_type: BuildType = BuildType.RELEASE
    parallel_jobs: int = field(default_factory=lambda: os.cpu_count() or 1)
    verbose: bool = False
    ignore_dirty: bool = False

    @property
    def library_dir(self) -> Path:
        return self.workspace_root / self.library_path

    @property
    def application_dir(self) -> Path:
        return self.workspace_root / self.application_path

    @property
    def artifacts_dir(self) -> Path:
        return self.build_dir / "artifacts"

    @property
    def logs_dir(self) -> Path:
        return self.build_dir / "logs"

    @property
    def reports_dir(self) -> Path:
        return self.build_dir / "reports"

    @property
    def package_dir(self) -> Path:
        return self.artifacts_dir / "package"


@dataclass
class StepOutcome:
    """Outcome of one orchestrated build step."""

    name: str
    status: StepStatus
    fatal: bool = False
    error: Optional[str] = None


@dataclass
class BuildResult:
    """Aggregate result of an orchestrated build run."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    steps: list[StepOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: str) -> None:
        """Record a run-level error that fails the build."""
        self.errors.append(error)

    def add_warning(self, warning: str) -> None:
        """Record a problem that does not affect the build outcome."""
        self.warnings.append(warning)

    @property
    def success(self) -> bool:
        """True unless validation failed or a fatal step failed."""
        if self.errors:
            return False
        return not any(
            step.fatal and step.status == StepStatus.FAILURE for step in self.steps
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1
