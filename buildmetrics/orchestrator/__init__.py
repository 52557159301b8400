"""Build orchestrator for the calculator workspace.

Runs the library/application build, tests, static analysis, memory
checks and documentation as steps recorded in the metrics ledger.
"""

from .exceptions import OrchestratorError, UnknownCommandError, WorkspaceError
from .models import (
    ALL_COMMANDS,
    BUILD_COMMANDS,
    BuildResult,
    StepOutcome,
    WorkspaceConfig,
)
from .pipeline import BuildOrchestrator
from .runner import CommandRunner

__all__ = [
    "BuildOrchestrator",
    "BuildResult",
    "StepOutcome",
    "WorkspaceConfig",
    "CommandRunner",
    "BUILD_COMMANDS",
    "ALL_COMMANDS",
    "OrchestratorError",
    "UnknownCommandError",
    "WorkspaceError",
]
