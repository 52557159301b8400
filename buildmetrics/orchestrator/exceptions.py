"""Exceptions for the build orchestrator module."""


class OrchestratorError(Exception):
    """Base exception for build orchestrator errors."""

    pass


class WorkspaceError(OrchestratorError):
    """Raised when the workspace is not fit to build in."""

    def __init__(self, reason: str, problems: list[str] | None = None):
        self.reason = reason
        self.problems = problems or []
        detail = f": {', '.join(self.problems)}" if self.problems else ""
        super().__init__(f"{reason}{detail}")


class UnknownCommandError(OrchestratorError):
    """Raised when a build command is not recognized."""

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unknown build command '{command}'")
