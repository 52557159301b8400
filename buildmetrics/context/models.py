"""Data models for the build context module."""

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from .exceptions import InvalidContextError

TRUE_VALUES = {"true", "yes", "1", "on"}
FALSE_VALUES = {"false", "no", "0", "off", ""}


class BuildType(Enum):
    """Compiler configuration for a build."""

    RELEASE = "release"
    DEBUG = "debug"

    @classmethod
    def parse(cls, value: Any) -> "BuildType":
        """Parse a build type case-insensitively.

        Raises:
            InvalidContextError: If the value is not release or debug.
        """
        if isinstance(value, BuildType):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidContextError("build_type", value, "expected 'release' or 'debug'")


def parse_bool(field_name: str, value: Any) -> bool:
    """Coerce a boolean option.

    Accepts real booleans and the strings true/false, yes/no, on/off, 1/0
    (case-insensitive). An empty string counts as false.

    Raises:
        InvalidContextError: For any other value.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    raise InvalidContextError(field_name, value, "expected a boolean")


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class BuildContext:
    """Externally supplied metadata describing one build run.

    Attributes:
        build_type: Release or debug build.
        save_logs: Whether build logs are uploaded as artifacts.
        trigger_reason: Free-form reason given when the build was requested.
        source_repo: Repository that requested the build ("owner/name").
        source_ref: Branch or tag being built.
        source_sha: Commit SHA being built.
        run_id: CI run identifier.
        artifacts_retention_days: How long artifacts are kept.
        run_url: Link to the CI run page, if known.
    """

    build_type: BuildType = BuildType.RELEASE
    save_logs: bool = False
    trigger_reason: Optional[str] = None
    source_repo: Optional[str] = None
    source_ref: Optional[str] = None
    source_sha: Optional[str] = None
    run_id: Optional[str] = None
    artifacts_retention_days: int = 7
    run_url: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "build_type", BuildType.parse(self.build_type))
        if (
            isinstance(self.artifacts_retention_days, bool)
            or not isinstance(self.artifacts_retention_days, int)
            or self.artifacts_retention_days < 0
        ):
            raise InvalidContextError(
                "artifacts_retention_days",
                self.artifacts_retention_days,
                "expected an integer >= 0",
            )

    @property
    def short_sha(self) -> Optional[str]:
        """First 7 characters of the source SHA."""
        return self.source_sha[:7] if self.source_sha else None

    def replace(self, **changes: Any) -> "BuildContext":
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "BuildContext":
        """Build a context from CI environment variables.

        Args:
            environ: Mapping to read from, typically os.environ.

        Environment variables:
            BUILD_TYPE: release or debug. Defaults to release.
            SAVE_LOGS: Boolean. Defaults to false.
            TRIGGER_REASON: Optional reason text.
            SOURCE_REPO, SOURCE_REF, SOURCE_SHA: Commit being built.
            GITHUB_RUN_ID: CI run identifier.
            ARTIFACTS_RETENTION_DAYS: Integer >= 0. Defaults to 7.
            GITHUB_SERVER_URL, GITHUB_REPOSITORY: Used with GITHUB_RUN_ID
                to build the run URL.

        Raises:
            InvalidContextError: If a value cannot be coerced.
        """
        retention_raw = environ.get("ARTIFACTS_RETENTION_DAYS", "").strip()
        try:
            retention = int(retention_raw) if retention_raw else 7
        except ValueError:
            raise InvalidContextError(
                "artifacts_retention_days", retention_raw, "expected an integer >= 0"
            ) from None

        run_id = _optional(environ.get("GITHUB_RUN_ID"))
        run_url = None
        repository = _optional(environ.get("GITHUB_REPOSITORY"))
        if run_id and repository:
            server = environ.get("GITHUB_SERVER_URL") or "https://github.com"
            run_url = f"{server.rstrip('/')}/{repository}/actions/runs/{run_id}"

        return cls(
            build_type=BuildType.parse(environ.get("BUILD_TYPE") or "release"),
            save_logs=parse_bool("save_logs", environ.get("SAVE_LOGS", "false")),
            trigger_reason=_optional(environ.get("TRIGGER_REASON")),
            source_repo=_optional(environ.get("SOURCE_REPO")),
            source_ref=_optional(environ.get("SOURCE_REF")),
            source_sha=_optional(environ.get("SOURCE_SHA")),
            run_id=run_id,
            artifacts_retention_days=retention,
            run_url=run_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "build_type": self.build_type.value,
            "save_logs": self.save_logs,
            "trigger_reason": self.trigger_reason,
            "source_repo": self.source_repo,
            "source_ref": self.source_ref,
            "source_sha": self.source_sha,
            "run_id": self.run_id,
            "artifacts_retention_days": self.artifacts_retention_days,
            "run_url": self.run_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildContext":
        """Deserialize from dictionary."""
        return cls(
            build_type=BuildType.parse(data.get("build_type", "release")),
            save_logs=parse_bool("save_logs", data.get("save_logs", False)),
            trigger_reason=data.get("trigger_reason"),
            source_repo=data.get("source_repo"),
            source_ref=data.get("source_ref"),
            source_sha=data.get("source_sha"),
            run_id=data.get("run_id"),
            artifacts_retention_days=data.get("artifacts_retention_days", 7),
            run_url=data.get("run_url"),
        )


@dataclass(frozen=True)
class TriggerRequest:
    """A build requested through a pull-request comment.

    Attributes:
        build_type: Requested build type.
        save_logs: Whether to keep build logs.
        reason: Optional free-form reason.
    """

    build_type: BuildType = BuildType.RELEASE
    save_logs: bool = False
    reason: Optional[str] = None

    def apply(self, context: BuildContext) -> BuildContext:
        """Return a copy of context carrying this request's options."""
        return context.replace(
            build_type=self.build_type,
            save_logs=self.save_logs,
            trigger_reason=self.reason,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "build_type": self.build_type.value,
            "save_logs": self.save_logs,
            "reason": self.reason,
        }
