"""BuildOrchestrator - runs the calculator build as ledger-tracked steps."""

import hashlib
import json
import logging
import shutil
import tarfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from buildmetrics.context import BuildType
from buildmetrics.ledger import LedgerError, MetricsLedger, StepStatus

from .exceptions import UnknownCommandError, WorkspaceError
from .models import ALL_COMMANDS, BUILD_COMMANDS, BuildResult, StepOutcome, WorkspaceConfig
from .runner import CommandRunner

logger = logging.getLogger(__name__)

StepFn = Callable[[], StepStatus]


class BuildOrchestrator:
    """Orchestrates the multi-repository calculator build.

    Each unit of work is recorded in the metrics ledger. A failed fatal
    step (library/application build, tests or packaging) halts the run and every
    remaining step is recorded as skipped. Steps needing an optional tool
    that is not installed are recorded as skipped.

    Example:
        result = BuildOrchestrator(config, ledger=ledger).run(["all"])
        sys.exit(result.exit_code)
    """

    REQUIRED_TOOLS = ("make", "g++", "ar")
    OPTIONAL_TOOLS = ("cppcheck", "clang-format", "valgrind", "doxygen", "gcovr")

    LIBRARY_ARCHIVE = Path("lib") / "libcalculator.a"
    APPLICATION_BINARY = "calculator"
    BUILD_REPORT_NAME = "build-report.txt"
    PACKAGE_NAME = "demo-ci-calculator"

    def __init__(
        self,
        config: WorkspaceConfig,
        ledger: Optional[MetricsLedger] = None,
        runner: Optional[CommandRunner] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self._config = config
        self._ledger = ledger if ledger is not None else MetricsLedger()
        self._runner = runner or CommandRunner(config.logs_dir, verbose=config.verbose)
        self._which = which

    @property
    def ledger(self) -> MetricsLedger:
        return self._ledger

    # -------------------- Validation --------------------

    def validate_workspace(self) -> None:
        """Check the source directories exist and create build directories.

        Raises:
            WorkspaceError: If a required repository directory is missing.
        """
        cfg = self._config
        missing = []
        if not cfg.library_dir.is_dir():
            missing.append(f"static_library -> {cfg.library_path}")
        if not cfg.application_dir.is_dir():
            missing.append(f"application -> {cfg.application_path}")
        if missing:
            raise WorkspaceError("Missing required source directories", missing)

        cfg.artifacts_dir.mkdir(parents=True, exist_ok=True)
        cfg.logs_dir.mkdir(parents=True, exist_ok=True)
        logger.info("All required source directories found")

    def check_dependencies(self) -> list[str]:
        """Check build tools are installed.

        Returns:
            Optional tools that are missing (their features get skipped).

        Raises:
            WorkspaceError: If a required tool is missing.
        """
        missing = [tool for tool in self.REQUIRED_TOOLS if self._which(tool) is None]
        if missing:
            raise WorkspaceError("Missing required dependencies", missing)

        optional_missing = [tool for tool in self.OPTIONAL_TOOLS if self._which(tool) is None]
        for tool in optional_missing:
            logger.warning("Optional tool not found, its features will be skipped: %s", tool)
        return optional_missing

    def check_clean(self) -> None:
        """Refuse to build over uncommitted changes unless ignore_dirty is set.

        Raises:
            WorkspaceError: If a repository has uncommitted changes.
        """
        dirty = []
        for path in (self._config.library_dir, self._config.application_dir):
            if not (path / ".git").exists():
                continue
            code, output = self._runner.capture(["git", "status", "--porcelain"], path)
            if code == 0 and output.strip():
                dirty.append(f"{path.name} ({len(output.strip().splitlines())} changes)")

        if not dirty:
            return
        if self._config.ignore_dirty:
            logger.warning("Continuing with uncommitted changes: %s", ", ".join(dirty))
            return
        raise WorkspaceError("Uncommitted changes (use --ignore-dirty to continue)", dirty)

    # -------------------- Planning --------------------

    def plan(self, commands: Optional[Iterable[str]] = None) -> list[str]:
        """Expand build commands into an ordered, de-duplicated list.

        Raises:
            UnknownCommandError: For a command outside BUILD_COMMANDS.
        """
        expanded: list[str] = []
        for command in list(commands or ()) or ["all"]:
            if command not in BUILD_COMMANDS:
                raise UnknownCommandError(command)
            for unit in ALL_COMMANDS if command == "all" else (command,):
                if unit not in expanded:
                    expanded.append(unit)
        return expanded

    def _steps_for(self, command: str) -> list[tuple[str, StepFn, bool]]:
        """Return (step name, function, fatal) for one build command."""
        if command == "clean":
            return [("clean", self._clean, False)]
        if command == "build":
            return [
                ("build_library", self._build_library, True),
                ("build_application", self._build_application, True),
            ]
        if command == "test":
            return [
                ("test_library", self._test_library, True),
                ("test_application", self._test_application, True),
            ]
        if command == "analyze":
            return [
                ("analyze_library", self._analyze_library, False),
                ("analyze_application", self._analyze_application, False),
            ]
        if command == "memory":
            return [("memory_test", self._memory_test, False)]
        if command == "docs":
            return [("docs", self._docs, False)]
        if command == "report":
            return [("build_report", self._build_report, False)]
        if command == "coverage":
            return [("coverage", self._coverage, False)]
        if command == "package":
            return [("package", self._package, True)]
        return []

    # -------------------- Steps --------------------

    def _make(self, component: str, targets: list[str], cwd: Path) -> StepStatus:
        code = self._runner.run(component, ["make", *targets], cwd)
        if code != 0:
            logger.error("%s failed, check log: %s", component, self._runner.log_file(component))
            return StepStatus.FAILURE
        return StepStatus.SUCCESS

    def _jobs(self) -> str:
        return f"-j{self._config.parallel_jobs}"

    def _clean(self) -> StepStatus:
        cfg = self._config
        status = StepStatus.SUCCESS
        for component, path in (
            ("static_lib_clean", cfg.library_dir),
            ("application_clean", cfg.application_dir),
        ):
            if path.is_dir() and self._make(component, ["clean"], path) != StepStatus.SUCCESS:
                status = StepStatus.FAILURE

        for directory in (cfg.artifacts_dir, cfg.logs_dir, cfg.reports_dir):
            if not directory.is_dir():
                continue
            for child in directory.iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
        logger.info("Build artifacts cleaned")
        return status

    def _build_library(self) -> StepStatus:
        cfg = self._config
        target = "debug" if cfg.build_type == BuildType.DEBUG else "static"
        status = self._make("static_lib_build", [target, self._jobs()], cfg.library_dir)
        archive = cfg.library_dir / self.LIBRARY_ARCHIVE
        if status != StepStatus.SUCCESS or not archive.is_file():
            logger.error("Static library build failed")
            return StepStatus.FAILURE

        cfg.artifacts_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(archive, cfg.artifacts_dir)
        for header in sorted((cfg.library_dir / "include").glob("*.h")):
            shutil.copy2(header, cfg.artifacts_dir)
        logger.info("Static library built (%d bytes)", archive.stat().st_size)
        return StepStatus.SUCCESS

    def _build_application(self) -> StepStatus:
        cfg = self._config
        targets = ["debug", self._jobs()] if cfg.build_type == BuildType.DEBUG else [self._jobs()]
        status = self._make("application_build", targets, cfg.application_dir)
        binary = cfg.application_dir / self.APPLICATION_BINARY
        if status != StepStatus.SUCCESS or not binary.is_file():
            logger.error("Application build failed")
            return StepStatus.FAILURE

        cfg.artifacts_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(binary, cfg.artifacts_dir)
        logger.info("Application built (%d bytes)", binary.stat().st_size)
        return StepStatus.SUCCESS

    def _test_library(self) -> StepStatus:
        return self._make("static_lib_test", ["test"], self._config.library_dir)

    def _test_application(self) -> StepStatus:
        return self._make("application_test", ["test"], self._config.application_dir)

    def _analyze(self, component: str, cwd: Path) -> StepStatus:
        if self._which("cppcheck") is None:
            logger.warning("cppcheck not available, skipping static analysis")
            return StepStatus.SKIPPED
        return self._make(component, ["analyze"], cwd)

    def _analyze_library(self) -> StepStatus:
        return self._analyze("static_lib_analysis", self._config.library_dir)

    def _analyze_application(self) -> StepStatus:
        return self._analyze("application_analysis", self._config.application_dir)

    def _memory_test(self) -> StepStatus:
        if self._which("valgrind") is None:
            logger.warning("valgrind not available, skipping memory tests")
            return StepStatus.SKIPPED
        code = self._runner.run(
            "memory_test",
            [
                "valgrind",
                "--leak-check=full",
                "--error-exitcode=1",
                f"./{self.APPLICATION_BINARY}",
            ],
            self._config.application_dir,
            stdin_text="2 + 2\n",
        )
        if code != 0:
            logger.warning(
                "Memory test issues found, check log: %s",
                self._runner.log_file("memory_test"),
            )
            return StepStatus.FAILURE
        return StepStatus.SUCCESS

    def _docs(self) -> StepStatus:
        cfg = self._config
        if self._which("doxygen") is None:
            logger.warning("doxygen not available, skipping documentation generation")
            return StepStatus.SKIPPED
        if not (cfg.application_dir / "Doxyfile").is_file():
            logger.info("No Doxyfile in %s, skipping documentation", cfg.application_path)
            return StepStatus.SKIPPED

        status = self._make("docs_generation", ["docs"], cfg.application_dir)
        html = cfg.application_dir / "docs" / "html"
        if status == StepStatus.SUCCESS and html.is_dir():
            target = cfg.artifacts_dir / "docs-application"
            if target.exists():
                shutil.rmtree(target)
            shutil.copytree(html, target)
        return status

    def _build_report(self) -> StepStatus:
        """Write artifacts/build-report.txt listing build info, artifacts and logs."""
        cfg = self._config
        cfg.artifacts_dir.mkdir(parents=True, exist_ok=True)
        report_file = cfg.artifacts_dir / self.BUILD_REPORT_NAME

        artifacts = sorted(
            path
            for path in cfg.artifacts_dir.rglob("*")
            if path.is_file() and path != report_file
        )
        logs = sorted(cfg.logs_dir.glob("*.log")) if cfg.logs_dir.is_dir() else []

        lines = [
            "Calculator Multi-Repository Build Report",
            "========================================",
            "",
            "Build Information:",
            f"- Date: {datetime.now(timezone.utc).isoformat(timespec='seconds')}",
            f"- Build Type: {cfg.build_type.value}",
            f"- Parallel Jobs: {cfg.parallel_jobs}",
            f"- Workspace: {cfg.workspace_root}",
            "",
            "Build Artifacts:",
        ]
        lines += [
            f"- {path.relative_to(cfg.artifacts_dir)} ({path.stat().st_size} bytes)"
            for path in artifacts
        ] or ["- (none)"]
        lines += ["", "Build Logs:"]
        lines += [f"- {path.name}" for path in logs] or ["- (none)"]

        report_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
        logger.info("Build report created: %s", report_file)
        return StepStatus.SUCCESS

    def _coverage(self) -> StepStatus:
        cfg = self._config
        if self._which("gcovr") is None:
            logger.warning("gcovr not available, skipping coverage report")
            return StepStatus.SKIPPED

        cfg.reports_dir.mkdir(parents=True, exist_ok=True)
        base = ["gcovr", "-r", ".", "--exclude", "tests/", "--exclude", "build/"]
        status = StepStatus.SUCCESS
        for output in (
            ["--html-details", str(cfg.reports_dir / "coverage.html"), "--print-summary"],
            ["--xml", str(cfg.reports_dir / "coverage.xml")],
            ["--json", str(cfg.reports_dir / "coverage.json")],
        ):
            if self._runner.run("coverage", [*base, *output], cfg.workspace_root) != 0:
                status = StepStatus.FAILURE
        if status == StepStatus.SUCCESS:
            logger.info("Coverage report generated: %s", cfg.reports_dir / "coverage.html")
        else:
            logger.error(
                "Coverage generation failed, check log: %s",
                self._runner.log_file("coverage"),
            )
        return status

    def _package(self) -> StepStatus:
        """Assemble the deployment package, its tar.gz archive and checksum."""
        cfg = self._config
        binary = cfg.application_dir / self.APPLICATION_BINARY
        archive = cfg.library_dir / self.LIBRARY_ARCHIVE
        missing = [str(path) for path in (binary, archive) if not path.is_file()]
        if missing:
            logger.error("Cannot package, build outputs missing: %s", ", ".join(missing))
            return StepStatus.FAILURE

        package_dir = cfg.package_dir
        if package_dir.exists():
            shutil.rmtree(package_dir)
        for sub in ("bin", "lib", "include", "docs"):
            (package_dir / sub).mkdir(parents=True)

        shutil.copy2(binary, package_dir / "bin")
        shutil.copy2(archive, package_dir / "lib")
        headers = sorted((cfg.library_dir / "include").glob("*.h"))
        for header in headers:
            shutil.copy2(header, package_dir / "include")
        html = cfg.application_dir / "docs" / "html"
        if html.is_dir():
            shutil.copytree(html, package_dir / "docs" / "html")

        built_at = datetime.now(timezone.utc)
        version = built_at.strftime("%Y%m%d-%H%M%S")
        metadata = {
            "name": self.PACKAGE_NAME,
            "version": version,
            "description": "Calculator application and static library",
            "build_date": built_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "build_type": cfg.build_type.value,
            "components": {
                "application": self.APPLICATION_BINARY,
                "library": archive.name,
            },
            "files": {
                "bin": [self.APPLICATION_BINARY],
                "lib": [archive.name],
                "include": [header.name for header in headers],
            },
        }
        with open(package_dir / "package.json", "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=4)
            f.write("\n")

        tarball = cfg.artifacts_dir / f"{self.PACKAGE_NAME}-{version}.tar.gz"
        with tarfile.open(tarball, "w:gz") as tar:
            tar.add(package_dir, arcname="package")

        digest = hashlib.sha256()
        with open(tarball, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                digest.update(chunk)
        checksum_file = tarball.with_name(f"{self.PACKAGE_NAME}-{version}.sha256")
        # Same layout as sha256sum so `sha256sum -c` can verify it
        checksum_file.write_text(f"{digest.hexdigest()}  {tarball.name}\n", encoding="utf-8")

        logger.info("Package created: %s (%d bytes)", tarball.name, tarball.stat().st_size)
        return StepStatus.SUCCESS

    # -------------------- Execution --------------------

    def _record_skip(self, name: str, result: BuildResult, fatal: bool) -> None:
        try:
            self._ledger.skip_step(name)
        except LedgerError as e:
            logger.error("Could not record skipped step '%s': %s", name, e)
            result.add_warning(str(e))
        result.steps.append(StepOutcome(name=name, status=StepStatus.SKIPPED, fatal=fatal))

    def _run_step(self, name: str, fn: StepFn, fatal: bool, result: BuildResult) -> StepOutcome:
        """Run a step with ledger tracking and error isolation.

        Ledger bookkeeping failures are recorded as warnings; they never
        change the step's own outcome.
        """
        tracked = True
        try:
            self._ledger.begin_step(name)
        except LedgerError as e:
            tracked = False
            logger.error("Could not begin tracking step '%s': %s", name, e)
            result.add_warning(str(e))

        error = None
        try:
            status = fn()
        except Exception as e:
            logger.exception("Step '%s' failed", name)
            status = StepStatus.FAILURE
            error = str(e)

        if tracked:
            try:
                self._ledger.end_step(name, status)
            except LedgerError as e:
                logger.error("Could not record step '%s': %s", name, e)
                result.add_warning(str(e))

        outcome = StepOutcome(name=name, status=status, fatal=fatal, error=error)
        result.steps.append(outcome)
        return outcome

    def log_status(self) -> None:
        """Log workspace information."""
        cfg = self._config
        logger.info("Workspace: %s", cfg.workspace_root)
        logger.info("Build type: %s, parallel jobs: %d", cfg.build_type.value, cfg.parallel_jobs)
        logger.info("Artifacts: %s", cfg.artifacts_dir)
        logger.info("Logs: %s", cfg.logs_dir)

    def run(
        self,
        commands: Optional[Iterable[str]] = None,
        append: bool = False,
    ) -> BuildResult:
        """Validate the workspace and run the requested build commands.

        A run that executes any step first resets the ledger unless append
        is set.

        Args:
            commands: Any of BUILD_COMMANDS. Defaults to ["all"].
            append: Keep records already in the ledger and add to them.

        Returns:
            BuildResult with per-step outcomes; exit_code is 1 when
            validation or a fatal step failed.
        """
        result = BuildResult(started_at=datetime.now(timezone.utc))

        try:
            plan = self.plan(commands)
            if not append and any(self._steps_for(command) for command in plan):
                self._ledger.reset()
            self.validate_workspace()
            self.check_dependencies()
            self.check_clean()
        except (UnknownCommandError, WorkspaceError, OSError) as e:
            logger.error("%s", e)
            result.add_error(str(e))
            result.finished_at = datetime.now(timezone.utc)
            return result

        logger.info(
            "Building (%s, %d jobs): %s",
            self._config.build_type.value,
            self._config.parallel_jobs,
            " ".join(plan),
        )

        halted = False
        for command in plan:
            if command == "status":
                self.log_status()
                continue
            for name, fn, fatal in self._steps_for(command):
                if halted:
                    self._record_skip(name, result, fatal)
                    continue
                outcome = self._run_step(name, fn, fatal, result)
                if fatal and outcome.status == StepStatus.FAILURE:
                    logger.error("Fatal step '%s' failed; skipping remaining steps", name)
                    halted = True

        result.finished_at = datetime.now(timezone.utc)
        return result
