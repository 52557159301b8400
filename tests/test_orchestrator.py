"""Unit tests for the BuildOrchestrator."""

import hashlib
import json
import tarfile
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from buildmetrics.context import BuildType
from buildmetrics.ledger import (
    DuplicateStepError,
    InMemoryLedgerStorage,
    MetricsLedger,
    StepStatus,
)
from buildmetrics.orchestrator import (
    BuildOrchestrator,
    BuildResult,
    CommandRunner,
    StepOutcome,
    UnknownCommandError,
    WorkspaceConfig,
    WorkspaceError,
)

ALL_STEPS = [
    "clean",
    "build_library",
    "build_application",
    "test_library",
    "test_application",
    "analyze_library",
    "analyze_application",
    "memory_test",
    "docs",
    "build_report",
]


@pytest.fixture
def workspace(tmp_path):
    """Workspace with a library and application that 'build' successfully."""
    root = tmp_path / "workspace"
    lib = root / "libs" / "calculator"
    (lib / "lib").mkdir(parents=True)
    (lib / "include").mkdir()
    (lib / "lib" / "libcalculator.a").write_bytes(b"!<arch>\n")
    (lib / "include" / "calculator.h").write_text("int add(int, int);\n")
    app = root / "application"
    app.mkdir(parents=True)
    (app / "calculator").write_bytes(b"\x7fELF")
    return root


@pytest.fixture
def config(workspace, tmp_path):
    return WorkspaceConfig(
        workspace_root=workspace,
        build_dir=tmp_path / "build",
        parallel_jobs=4,
    )


def _which(missing=()):
    return lambda tool: None if tool in missing else f"/usr/bin/{tool}"


def _runner(failing=()):
    runner = MagicMock(spec=CommandRunner)
    runner.run.side_effect = lambda component, *args, **kwargs: 1 if component in failing else 0
    runner.capture.return_value = (0, "")
    return runner


def _orchestrator(config, runner=None, missing=(), ledger=None):
    return BuildOrchestrator(
        config,
        ledger=ledger if ledger is not None else MetricsLedger(storage=InMemoryLedgerStorage()),
        runner=runner or _runner(),
        which=_which(missing),
    )


def _statuses(ledger):
    return {record.name: record.status for record in ledger.records}


class TestBuildResult:
    def test_success_with_no_steps(self):
        assert BuildResult(started_at=datetime.now(timezone.utc)).exit_code == 0

    def test_non_fatal_failure_still_succeeds(self):
        result = BuildResult(started_at=datetime.now(timezone.utc))
        result.steps.append(StepOutcome(name="analyze_library", status=StepStatus.FAILURE))

        assert result.success is True

    def test_fatal_failure(self):
        result = BuildResult(started_at=datetime.now(timezone.utc))
        result.steps.append(
            StepOutcome(name="build_library", status=StepStatus.FAILURE, fatal=True)
        )

        assert result.exit_code == 1

    def test_errors_fail(self):
        result = BuildResult(started_at=datetime.now(timezone.utc))
        result.add_error("Missing required source directories")

        assert result.success is False

    def test_warnings_do_not_fail(self):
        result = BuildResult(started_at=datetime.now(timezone.utc))
        result.add_warning("could not record step")

        assert result.success is True


class TestPlan:
    def test_default_is_all(self, config):
        assert _orchestrator(config).plan() == [
            "clean",
            "build",
            "test",
            "analyze",
            "memory",
            "docs",
            "report",
        ]

    def test_deduplicates_in_order(self, config):
        assert _orchestrator(config).plan(["test", "build", "test"]) == ["test", "build"]

    def test_all_merges_with_explicit_commands(self, config):
        assert _orchestrator(config).plan(["docs", "all"])[0] == "docs"

    def test_unknown_command(self, config):
        with pytest.raises(UnknownCommandError):
            _orchestrator(config).plan(["deploy"])


class TestValidation:
    def test_missing_source_directories(self, tmp_path):
        config = WorkspaceConfig(workspace_root=tmp_path / "empty", build_dir=tmp_path)

        with pytest.raises(WorkspaceError) as exc_info:
            _orchestrator(config).validate_workspace()

        assert exc_info.value.problems == [
            "static_library -> libs/calculator",
            "application -> application",
        ]

    def test_creates_build_directories(self, config):
        _orchestrator(config).validate_workspace()

        assert config.artifacts_dir.is_dir()
        assert config.logs_dir.is_dir()

    def test_missing_required_tool(self, config):
        with pytest.raises(WorkspaceError, match="g\\+\\+"):
            _orchestrator(config, missing=("g++",)).check_dependencies()

    def test_missing_optional_tools_reported(self, config):
        missing = _orchestrator(config, missing=("valgrind",)).check_dependencies()

        assert missing == ["valgrind"]

    def test_dirty_repository_rejected(self, config):
        (config.library_dir / ".git").mkdir()
        runner = _runner()
        runner.capture.return_value = (0, " M src/calculator.c\n")

        with pytest.raises(WorkspaceError, match="calculator \\(1 changes\\)"):
            _orchestrator(config, runner=runner).check_clean()

        runner.capture.assert_called_once_with(
            ["git", "status", "--porcelain"], config.library_dir
        )

    def test_dirty_repository_allowed_with_ignore_dirty(self, config):
        config.ignore_dirty = True
        (config.application_dir / ".git").mkdir()
        runner = _runner()
        runner.capture.return_value = (0, " M main.c\n")

        _orchestrator(config, runner=runner).check_clean()


class TestBuildOrchestratorRun:
    """Tests for BuildOrchestrator.run."""

    def test_full_build_records_every_step(self, config):
        orchestrator = _orchestrator(config)

        result = orchestrator.run(["all"])

        assert result.exit_code == 0
        assert [step.name for step in result.steps] == ALL_STEPS
        assert [r.name for r in orchestrator.ledger.records] == ALL_STEPS
        statuses = _statuses(orchestrator.ledger)
        assert statuses["build_library"] == StepStatus.SUCCESS
        # No Doxyfile in the application
        assert statuses["docs"] == StepStatus.SKIPPED

    def test_artifacts_collected(self, config):
        _orchestrator(config).run(["build"])

        assert (config.artifacts_dir / "libcalculator.a").is_file()
        assert (config.artifacts_dir / "calculator.h").is_file()
        assert (config.artifacts_dir / "calculator").is_file()

    def test_release_make_targets(self, config):
        runner = _runner()

        _orchestrator(config, runner=runner).run(["build"])

        runner.run.assert_any_call("static_lib_build", ["make", "static", "-j4"], config.library_dir)
        runner.run.assert_any_call("application_build", ["make", "-j4"], config.application_dir)

    def test_debug_make_targets(self, config):
        config.build_type = BuildType.DEBUG
        runner = _runner()

        _orchestrator(config, runner=runner).run(["build"])

        runner.run.assert_any_call("static_lib_build", ["make", "debug", "-j4"], config.library_dir)
        runner.run.assert_any_call(
            "application_build", ["make", "debug", "-j4"], config.application_dir
        )

    def test_fatal_failure_skips_remaining_steps(self, config):
        orchestrator = _orchestrator(config, runner=_runner(failing=("static_lib_build",)))

        result = orchestrator.run(["build", "test", "docs"])

        assert result.exit_code == 1
        assert _statuses(orchestrator.ledger) == {
            "build_library": StepStatus.FAILURE,
            "build_application": StepStatus.SKIPPED,
            "test_library": StepStatus.SKIPPED,
            "test_application": StepStatus.SKIPPED,
            "docs": StepStatus.SKIPPED,
        }

    def test_missing_build_output_fails_step(self, config):
        (config.application_dir / "calculator").unlink()
        orchestrator = _orchestrator(config)

        result = orchestrator.run(["build"])

        assert result.exit_code == 1
        assert _statuses(orchestrator.ledger)["build_application"] == StepStatus.FAILURE

    def test_non_fatal_failure_continues(self, config):
        orchestrator = _orchestrator(config, runner=_runner(failing=("static_lib_analysis",)))

        result = orchestrator.run(["analyze", "memory"])

        assert result.exit_code == 0
        statuses = _statuses(orchestrator.ledger)
        assert statuses["analyze_library"] == StepStatus.FAILURE
        assert statuses["analyze_application"] == StepStatus.SUCCESS
        assert statuses["memory_test"] == StepStatus.SUCCESS

    def test_missing_optional_tools_skip_steps(self, config):
        orchestrator = _orchestrator(config, missing=("cppcheck", "valgrind", "doxygen"))

        orchestrator.run(["analyze", "memory", "docs"])

        assert set(_statuses(orchestrator.ledger).values()) == {StepStatus.SKIPPED}

    def test_memory_test_feeds_input(self, config):
        runner = _runner()

        _orchestrator(config, runner=runner).run(["memory"])

        args, kwargs = runner.run.call_args
        assert args[0] == "memory_test"
        assert args[1][0] == "valgrind"
        assert kwargs["stdin_text"] == "2 + 2\n"

    def test_docs_generated_with_doxyfile(self, config):
        (config.application_dir / "Doxyfile").write_text("PROJECT_NAME = calculator\n")
        html = config.application_dir / "docs" / "html"
        html.mkdir(parents=True)
        (html / "index.html").write_text("<html></html>")
        orchestrator = _orchestrator(config)

        orchestrator.run(["docs"])

        assert _statuses(orchestrator.ledger)["docs"] == StepStatus.SUCCESS
        assert (config.artifacts_dir / "docs-application" / "index.html").is_file()

    def test_step_exception_is_isolated(self, config):
        runner = _runner()
        runner.run.side_effect = OSError("disk full")
        orchestrator = _orchestrator(config, runner=runner)

        result = orchestrator.run(["analyze"])

        assert result.steps[0].error == "disk full"
        assert _statuses(orchestrator.ledger)["analyze_library"] == StepStatus.FAILURE
        assert _statuses(orchestrator.ledger)["analyze_application"] == StepStatus.FAILURE

    def test_validation_failure_runs_nothing(self, tmp_path):
        config = WorkspaceConfig(workspace_root=tmp_path / "empty", build_dir=tmp_path)
        runner = _runner()
        orchestrator = _orchestrator(config, runner=runner)

        result = orchestrator.run()

        assert result.exit_code == 1
        assert "Missing required source directories" in result.errors[0]
        assert result.steps == []
        runner.run.assert_not_called()

    def test_unknown_command_fails_run(self, config):
        result = _orchestrator(config).run(["deploy"])

        assert result.errors == ["Unknown build command 'deploy'"]

    def test_ledger_conflict_is_warning_only(self, config):
        ledger = MetricsLedger(storage=InMemoryLedgerStorage())
        ledger.record_step("clean", 0.0, 1.0, StepStatus.SUCCESS)
        orchestrator = _orchestrator(config, ledger=ledger)

        result = orchestrator.run(["clean"], append=True)

        assert result.exit_code == 0
        assert result.steps[0].status == StepStatus.SUCCESS
        assert result.warnings == [str(DuplicateStepError("clean"))]

    def test_status_command_runs_no_steps(self, config):
        result = _orchestrator(config).run(["status"])

        assert result.steps == []
        assert result.exit_code == 0


class TestRepeatedRuns:
    """Tests for running the orchestrator against a ledger file more than once."""

    def test_second_run_starts_fresh(self, config, tmp_path):
        path = tmp_path / "build-metrics.csv"
        _orchestrator(config, ledger=MetricsLedger.open(path)).run(["clean", "docs"])

        result = _orchestrator(config, ledger=MetricsLedger.open(path)).run(["clean", "memory"])

        assert result.warnings == []
        assert [r.name for r in MetricsLedger.load(path).records] == ["clean", "memory_test"]

    def test_append_keeps_earlier_records(self, config, tmp_path):
        path = tmp_path / "build-metrics.csv"
        _orchestrator(config, ledger=MetricsLedger.open(path)).run(["clean"])

        result = _orchestrator(config, ledger=MetricsLedger.open(path)).run(["docs"], append=True)

        assert result.warnings == []
        assert [r.name for r in MetricsLedger.load(path).records] == ["clean", "docs"]

    def test_unknown_command_keeps_ledger(self, config):
        ledger = MetricsLedger(storage=InMemoryLedgerStorage())
        ledger.record_step("clean", 0.0, 1.0, StepStatus.SUCCESS)

        _orchestrator(config, ledger=ledger).run(["deploy"])

        assert len(ledger) == 1

    def test_status_only_keeps_ledger(self, config):
        ledger = MetricsLedger(storage=InMemoryLedgerStorage())
        ledger.record_step("clean", 0.0, 1.0, StepStatus.SUCCESS)

        _orchestrator(config, ledger=ledger).run(["status"])

        assert len(ledger) == 1


class TestBuildReport:
    def test_lists_artifacts_and_logs(self, config):
        config.logs_dir.mkdir(parents=True)
        (config.logs_dir / "static_lib_build.log").write_text("ok\n")
        orchestrator = _orchestrator(config)

        orchestrator.run(["build", "report"])

        report = (config.artifacts_dir / "build-report.txt").read_text()
        assert _statuses(orchestrator.ledger)["build_report"] == StepStatus.SUCCESS
        assert report.startswith("Calculator Multi-Repository Build Report\n")
        assert "- Build Type: release" in report
        assert "- Parallel Jobs: 4" in report
        assert "- libcalculator.a (8 bytes)" in report
        assert "- static_lib_build.log" in report
        assert "build-report.txt" not in report

    def test_empty_build(self, config):
        _orchestrator(config).run(["report"])

        report = (config.artifacts_dir / "build-report.txt").read_text()
        assert "Build Artifacts:\n- (none)\n" in report
        assert "Build Logs:\n- (none)\n" in report


class TestCoverage:
    def test_skipped_without_gcovr(self, config):
        runner = _runner()
        orchestrator = _orchestrator(config, runner=runner, missing=("gcovr",))

        orchestrator.run(["coverage"])

        assert _statuses(orchestrator.ledger)["coverage"] == StepStatus.SKIPPED
        runner.run.assert_not_called()

    def test_generates_reports(self, config):
        runner = _runner()
        orchestrator = _orchestrator(config, runner=runner)

        orchestrator.run(["coverage"])

        assert _statuses(orchestrator.ledger)["coverage"] == StepStatus.SUCCESS
        assert config.reports_dir.is_dir()
        calls = runner.run.call_args_list
        assert len(calls) == 3
        for call in calls:
            component, command, cwd = call.args
            assert component == "coverage"
            assert command[:3] == ["gcovr", "-r", "."]
            assert cwd == config.workspace_root
        assert "--xml" in calls[1].args[1]
        assert "--json" in calls[2].args[1]

    def test_failure_is_not_fatal(self, config):
        orchestrator = _orchestrator(config, runner=_runner(failing=("coverage",)))

        result = orchestrator.run(["coverage", "docs"])

        assert result.exit_code == 0
        assert _statuses(orchestrator.ledger)["coverage"] == StepStatus.FAILURE
        assert _statuses(orchestrator.ledger)["docs"] == StepStatus.SKIPPED


class TestPackage:
    def test_creates_package_archive_and_checksum(self, config):
        orchestrator = _orchestrator(config)

        result = orchestrator.run(["package"])

        assert result.exit_code == 0
        package_dir = config.package_dir
        assert (package_dir / "bin" / "calculator").is_file()
        assert (package_dir / "lib" / "libcalculator.a").is_file()
        assert (package_dir / "include" / "calculator.h").is_file()
        assert (package_dir / "docs").is_dir()

        metadata = json.loads((package_dir / "package.json").read_text())
        assert metadata["name"] == "demo-ci-calculator"
        assert metadata["build_type"] == "release"
        assert metadata["files"]["include"] == ["calculator.h"]

        tarball = config.artifacts_dir / f"demo-ci-calculator-{metadata['version']}.tar.gz"
        with tarfile.open(tarball) as tar:
            assert "package/bin/calculator" in tar.getnames()

        checksum = tarball.with_name(f"demo-ci-calculator-{metadata['version']}.sha256")
        expected = hashlib.sha256(tarball.read_bytes()).hexdigest()
        assert checksum.read_text() == f"{expected}  {tarball.name}\n"

    def test_missing_binary_is_fatal(self, config):
        (config.application_dir / "calculator").unlink()
        orchestrator = _orchestrator(config)

        result = orchestrator.run(["package", "docs"])

        assert result.exit_code == 1
        assert _statuses(orchestrator.ledger) == {
            "package": StepStatus.FAILURE,
            "docs": StepStatus.SKIPPED,
        }
        assert not config.package_dir.exists()


class TestCommandRunner:
    def test_run_logs_output(self, tmp_path):
        runner = CommandRunner(tmp_path / "logs")

        code = runner.run("echo", ["sh", "-c", "echo built"], tmp_path)

        assert code == 0
        log = (tmp_path / "logs" / "echo.log").read_text()
        assert log.startswith("Running: sh -c 'echo built'\n")
        assert "built" in log

    def test_run_missing_program(self, tmp_path):
        runner = CommandRunner(tmp_path / "logs")

        assert runner.run("missing", ["definitely-not-a-program-xyz"], tmp_path) == 127

    def test_run_feeds_stdin(self, tmp_path):
        runner = CommandRunner(tmp_path / "logs")

        runner.run("cat", ["cat"], tmp_path, stdin_text="2 + 2\n")

        assert "2 + 2" in runner.log_file("cat").read_text()

    def test_capture(self, tmp_path):
        code, output = CommandRunner(tmp_path).capture(["sh", "-c", "exit 3"], tmp_path)

        assert code == 3
        assert output == ""
