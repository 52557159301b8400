"""CLI entry point for build metrics, summaries and the calculator build."""

import argparse
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from buildmetrics.context import (
    BuildContext,
    BuildType,
    ContextError,
    TriggerParseError,
    TriggerParser,
)
from buildmetrics.ledger import (
    FileLedgerStorage,
    LedgerError,
    MetricsLedger,
    ParseError,
    StepStatus,
)
from buildmetrics.logging_config import configure_logging
from buildmetrics.notifier import Destination, PRNotifier
from buildmetrics.orchestrator import BUILD_COMMANDS, BuildOrchestrator, WorkspaceConfig
from buildmetrics.summary import DEFAULT_MARKER, SummaryRenderer, write_step_summary

DEFAULT_LEDGER = "build-metrics.csv"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Record build step metrics and report build summaries"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging level (overrides LOG_LEVEL env var)",
    )
    parser.add_argument(
        "--ledger",
        type=Path,
        default=None,
        help=f"Metrics ledger file (default: $BUILD_METRICS_LEDGER or {DEFAULT_LEDGER})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    track = sub.add_parser("track", help="Run a command as a tracked step")
    track.add_argument("name", help="Step name")
    track.add_argument("cmd", nargs=argparse.REMAINDER, help="Command after --")

    skip = sub.add_parser("skip", help="Record a step as skipped")
    skip.add_argument("name", help="Step name")

    record = sub.add_parser("record", help="Record a step timed elsewhere")
    record.add_argument("name", help="Step name")
    record.add_argument("--start", type=float, required=True, help="Start (epoch seconds)")
    record.add_argument("--end", type=float, required=True, help="End (epoch seconds)")
    record.add_argument(
        "--status",
        choices=[s.value for s in StepStatus],
        required=True,
        help="Step outcome",
    )

    sub.add_parser("reset", help="Start a fresh ledger for a new run")

    summary = sub.add_parser("summary", help="Print the build summary")
    summary.add_argument(
        "--step-summary",
        default=None,
        help="Also append to this file (default: $GITHUB_STEP_SUMMARY)",
    )

    notify = sub.add_parser("notify", help="Post the build summary to a pull request")
    notify.add_argument("--repo", required=True, help="Repository as owner/name")
    notify.add_argument("--pr", type=int, required=True, help="Pull request number")
    notify.add_argument("--token", default=None, help="GitHub token (default: $GITHUB_TOKEN)")
    notify.add_argument("--marker", default=DEFAULT_MARKER, help="Hidden comment marker")
    notify.add_argument(
        "--outputs",
        default=None,
        help="Write comment-posted/comment-url here (default: $GITHUB_OUTPUT)",
    )

    trigger = sub.add_parser("trigger", help="Parse a /build pull-request comment")
    trigger.add_argument("--body", default=None, help="Comment text (default: stdin)")
    trigger.add_argument(
        "--outputs",
        default=None,
        help="Write build-type/save-logs/reason here (default: $GITHUB_OUTPUT)",
    )

    build = sub.add_parser("build", help="Run the calculator workspace build")
    build.add_argument(
        "targets",
        nargs="*",
        metavar="COMMAND",
        help=f"One or more of: {', '.join(BUILD_COMMANDS)} (default: all)",
    )
    mode = build.add_mutually_exclusive_group()
    mode.add_argument("--debug", action="store_true", help="Build in debug mode")
    mode.add_argument("--release", action="store_true", help="Build in release mode (default)")
    build.add_argument("--verbose", action="store_true", help="Echo command output")
    build.add_argument(
        "--parallel",
        type=int,
        default=os.cpu_count() or 1,
        metavar="N",
        help="Use N parallel jobs",
    )
    build.add_argument(
        "--ignore-dirty", action="store_true", help="Continue with uncommitted changes"
    )
    build.add_argument(
        "--append",
        action="store_true",
        help="Add to the existing ledger instead of starting a fresh run",
    )
    build.add_argument(
        "--workspace",
        type=Path,
        default=Path.cwd().parent,
        help="Workspace root holding all repositories (default: parent directory)",
    )
    return parser


def _ledger_path(args: argparse.Namespace) -> Path:
    return args.ledger or Path(os.environ.get("BUILD_METRICS_LEDGER", DEFAULT_LEDGER))


def _load_ledger(args: argparse.Namespace) -> Optional[MetricsLedger]:
    try:
        return MetricsLedger.open(_ledger_path(args))
    except ParseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return None


def _cmd_track(args: argparse.Namespace) -> int:
    cmd = args.cmd[1:] if args.cmd[:1] == ["--"] else args.cmd
    if not cmd:
        print("ERROR: no command given to track", file=sys.stderr)
        return 1
    ledger = _load_ledger(args)
    if ledger is None:
        return 1
    try:
        ledger.begin_step(args.name)
    except (LedgerError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    try:
        returncode = subprocess.run(cmd).returncode
    except FileNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        returncode = 127
    status = StepStatus.SUCCESS if returncode == 0 else StepStatus.FAILURE
    ledger.end_step(args.name, status)
    return returncode


def _cmd_skip(args: argparse.Namespace) -> int:
    ledger = _load_ledger(args)
    if ledger is None:
        return 1
    try:
        ledger.skip_step(args.name)
    except (LedgerError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


def _cmd_record(args: argparse.Namespace) -> int:
    ledger = _load_ledger(args)
    if ledger is None:
        return 1
    try:
        ledger.record_step(args.name, args.start, args.end, StepStatus(args.status))
    except (LedgerError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


def _cmd_reset(args: argparse.Namespace) -> int:
    # Truncate without parsing so a corrupt ledger can still be reset
    FileLedgerStorage(_ledger_path(args)).truncate()
    return 0


def _render(args: argparse.Namespace, comment_marker: Optional[str] = None) -> tuple[str, int]:
    """Render the summary for the current ledger and environment."""
    exit_code = 0
    ledger = _load_ledger(args)
    if ledger is None:
        exit_code = 1
    try:
        context = BuildContext.from_env(os.environ)
    except ContextError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        context = BuildContext()
        exit_code = 1

    renderer = SummaryRenderer()
    report = renderer.compute_report(ledger, context)
    if comment_marker:
        return renderer.render_comment(report, marker=comment_marker), exit_code
    return renderer.render_full_summary(report), exit_code


def _cmd_summary(args: argparse.Namespace) -> int:
    text, exit_code = _render(args)
    print(text)
    write_step_summary(text, args.step_summary or os.environ.get("GITHUB_STEP_SUMMARY"))
    return exit_code


def _cmd_notify(args: argparse.Namespace) -> int:
    text, _ = _render(args, comment_marker=args.marker)
    try:
        destination = Destination(repo=args.repo, pr_number=args.pr)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    with PRNotifier(token=args.token, marker=args.marker) as notifier:
        result = notifier.notify(text, destination)
    result.write_outputs(args.outputs or os.environ.get("GITHUB_OUTPUT"))
    if result.comment_posted:
        print(f"Build summary posted: {result.comment_url or destination}")
    for err in result.errors:
        print(f"WARNING: {err}", file=sys.stderr)
    # Notification is best-effort and never fails the build
    return 0


def _cmd_trigger(args: argparse.Namespace) -> int:
    body = args.body if args.body is not None else sys.stdin.read()
    try:
        request = TriggerParser().parse(body)
    except TriggerParseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if request is None:
        outputs = {"triggered": "false"}
    else:
        outputs = {
            "triggered": "true",
            "build-type": request.build_type.value,
            "save-logs": "true" if request.save_logs else "false",
            "reason": request.reason or "",
        }
    lines = [f"{key}={value}" for key, value in outputs.items()]
    print("\n".join(lines))
    outputs_path = args.outputs or os.environ.get("GITHUB_OUTPUT")
    if outputs_path:
        try:
            with open(outputs_path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            print(f"ERROR: could not write outputs to {outputs_path}: {e}", file=sys.stderr)
            return 1
    return 0


def _cmd_build(args: argparse.Namespace) -> int:
    if args.append:
        ledger = _load_ledger(args)
        if ledger is None:
            return 1
    else:
        # The run resets the ledger, so its previous contents are not parsed
        ledger = MetricsLedger(storage=FileLedgerStorage(_ledger_path(args)))

    config = WorkspaceConfig(
        workspace_root=args.workspace.resolve(),
        build_dir=Path.cwd(),
        build_type=BuildType.DEBUG if args.debug else BuildType.RELEASE,
        parallel_jobs=max(1, args.parallel),
        verbose=args.verbose,
        ignore_dirty=args.ignore_dirty,
    )
    result = BuildOrchestrator(config, ledger=ledger).run(
        args.targets or ["all"], append=args.append
    )

    print("\n--- Build Summary ---")
    for step in result.steps:
        print(f"  {step.name}: {step.status.value.upper()}")
        if step.error:
            print(f"    error: {step.error}")
    for err in result.errors:
        print(f"ERROR: {err}", file=sys.stderr)
    for warning in result.warnings:
        print(f"WARNING: {warning}", file=sys.stderr)

    overall = "SUCCESS" if result.success else "FAILURE"
    print(f"\nResult: {overall}")
    print(f"Artifacts: {config.artifacts_dir}")
    print(f"Logs: {config.logs_dir}")
    return result.exit_code


COMMANDS = {
    "track": _cmd_track,
    "skip": _cmd_skip,
    "record": _cmd_record,
    "reset": _cmd_reset,
    "summary": _cmd_summary,
    "notify": _cmd_notify,
    "trigger": _cmd_trigger,
    "build": _cmd_build,
}


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()

    args = _build_parser().parse_args(argv)
    configure_logging(level_override=args.log_level)
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
