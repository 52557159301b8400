"""CommandRunner executing build tools with per-component log files."""

import logging
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs external commands, appending their output to a component log.

    Each component (e.g. "static_lib_build") gets ``<logs_dir>/<component>.log``.
    In verbose mode output is echoed to the console as well.
    """

    def __init__(self, logs_dir: Path, verbose: bool = False):
        self._logs_dir = Path(logs_dir)
        self._verbose = verbose

    def log_file(self, component: str) -> Path:
        """Path of the log file for component."""
        return self._logs_dir / f"{component}.log"

    def run(
        self,
        component: str,
        command: Sequence[str],
        cwd: Path,
        stdin_text: Optional[str] = None,
    ) -> int:
        """Run command in cwd, logging to the component's log file.

        Args:
            component: Log file stem.
            command: Program and arguments.
            cwd: Working directory for the command.
            stdin_text: Text fed to the command's standard input.

        Returns:
            The command's exit code (127 if the program is missing).
        """
        self._logs_dir.mkdir(parents=True, exist_ok=True)
        printable = shlex.join(command)
        log_path = self.log_file(component)

        with open(log_path, "a", encoding="utf-8") as log:
            log.write(f"Running: {printable}\n")
            if self._verbose:
                print(f"Running: {printable}")
            try:
                completed = subprocess.run(
                    list(command),
                    cwd=cwd,
                    input=stdin_text,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                )
            except FileNotFoundError as e:
                log.write(f"{e}\n")
                logger.error("Command not found for %s: %s", component, command[0])
                return 127

            log.write(completed.stdout or "")
            if self._verbose and completed.stdout:
                sys.stdout.write(completed.stdout)

        logger.debug("%s exited with %d (log: %s)", printable, completed.returncode, log_path)
        return completed.returncode

    def capture(self, command: Sequence[str], cwd: Path) -> tuple[int, str]:
        """Run command and return (exit code, combined output) without logging."""
        try:
            completed = subprocess.run(
                list(command),
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError as e:
            return 127, str(e)
        return completed.returncode, completed.stdout or ""
