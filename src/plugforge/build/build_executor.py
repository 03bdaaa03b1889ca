"""Build Command Executor.

This module runs toolchain commands (``go mod tidy``, ``go build``) for the
build orchestrator.

Design:
    - Every command gets an explicit working directory and environment map;
      the process environment is never modified
    - stdout and stderr are read line by line on two threads and appended
      verbatim to the shared BuildLog
    - A per-command timeout kills the whole process tree with psutil
      (children first, then the root) so no compiler subprocess is orphaned
"""

import logging
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Dict, List, Optional

import psutil

from .build_log import BuildLog


class BuildCommandError(Exception):
    """Raised when a toolchain command fails or times out.

    Attributes:
        command: The command line that failed
        exit_code: Process exit code (None if it never started or timed out)
        captured_output: Lines the command printed before failing
    """

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        exit_code: Optional[int] = None,
        captured_output: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.command = list(command or [])
        self.exit_code = exit_code
        self.captured_output = list(captured_output or [])


@dataclass
class CommandResult:
    """Result of a successful command."""

    command: List[str]
    exit_code: int
    output: List[str] = field(default_factory=list)
    duration: float = 0.0


def kill_process_tree(pid: int, grace_period: float = 3.0) -> int:
    """Terminate a process and all of its descendants.

    Children are terminated before their parents. Processes still alive
    after ``grace_period`` seconds are force killed.

    Args:
        pid: Root process id
        grace_period: Seconds to wait for graceful termination

    Returns:
        Number of processes signalled
    """
    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return 0

    try:
        processes = root.children(recursive=True)
    except psutil.NoSuchProcess:
        processes = []
    processes = list(reversed(processes)) + [root]

    signalled: List[psutil.Process] = []
    for proc in processes:
        try:
            proc.terminate()
            signalled.append(proc)
            logging.debug(f"Terminated process {proc.pid}")
        except psutil.NoSuchProcess:
            pass
        except KeyboardInterrupt:
            raise
        except Exception as e:
            logging.warning(f"Failed to terminate process {proc.pid}: {e}")

    _gone, alive = psutil.wait_procs(signalled, timeout=grace_period)

    for proc in alive:
        try:
            proc.kill()
            logging.warning(f"Force killed stubborn process {proc.pid}")
        except psutil.NoSuchProcess:
            pass
        except KeyboardInterrupt:
            raise
        except Exception as e:
            logging.warning(f"Failed to force kill process {proc.pid}: {e}")

    return len(signalled)


class BuildExecutor:
    """Runs toolchain commands and captures their output."""

    def __init__(self, log: Optional[BuildLog] = None, timeout: float = 300.0, verbose: bool = False):
        """Initialize build executor.

        Args:
            log: Log receiving every output line (a new one if None)
            timeout: Default per-command timeout in seconds
            verbose: Echo output lines to the console
        """
        self.log = log if log is not None else BuildLog()
        self.timeout = timeout
        self.verbose = verbose

    def with_log(self, log: BuildLog) -> "BuildExecutor":
        """Executor with the same settings writing to ``log``."""
        return BuildExecutor(log, timeout=self.timeout, verbose=self.verbose)

    def _pump(self, stream: IO[str], name: str, sink: List[str], sink_lock: threading.Lock) -> None:
        for raw_line in iter(stream.readline, ""):
            line = raw_line.rstrip("\r\n")
            self.log.add(line, stream=name)
            with sink_lock:
                sink.append(line)
            if self.verbose:
                print(line)
        stream.close()

    def run(
        self,
        command: List[str],
        cwd: Path,
        env: Dict[str, str],
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            command: Command line
            cwd: Working directory
            env: Complete environment for the child process
            timeout: Seconds before the process tree is killed (default: self.timeout)

        Returns:
            CommandResult for a zero exit status

        Raises:
            BuildCommandError: On start failure, non-zero exit or timeout
        """
        timeout = self.timeout if timeout is None else timeout
        display = " ".join(command)
        self.log.add(f"$ {display}", stream="info")
        logging.info(f"Running: {display} (cwd={cwd})")

        start_time = time.time()
        try:
            proc = subprocess.Popen(
                command,
                cwd=str(cwd),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            self.log.add(f"failed to start: {e}", stream="info")
            raise BuildCommandError(f"Failed to start '{display}': {e}", command=command)

        output: List[str] = []
        output_lock = threading.Lock()
        readers = [
            threading.Thread(target=self._pump, args=(proc.stdout, "stdout", output, output_lock), daemon=True),
            threading.Thread(target=self._pump, args=(proc.stderr, "stderr", output, output_lock), daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            exit_code = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            killed = kill_process_tree(proc.pid)
            proc.wait()
            for reader in readers:
                reader.join(timeout=5)
            message = f"'{display}' timed out after {timeout:.0f}s ({killed} processes killed)"
            self.log.add(message, stream="info")
            logging.error(message)
            with output_lock:
                captured = list(output)
            raise BuildCommandError(message, command=command, captured_output=captured)
        except KeyboardInterrupt:
            kill_process_tree(proc.pid)
            raise

        for reader in readers:
            reader.join()

        duration = time.time() - start_time
        if exit_code != 0:
            message = f"'{display}' failed with exit code {exit_code}"
            self.log.add(message, stream="info")
            logging.error(message)
            raise BuildCommandError(message, command=command, exit_code=exit_code, captured_output=output)

        logging.debug(f"'{display}' finished in {duration:.2f}s")
        return CommandResult(command=list(command), exit_code=exit_code, output=output, duration=duration)
