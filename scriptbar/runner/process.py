"""Run plugin executables as child processes and capture their output."""

from __future__ import annotations

import os
import shlex
import stat
import subprocess
import time
from pathlib import Path
from threading import Lock
from typing import Callable, Mapping

from pydantic import BaseModel

from scriptbar.runner.errors import InvocationTimeout, LaunchFailure, NonZeroExit
from scriptbar.utils.logging import get_logger

logger = get_logger(__name__)

# Shell exit codes for "found but not executable" and "not found"
_SHELL_NOT_EXECUTABLE = 126
_SHELL_NOT_FOUND = 127


class RunOutput(BaseModel):
    """
    Captured result of one process run.

    Attributes:
        stdout: Decoded standard output.
        stderr: Decoded standard error; non-empty stderr on success is a warning.
        exit_status: Process exit status (always 0 when returned by run()).
        duration_seconds: Wall time of the run.
    """

    stdout: str
    stderr: str = ""
    exit_status: int = 0
    duration_seconds: float = 0.0


def make_executable(path: str | Path) -> None:
    """Add execute permission wherever read permission is set. Safe to call repeatedly."""
    mode = os.stat(path).st_mode
    wanted = (mode & (stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH)) >> 2
    if mode & wanted == wanted:
        return
    os.chmod(path, mode | wanted)
    logger.info("plugin_made_executable", path=str(path))


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class ProcessRunner:
    """
    Synchronous executor for plugin scripts.

    The permission fixer is applied once per path before its first run, and again
    if a launch is refused for lack of permission; that launch is then retried
    exactly once. There is no timeout unless ``timeout`` is given, so a hung
    script blocks the calling thread until it exits.

    Example:
        >>> runner = ProcessRunner(shell="/bin/sh")
        >>> runner.run("/path/to/plugin.5s.sh", env={}).stdout
    """

    def __init__(
        self,
        shell: str | None = None,
        timeout: float | None = None,
        permission_fixer: Callable[[str | Path], None] = make_executable,
    ) -> None:
        self.shell = shell or os.environ.get("SHELL") or "/bin/bash"
        self.timeout = timeout
        self._permission_fixer = permission_fixer
        self._prepared: set[str] = set()
        self._lock = Lock()

    def run(
        self,
        path: str | Path,
        env: Mapping[str, str] | None = None,
        use_shell_wrapper: bool = True,
    ) -> RunOutput:
        """
        Run the executable at ``path`` and return its output.

        Raises:
            LaunchFailure: the process could not be started.
            NonZeroExit: the process exited with a non-zero status.
            InvocationTimeout: the configured timeout expired.
        """
        if not path:
            raise ValueError("ProcessRunner.run requires a source path")
        path = str(path)
        self._prepare(path)
        start = time.perf_counter()
        try:
            completed = self._launch(path, env, use_shell_wrapper)
        except PermissionError:
            logger.warning("plugin_launch_not_permitted", path=path)
            self._fix_permissions(path)
            try:
                completed = self._launch(path, env, use_shell_wrapper)
            except PermissionError as e:
                raise LaunchFailure(f"Permission denied: {path}") from e
        else:
            # A script may exit 126 itself; only a file without execute bits is refused by the shell
            if (
                use_shell_wrapper
                and completed.returncode == _SHELL_NOT_EXECUTABLE
                and not _is_executable(path)
            ):
                logger.warning("plugin_launch_not_permitted", path=path, via_shell=True)
                self._fix_permissions(path)
                completed = self._launch(path, env, use_shell_wrapper)
        duration = time.perf_counter() - start

        stdout = _decode(completed.stdout)
        stderr = _decode(completed.stderr)
        if completed.returncode != 0:
            if (
                use_shell_wrapper
                and completed.returncode in (_SHELL_NOT_EXECUTABLE, _SHELL_NOT_FOUND)
                and not _is_executable(path)
            ):
                raise LaunchFailure(stderr.strip() or f"Unable to launch {path}", raw_stderr=stderr)
            raise NonZeroExit(
                stderr.strip() or f"{path} exited with status {completed.returncode}",
                raw_stderr=stderr,
                exit_status=completed.returncode,
            )
        return RunOutput(stdout=stdout, stderr=stderr, exit_status=0, duration_seconds=duration)

    def _prepare(self, path: str) -> None:
        with self._lock:
            if path in self._prepared:
                return
            self._prepared.add(path)
        self._fix_permissions(path)

    def _fix_permissions(self, path: str) -> None:
        try:
            self._permission_fixer(path)
        except FileNotFoundError as e:
            raise LaunchFailure(f"No such file: {path}") from e
        except OSError as e:
            # Read-only mounts and foreign owners: launch anyway and let it fail there
            logger.warning("plugin_permission_fix_failed", path=path, error=str(e))

    def _command(self, path: str, use_shell_wrapper: bool) -> list[str]:
        if use_shell_wrapper:
            return [self.shell, "-c", shlex.quote(path)]
        return [path]

    def _launch(
        self,
        path: str,
        env: Mapping[str, str] | None,
        use_shell_wrapper: bool,
    ) -> subprocess.CompletedProcess:
        cmd = self._command(path, use_shell_wrapper)
        try:
            return subprocess.run(
                cmd,
                env=dict(env) if env is not None else None,
                cwd=str(Path(path).parent),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except PermissionError:
            raise
        except FileNotFoundError as e:
            missing = cmd[0]
            raise LaunchFailure(f"No such file or directory: {missing}") from e
        except OSError as e:
            raise LaunchFailure(f"Failed to launch {path}: {e.strerror or e}") from e
        except subprocess.TimeoutExpired as e:
            raise InvocationTimeout(
                f"{path} did not finish within {self.timeout}s",
                raw_stderr=_decode(e.stderr),
            ) from e
