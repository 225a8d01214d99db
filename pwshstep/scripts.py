"""Local process launching for PowerShell steps.

This module provides async execution of an interpreter argument vector,
capturing stdout, stderr, and the exit code, and the helpers that materialize
the script envelope into a temporary file the interpreter can run.
"""

import asyncio
import ctypes
import ctypes.util
import logging
import os
import signal
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from pwshstep.errors import StepLaunchError
from pwshstep.host import is_unix

logger = logging.getLogger(__name__)

# Track whether we've set up subreaper for this process
_subreaper_initialized = False

TEMP_SCRIPT_PREFIX = "powershell"


def _setup_subreaper() -> None:
    """Set up this process as a subreaper for orphaned descendants (Linux only).

    Scripts often start their own child processes. If the interpreter is
    killed, those grandchildren would be re-parented to init; as a subreaper
    they are re-parented here instead and can be reaped.

    This is a no-op on non-Linux systems or if already initialized.
    """
    global _subreaper_initialized
    if _subreaper_initialized or not is_unix():
        return

    PR_SET_CHILD_SUBREAPER = 36

    try:
        libc = ctypes.CDLL(ctypes.util.find_library('c'), use_errno=True)
        result = libc.prctl(PR_SET_CHILD_SUBREAPER, 1, 0, 0, 0)
        if result == 0:
            _subreaper_initialized = True
    except (OSError, AttributeError):
        # prctl not available (non-Linux) or library not found
        pass


def _reap_process_group(pgid: int) -> int:
    """Reap zombie processes from a specific process group.

    Args:
        pgid: The process group ID to reap zombies from.

    Returns:
        Number of zombies reaped.
    """
    if not is_unix():
        return 0

    reaped = 0
    # P_PGID so that only this group is reaped, never unrelated children
    while True:
        try:
            result = os.waitid(os.P_PGID, pgid, os.WEXITED | os.WNOHANG)
            if result is None:
                break
            reaped += 1
        except ChildProcessError:
            break
        except OSError:
            break
    return reaped


async def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill a subprocess and its entire process group, then reap zombies."""
    pgid = process.pid
    if is_unix() and pgid is not None:
        try:
            os.killpg(pgid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
        await process.wait()
        _reap_process_group(pgid)
    else:
        process.kill()
        await process.wait()


@dataclass
class ProcessResult:
    """Result of running an interpreter process.

    Attributes:
        stdout: Standard output from the process.
        stderr: Standard error from the process.
        exit_code: Exit code of the process.
    """
    stdout: str
    stderr: str
    exit_code: int


class CommandTimeoutError(Exception):
    """Raised when a command exceeds its timeout.

    Attributes:
        argv: The command that timed out.
        timeout: The timeout value in seconds.
    """

    def __init__(self, argv: List[str], timeout: float):
        self.argv = list(argv)
        self.timeout = timeout
        super().__init__(
            f"Command timeout: '{argv[0]}' exceeded {timeout} seconds"
        )


async def run_command(
    argv: List[str],
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
    env: Optional[Dict[str, str]] = None
) -> ProcessResult:
    """Execute an argument vector asynchronously and capture its output.

    Args:
        argv: Executable followed by its arguments.
        cwd: Working directory for the process. None for the current directory.
        timeout: Maximum execution time in seconds. None for no timeout.
        env: Optional environment variables, added to (not replacing) the
             current environment.

    Returns:
        ProcessResult containing stdout, stderr, and exit code.

    Raises:
        CommandTimeoutError: If the command exceeds the timeout.
        StepLaunchError: If the executable cannot be started.
    """
    if not argv:
        raise ValueError("Cannot run an empty command line")

    _setup_subreaper()

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    try:
        # start_new_session puts the interpreter in its own process group so
        # the whole group can be killed on timeout
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=process_env,
            start_new_session=is_unix(),
        )
    except FileNotFoundError as e:
        raise StepLaunchError(f"Executable not found: {argv[0]}") from e
    except OSError as e:
        raise StepLaunchError(f"Failed to start {argv[0]}: {e}") from e

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout
        )
    except asyncio.TimeoutError:
        await _kill_process_group(process)
        raise CommandTimeoutError(argv, timeout)
    except BaseException:
        # CancelledError, KeyboardInterrupt: don't leak the process group
        await _kill_process_group(process)
        raise
    finally:
        if process.returncode is None:
            try:
                pgid = process.pid
                if is_unix() and pgid is not None:
                    os.killpg(pgid, signal.SIGKILL)
                else:
                    process.kill()
            except (ProcessLookupError, PermissionError, OSError):
                pass

    stdout = stdout_bytes.decode('utf-8', errors='replace')
    stderr = stderr_bytes.decode('utf-8', errors='replace')

    return ProcessResult(
        stdout=stdout,
        stderr=stderr,
        exit_code=process.returncode
    )


class LocalLauncher:
    """Launcher that runs commands on the local machine."""

    async def launch(
        self,
        argv: List[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        logger.debug(f"Launching: {argv}", extra={"cwd": cwd})
        return await run_command(argv, cwd=cwd, timeout=timeout, env=env)


def create_temp_script(
    directory: Path,
    contents: str,
    extension: str,
    encoding: str = "utf-8"
) -> Path:
    """Write contents to a new uniquely named script file in directory.

    Args:
        directory: Directory to create the file in (created if missing)
        contents: Script text
        extension: File extension including the dot (e.g. ".ps1")
        encoding: Text encoding ("utf-8-sig" writes a BOM)

    Returns:
        Path to the created file
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    fd, path = tempfile.mkstemp(suffix=extension, prefix=TEMP_SCRIPT_PREFIX, dir=directory)
    # newline="" keeps the envelope's line separators as written
    with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
        f.write(contents)
    return Path(path)


def delete_temp_script(path: Path) -> bool:
    """Delete a materialized script, logging instead of raising on failure.

    Returns:
        True if the file was removed
    """
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Unable to delete script file {path}: {e}")
        return False
