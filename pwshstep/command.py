"""Command line and script envelope construction for PowerShell steps.

The PowerShell class is the step's command interpreter: it tells the host which
file extension to materialize the script with, what to write into that file,
which argument vector to launch, and how to read the exit code.

The script envelope written to the file is:

    $ErrorActionPreference="Stop"      (or "Continue")
    <user script>
    exit $LastExitCode

The trailing exit makes the process exit code reflect the last native command,
which is all the host looks at to decide the build result.
"""

import os
from typing import List, Mapping, Optional, Protocol, Tuple

from pwshstep.host import ScriptFile, is_running_on_windows
from pwshstep.installation import (
    DEFAULT_LINUX_EXECUTABLE,
    DEFAULT_WINDOWS_EXECUTABLE,
    default_executable,
)
from pwshstep.resolver import InterpreterResolver, Resolution
from pwshstep.request import ExecutionRequest, Verdict, VersionPreference

FILE_EXTENSION = ".ps1"

STOP_DIRECTIVE = '$ErrorActionPreference="Stop"'
CONTINUE_DIRECTIVE = '$ErrorActionPreference="Continue"'
EXIT_STATEMENT = "exit $LastExitCode"


class CommandInterpreter(Protocol):
    """What the host needs from a script-running build step."""

    def file_extension(self) -> str:
        ...

    def get_contents(self) -> str:
        ...

    def build_command_line(self, script: ScriptFile, env: Optional[Mapping[str, str]] = None) -> List[str]:
        ...

    def is_errorlevel_for_unstable_build(self, exit_code: int) -> bool:
        ...


def build_command_line(
    executable: Optional[str],
    script_path: str,
    use_profile: bool,
    is_windows: bool,
    preference: VersionPreference = VersionPreference.OS_BASED
) -> List[str]:
    """Assemble the PowerShell argument vector.

    Args:
        executable: Executable resolved for OS_BASED preference
        script_path: Path of the script on the executing node
        use_profile: If False, pass -NoProfile
        is_windows: Whether the target platform is Windows
        preference: Forced edition, or OS_BASED to use executable

    Returns:
        [executable, -NonInteractive, (-NoProfile), (-ExecutionPolicy Bypass),
        -File, script_path]
    """
    if preference is VersionPreference.WINDOWS_POWERSHELL:
        executable = DEFAULT_WINDOWS_EXECUTABLE
    elif preference is VersionPreference.POWERSHELL_CORE:
        executable = DEFAULT_LINUX_EXECUTABLE
    elif not executable:
        executable = default_executable(is_windows)

    args = [executable, "-NonInteractive"]
    if not use_profile:
        args.append("-NoProfile")
    # -ExecutionPolicy is rejected by pwsh off Windows
    if is_windows and preference is not VersionPreference.POWERSHELL_CORE:
        args.extend(["-ExecutionPolicy", "Bypass"])
    args.extend(["-File", script_path])
    return args


def build_script_envelope(command: str, stop_on_error: bool, newline: str = os.linesep) -> str:
    """Wrap the user's script in the error directive and exit propagation."""
    directive = STOP_DIRECTIVE if stop_on_error else CONTINUE_DIRECTIVE
    return newline.join([directive, command, EXIT_STATEMENT])


def script_encoding(is_windows: bool) -> str:
    """Encoding for the materialized script file.

    Windows PowerShell 5.1 reads a BOM-less .ps1 in the ANSI code page, so
    Windows targets get UTF-8 with a BOM. pwsh reads either form.
    """
    if is_windows:
        return "utf-8-sig"
    return "utf-8"


def normalize_unstable_return(unstable_return: Optional[int]) -> Optional[int]:
    """0 already means success, so an unstable code of 0 means "not set"."""
    if unstable_return == 0:
        return None
    return unstable_return


def classify_exit_code(exit_code: int, unstable_return: Optional[int] = None) -> Verdict:
    """Map a process exit code to a build verdict.

    Args:
        exit_code: Exit code of the interpreter process
        unstable_return: Exit code that marks the build unstable, if any

    Returns:
        SUCCESS for 0, UNSTABLE for the configured nonzero code, else FAILURE
    """
    if exit_code == 0:
        return Verdict.SUCCESS
    unstable_return = normalize_unstable_return(unstable_return)
    if unstable_return is not None and exit_code == unstable_return:
        return Verdict.UNSTABLE
    return Verdict.FAILURE


class PowerShell:
    """Command interpreter that runs a build step's script with PowerShell.

    Attributes:
        request: Step configuration
        resolver: Resolves the executable for OS-based preference
        env: Build environment for installation home expansion (optional)
    """

    def __init__(
        self,
        request: ExecutionRequest,
        resolver: Optional[InterpreterResolver] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.request = request
        self.resolver = resolver if resolver is not None else InterpreterResolver()
        self.env = env

    @property
    def command(self) -> str:
        return self.request.command

    @property
    def stop_on_error(self) -> bool:
        return self.request.stop_on_error

    @property
    def use_profile(self) -> bool:
        return self.request.use_profile

    @property
    def unstable_return(self) -> Optional[int]:
        return normalize_unstable_return(self.request.unstable_return)

    @property
    def installation(self) -> Optional[str]:
        return self.request.installation

    def file_extension(self) -> str:
        return FILE_EXTENSION

    def get_contents(self, newline: str = os.linesep) -> str:
        return build_script_envelope(self.request.command, self.request.stop_on_error, newline)

    def script_encoding(self, is_windows: bool) -> str:
        return script_encoding(is_windows)

    def build_command_line(
        self,
        script: ScriptFile,
        env: Optional[Mapping[str, str]] = None
    ) -> List[str]:
        """Argument vector for running script on its node."""
        argv, _ = self.resolve_command_line(script, env)
        return argv

    def resolve_command_line(
        self,
        script: ScriptFile,
        env: Optional[Mapping[str, str]] = None
    ) -> Tuple[List[str], Optional[Resolution]]:
        """Argument vector plus the resolution that chose the executable.

        Args:
            script: The materialized script file
            env: Build environment for expanding installation homes. Falls
                back to the environment given at construction.

        Returns:
            (argv, resolution); resolution is None for forced preferences,
            which never consult the registry
        """
        windows = is_running_on_windows(script)
        preference = self.request.version_preference

        resolution = None
        executable = None
        if preference is VersionPreference.OS_BASED:
            resolution = self.resolver.resolve(
                script, self.request, env if env is not None else self.env
            )
            executable = resolution.executable

        argv = build_command_line(
            executable,
            script.remote,
            self.request.use_profile,
            windows,
            preference,
        )
        return argv, resolution

    def is_errorlevel_for_unstable_build(self, exit_code: int) -> bool:
        return classify_exit_code(exit_code, self.request.unstable_return) is Verdict.UNSTABLE

    def classify(self, exit_code: int) -> Verdict:
        return classify_exit_code(exit_code, self.request.unstable_return)
