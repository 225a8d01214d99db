"""Run PowerShell scripts as CI build steps.

The package decides which PowerShell interpreter to launch for a build step,
which arguments to pass it, and what to write around the user's script, then
maps the process exit code to a build verdict.

Typical use:

    from pwshstep import ExecutionRequest, PowerShell, perform

    request = ExecutionRequest(command="Write-Output 'hi'", stop_on_error=True)
    result = asyncio.run(perform(PowerShell(request), workspace))
"""

from pwshstep.command import (
    CommandInterpreter,
    PowerShell,
    build_command_line,
    build_script_envelope,
    classify_exit_code,
)
from pwshstep.installation import PowerShellInstallation
from pwshstep.registry import InstallationRegistry, load_registry, save_registry
from pwshstep.request import ExecutionRequest, Verdict, VersionPreference
from pwshstep.resolver import InterpreterResolver, Resolution, ResolutionWarning
from pwshstep.step import StepResult, perform

__all__ = [
    "CommandInterpreter",
    "ExecutionRequest",
    "InstallationRegistry",
    "InterpreterResolver",
    "PowerShell",
    "PowerShellInstallation",
    "Resolution",
    "ResolutionWarning",
    "StepResult",
    "Verdict",
    "VersionPreference",
    "build_command_line",
    "build_script_envelope",
    "classify_exit_code",
    "load_registry",
    "perform",
    "save_registry",
]
