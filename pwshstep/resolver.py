"""Interpreter resolution for PowerShell build steps.

Given where the script will run and which installation the step asked for,
the resolver decides the PowerShell executable path to launch. Resolution
never fails: a missing installation or an agent that cannot be queried
degrades along a fallback chain and ends at the bare platform default
("powershell.exe" on Windows, "pwsh" elsewhere).

Fallback chain:
1. The installation named by the request (exact match).
2. The platform default installation ("DefaultWindows" / "DefaultLinux"),
   else the first registered installation.
3. The bare default executable name.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from pwshstep.host import ScriptFile, is_running_on_windows
from pwshstep.installation import (
    DEFAULT_LINUX_NAME,
    DEFAULT_WINDOWS_NAME,
    PowerShellInstallation,
    default_executable,
)
from pwshstep.registry import InstallationRegistry
from pwshstep.request import ExecutionRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionWarning:
    """A non-fatal problem met while resolving the interpreter.

    Attributes:
        installation: Name of the installation involved
        message: Human readable description
    """
    installation: str
    message: str


@dataclass(frozen=True)
class Resolution:
    """Outcome of interpreter resolution.

    Attributes:
        executable: Executable path or bare name to launch
        installation: The (possibly specialised) installation used, or None
            when the bare default was chosen
        warnings: Problems absorbed along the way
    """
    executable: str
    installation: Optional[PowerShellInstallation] = None
    warnings: Tuple[ResolutionWarning, ...] = ()


class InterpreterResolver:
    """Resolves the PowerShell executable for a build step.

    Attributes:
        registry: Installation registry (read only)
    """

    def __init__(self, registry: Optional[InstallationRegistry] = None) -> None:
        self.registry = registry if registry is not None else InstallationRegistry()

    def find_installation(
        self,
        name: Optional[str],
        windows: bool
    ) -> Optional[PowerShellInstallation]:
        """Look up the requested installation, falling back to the platform default."""
        installation = self.registry.get_installation(name)
        if installation is None:
            default_name = DEFAULT_WINDOWS_NAME if windows else DEFAULT_LINUX_NAME
            installation = self.registry.get_any_installation(default_name)
            if name is not None:
                logger.warning(
                    f"PowerShell installation '{name}' not found, using "
                    f"{installation.name if installation else 'default executable'}"
                )
        return installation

    def resolve(
        self,
        script: ScriptFile,
        request: ExecutionRequest,
        env: Optional[Mapping[str, str]] = None
    ) -> Resolution:
        """Resolve the executable for running script under request.

        Args:
            script: The materialized script (its location drives platform
                detection and node specialisation)
            request: Step configuration naming the installation
            env: Build environment used to expand the installation home

        Returns:
            Resolution with the executable path; never raises
        """
        windows = is_running_on_windows(script)
        installation = self.find_installation(request.installation, windows)

        if installation is None:
            return Resolution(executable=default_executable(windows))

        warnings = []
        if script.node is not None:
            try:
                installation = installation.for_node(script.node)
            except OSError as e:
                # InterruptedError is an OSError too
                logger.warning(
                    f"Could not resolve installation '{installation.name}' on node "
                    f"'{script.node.name}', using unspecialised installation: {e}",
                    extra={
                        "installation": installation.name,
                        "node": script.node.name,
                    },
                    exc_info=True
                )
                warnings.append(ResolutionWarning(
                    installation=installation.name,
                    message=f"node '{script.node.name}': {e}",
                ))

        if env is not None:
            installation = installation.for_environment(env)

        executable = installation.executable_path(windows)
        logger.debug(
            f"Resolved PowerShell executable: {executable}",
            extra={"installation": installation.name, "windows": windows}
        )
        return Resolution(
            executable=executable,
            installation=installation,
            warnings=tuple(warnings),
        )

    def resolve_executable(
        self,
        script: ScriptFile,
        request: ExecutionRequest,
        env: Optional[Mapping[str, str]] = None
    ) -> str:
        """Like resolve(), returning only the executable path."""
        return self.resolve(script, request, env).executable
