"""PowerShell tool installations.

A PowerShellInstallation names a PowerShell executable and, optionally, the
directory it lives in. Installations are immutable: specialising one for a
build agent or a build environment returns a new record with the home
directory substituted, leaving the registered record untouched.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from pwshstep.host import Node, POWERSHELL_TOOL_KIND
from pwshstep.request import fix_empty_and_trim

logger = logging.getLogger(__name__)

DEFAULT_WINDOWS_NAME = "DefaultWindows"
DEFAULT_LINUX_NAME = "DefaultLinux"

DEFAULT_WINDOWS_EXECUTABLE = "powershell.exe"
DEFAULT_LINUX_EXECUTABLE = "pwsh"

# $VAR or ${VAR}
_ENV_REFERENCE = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_.]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)')


def default_executable(is_windows: bool) -> str:
    """Executable name used when no installation is configured at all."""
    if is_windows:
        return DEFAULT_WINDOWS_EXECUTABLE
    return DEFAULT_LINUX_EXECUTABLE


def expand_env_vars(value: str, env: Mapping[str, str]) -> str:
    """Expand $VAR and ${VAR} references in value using env.

    References to variables missing from env are left as written.

    Args:
        value: String possibly containing variable references
        env: Build environment variables

    Returns:
        The expanded string
    """
    def substitute(match: "re.Match[str]") -> str:
        name = match.group(1) or match.group(2)
        if name in env:
            return env[name]
        return match.group(0)

    return _ENV_REFERENCE.sub(substitute, value)


@dataclass(frozen=True)
class PowerShellInstallation:
    """A named PowerShell executable location.

    Attributes:
        name: Unique name of the installation in the registry
        powershell_home: Directory containing the executable, or None when the
            executable is found on PATH
        executable: Bare executable name (e.g. "pwsh", "powershell.exe"), or
            None to use the platform default
        properties: Extra tool properties, carried through specialisation
    """
    name: str
    powershell_home: Optional[str] = None
    executable: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "powershell_home", fix_empty_and_trim(self.powershell_home))
        object.__setattr__(self, "executable", fix_empty_and_trim(self.executable))

    @property
    def home(self) -> Optional[str]:
        return self.powershell_home

    def for_node(self, node: Node) -> "PowerShellInstallation":
        """Return a copy of this installation as seen from a build agent.

        The node may override the home directory for this installation. When it
        does not, the home is kept as configured.

        Args:
            node: The agent the build step runs on

        Returns:
            A new installation with the node-local home

        Raises:
            OSError: If the node could not be queried (includes InterruptedError)
        """
        home = node.tool_location(POWERSHELL_TOOL_KIND, self.name)
        if home is None:
            home = self.powershell_home
        return replace(self, powershell_home=home)

    def for_environment(self, env: Mapping[str, str]) -> "PowerShellInstallation":
        """Return a copy with variable references in the home expanded from env."""
        if self.powershell_home is None:
            return self
        return replace(self, powershell_home=expand_env_vars(self.powershell_home, env))

    def executable_path(self, is_windows: bool) -> str:
        """Full path of the executable for the target platform.

        Joins home and executable with the target's separator. Without a home,
        the bare executable name is returned and the agent's PATH decides.
        """
        binary = self.executable or default_executable(is_windows)
        if self.powershell_home:
            separator = "\\" if is_windows else "/"
            return self.powershell_home + separator + binary
        return binary

    @classmethod
    def from_legacy_home(
        cls,
        name: str,
        home: Optional[str],
        properties: Optional[Dict[str, Any]] = None,
    ) -> "PowerShellInstallation":
        """Build an installation from a record that only stored a home path.

        Older configurations kept the whole executable path in "home". This
        splits it into a directory and an executable name.

        Args:
            name: Installation name
            home: Legacy home value (directory, executable, or full path)
            properties: Extra tool properties

        Returns:
            The migrated installation
        """
        properties = properties or {}
        home = fix_empty_and_trim(home)

        if home is None:
            executable, powershell_home = DEFAULT_LINUX_EXECUTABLE, None
        elif home in (DEFAULT_LINUX_EXECUTABLE, DEFAULT_WINDOWS_EXECUTABLE):
            executable, powershell_home = home, None
        elif home.endswith(DEFAULT_LINUX_EXECUTABLE):
            executable = DEFAULT_LINUX_EXECUTABLE
            powershell_home = home[:len(home) - len(DEFAULT_LINUX_EXECUTABLE) - 1]
        elif home.endswith(DEFAULT_WINDOWS_EXECUTABLE):
            executable = DEFAULT_WINDOWS_EXECUTABLE
            powershell_home = home[:len(home) - len(DEFAULT_WINDOWS_EXECUTABLE) - 1]
        else:
            executable, powershell_home = DEFAULT_LINUX_EXECUTABLE, home

        logger.debug(
            f"Migrated legacy installation '{name}': home={powershell_home!r} "
            f"executable={executable!r}"
        )
        return cls(
            name=name,
            powershell_home=powershell_home,
            executable=executable,
            properties=properties,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used by the registry file."""
        data: Dict[str, Any] = {"name": self.name}
        if self.powershell_home is not None:
            data["home"] = self.powershell_home
        if self.executable is not None:
            data["executable"] = self.executable
        if self.properties:
            data["properties"] = dict(self.properties)
        return data


def default_installations() -> tuple:
    """The installations registered when the registry is empty."""
    return (
        PowerShellInstallation(DEFAULT_WINDOWS_NAME, None, DEFAULT_WINDOWS_EXECUTABLE),
        PowerShellInstallation(DEFAULT_LINUX_NAME, None, DEFAULT_LINUX_EXECUTABLE),
    )
