"""Execution request types for a PowerShell build step.

An ExecutionRequest is the configuration of one build step: the script text
and the switches that control how PowerShell is invoked. It is built once by
the host (from a job definition, the CLI, or a config file) and passed to the
PowerShell interpreter at construction time.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class VersionPreference(Enum):
    """Which PowerShell edition the step should launch.

    The values are the strings used in job configuration.
    """
    OS_BASED = "osBased"
    WINDOWS_POWERSHELL = "windowsPowerShell"
    POWERSHELL_CORE = "powershellCore"

    @classmethod
    def parse(cls, value: Optional[str]) -> "VersionPreference":
        """Parse a configured preference string.

        Unknown values do not fail the step; they fall back to OS_BASED.

        Args:
            value: Configured string (e.g. "powershellCore"), or None

        Returns:
            The matching VersionPreference, or OS_BASED
        """
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        if value is not None:
            logger.warning(
                f"Unknown PowerShell version preference '{value}', "
                f"falling back to '{cls.OS_BASED.value}'"
            )
        return cls.OS_BASED


class Verdict(Enum):
    """Build outcome derived from the interpreter's exit code."""
    SUCCESS = "success"
    UNSTABLE = "unstable"
    FAILURE = "failure"


def fix_empty_and_trim(value: Optional[str]) -> Optional[str]:
    """Trim a string, mapping None, empty and whitespace-only to None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class ExecutionRequest:
    """Configuration of a single PowerShell build step.

    Attributes:
        command: Raw PowerShell script text supplied by the user.
        stop_on_error: If True, any error aborts the remaining script.
            There is deliberately no default; callers must choose.
        use_profile: If True, PowerShell loads the user profile (no -NoProfile).
        unstable_return: Nonzero exit code that marks the build unstable
            instead of failed. 0 means "not configured".
        version_preference: Which PowerShell edition to launch.
        installation: Name of a registered PowerShellInstallation, or None.
    """
    command: str
    stop_on_error: bool
    use_profile: bool = False
    unstable_return: Optional[int] = None
    version_preference: VersionPreference = VersionPreference.OS_BASED
    installation: Optional[str] = None

    def __post_init__(self) -> None:
        # Frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "installation", fix_empty_and_trim(self.installation))
        object.__setattr__(
            self, "version_preference", VersionPreference.parse(self.version_preference)
        )
