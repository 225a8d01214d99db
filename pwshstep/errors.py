"""Exception classes for PowerShell build step errors.

This module defines the exception hierarchy used throughout pwshstep. Nothing
in the resolver or command builder raises these during a build step; they are
raised by the outer layers (registry persistence, launching) so that the CLI
and hosts can catch all pwshstep errors with a single handler.

ConfigError is re-exported from the config module for convenience.
"""

from pwshstep.config import ConfigError


class PowerShellStepError(Exception):
    """Base exception for pwshstep errors."""
    pass


class RegistryError(PowerShellStepError):
    """Raised when the installation registry cannot be read or written.

    This includes malformed YAML, entries without a name, and duplicate
    installation names.
    """
    pass


class StepLaunchError(PowerShellStepError):
    """Raised when the interpreter process could not be started.

    The step itself never lets this escape: perform() reports it on the
    event bus and turns it into a FAILURE verdict.
    """
    pass


__all__ = [
    'PowerShellStepError',
    'RegistryError',
    'StepLaunchError',
    'ConfigError',
]
