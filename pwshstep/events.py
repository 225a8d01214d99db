"""Event dataclasses for build step progress.

Events are frozen dataclasses describing what happened during one PowerShell
build step. They are emitted on the EventBus in this order:

    StepStarted -> InterpreterResolved -> ProcessLaunched
        -> ProcessOutput -> StepCompleted

ResolutionDegraded is emitted after InterpreterResolved for each absorbed
resolution problem. ErrorOccurred is emitted when the process could not be
launched or timed out; StepCompleted still follows with a FAILURE verdict.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from pwshstep.request import Verdict


@dataclass(frozen=True)
class StepStarted:
    """Emitted after the script envelope has been written.

    Attributes:
        script_path: Path of the materialized script file
        workspace: Directory the step runs in
        timestamp: When the step started
    """
    script_path: str
    workspace: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class InterpreterResolved:
    """Emitted once the command line is known.

    Attributes:
        executable: Interpreter that will be launched
        installation: Name of the installation used (None for bare defaults
            and forced version preferences)
        argv: Full argument vector
        timestamp: When resolution finished
    """
    executable: str
    installation: Optional[str]
    argv: Tuple[str, ...]
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ResolutionDegraded:
    """Emitted for a problem the resolver absorbed by falling back.

    Attributes:
        installation: Installation that could not be specialised
        message: Description of the problem
        timestamp: When it was reported
    """
    installation: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ProcessLaunched:
    """Emitted just before the interpreter is started."""
    argv: Tuple[str, ...]
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ProcessOutput:
    """Emitted when the interpreter has exited.

    Attributes:
        stdout: Captured standard output
        stderr: Captured standard error
        exit_code: Process exit code
        timestamp: When the process exited
    """
    stdout: str
    stderr: str
    exit_code: int
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ErrorOccurred:
    """Emitted when the interpreter could not be run to completion.

    Attributes:
        error_type: Exception class name (e.g. "StepLaunchError")
        error_message: Human readable message
        timestamp: When the error occurred
    """
    error_type: str
    error_message: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class StepCompleted:
    """Emitted at the end of every step, whatever the outcome.

    Attributes:
        script_path: Path of the materialized script file
        exit_code: Process exit code (-1 when the process never completed)
        verdict: Build verdict for this step
        duration_ms: Wall time of the step in milliseconds
        timestamp: When the step completed
    """
    script_path: str
    exit_code: int
    verdict: Verdict
    duration_ms: float
    timestamp: datetime = field(default_factory=datetime.now)
