"""Console observer for build step events.

ConsoleObserver is the step's build log: it writes a line for each step event
to a text stream (stdout for the CLI, a log file or a host listener
otherwise) and echoes the interpreter's output.
"""

import logging
import shlex
import sys
from typing import Optional, TextIO

from ..bus import EventBus
from ..events import (
    ErrorOccurred,
    InterpreterResolved,
    ProcessOutput,
    ResolutionDegraded,
    StepCompleted,
    StepStarted,
)
from ..request import Verdict

logger = logging.getLogger(__name__)

PREFIX = "[PowerShell]"


class ConsoleObserver:
    """Writes build step progress to a text stream.

    Attributes:
        stream: Where build-log lines go
        quiet: If True, only warnings, errors, script output and the final
            verdict are written
    """

    def __init__(self, bus: EventBus, stream: Optional[TextIO] = None, quiet: bool = False) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.quiet = quiet
        self._bus = bus
        self._subscribe()

    def _subscribe(self) -> None:
        self._bus.on(StepStarted, self._on_step_started)
        self._bus.on(InterpreterResolved, self._on_interpreter_resolved)
        self._bus.on(ResolutionDegraded, self._on_resolution_degraded)
        self._bus.on(ProcessOutput, self._on_process_output)
        self._bus.on(ErrorOccurred, self._on_error_occurred)
        self._bus.on(StepCompleted, self._on_step_completed)

    def _unsubscribe(self) -> None:
        self._bus.off(StepStarted, self._on_step_started)
        self._bus.off(InterpreterResolved, self._on_interpreter_resolved)
        self._bus.off(ResolutionDegraded, self._on_resolution_degraded)
        self._bus.off(ProcessOutput, self._on_process_output)
        self._bus.off(ErrorOccurred, self._on_error_occurred)
        self._bus.off(StepCompleted, self._on_step_completed)

    def close(self) -> None:
        """Unsubscribe from the bus."""
        self._unsubscribe()

    def _write(self, line: str) -> None:
        try:
            self.stream.write(line + "\n")
            self.stream.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"ConsoleObserver failed to write: {e}")

    def _on_step_started(self, event: StepStarted) -> None:
        if not self.quiet:
            self._write(f"{PREFIX} Script written to {event.script_path}")

    def _on_interpreter_resolved(self, event: InterpreterResolved) -> None:
        if self.quiet:
            return
        if event.installation:
            self._write(f"{PREFIX} Using installation '{event.installation}'")
        self._write(f"{PREFIX} $ {shlex.join(event.argv)}")

    def _on_resolution_degraded(self, event: ResolutionDegraded) -> None:
        self._write(
            f"{PREFIX} WARNING: installation '{event.installation}' "
            f"could not be specialised ({event.message}); using configured home"
        )

    def _on_process_output(self, event: ProcessOutput) -> None:
        # Script output is the point of a build log, so quiet keeps it
        if event.stdout:
            self._write(event.stdout.rstrip("\n"))
        if event.stderr:
            self._write(event.stderr.rstrip("\n"))

    def _on_error_occurred(self, event: ErrorOccurred) -> None:
        self._write(f"{PREFIX} ERROR: {event.error_message}")

    def _on_step_completed(self, event: StepCompleted) -> None:
        label = {
            Verdict.SUCCESS: "SUCCESS",
            Verdict.UNSTABLE: "UNSTABLE",
            Verdict.FAILURE: "FAILURE",
        }[event.verdict]
        self._write(
            f"{PREFIX} Finished: {label} (exit code {event.exit_code}, "
            f"{event.duration_ms / 1000:.1f}s)"
        )
