"""Build step lifecycle for PowerShell scripts.

perform() runs one PowerShell build step the way a CI host drives a command
interpreter:

1. Write the script envelope to a temporary .ps1 file in the workspace
2. Build the argument vector (resolving the interpreter)
3. Launch it and wait for the exit code
4. Classify the exit code into a verdict
5. Delete the temporary file

Nothing raised while launching escapes: launch failures and timeouts are
reported as ErrorOccurred events and become a FAILURE verdict.
"""

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from pwshstep.bus import EventBus
from pwshstep.command import PowerShell
from pwshstep.errors import StepLaunchError
from pwshstep.events import (
    ErrorOccurred,
    InterpreterResolved,
    ProcessLaunched,
    ProcessOutput,
    ResolutionDegraded,
    StepCompleted,
    StepStarted,
)
from pwshstep.host import Launcher, Node, ScriptFile, is_running_on_windows
from pwshstep.request import Verdict
from pwshstep.scripts import (
    CommandTimeoutError,
    LocalLauncher,
    create_temp_script,
    delete_temp_script,
)

logger = logging.getLogger(__name__)

# Exit code reported when the interpreter never ran to completion
NO_EXIT_CODE = -1


@dataclass
class StepResult:
    """Outcome of a PowerShell build step.

    Attributes:
        verdict: Build verdict
        exit_code: Interpreter exit code, or -1 if it did not complete
        argv: Argument vector that was launched
        script_path: Path of the (now deleted) script file
        stdout: Captured standard output
        stderr: Captured standard error
    """
    verdict: Verdict
    exit_code: int
    argv: List[str]
    script_path: str
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.verdict is Verdict.SUCCESS


async def perform(
    interpreter: PowerShell,
    workspace: Path,
    launcher: Optional[Launcher] = None,
    bus: Optional[EventBus] = None,
    env: Optional[Dict[str, str]] = None,
    node: Optional[Node] = None,
    timeout: Optional[float] = None,
) -> StepResult:
    """Run a PowerShell build step in workspace.

    Args:
        interpreter: Configured PowerShell command interpreter
        workspace: Directory to materialize the script in and run from
        launcher: Process launcher (defaults to LocalLauncher)
        bus: Event bus for progress events (a private bus if None)
        env: Extra environment variables for the interpreter process. Installation
            homes are expanded against the same environment the process sees
            (the current environment plus env).
        node: Agent node the workspace lives on, or None when local
        timeout: Maximum run time in seconds, None for no limit

    Returns:
        StepResult with the verdict and process details
    """
    launcher = launcher if launcher is not None else LocalLauncher()
    bus = bus if bus is not None else EventBus()
    workspace = Path(workspace)

    start_time = time.perf_counter()
    windows = is_running_on_windows(ScriptFile(remote=str(workspace), node=node))
    script_path = create_temp_script(
        workspace,
        interpreter.get_contents(),
        interpreter.file_extension(),
        encoding=interpreter.script_encoding(windows),
    )
    script = ScriptFile(remote=str(script_path), node=node)
    bus.emit(StepStarted(script_path=str(script_path), workspace=str(workspace)))

    try:
        build_env = dict(os.environ)
        if interpreter.env:
            build_env.update(interpreter.env)
        if env:
            build_env.update(env)
        argv, resolution = interpreter.resolve_command_line(script, build_env)
        bus.emit(InterpreterResolved(
            executable=argv[0],
            installation=resolution.installation.name
            if resolution is not None and resolution.installation is not None else None,
            argv=tuple(argv),
        ))
        if resolution is not None:
            for warning in resolution.warnings:
                bus.emit(ResolutionDegraded(
                    installation=warning.installation,
                    message=warning.message,
                ))

        logger.info(
            f"Running PowerShell step: {argv[0]}",
            extra={"argv": argv, "workspace": str(workspace)}
        )
        bus.emit(ProcessLaunched(argv=tuple(argv)))

        try:
            process_result = await launcher.launch(
                argv, cwd=str(workspace), env=env, timeout=timeout
            )
        except (StepLaunchError, CommandTimeoutError) as e:
            logger.error(
                f"PowerShell step did not complete: {e}",
                extra={"argv": argv, "workspace": str(workspace)}
            )
            bus.emit(ErrorOccurred(error_type=type(e).__name__, error_message=str(e)))
            result = StepResult(
                verdict=Verdict.FAILURE,
                exit_code=NO_EXIT_CODE,
                argv=argv,
                script_path=str(script_path),
            )
        else:
            bus.emit(ProcessOutput(
                stdout=process_result.stdout,
                stderr=process_result.stderr,
                exit_code=process_result.exit_code,
            ))
            result = StepResult(
                verdict=interpreter.classify(process_result.exit_code),
                exit_code=process_result.exit_code,
                argv=argv,
                script_path=str(script_path),
                stdout=process_result.stdout,
                stderr=process_result.stderr,
            )
    finally:
        delete_temp_script(script_path)

    duration_ms = (time.perf_counter() - start_time) * 1000
    logger.debug(
        f"PowerShell step finished: exit_code={result.exit_code} verdict={result.verdict.value}",
        extra={"exit_code": result.exit_code, "duration_ms": duration_ms}
    )
    bus.emit(StepCompleted(
        script_path=str(script_path),
        exit_code=result.exit_code,
        verdict=result.verdict,
        duration_ms=duration_ms,
    ))
    return result
