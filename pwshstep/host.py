"""Host collaborator interfaces for the PowerShell build step.

The build step never schedules builds, talks to agents, or owns processes
itself. Those concerns belong to the host (a CI server, the pwshstep CLI, or a
test). This module defines the small protocols the step relies on, plus
minimal concrete implementations:

- Node: a build agent that can report where a tool lives on its filesystem.
- ScriptFile: the materialized script path, optionally on a remote node.
- Launcher: runs an argument vector and reports the exit code.

It also holds the platform detection heuristics used by the resolver.
"""

import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from pwshstep.scripts import ProcessResult


# Tool kind used when a node reports per-node tool locations
POWERSHELL_TOOL_KIND = "powershell"


def is_windows() -> bool:
    """Check if running on Windows."""
    return sys.platform.startswith('win')


def is_unix() -> bool:
    """Check if running on Unix (Linux, macOS, etc.)."""
    return not is_windows()


class Node(Protocol):
    """A build agent as seen by the step.

    tool_location() is a round trip to the agent on real hosts and may raise
    OSError (InterruptedError included) when the channel fails.
    """

    @property
    def name(self) -> str:
        ...

    def tool_location(self, kind: str, name: str) -> Optional[str]:
        """Return the node-local home of a tool installation, or None."""
        ...


@dataclass
class AgentNode:
    """In-memory Node with a fixed table of per-node tool locations.

    Attributes:
        name: Node name
        tool_locations: Mapping of (tool kind, installation name) to the home
            directory of that installation on this node
    """
    name: str
    tool_locations: Dict[Tuple[str, str], str] = field(default_factory=dict)

    def tool_location(self, kind: str, name: str) -> Optional[str]:
        return self.tool_locations.get((kind, name))


@dataclass(frozen=True)
class ScriptFile:
    """Path of the materialized script, as seen by the node that runs it.

    Attributes:
        remote: Path string on the executing node's filesystem
        node: The agent node holding the file, or None when the file is local
            to the controlling process
    """
    remote: str
    node: Optional[Node] = None

    @property
    def is_remote(self) -> bool:
        return self.node is not None


class Launcher(Protocol):
    """Runs a command line on behalf of the step."""

    async def launch(
        self,
        argv: List[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> "ProcessResult":
        """Run argv to completion and return its output and exit code.

        Raises:
            StepLaunchError: If the process could not be started
            CommandTimeoutError: If the process exceeded the timeout
        """
        ...


def looks_like_windows_path(path: str) -> bool:
    """Check whether a path starts with a drive letter and backslash ("C:\\")."""
    return len(path) > 3 and path[1] == ':' and path[2] == '\\'


def is_running_on_windows(script: ScriptFile) -> bool:
    """Guess whether the script will run on a Windows machine.

    The step only knows the script's path, not the agent's OS. Local scripts
    use the controlling process's platform. Remote scripts are assumed to be
    on Windows when their path looks like "C:\\...".

    Args:
        script: The materialized script file

    Returns:
        True if the target is (probably) Windows
    """
    if not script.is_remote:
        return is_windows()
    return looks_like_windows_path(script.remote)
