"""Command-line interface for running PowerShell build steps."""

import argparse
import asyncio
import codecs
import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Optional

from .bus import EventBus
from .command import PowerShell
from .config import ConfigError, find_config_dir, init_config, load_config, merge_config_and_args
from .errors import PowerShellStepError
from .host import ScriptFile
from .observers import ConsoleObserver
from .registry import REGISTRY_FILENAME, InstallationRegistry, load_registry, save_registry
from .request import ExecutionRequest, Verdict, VersionPreference
from .resolver import InterpreterResolver
from .step import perform


EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_UNSTABLE = 2

VERDICT_EXIT_CODES = {
    Verdict.SUCCESS: EXIT_SUCCESS,
    Verdict.FAILURE: EXIT_FAILURE,
    Verdict.UNSTABLE: EXIT_UNSTABLE,
}


def positive_float_or_zero(value: str) -> float:
    """Argparse type for non-negative float values (used for timeout).

    Raises:
        argparse.ArgumentTypeError: If value is not a number or is negative
    """
    try:
        fval = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid float value: '{value}'")

    if fval < 0:
        raise argparse.ArgumentTypeError(f"timeout must be non-negative, got {fval}")

    return fval


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI.

    Logging only reaches the console in verbose mode. The build log itself is
    written by ConsoleObserver, not through logging.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    if verbose:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        root_logger.addHandler(console_handler)
        root_logger.setLevel(logging.DEBUG)
    else:
        root_logger.setLevel(logging.WARNING)


def load_installations(cwd: Path) -> InstallationRegistry:
    """Load the project's installation registry, registering defaults if empty.

    When a .pwshstep directory exists, a registry that received defaults is
    saved back so later runs see the same installations.

    Raises:
        RegistryError: If the registry file is malformed
    """
    config_dir = find_config_dir(cwd)
    if config_dir is None:
        registry = InstallationRegistry()
        registry.ensure_defaults()
        return registry

    registry_file = config_dir / REGISTRY_FILENAME
    registry = load_registry(registry_file)
    if registry.ensure_defaults():
        save_registry(registry, registry_file)
    return registry


def read_script_file(path: Path) -> str:
    """Read a script file, honouring a UTF-8 or UTF-16 byte order mark.

    Files without a BOM are read as UTF-8.

    Raises:
        OSError: If the file cannot be read
        UnicodeDecodeError: If the contents are not valid in the detected encoding
    """
    data = Path(path).read_bytes()
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16")
    return data.decode("utf-8-sig")


def read_command(args: argparse.Namespace) -> Optional[str]:
    """Script text from --command or the script file argument."""
    if args.command is not None:
        return args.command
    if args.script is not None:
        return read_script_file(Path(args.script))
    return None


def resolve_workspace(args: argparse.Namespace) -> Path:
    """Directory the step runs in; its .pwshstep holds config and registry."""
    return Path(args.workspace) if args.workspace else Path.cwd()


def build_request(args: argparse.Namespace, command: str) -> ExecutionRequest:
    return ExecutionRequest(
        command=command,
        stop_on_error=args.stop_on_error,
        use_profile=args.use_profile,
        unstable_return=args.unstable_return,
        version_preference=VersionPreference.parse(args.version_preference),
        installation=args.installation,
    )


def cmd_list_installations(args: argparse.Namespace) -> int:
    """Print the configured installations."""
    try:
        registry = load_installations(resolve_workspace(args))
    except PowerShellStepError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(f"Installations ({len(registry)} total):\n")
    for label, value in registry.installation_choices():
        installation = registry.get_installation(value)
        if installation is None:
            print(f"  {label}  platform default")
            continue
        home = installation.powershell_home or "(on PATH)"
        print(f"  {label}  {installation.executable or '(default)'}  {home}")
    return EXIT_SUCCESS


def cmd_run(args: argparse.Namespace) -> int:
    """Run (or with --dry-run, only show) a PowerShell build step."""
    setup_logging(args.verbose)

    try:
        command = read_command(args)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: Cannot read script {args.script}: {e}", file=sys.stderr)
        return EXIT_FAILURE
    if command is None:
        print("Error: A script FILE or --command is required", file=sys.stderr)
        return EXIT_FAILURE

    if args.stop_on_error is None:
        print(
            "Error: Choose --stop-on-error or --continue-on-error "
            "(or set stop_on_error in .pwshstep/config.toml)",
            file=sys.stderr
        )
        return EXIT_FAILURE

    workspace = resolve_workspace(args)

    try:
        registry = load_installations(workspace)
    except PowerShellStepError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    interpreter = PowerShell(build_request(args, command), InterpreterResolver(registry))

    if args.dry_run:
        placeholder = ScriptFile(remote=str(workspace / f"powershell{interpreter.file_extension()}"))
        print(interpreter.get_contents(newline="\n"))
        print()
        print(shlex.join(interpreter.build_command_line(placeholder, dict(os.environ))))
        return EXIT_SUCCESS

    timeout = args.timeout if args.timeout else None

    bus = EventBus()
    observer = ConsoleObserver(bus, quiet=args.quiet)
    try:
        result = asyncio.run(perform(interpreter, workspace, bus=bus, timeout=timeout))
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        return 130
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        observer.close()

    return VERDICT_EXIT_CODES[result.verdict]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="pwshstep",
        description="Run a PowerShell script as a build step",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pwshstep build.ps1 --stop-on-error              Run a script, abort on first error
  pwshstep -c "Get-ChildItem" --continue-on-error  Run inline PowerShell
  pwshstep build.ps1 --stop-on-error --dry-run    Show the envelope and command line
  pwshstep --list-installations                   List configured installations

Exit codes: 0 success, 1 failure, 2 unstable (see --unstable-return)
""",
    )

    parser.add_argument(
        "script",
        nargs="?",
        default=None,
        metavar="FILE",
        help="PowerShell script whose contents are run as the step",
    )
    parser.add_argument(
        "-c", "--command",
        default=None,
        metavar="TEXT",
        help="PowerShell script text to run instead of FILE",
    )

    step_group = parser.add_argument_group("step options")
    error_mutex = step_group.add_mutually_exclusive_group()
    error_mutex.add_argument(
        "--stop-on-error",
        dest="stop_on_error",
        action="store_const",
        const=True,
        default=None,
        help='Abort the script on the first error ($ErrorActionPreference="Stop")',
    )
    error_mutex.add_argument(
        "--continue-on-error",
        dest="stop_on_error",
        action="store_const",
        const=False,
        help='Continue past errors ($ErrorActionPreference="Continue")',
    )
    step_group.add_argument(
        "--use-profile",
        dest="use_profile",
        action="store_true",
        help="Load the PowerShell profile (omit -NoProfile)",
    )
    step_group.add_argument(
        "--unstable-return",
        dest="unstable_return",
        type=int,
        metavar="CODE",
        default=None,
        help="Exit code that marks the build unstable instead of failed (0 = not set)",
    )
    step_group.add_argument(
        "--version-preference",
        dest="version_preference",
        metavar="PREF",
        default=None,
        help="osBased (default), windowsPowerShell or powershellCore",
    )
    step_group.add_argument(
        "--installation",
        metavar="NAME",
        default=None,
        help="Named PowerShell installation from .pwshstep/installations.yaml",
    )

    runtime_group = parser.add_argument_group("runtime options")
    runtime_group.add_argument(
        "--workspace",
        metavar="DIR",
        default=None,
        help="Directory to run the step in; its .pwshstep supplies config and installations (default: current directory)",
    )
    runtime_group.add_argument(
        "--timeout",
        type=positive_float_or_zero,
        metavar="SEC",
        default=None,
        help="Timeout for the PowerShell process in seconds (default: none, 0=none)",
    )
    runtime_group.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Print the script envelope and command line without running",
    )
    runtime_group.add_argument(
        "--quiet",
        action="store_true",
        help="Only show script output, warnings, errors and the verdict",
    )

    global_group = parser.add_argument_group("global options")
    global_group.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    global_group.add_argument(
        "--list-installations",
        dest="list_installations",
        action="store_true",
        help="List configured PowerShell installations",
    )
    global_group.add_argument(
        "--init-config",
        action="store_true",
        help="Generate a new .pwshstep/config.toml file with all options commented out",
    )

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.init_config:
        return init_config()

    if args.script is not None and args.command is not None:
        print("Error: Cannot specify both FILE and --command", file=sys.stderr)
        return EXIT_FAILURE

    # Config and registry both come from the workspace's .pwshstep
    try:
        config = load_config(resolve_workspace(args))
        args = merge_config_and_args(config, args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if args.list_installations:
        return cmd_list_installations(args)

    if args.script is None and args.command is None:
        parser.print_help()
        return EXIT_SUCCESS

    return cmd_run(args)


if __name__ == "__main__":
    sys.exit(main())
