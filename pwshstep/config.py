"""Configuration file management for pwshstep.

This module handles loading and validation of per-project configuration from
`.pwshstep/config.toml`. The `.pwshstep` directory is discovered by searching
upward from the current working directory until a `.git` directory is found.
The same directory holds the installation registry (`installations.yaml`).
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Check Python version for tomllib support (Python 3.11+)
if sys.version_info < (3, 11):
    raise RuntimeError(
        "pwshstep requires Python 3.11 or greater for tomllib support. "
        f"Current version: {sys.version_info.major}.{sys.version_info.minor}"
    )

import tomllib  # Python 3.11+ standard library


CONFIG_DIRNAME = ".pwshstep"
CONFIG_FILENAME = "config.toml"
CONFIG_TABLE = "pwshstep"


class ConfigError(Exception):
    """Raised when configuration file operations fail."""
    pass


def find_project_root(cwd: Path) -> Path:
    """Find project root (directory containing .git) or return cwd if not found.

    Args:
        cwd: Current working directory to start search from

    Returns:
        Path to project root (directory with .git) or cwd if not found
    """
    current = Path(cwd).resolve()
    root = Path(current.anchor)

    while current != root:
        if (current / ".git").exists():
            return current
        current = current.parent

    return Path(cwd).resolve()


def find_config_dir(cwd: Path, create_if_missing: bool = False) -> Optional[Path]:
    """Find the .pwshstep directory by searching upward from cwd.

    Stops at the .git directory (project boundary) or the filesystem root.

    Args:
        cwd: Current working directory to start search from
        create_if_missing: If True, create .pwshstep at the project root
            (or cwd without .git) when it is not found

    Returns:
        The .pwshstep directory path if found or created, None otherwise
    """
    current = Path(cwd).resolve()
    root = Path(current.anchor)
    project_root = None

    while current != root:
        config_dir = current / CONFIG_DIRNAME
        # A file named .pwshstep is not a match; keep searching
        if config_dir.is_dir():
            return config_dir

        if (current / ".git").exists():
            project_root = current
            break

        current = current.parent

    if create_if_missing:
        target_dir = project_root if project_root is not None else Path(cwd).resolve()
        config_dir = target_dir / CONFIG_DIRNAME
        config_dir.mkdir(parents=True, exist_ok=True)
        return config_dir

    return None


def find_config_file(cwd: Path) -> Optional[Path]:
    """Find .pwshstep/config.toml by searching upward from cwd.

    Returns:
        Path to config file if found, None otherwise
    """
    config_dir = find_config_dir(cwd)
    if config_dir is None:
        return None

    config_file = config_dir / CONFIG_FILENAME
    if config_file.is_file():
        return config_file

    return None


def _require_type(config: Dict[str, Any], key: str, expected: Any, label: str, config_file: Path) -> None:
    value = config[key]
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and expected is not bool:
        ok = False
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise ConfigError(
            f"Invalid value for '{key}' in {config_file}: "
            f"expected {label}, got {type(value).__name__}"
        )


def validate_config(config: Dict[str, Any], config_file: Path) -> Dict[str, Any]:
    """Validate configuration values and filter out unknown keys.

    Args:
        config: Dictionary of configuration values
        config_file: Path to config file (for error messages)

    Returns:
        Validated config dictionary with only known keys

    Raises:
        ConfigError: If any validation fails
    """
    known_keys = {
        "stop_on_error", "use_profile", "unstable_return",
        "powershell_version_preference", "installation", "timeout", "verbose"
    }

    # Unknown keys are dropped for forward compatibility
    validated_config = {k: v for k, v in config.items() if k in known_keys}

    for key in ("stop_on_error", "use_profile", "verbose"):
        if key in validated_config:
            _require_type(validated_config, key, bool, "boolean", config_file)

    for key in ("installation", "powershell_version_preference"):
        if key in validated_config:
            _require_type(validated_config, key, str, "string", config_file)

    if "unstable_return" in validated_config:
        _require_type(validated_config, "unstable_return", int, "integer", config_file)

    if "timeout" in validated_config:
        _require_type(validated_config, "timeout", (int, float), "number", config_file)
        if validated_config["timeout"] < 0:
            raise ConfigError(
                f"Invalid value for 'timeout' in {config_file}: "
                f"must be non-negative, got {validated_config['timeout']}"
            )

    # Unknown preference strings are not an error here: they fall back to
    # osBased when the request is built

    return validated_config


def load_config(cwd: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from .pwshstep/config.toml, or {} if there is none.

    Args:
        cwd: Current working directory to start search from. If None, uses Path.cwd()

    Returns:
        Dictionary with configuration values, or empty dict if config file doesn't exist

    Raises:
        ConfigError: If config file exists but contains invalid TOML, values, or cannot be read
    """
    if cwd is None:
        cwd = Path.cwd()

    config_file = find_config_file(cwd)
    if config_file is None:
        return {}

    try:
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(
            f"Failed to parse {config_file}: Invalid TOML syntax - {e}"
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Failed to read {config_file}: {e}"
        ) from e

    config = data.get(CONFIG_TABLE, {})
    if not isinstance(config, dict):
        raise ConfigError(f"Invalid [{CONFIG_TABLE}] table in {config_file}")
    return validate_config(config, config_file)


def merge_config_and_args(config: Dict[str, Any], args: argparse.Namespace) -> argparse.Namespace:
    """Merge config file values into args namespace, CLI args take precedence.

    Options the CLI leaves as None take the config value. The store_true
    flags (use_profile, verbose) can only be switched on by the config.

    Args:
        config: Dictionary of configuration values from config file
        args: Parsed command-line arguments namespace

    Returns:
        Modified args namespace with config values merged in
    """
    for key in ("stop_on_error", "unstable_return", "installation", "timeout"):
        if getattr(args, key, None) is None and key in config:
            setattr(args, key, config[key])

    if getattr(args, "version_preference", None) is None:
        if "powershell_version_preference" in config:
            args.version_preference = config["powershell_version_preference"]

    for key in ("use_profile", "verbose"):
        if hasattr(args, key):
            if not getattr(args, key) and config.get(key, False):
                setattr(args, key, True)

    return args


def init_config(cwd: Optional[Path] = None) -> int:
    """Generate a new .pwshstep/config.toml file with all options commented out.

    Args:
        cwd: Current working directory to start search from. If None, uses Path.cwd()

    Returns:
        0 on success, 1 on error
    """
    if cwd is None:
        cwd = Path.cwd()

    existing_config = find_config_file(cwd)
    if existing_config is not None:
        print(
            f"Error: Configuration file already exists at {existing_config}",
            file=sys.stderr
        )
        print(
            "Refusing to generate a new config file. "
            "Delete or rename the existing file first.",
            file=sys.stderr
        )
        return 1

    project_root = find_project_root(cwd)
    config_dir = find_config_dir(project_root, create_if_missing=True)

    if config_dir is None:
        print(f"Error: Failed to create {CONFIG_DIRNAME} directory", file=sys.stderr)
        return 1

    config_file = config_dir / CONFIG_FILENAME

    config_content = """# pwshstep configuration file
# Command-line arguments override values in this file
# Uncomment and modify values as needed

[pwshstep]
# Abort the script on the first error (required here or on the command line)
# stop_on_error = true

# Load the PowerShell profile instead of passing -NoProfile (default: false)
# use_profile = false

# Exit code that marks the build unstable instead of failed (0 = not set)
# unstable_return = 3

# "osBased", "windowsPowerShell" or "powershellCore" (default: "osBased")
# powershell_version_preference = "osBased"

# Name of an installation from installations.yaml (default: platform default)
# installation = "DefaultLinux"

# Timeout for the PowerShell process in seconds (default: none)
# timeout = 600.0

# Enable verbose logging (default: false)
# verbose = false
"""

    try:
        config_file.write_text(config_content, encoding="utf-8")
        print(f"Created configuration file at {config_file}")
        return 0
    except OSError as e:
        print(f"Error: Failed to write configuration file: {e}", file=sys.stderr)
        return 1
