"""Registry of configured PowerShell installations.

The registry is owned by the host's tool configuration. A build step only
reads it. It is persisted as YAML, by default in
`.pwshstep/installations.yaml`:

    installations:
      - name: DefaultWindows
        executable: powershell.exe
      - name: pwsh-7.4
        home: /opt/microsoft/powershell/7
        executable: pwsh

Entries that carry a `home` but no `executable` were written before the two
were split, and are migrated on load.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from pwshstep.errors import RegistryError
from pwshstep.installation import PowerShellInstallation, default_installations

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "installations.yaml"

# Label shown for "no installation selected"
NONE_LABEL = "(none)"


class InstallationRegistry:
    """Ordered collection of PowerShellInstallation records keyed by name."""

    def __init__(self, installations: Iterable[PowerShellInstallation] = ()) -> None:
        self._installations: List[PowerShellInstallation] = []
        self.set_installations(*installations)

    @property
    def installations(self) -> Tuple[PowerShellInstallation, ...]:
        return tuple(self._installations)

    def set_installations(self, *installations: PowerShellInstallation) -> None:
        """Replace all installations.

        Raises:
            RegistryError: If two installations share a name
        """
        seen = set()
        for installation in installations:
            if installation.name in seen:
                raise RegistryError(f"Duplicate installation name: '{installation.name}'")
            seen.add(installation.name)
        self._installations = list(installations)

    def get_installation(self, name: Optional[str]) -> Optional[PowerShellInstallation]:
        """Return the installation with exactly this name, or None."""
        for installation in self._installations:
            if installation.name == name:
                return installation
        return None

    def get_any_installation(self, name: Optional[str]) -> Optional[PowerShellInstallation]:
        """Return the named installation, else the first one, else None."""
        installation = self.get_installation(name)
        if installation is not None:
            return installation
        if self._installations:
            return self._installations[0]
        return None

    def ensure_defaults(self) -> bool:
        """Register the default Windows and Linux installations if empty.

        Returns:
            True if the registry was changed and should be saved
        """
        if self._installations:
            return False
        self.set_installations(*default_installations())
        logger.info("Registered default PowerShell installations")
        return True

    def installation_choices(self) -> List[Tuple[str, str]]:
        """(label, value) pairs for choosing an installation, "none" first."""
        choices = [(NONE_LABEL, "")]
        for installation in self._installations:
            choices.append((installation.name, installation.name))
        return choices

    def __len__(self) -> int:
        return len(self._installations)

    def __iter__(self):
        return iter(self._installations)


def _installation_from_entry(entry: Any, registry_file: Path) -> PowerShellInstallation:
    if not isinstance(entry, dict):
        raise RegistryError(
            f"Invalid installation entry in {registry_file}: expected mapping, "
            f"got {type(entry).__name__}"
        )
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        raise RegistryError(f"Installation entry without a name in {registry_file}: {entry}")

    properties = entry.get("properties") or {}
    if not isinstance(properties, dict):
        raise RegistryError(
            f"Invalid 'properties' for installation '{name}' in {registry_file}: "
            f"expected mapping, got {type(properties).__name__}"
        )

    home = entry.get("home")
    executable = entry.get("executable")
    for key, value in (("home", home), ("executable", executable)):
        if value is not None and not isinstance(value, str):
            raise RegistryError(
                f"Invalid '{key}' for installation '{name}' in {registry_file}: "
                f"expected string, got {type(value).__name__}"
            )

    if executable is None:
        return PowerShellInstallation.from_legacy_home(name, home, properties)
    return PowerShellInstallation(
        name=name,
        powershell_home=home,
        executable=executable,
        properties=properties,
    )


def load_registry(registry_file: Path) -> InstallationRegistry:
    """Load the installation registry from a YAML file.

    A missing file yields an empty registry.

    Args:
        registry_file: Path to the registry file

    Returns:
        The loaded registry

    Raises:
        RegistryError: If the file exists but is unreadable or malformed
    """
    registry_file = Path(registry_file)
    if not registry_file.exists():
        return InstallationRegistry()

    try:
        with open(registry_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise RegistryError(f"Failed to parse {registry_file}: Invalid YAML - {e}") from e
    except OSError as e:
        raise RegistryError(f"Failed to read {registry_file}: {e}") from e

    if data is None:
        return InstallationRegistry()
    if not isinstance(data, dict):
        raise RegistryError(f"Invalid registry file {registry_file}: expected a mapping")

    entries = data.get("installations") or []
    if not isinstance(entries, list):
        raise RegistryError(
            f"Invalid 'installations' in {registry_file}: expected list, "
            f"got {type(entries).__name__}"
        )

    return InstallationRegistry(
        _installation_from_entry(entry, registry_file) for entry in entries
    )


def save_registry(registry: InstallationRegistry, registry_file: Path) -> None:
    """Write the registry to a YAML file atomically.

    Uses atomic write pattern: write to temp file, then rename.

    Args:
        registry: Registry to save
        registry_file: Destination path (parent directories are created)
    """
    registry_file = Path(registry_file)
    registry_file.parent.mkdir(parents=True, exist_ok=True)

    data: Dict[str, Any] = {
        "installations": [installation.to_dict() for installation in registry]
    }

    fd, tmp_path = tempfile.mkstemp(
        suffix='.tmp',
        prefix='installations_',
        dir=registry_file.parent
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.replace(tmp_path, registry_file)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
