"""Tests for PowerShell installation records."""

import dataclasses

import pytest

from pwshstep.host import AgentNode, POWERSHELL_TOOL_KIND
from pwshstep.installation import (
    DEFAULT_LINUX_NAME,
    DEFAULT_WINDOWS_NAME,
    PowerShellInstallation,
    default_executable,
    default_installations,
    expand_env_vars,
)


class TestPowerShellInstallation:
    """Tests for PowerShellInstallation."""

    def test_empty_home_is_none(self):
        assert PowerShellInstallation("x", "   ", "pwsh").powershell_home is None

    def test_home_is_trimmed(self):
        installation = PowerShellInstallation("x", "  /opt/pwsh  ", "pwsh")
        assert installation.powershell_home == "/opt/pwsh"
        assert installation.home == "/opt/pwsh"

    def test_is_immutable(self):
        installation = PowerShellInstallation("x", "/opt/pwsh", "pwsh")
        with pytest.raises(dataclasses.FrozenInstanceError):
            installation.powershell_home = "/elsewhere"

    def test_for_node_returns_new_record(self):
        installation = PowerShellInstallation("x", "/opt/pwsh", "pwsh", {"label": "linux"})
        node = AgentNode("agent", {(POWERSHELL_TOOL_KIND, "x"): "/agent/pwsh"})

        specialised = installation.for_node(node)

        assert specialised is not installation
        assert specialised.powershell_home == "/agent/pwsh"
        assert specialised.name == "x"
        assert specialised.executable == "pwsh"
        assert specialised.properties == {"label": "linux"}
        assert installation.powershell_home == "/opt/pwsh"

    def test_for_node_ignores_other_tool_kinds(self):
        installation = PowerShellInstallation("x", "/opt/pwsh", "pwsh")
        node = AgentNode("agent", {("jdk", "x"): "/agent/jdk"})

        assert installation.for_node(node).powershell_home == "/opt/pwsh"

    def test_for_environment_without_home(self):
        installation = PowerShellInstallation("x", None, "pwsh")
        assert installation.for_environment({"A": "b"}) == installation

    def test_executable_path(self):
        assert PowerShellInstallation("x", None, "pwsh").executable_path(False) == "pwsh"
        assert PowerShellInstallation("x", "/opt", "pwsh").executable_path(False) == "/opt/pwsh"
        assert PowerShellInstallation("x", "C:\\PS", "pwsh.exe").executable_path(True) == "C:\\PS\\pwsh.exe"
        assert PowerShellInstallation("x", None, None).executable_path(True) == "powershell.exe"

    def test_to_dict_omits_unset_fields(self):
        assert PowerShellInstallation("x", None, "pwsh").to_dict() == {"name": "x", "executable": "pwsh"}

    def test_defaults(self):
        windows, linux = default_installations()
        assert (windows.name, windows.executable) == (DEFAULT_WINDOWS_NAME, "powershell.exe")
        assert (linux.name, linux.executable) == (DEFAULT_LINUX_NAME, "pwsh")
        assert default_executable(True) == "powershell.exe"
        assert default_executable(False) == "pwsh"


class TestLegacyMigration:
    """Tests for from_legacy_home()."""

    @pytest.mark.parametrize("home, expected_home, expected_executable", [
        (None, None, "pwsh"),
        ("", None, "pwsh"),
        ("pwsh", None, "pwsh"),
        ("powershell.exe", None, "powershell.exe"),
        ("/usr/bin/pwsh", "/usr/bin", "pwsh"),
        ("C:\\Windows\\System32\\WindowsPowerShell\\v1.0\\powershell.exe",
         "C:\\Windows\\System32\\WindowsPowerShell\\v1.0", "powershell.exe"),
        ("/opt/microsoft/powershell/7", "/opt/microsoft/powershell/7", "pwsh"),
    ])
    def test_split(self, home, expected_home, expected_executable):
        installation = PowerShellInstallation.from_legacy_home("legacy", home)

        assert installation.name == "legacy"
        assert installation.powershell_home == expected_home
        assert installation.executable == expected_executable


class TestExpandEnvVars:
    """Tests for expand_env_vars()."""

    def test_braced_and_bare(self):
        assert expand_env_vars("${A}/x/$B", {"A": "/a", "B": "b"}) == "/a/x/b"

    def test_unknown_left_as_is(self):
        assert expand_env_vars("$MISSING/${ALSO}", {}) == "$MISSING/${ALSO}"

    def test_no_references(self):
        assert expand_env_vars("C:\\Tools", {"A": "b"}) == "C:\\Tools"
