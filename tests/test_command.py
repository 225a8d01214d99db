"""Tests for command line, envelope and verdict construction."""

import pytest

from pwshstep import host
from pwshstep.command import (
    CONTINUE_DIRECTIVE,
    EXIT_STATEMENT,
    FILE_EXTENSION,
    STOP_DIRECTIVE,
    PowerShell,
    build_command_line,
    build_script_envelope,
    classify_exit_code,
)
from pwshstep.host import AgentNode, ScriptFile
from pwshstep.installation import PowerShellInstallation
from pwshstep.registry import InstallationRegistry
from pwshstep.request import ExecutionRequest, Verdict, VersionPreference
from pwshstep.resolver import InterpreterResolver


SCRIPT = "/tmp/ws/powershell123.ps1"


class TestBuildCommandLine:
    """Tests for build_command_line()."""

    @pytest.mark.parametrize("preference", list(VersionPreference))
    @pytest.mark.parametrize("windows", [True, False])
    @pytest.mark.parametrize("use_profile", [True, False])
    def test_shape_for_every_combination(self, preference, windows, use_profile):
        """Starts with the executable and ends with -File <script>."""
        args = build_command_line("custom-pwsh", SCRIPT, use_profile, windows, preference)

        assert args[-2:] == ["-File", SCRIPT]
        assert args[1] == "-NonInteractive"
        assert ("-NoProfile" in args) is (not use_profile)
        expects_policy = windows and preference is not VersionPreference.POWERSHELL_CORE
        assert ("-ExecutionPolicy" in args) is expects_policy
        if expects_policy:
            index = args.index("-ExecutionPolicy")
            assert args[index + 1] == "Bypass"

    def test_windows_powershell_with_profile_on_windows(self):
        args = build_command_line(
            None, "C:\\ws\\s.ps1", True, True, VersionPreference.WINDOWS_POWERSHELL
        )
        assert args == [
            "powershell.exe", "-NonInteractive", "-ExecutionPolicy", "Bypass",
            "-File", "C:\\ws\\s.ps1",
        ]

    def test_powershell_core_without_profile(self):
        args = build_command_line(None, SCRIPT, False, False, VersionPreference.POWERSHELL_CORE)
        assert args == ["pwsh", "-NonInteractive", "-NoProfile", "-File", SCRIPT]

    def test_powershell_core_omits_execution_policy_on_windows(self):
        args = build_command_line(
            None, "C:\\ws\\s.ps1", False, True, VersionPreference.POWERSHELL_CORE
        )
        assert args == ["pwsh", "-NonInteractive", "-NoProfile", "-File", "C:\\ws\\s.ps1"]

    def test_os_based_uses_given_executable(self):
        args = build_command_line("/opt/pwsh/pwsh", SCRIPT, False, False)
        assert args[0] == "/opt/pwsh/pwsh"

    def test_missing_executable_uses_platform_default(self):
        assert build_command_line(None, SCRIPT, False, False)[0] == "pwsh"
        assert build_command_line("", "C:\\s.ps1", False, True)[0] == "powershell.exe"

    def test_flag_order(self):
        args = build_command_line("powershell.exe", "C:\\s.ps1", False, True)
        assert args == [
            "powershell.exe", "-NonInteractive", "-NoProfile",
            "-ExecutionPolicy", "Bypass", "-File", "C:\\s.ps1",
        ]


class TestBuildScriptEnvelope:
    """Tests for build_script_envelope()."""

    def test_stop_on_error(self):
        envelope = build_script_envelope("Write-Output 'hi'", True, newline="\n")
        assert envelope == '$ErrorActionPreference="Stop"\nWrite-Output \'hi\'\nexit $LastExitCode'

    def test_continue_on_error(self):
        envelope = build_script_envelope("dir", False, newline="\n")
        assert envelope.splitlines() == [CONTINUE_DIRECTIVE, "dir", EXIT_STATEMENT]

    @pytest.mark.parametrize("stop_on_error", [True, False])
    def test_script_is_contiguous_between_one_directive_and_one_exit(self, stop_on_error):
        script = "$x = 1\r\nif ($x) {\n  Write-Output $x\n}\n"
        envelope = build_script_envelope(script, stop_on_error, newline="\r\n")

        directive = STOP_DIRECTIVE if stop_on_error else CONTINUE_DIRECTIVE
        assert envelope.startswith(directive + "\r\n")
        assert envelope.endswith("\r\n" + EXIT_STATEMENT)
        assert script in envelope
        assert envelope.count("$ErrorActionPreference") == 1
        assert envelope.count(EXIT_STATEMENT) == 1


class TestClassifyExitCode:
    """Tests for classify_exit_code()."""

    @pytest.mark.parametrize("unstable", [None, 0, 1, 123, -5])
    def test_zero_is_always_success(self, unstable):
        assert classify_exit_code(0, unstable) is Verdict.SUCCESS

    def test_matching_unstable_code(self):
        assert classify_exit_code(123, 123) is Verdict.UNSTABLE

    def test_unstable_code_zero_means_not_configured(self):
        assert classify_exit_code(123, 0) is Verdict.FAILURE

    def test_non_matching_code(self):
        assert classify_exit_code(5, 123) is Verdict.FAILURE

    def test_no_unstable_code(self):
        assert classify_exit_code(1, None) is Verdict.FAILURE


class TestPowerShell:
    """Tests for the PowerShell command interpreter."""

    def test_file_extension(self):
        interpreter = PowerShell(ExecutionRequest(command="dir", stop_on_error=True))
        assert interpreter.file_extension() == FILE_EXTENSION == ".ps1"

    def test_get_contents(self):
        interpreter = PowerShell(ExecutionRequest(command="dir", stop_on_error=False))
        assert interpreter.get_contents(newline="\n") == f"{CONTINUE_DIRECTIVE}\ndir\n{EXIT_STATEMENT}"

    def test_unstable_return_zero_reads_as_none(self):
        interpreter = PowerShell(ExecutionRequest(command="x", stop_on_error=True, unstable_return=0))
        assert interpreter.unstable_return is None

    def test_is_errorlevel_for_unstable_build(self):
        interpreter = PowerShell(ExecutionRequest(command="x", stop_on_error=True, unstable_return=3))
        assert interpreter.is_errorlevel_for_unstable_build(3) is True
        assert interpreter.is_errorlevel_for_unstable_build(4) is False
        assert interpreter.is_errorlevel_for_unstable_build(0) is False

    def test_unstable_hook_without_configuration(self):
        interpreter = PowerShell(ExecutionRequest(command="x", stop_on_error=True))
        assert interpreter.is_errorlevel_for_unstable_build(1) is False
        assert interpreter.classify(1) is Verdict.FAILURE

    def test_os_based_local_uses_controller_platform(self, monkeypatch):
        monkeypatch.setattr(host, "is_windows", lambda: True)
        interpreter = PowerShell(ExecutionRequest(command="x", stop_on_error=True))

        args = interpreter.build_command_line(ScriptFile(remote="C:\\ws\\a.ps1"))

        assert args[0] == "powershell.exe"
        assert "-ExecutionPolicy" in args

    def test_os_based_local_posix(self, monkeypatch):
        monkeypatch.setattr(host, "is_windows", lambda: False)
        interpreter = PowerShell(ExecutionRequest(command="x", stop_on_error=True))

        args = interpreter.build_command_line(ScriptFile(remote="/ws/a.ps1"))

        assert args == ["pwsh", "-NonInteractive", "-NoProfile", "-File", "/ws/a.ps1"]

    def test_os_based_remote_windows_path(self):
        node = AgentNode(name="win-agent")
        interpreter = PowerShell(ExecutionRequest(command="x", stop_on_error=True, use_profile=True))

        args = interpreter.build_command_line(ScriptFile(remote="C:\\ws\\a.ps1", node=node))

        assert args == [
            "powershell.exe", "-NonInteractive", "-ExecutionPolicy", "Bypass",
            "-File", "C:\\ws\\a.ps1",
        ]

    def test_forced_preference_skips_resolution(self, monkeypatch):
        monkeypatch.setattr(host, "is_windows", lambda: False)
        registry = InstallationRegistry([PowerShellInstallation("custom", "/opt/ps", "pwsh")])
        interpreter = PowerShell(
            ExecutionRequest(
                command="x",
                stop_on_error=True,
                installation="custom",
                version_preference=VersionPreference.WINDOWS_POWERSHELL,
            ),
            InterpreterResolver(registry),
        )

        args, resolution = interpreter.resolve_command_line(ScriptFile(remote="/ws/a.ps1"))

        assert args[0] == "powershell.exe"
        assert resolution is None

    def test_named_installation_is_used(self, monkeypatch):
        monkeypatch.setattr(host, "is_windows", lambda: False)
        registry = InstallationRegistry([
            PowerShellInstallation("DefaultLinux", None, "pwsh"),
            PowerShellInstallation("pwsh-7", "/opt/microsoft/powershell/7", "pwsh"),
        ])
        interpreter = PowerShell(
            ExecutionRequest(command="x", stop_on_error=True, installation="pwsh-7"),
            InterpreterResolver(registry),
        )

        args, resolution = interpreter.resolve_command_line(ScriptFile(remote="/ws/a.ps1"))

        assert args[0] == "/opt/microsoft/powershell/7/pwsh"
        assert resolution.installation.name == "pwsh-7"
        assert not hasattr(interpreter, "last_resolution")

    def test_call_env_expands_installation_home(self, monkeypatch):
        monkeypatch.setattr(host, "is_windows", lambda: False)
        registry = InstallationRegistry([PowerShellInstallation("tools", "${TOOLS}/pwsh", "pwsh")])
        interpreter = PowerShell(
            ExecutionRequest(command="x", stop_on_error=True, installation="tools"),
            InterpreterResolver(registry),
            env={"TOOLS": "/from/construction"},
        )
        script = ScriptFile(remote="/ws/a.ps1")

        assert interpreter.build_command_line(script)[0] == "/from/construction/pwsh"
        assert interpreter.build_command_line(script, {"TOOLS": "/from/call"})[0] == "/from/call/pwsh"

    def test_script_encoding(self):
        interpreter = PowerShell(ExecutionRequest(command="x", stop_on_error=True))

        assert interpreter.script_encoding(True) == "utf-8-sig"
        assert interpreter.script_encoding(False) == "utf-8"

    def test_unknown_preference_string_behaves_as_os_based(self, monkeypatch):
        monkeypatch.setattr(host, "is_windows", lambda: False)
        interpreter = PowerShell(
            ExecutionRequest(command="x", stop_on_error=True, version_preference="latest")
        )

        args = interpreter.build_command_line(ScriptFile(remote="/ws/a.ps1"))

        assert args[0] == "pwsh"
        assert interpreter.request.version_preference is VersionPreference.OS_BASED
