# Test configuration for pytest
#
# Note: Tests require the package to be installed.
# Run `pip install -e .[test]` from the project root before running tests.

import shutil
import sys
import pytest


def pytest_configure(config):
    """Register custom markers for platform-specific tests."""
    config.addinivalue_line("markers", "unix: mark test to run only on Unix")
    config.addinivalue_line("markers", "windows: mark test to run only on Windows")
    config.addinivalue_line("markers", "powershell: mark test as needing a real PowerShell on PATH")


def pytest_collection_modifyitems(config, items):
    """Skip platform-specific and PowerShell-dependent tests where they cannot run."""
    is_windows = sys.platform.startswith('win')
    has_powershell = bool(shutil.which("pwsh") or shutil.which("powershell"))
    skip_unix = pytest.mark.skip(reason="Unix-only test")
    skip_windows = pytest.mark.skip(reason="Windows-only test")
    skip_powershell = pytest.mark.skip(reason="PowerShell not found on PATH")

    for item in items:
        if "unix" in item.keywords and is_windows:
            item.add_marker(skip_unix)
        if "windows" in item.keywords and not is_windows:
            item.add_marker(skip_windows)
        if "powershell" in item.keywords and not has_powershell:
            item.add_marker(skip_powershell)
