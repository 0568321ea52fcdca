"""
Selects the window manager for the running platform.

The variant is chosen once per process and shared; it is never re-selected
per call.
"""

import shutil
from typing import Optional

from cursor_automation.actuator.input import InputAutomationService
from cursor_automation.actuator.platform import LINUX, MACOS, WINDOWS, normalize_platform
from cursor_automation.actuator.window.base import BaseWindowManager
from cursor_automation.errors import DependencyError
from cursor_automation.logging import get_logger

logger = get_logger(__name__)

_shared_manager: Optional[BaseWindowManager] = None


def get_dependency_status(platform: Optional[str] = None) -> dict[str, bool]:
    """Which native tools the platform's window manager needs, and whether they are present."""
    platform = normalize_platform(platform)
    if platform == LINUX:
        return {"xdotool": shutil.which("xdotool") is not None}
    if platform == MACOS:
        return {"osascript": shutil.which("osascript") is not None}

    from cursor_automation.actuator.window.windows import HAS_WIN32
    return {"pywin32": HAS_WIN32}


def check_dependencies(platform: Optional[str] = None) -> None:
    """
    Raises:
        DependencyError: a required native tool is missing
        PlatformNotSupportedError: unknown platform
    """
    platform = normalize_platform(platform)
    hints = {
        "xdotool": "Install it using your package manager (e.g., apt-get install xdotool)",
        "osascript": "osascript ships with macOS; check PATH",
        "pywin32": "Install it with: pip install pywin32",
    }
    for dependency, present in get_dependency_status(platform).items():
        if not present:
            raise DependencyError(dependency, platform, hints[dependency])


def create_window_manager(
    platform: Optional[str] = None,
    input_service: Optional[InputAutomationService] = None,
) -> BaseWindowManager:
    """Build a new window manager for ``platform`` (defaults to the running one)."""
    platform = normalize_platform(platform)
    check_dependencies(platform)

    if platform == WINDOWS:
        from cursor_automation.actuator.window.windows import WindowsWindowManager
        return WindowsWindowManager(input_service=input_service)
    if platform == MACOS:
        from cursor_automation.actuator.window.macos import MacOSWindowManager
        return MacOSWindowManager(input_service=input_service)

    from cursor_automation.actuator.window.linux import LinuxWindowManager
    return LinuxWindowManager(input_service=input_service)


def get_window_manager(
    input_service: Optional[InputAutomationService] = None,
) -> BaseWindowManager:
    """Process-wide window manager for the running platform."""
    global _shared_manager
    if _shared_manager is None:
        _shared_manager = create_window_manager(input_service=input_service)
        logger.info("Window manager selected", manager=type(_shared_manager).__name__)
    return _shared_manager


def reset_window_manager() -> None:
    global _shared_manager
    _shared_manager = None
