"""
Actuator module - OS window control and input injection.

Components:
- platform: platform detection, modifier-key convention
- input: keyboard/mouse injection (pyautogui)
- window: per-platform window managers (pywin32 / osascript / xdotool)
"""

from cursor_automation.actuator.platform import (
    IS_WINDOWS,
    IS_LINUX,
    IS_MACOS,
    LINUX,
    MACOS,
    WINDOWS,
    normalize_platform,
    primary_modifier,
)
from cursor_automation.actuator.input import InputAutomationService
from cursor_automation.actuator.window import (
    BaseWindowManager,
    Bounds,
    WindowEvent,
    WindowEventType,
    WindowHandle,
    create_window_manager,
    get_window_manager,
)

__all__ = [
    # Platform
    "IS_WINDOWS",
    "IS_LINUX",
    "IS_MACOS",
    "LINUX",
    "MACOS",
    "WINDOWS",
    "normalize_platform",
    "primary_modifier",
    # Input
    "InputAutomationService",
    # Window
    "BaseWindowManager",
    "Bounds",
    "WindowEvent",
    "WindowEventType",
    "WindowHandle",
    "create_window_manager",
    "get_window_manager",
]
