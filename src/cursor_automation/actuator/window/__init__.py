"""
Per-platform window managers behind one capability interface.
"""

from cursor_automation.actuator.window.types import (
    Bounds,
    WindowEvent,
    WindowEventType,
    WindowHandle,
)
from cursor_automation.actuator.window.base import BaseWindowManager, run_command
from cursor_automation.actuator.window.factory import (
    check_dependencies,
    create_window_manager,
    get_dependency_status,
    get_window_manager,
    reset_window_manager,
)

__all__ = [
    "Bounds",
    "WindowEvent",
    "WindowEventType",
    "WindowHandle",
    "BaseWindowManager",
    "run_command",
    "check_dependencies",
    "create_window_manager",
    "get_dependency_status",
    "get_window_manager",
    "reset_window_manager",
]
