"""
Linux window management through the xdotool command-line utility.
"""

from typing import Any, Optional

from cursor_automation.actuator.input import InputAutomationService
from cursor_automation.actuator.platform import LINUX
from cursor_automation.actuator.window.base import BaseWindowManager, run_command
from cursor_automation.actuator.window.types import Bounds, WindowEventType, WindowHandle
from cursor_automation.errors import ValidationError, WindowManagerError
from cursor_automation.logging import get_logger

logger = get_logger(__name__)


def parse_geometry(output: str) -> Bounds:
    """Parse ``xdotool getwindowgeometry --shell`` output."""
    values: dict[str, int] = {}
    for line in output.splitlines():
        key, _, value = line.partition("=")
        try:
            values[key.strip().lower()] = int(value)
        except ValueError:
            continue
    return Bounds(
        x=values.get("x", 0),
        y=values.get("y", 0),
        width=values.get("width", 0),
        height=values.get("height", 0),
    )


def _window_id(window: WindowHandle) -> str:
    """xdotool window ids are integers; anything else could be read as an option."""
    if isinstance(window.id, bool) or not isinstance(window.id, int) or window.id <= 0:
        raise ValidationError("Invalid X11 window id", field="window_id")
    return str(window.id)


class LinuxWindowManager(BaseWindowManager):
    """Window manager backed by xdotool (X11)."""

    platform = LINUX

    def __init__(
        self,
        input_service: Optional[InputAutomationService] = None,
        xdotool: str = "xdotool",
        command_timeout: float = 5.0,
    ):
        self.xdotool = xdotool
        self.command_timeout = command_timeout
        super().__init__(input_service)

    async def _run_xdotool(self, *args: str) -> str:
        return await run_command([self.xdotool, *args], timeout=self.command_timeout)

    async def _describe(self, window_id: str) -> WindowHandle:
        title = await self._run_xdotool("getwindowname", window_id)
        pid = await self._run_xdotool("getwindowpid", window_id)
        geometry = await self._run_xdotool("getwindowgeometry", "--shell", window_id)
        try:
            return WindowHandle(
                id=int(window_id),
                title=title,
                process_id=int(pid),
                bounds=parse_geometry(geometry),
            )
        except ValueError as e:
            raise WindowManagerError(f"Unexpected xdotool output for window {window_id}") from e

    async def get_all_windows(self) -> list[WindowHandle]:
        try:
            # Exits non-zero when nothing matches
            output = await self._run_xdotool("search", "--onlyvisible", "--name", "")
        except WindowManagerError as e:
            logger.error("Error getting all windows", error=e.message)
            return []

        windows = []
        for window_id in output.split():
            try:
                windows.append(await self._describe(window_id))
            except WindowManagerError as e:
                # Windows without _NET_WM_PID, or ones that closed mid-scan
                logger.debug("Skipping window", window_id=window_id, error=e.message)
        return windows

    async def _query_active_window(self) -> Optional[WindowHandle]:
        window_id = await self._run_xdotool("getactivewindow")
        if not window_id:
            return None
        return await self._describe(window_id)

    async def focus_window(self, window: WindowHandle) -> bool:
        window_id = _window_id(window)
        try:
            await self._run_xdotool("windowactivate", "--sync", window_id)
        except WindowManagerError as e:
            logger.error("Error focusing window", process_id=window.process_id, error=e.message)
            return False
        return await self._confirm_focus(window)

    async def close_window(self, window: WindowHandle) -> bool:
        window_id = _window_id(window)
        try:
            # Sends WM_DELETE_WINDOW
            await self._run_xdotool("windowclose", window_id)
        except WindowManagerError as e:
            logger.error("Error closing window", process_id=window.process_id, error=e.message)
            return False
        self.invalidate(window.process_id)
        self._emit(WindowEventType.CLOSE, window)
        return True

    def get_platform_specific_api(self) -> dict[str, Any]:
        return {"xdotool": {"exec": self._run_xdotool, "binary": self.xdotool}}
