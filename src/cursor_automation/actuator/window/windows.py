"""
Windows window management with pywin32.
"""

import asyncio
from typing import Any, Optional

from cursor_automation.actuator.input import InputAutomationService
from cursor_automation.actuator.platform import IS_WINDOWS, WINDOWS
from cursor_automation.actuator.window.base import BaseWindowManager
from cursor_automation.actuator.window.types import Bounds, WindowEventType, WindowHandle
from cursor_automation.errors import DependencyError
from cursor_automation.logging import get_logger

logger = get_logger(__name__)

# Windows-specific imports
if IS_WINDOWS:
    try:
        import win32gui
        import win32con
        import win32process
        HAS_WIN32 = True
    except ImportError:
        HAS_WIN32 = False
        logger.warning("pywin32 not available, window operations will be limited")
else:
    HAS_WIN32 = False


class WindowsWindowManager(BaseWindowManager):
    """
    Window manager using the Win32 window APIs.

    pywin32 calls block, so each one runs in a worker thread.
    """

    platform = WINDOWS

    def __init__(
        self,
        input_service: Optional[InputAutomationService] = None,
        gui: Any = None,
        process: Any = None,
        con: Any = None,
        focus_settle_seconds: float = 0.1,
    ):
        """
        Args:
            input_service: Shared input automation service
            gui, process, con: win32gui / win32process / win32con modules
                (defaults to the installed pywin32)
            focus_settle_seconds: Wait after raising before re-checking focus
        """
        if gui is None:
            if not HAS_WIN32:
                raise DependencyError("pywin32", WINDOWS, "Install it with: pip install pywin32")
            gui, process, con = win32gui, win32process, win32con
        self._gui = gui
        self._process = process
        self._con = con
        self.focus_settle_seconds = focus_settle_seconds
        super().__init__(input_service)

    def _describe(self, hwnd: int) -> WindowHandle:
        x, y, x2, y2 = self._gui.GetWindowRect(hwnd)
        _, pid = self._process.GetWindowThreadProcessId(hwnd)
        return WindowHandle(
            id=hwnd,
            title=self._gui.GetWindowText(hwnd),
            process_id=pid,
            bounds=Bounds(x=x, y=y, width=x2 - x, height=y2 - y),
        )

    def _enumerate(self) -> list[WindowHandle]:
        windows: list[WindowHandle] = []

        def enum_callback(hwnd, _):
            if self._gui.IsWindowVisible(hwnd) and self._gui.GetWindowText(hwnd):
                try:
                    windows.append(self._describe(hwnd))
                except Exception as e:
                    logger.debug("Skipping window", hwnd=hwnd, error=str(e))
            return True

        self._gui.EnumWindows(enum_callback, None)
        return windows

    async def get_all_windows(self) -> list[WindowHandle]:
        try:
            return await asyncio.to_thread(self._enumerate)
        except Exception as e:
            logger.error("Error enumerating windows", error=str(e))
            return []

    async def _query_active_window(self) -> Optional[WindowHandle]:
        hwnd = await asyncio.to_thread(self._gui.GetForegroundWindow)
        if not hwnd:
            return None
        return await asyncio.to_thread(self._describe, hwnd)

    def _raise(self, hwnd: int) -> None:
        if self._gui.IsIconic(hwnd):
            self._gui.ShowWindow(hwnd, self._con.SW_RESTORE)

        # SetForegroundWindow is refused when another process holds the
        # foreground lock; the other calls still raise the window
        for step in (
            lambda: self._gui.SetForegroundWindow(hwnd),
            lambda: self._gui.BringWindowToTop(hwnd),
            lambda: self._gui.ShowWindow(hwnd, self._con.SW_SHOW),
        ):
            try:
                step()
            except Exception as e:
                logger.debug("Focus step failed", hwnd=hwnd, error=str(e))

    async def focus_window(self, window: WindowHandle) -> bool:
        hwnd = window.id
        try:
            await asyncio.to_thread(self._raise, hwnd)
        except Exception as e:
            logger.error("Error focusing window", hwnd=hwnd, error=str(e))
            return False

        await asyncio.sleep(self.focus_settle_seconds)
        return await self._confirm_focus(window)

    async def close_window(self, window: WindowHandle) -> bool:
        try:
            await asyncio.to_thread(
                self._gui.PostMessage, window.id, self._con.WM_CLOSE, 0, 0
            )
        except Exception as e:
            logger.error("Error closing window", hwnd=window.id, error=str(e))
            return False
        self.invalidate(window.process_id)
        self._emit(WindowEventType.CLOSE, window)
        return True

    def get_platform_specific_api(self) -> dict[str, Any]:
        return {"win32gui": self._gui, "win32process": self._process, "win32con": self._con}
