"""
macOS window management through AppleScript (System Events).

Every title and pid interpolated into a script is sanitized first, and the
finished script is checked against a blocklist right before ``osascript``
runs it. Violations raise ``SecurityError``/``ValidationError``; there is no
attempt at partial sanitization.
"""

import re
from typing import Any, Optional

from cursor_automation.actuator.input import InputAutomationService
from cursor_automation.actuator.platform import MACOS
from cursor_automation.actuator.window.base import BaseWindowManager, run_command
from cursor_automation.actuator.window.types import WindowEventType, WindowHandle
from cursor_automation.errors import ValidationError, WindowManagerError
from cursor_automation.logging import get_logger
from cursor_automation.security import (
    POLICY,
    sanitize_title,
    validate_process_id,
    validate_script,
)

logger = get_logger(__name__)

WINDOW_RECORD = re.compile(r"WINDOW:(.*?):PID:(\d+):END")

LIST_WINDOWS_SCRIPT = """
tell application "System Events"
    set windowList to {}
    repeat with proc in (every process whose background only is false)
        try
            set procID to unix id of proc
            repeat with w in (every window of proc)
                try
                    set end of windowList to ("WINDOW:" & (name of w) & ":PID:" & procID & ":END")
                end try
            end repeat
        end try
    end repeat
    set AppleScript's text item delimiters to linefeed
    return windowList as text
end tell
"""

ACTIVE_WINDOW_SCRIPT = """
tell application "System Events"
    set frontProc to first process whose frontmost is true
    set procID to unix id of frontProc
    set windowTitle to ""
    try
        set windowTitle to name of front window of frontProc
    end try
    return "WINDOW:" & windowTitle & ":PID:" & procID & ":END"
end tell
"""

FOCUS_WINDOW_TEMPLATE = """
tell application "System Events"
    try
        set targetProc to first process whose unix id is {pid}
        set frontmost of targetProc to true
        repeat with w in (every window of targetProc)
            try
                if name of w contains "{title}" then
                    perform action "AXRaise" of w
                    return "SUCCESS"
                end if
            end try
        end repeat
        return "NOT_FOUND"
    on error
        return "ERROR"
    end try
end tell
"""

CLOSE_WINDOW_TEMPLATE = """
tell application "System Events"
    try
        set targetProc to first process whose unix id is {pid}
        repeat with w in (every window of targetProc)
            try
                if name of w contains "{title}" then
                    click button 1 of w
                    return "SUCCESS"
                end if
            end try
        end repeat
        return "NOT_FOUND"
    on error
        return "ERROR"
    end try
end tell
"""


def parse_window_records(output: str) -> list[tuple[str, int]]:
    return [(title.strip(), int(pid)) for title, pid in WINDOW_RECORD.findall(output)]


class MacOSWindowManager(BaseWindowManager):
    """Window manager backed by osascript."""

    platform = MACOS

    def __init__(
        self,
        input_service: Optional[InputAutomationService] = None,
        osascript: str = "osascript",
    ):
        self.osascript = osascript
        super().__init__(input_service)

    async def run_script(self, script: str, context: str) -> str:
        """
        Execute AppleScript with the security constraints applied.

        Raises:
            SecurityError: script matches a forbidden pattern (never executed)
            WindowManagerError: execution failed, timed out or output too large
        """
        try:
            validate_script(script)
        except ValidationError:
            logger.error("Attempted execution of dangerous AppleScript", context=context)
            raise

        try:
            output = await run_command(
                [self.osascript, "-e", script],
                timeout=POLICY.SCRIPT_TIMEOUT_SECONDS,
                max_output_bytes=POLICY.SCRIPT_MAX_OUTPUT_BYTES,
            )
        except WindowManagerError as e:
            logger.error("AppleScript execution failed", context=context, error=e.message)
            raise WindowManagerError(f"AppleScript execution failed in {context}") from e

        logger.debug("Executed AppleScript", context=context)
        return output

    def _to_handle(self, title: str, pid: int) -> Optional[WindowHandle]:
        try:
            sanitize_title(title)
            validate_process_id(pid)
        except ValidationError as e:
            logger.warning("Skipping invalid window", process_id=pid, error=e.message)
            return None
        # No finer-grained handle than the pid; bounds are not queried
        return WindowHandle(id=pid, title=title, process_id=pid)

    async def get_all_windows(self) -> list[WindowHandle]:
        try:
            output = await self.run_script(LIST_WINDOWS_SCRIPT, "getAllWindows")
        except WindowManagerError as e:
            logger.error("Error getting all windows", error=e.message)
            return []

        windows = []
        for title, pid in parse_window_records(output):
            handle = self._to_handle(title, pid)
            if handle is not None:
                windows.append(handle)
        return windows

    async def _query_active_window(self) -> Optional[WindowHandle]:
        output = await self.run_script(ACTIVE_WINDOW_SCRIPT, "getActiveWindow")
        records = parse_window_records(output)
        if not records:
            return None
        title, pid = records[0]
        # The frontmost process may have no window; keep it for pid comparison
        return WindowHandle(id=pid, title=title, process_id=pid)

    def _build_script(self, template: str, window: WindowHandle) -> str:
        pid = validate_process_id(window.process_id)
        title = sanitize_title(window.title)
        return template.format(pid=pid, title=title)

    async def focus_window(self, window: WindowHandle) -> bool:
        script = self._build_script(FOCUS_WINDOW_TEMPLATE, window)
        logger.debug("Focusing window", process_id=window.process_id)
        try:
            result = await self.run_script(script, "focusWindow")
        except WindowManagerError as e:
            logger.error("Error focusing window", process_id=window.process_id, error=e.message)
            return False

        if result != "SUCCESS":
            logger.info("Window focus attempt failed", process_id=window.process_id, result=result)
            return False

        focused = await self._confirm_focus(window)
        logger.info("Window focus attempt completed", process_id=window.process_id, success=focused)
        return focused

    async def close_window(self, window: WindowHandle) -> bool:
        script = self._build_script(CLOSE_WINDOW_TEMPLATE, window)
        try:
            result = await self.run_script(script, "closeWindow")
        except WindowManagerError as e:
            logger.error("Error closing window", process_id=window.process_id, error=e.message)
            return False

        success = result == "SUCCESS"
        if success:
            self.invalidate(window.process_id)
            self._emit(WindowEventType.CLOSE, window)
        logger.info("Window close attempt completed", process_id=window.process_id, success=success)
        return success

    def get_platform_specific_api(self) -> dict[str, Any]:
        return {
            "osascript": {"exec": self.run_script},
            "security": {
                "max_title_length": POLICY.MAX_TITLE_LENGTH,
                "max_process_id": POLICY.MAX_PROCESS_ID,
                "script_timeout_seconds": POLICY.SCRIPT_TIMEOUT_SECONDS,
            },
        }
