"""
Common window manager behavior.

Platform variants supply enumeration, active-window query, focus and close;
this base adds the per-process cache, event subscription, lookups, the
responsiveness oracle and the focus-then-inject input composition.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Optional, Sequence

from cursor_automation.actuator.input import InputAutomationService
from cursor_automation.actuator.window.types import (
    WindowEvent,
    WindowEventType,
    WindowHandle,
)
from cursor_automation.errors import (
    InputAutomationError,
    WindowFocusError,
    WindowManagerError,
    WindowNotFoundError,
)
from cursor_automation.logging import get_logger

logger = get_logger(__name__)

WindowEventCallback = Callable[[WindowEvent], None]


async def run_command(
    args: Sequence[str],
    timeout: float = 10.0,
    max_output_bytes: int = 1024 * 1024,
) -> str:
    """
    Run an external tool with an argument vector (never through a shell).

    Raises:
        WindowManagerError: on timeout, oversized output or non-zero exit
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise WindowManagerError(f"{args[0]} could not be started: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise WindowManagerError(f"{args[0]} timed out after {timeout:g}s") from None

    if len(stdout) > max_output_bytes:
        raise WindowManagerError(f"{args[0]} output exceeded {max_output_bytes} bytes")

    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip()[:200]
        raise WindowManagerError(f"{args[0]} exited with code {proc.returncode}: {message}")

    return stdout.decode(errors="replace").strip()


class BaseWindowManager(ABC):
    """
    Window manager capability set shared by every platform.

    The cache maps process id to the most recently observed handle for that
    process. Lookups always enumerate afresh; the cache is a convenience for
    callers that only know a pid, never a liveness signal.
    """

    platform: str = ""

    def __init__(self, input_service: Optional[InputAutomationService] = None):
        self.input_service = input_service or InputAutomationService.get_instance()
        self._cache: dict[int, WindowHandle] = {}
        self._listeners: dict[WindowEventType, list[WindowEventCallback]] = defaultdict(list)
        logger.info("Window manager initialized", platform=self.platform)

    # Platform primitives

    @abstractmethod
    async def get_all_windows(self) -> list[WindowHandle]:
        """Enumerate visible windows in OS order. Returns [] on query failure."""

    @abstractmethod
    async def _query_active_window(self) -> Optional[WindowHandle]:
        """Return the foreground window; may raise on OS errors."""

    @abstractmethod
    async def focus_window(self, window: WindowHandle) -> bool:
        """Bring ``window`` to the foreground and confirm its process owns focus."""

    @abstractmethod
    async def close_window(self, window: WindowHandle) -> bool:
        """Ask ``window`` to close. Does not guarantee the process exits."""

    @abstractmethod
    def get_platform_specific_api(self) -> dict[str, Any]:
        """Expose the native mechanism for callers that need it."""

    # Cache

    def _remember(self, window: WindowHandle) -> WindowHandle:
        cached = self._cache.get(window.process_id)
        if cached == window:
            return cached
        self._cache[window.process_id] = window
        logger.debug("Cached window", process_id=window.process_id, window_id=window.id)
        return window

    def get_cached_window(self, process_id: int) -> Optional[WindowHandle]:
        return self._cache.get(process_id)

    def invalidate(self, process_id: int) -> None:
        self._cache.pop(process_id, None)

    # Queries

    async def get_active_window(self) -> Optional[WindowHandle]:
        """Current foreground window, or None. Never raises."""
        try:
            window = await self._query_active_window()
        except Exception as e:
            logger.error("Error getting active window", error=str(e))
            return None
        if window is None:
            logger.debug("No active window found")
            return None
        return self._remember(window)

    async def find_window_by_title(self, title: str) -> WindowHandle:
        """
        First window whose title contains ``title``.

        Substring match in enumeration order: two windows sharing the
        substring are ambiguous and the first one listed wins.
        """
        logger.debug("Finding window by title", title_length=len(title))
        for window in await self.get_all_windows():
            if title in window.title:
                return self._remember(window)
        raise WindowNotFoundError(title[:100])

    async def find_window_by_process_id(self, process_id: int) -> WindowHandle:
        """First titled window owned by ``process_id`` (falls back to an untitled one)."""
        logger.debug("Finding window by process ID", process_id=process_id)
        matches = [w for w in await self.get_all_windows() if w.process_id == process_id]
        if not matches:
            logger.debug("Window not found by process ID", process_id=process_id)
            raise WindowNotFoundError(process_id)
        titled = [w for w in matches if w.title]
        return self._remember(titled[0] if titled else matches[0])

    async def is_window_responding(self, window: WindowHandle) -> bool:
        """Fresh lookup by pid succeeds and yields a non-empty title."""
        try:
            found = await self.find_window_by_process_id(window.process_id)
        except WindowManagerError as e:
            logger.warning(
                "Window not responding",
                process_id=window.process_id,
                error=e.message,
            )
            return False
        return bool(found.title)

    async def _confirm_focus(self, window: WindowHandle) -> bool:
        active = await self.get_active_window()
        focused = active is not None and active.process_id == window.process_id
        if focused:
            self._emit(WindowEventType.FOCUS, window)
        return focused

    # Events

    def on(self, event: WindowEventType, callback: WindowEventCallback) -> None:
        logger.debug("Adding event listener", event_type=event.value)
        self._listeners[event].append(callback)

    def off(self, event: WindowEventType, callback: WindowEventCallback) -> None:
        logger.debug("Removing event listener", event_type=event.value)
        if callback in self._listeners[event]:
            self._listeners[event].remove(callback)

    def _emit(self, event: WindowEventType, window: WindowHandle) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(WindowEvent(type=event, window=window))
            except Exception as e:
                logger.error("Window event listener failed", event_type=event.value, error=str(e))

    # Input

    async def send_keys(self, window: WindowHandle, keys: Sequence[str]) -> None:
        """Focus ``window`` then inject ``keys``."""
        try:
            logger.debug(
                "Sending keys to window",
                process_id=window.process_id,
                key_count=len(keys),
            )
            if not await self.focus_window(window):
                raise WindowFocusError("Failed to focus window before sending keys")
            await self.input_service.send_keys(keys)
        except InputAutomationError:
            raise
        except Exception as e:
            logger.error(
                "Error sending keys",
                process_id=window.process_id,
                error=str(e),
            )
            raise InputAutomationError(f"Failed to send keys: {e}") from e

    async def send_mouse_click(self, x: int, y: int, button: str = "left") -> None:
        try:
            logger.debug("Sending mouse click", x=x, y=y, button=button)
            await self.input_service.move_mouse(x, y)
            await self.input_service.mouse_click(button)
        except InputAutomationError:
            raise
        except Exception as e:
            logger.error("Error sending mouse click", x=x, y=y, button=button, error=str(e))
            raise InputAutomationError(f"Failed to send mouse click: {e}") from e
