"""
Pytest configuration and fixtures.
"""

import asyncio

import pytest
import tempfile
from pathlib import Path
from typing import Any, Optional
from unittest.mock import MagicMock

from cursor_automation.actuator.input import InputAutomationService
from cursor_automation.actuator.window import (
    BaseWindowManager,
    WindowEventType,
    WindowHandle,
    reset_window_manager,
)
from cursor_automation.config import InputConfig


class FakeWindowManager(BaseWindowManager):
    """In-memory window manager: tests add and remove windows directly."""

    platform = "linux"

    def __init__(self, input_service: InputAutomationService):
        super().__init__(input_service=input_service)
        self.windows: list[WindowHandle] = []
        self.active: Optional[WindowHandle] = None
        self.focus_results: list[bool] = []
        self.focus_calls = 0
        self.closed: list[WindowHandle] = []
        self.lookup_delay = 0.0

    def add_window(self, process_id: int, title: str = "Cursor", window_id: Optional[int] = None) -> WindowHandle:
        window = WindowHandle(id=window_id or 1000 + len(self.windows), title=title, process_id=process_id)
        self.windows.append(window)
        return window

    def remove_process(self, process_id: int) -> None:
        self.windows = [w for w in self.windows if w.process_id != process_id]

    async def get_all_windows(self) -> list[WindowHandle]:
        if self.lookup_delay:
            await asyncio.sleep(self.lookup_delay)
        return list(self.windows)

    async def _query_active_window(self) -> Optional[WindowHandle]:
        return self.active

    async def focus_window(self, window: WindowHandle) -> bool:
        self.focus_calls += 1
        if self.focus_results and not self.focus_results.pop(0):
            return False
        if window not in self.windows:
            return False
        self.active = window
        return await self._confirm_focus(window)

    async def close_window(self, window: WindowHandle) -> bool:
        self.closed.append(window)
        self.remove_process(window.process_id)
        self._emit(WindowEventType.CLOSE, window)
        return True

    def get_platform_specific_api(self) -> dict[str, Any]:
        return {"fake": True}


@pytest.fixture(scope="session")
def temp_dir():
    """Session-scoped temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_file(temp_dir):
    """Create a temporary file."""
    def _create(name: str, content: str = "") -> Path:
        path = temp_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path
    return _create


@pytest.fixture
def backend():
    """Stand-in for the pyautogui module."""
    return MagicMock()


@pytest.fixture
def input_service(backend):
    return InputAutomationService(config=InputConfig(auto_delay_ms=0), backend=backend)


@pytest.fixture
def window_manager(input_service):
    return FakeWindowManager(input_service)


@pytest.fixture(autouse=True)
def _reset_shared_services():
    yield
    InputAutomationService.reset_instance()
    reset_window_manager()
