"""
Tests for the window managers.

Platform variants are exercised with their native mechanism mocked out:
``run_command`` for xdotool/osascript, injected pywin32 modules for Windows.
"""

import sys

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from cursor_automation.actuator.window import (
    Bounds,
    WindowEventType,
    WindowHandle,
    check_dependencies,
    create_window_manager,
    get_dependency_status,
    get_window_manager,
    run_command,
)
from cursor_automation.actuator.window.linux import LinuxWindowManager, parse_geometry
from cursor_automation.actuator.window.macos import (
    ACTIVE_WINDOW_SCRIPT,
    LIST_WINDOWS_SCRIPT,
    MacOSWindowManager,
    parse_window_records,
)
from cursor_automation.actuator.window.windows import WindowsWindowManager
from cursor_automation.errors import (
    DependencyError,
    InputAutomationError,
    PlatformNotSupportedError,
    SecurityError,
    ValidationError,
    WindowManagerError,
    WindowNotFoundError,
)


class TestRunCommand:
    """Tests for run_command."""

    @pytest.mark.asyncio
    async def test_returns_stripped_stdout(self):
        output = await run_command([sys.executable, "-c", "print('  hello  ')"])
        assert output == "hello"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        with pytest.raises(WindowManagerError, match="exited with code 3"):
            await run_command([sys.executable, "-c", "import sys; sys.exit(3)"])

    @pytest.mark.asyncio
    async def test_timeout(self):
        with pytest.raises(WindowManagerError, match="timed out"):
            await run_command([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)

    @pytest.mark.asyncio
    async def test_output_limit(self):
        with pytest.raises(WindowManagerError, match="exceeded"):
            await run_command([sys.executable, "-c", "print('x' * 100)"], max_output_bytes=10)

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        with pytest.raises(WindowManagerError, match="could not be started"):
            await run_command(["definitely-not-a-real-binary-xyz"])


class TestBaseWindowManager:
    """Shared behavior, exercised through the in-memory manager."""

    @pytest.mark.asyncio
    async def test_find_by_title_substring_first_wins(self, window_manager):
        first = window_manager.add_window(100, "app.py - project - Cursor")
        window_manager.add_window(200, "other.py - project - Cursor")
        assert await window_manager.find_window_by_title("project") == first

    @pytest.mark.asyncio
    async def test_find_by_title_missing(self, window_manager):
        with pytest.raises(WindowNotFoundError):
            await window_manager.find_window_by_title("nothing")

    @pytest.mark.asyncio
    async def test_find_by_pid_prefers_titled(self, window_manager):
        window_manager.add_window(100, "")
        titled = window_manager.add_window(100, "Cursor")
        assert await window_manager.find_window_by_process_id(100) == titled

    @pytest.mark.asyncio
    async def test_find_by_pid_caches(self, window_manager):
        window = window_manager.add_window(100)
        await window_manager.find_window_by_process_id(100)
        assert window_manager.get_cached_window(100) == window
        window_manager.invalidate(100)
        assert window_manager.get_cached_window(100) is None

    @pytest.mark.asyncio
    async def test_find_by_pid_missing(self, window_manager):
        with pytest.raises(WindowNotFoundError):
            await window_manager.find_window_by_process_id(999)

    @pytest.mark.asyncio
    async def test_is_window_responding(self, window_manager):
        window = window_manager.add_window(100)
        assert await window_manager.is_window_responding(window) is True
        window_manager.remove_process(100)
        assert await window_manager.is_window_responding(window) is False

    @pytest.mark.asyncio
    async def test_untitled_window_not_responding(self, window_manager):
        window = window_manager.add_window(100, "")
        assert await window_manager.is_window_responding(window) is False

    @pytest.mark.asyncio
    async def test_get_active_window_never_raises(self, window_manager):
        window_manager._query_active_window = AsyncMock(side_effect=RuntimeError("no display"))
        assert await window_manager.get_active_window() is None

    @pytest.mark.asyncio
    async def test_send_keys_focuses_then_types(self, window_manager, backend):
        window = window_manager.add_window(100)
        await window_manager.send_keys(window, ["control", "shift", "p"])
        assert window_manager.active == window
        backend.keyDown.assert_any_call("ctrl")
        backend.keyDown.assert_any_call("shift")
        backend.press.assert_called_once_with("p")
        assert [c.args[0] for c in backend.keyUp.call_args_list] == ["shift", "ctrl"]

    @pytest.mark.asyncio
    async def test_send_keys_focus_failure(self, window_manager, backend):
        window = window_manager.add_window(100)
        window_manager.focus_results = [False]
        with pytest.raises(InputAutomationError, match="Failed to send keys"):
            await window_manager.send_keys(window, ["a"])
        backend.press.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_mouse_click(self, window_manager, backend):
        await window_manager.send_mouse_click(10, 20, "right")
        backend.moveTo.assert_called_once_with(10, 20)
        backend.click.assert_called_once_with(button="right")

    @pytest.mark.asyncio
    async def test_events(self, window_manager):
        received = []
        window = window_manager.add_window(100)
        window_manager.on(WindowEventType.FOCUS, received.append)
        await window_manager.focus_window(window)
        assert received[0].type == WindowEventType.FOCUS
        assert received[0].window == window

        window_manager.off(WindowEventType.FOCUS, received.append)
        await window_manager.focus_window(window)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_listener_errors_contained(self, window_manager):
        window = window_manager.add_window(100)
        window_manager.on(WindowEventType.CLOSE, MagicMock(side_effect=RuntimeError("oops")))
        assert await window_manager.close_window(window) is True

    @pytest.mark.asyncio
    async def test_off_stops_close_events(self, window_manager):
        listener = MagicMock()
        window = window_manager.add_window(100)
        window_manager.on(WindowEventType.CLOSE, listener)
        window_manager.off(WindowEventType.CLOSE, listener)
        window_manager.off(WindowEventType.CLOSE, listener)

        assert await window_manager.close_window(window) is True
        listener.assert_not_called()


class TestLinuxWindowManager:
    """Tests for LinuxWindowManager with xdotool mocked."""

    XDOTOOL = {
        ("search", "--onlyvisible", "--name", ""): "111\n222",
        ("getwindowname", "111"): "main.py - Cursor",
        ("getwindowpid", "111"): "4242",
        ("getwindowgeometry", "--shell", "111"): "WINDOW=111\nX=10\nY=20\nWIDTH=800\nHEIGHT=600\nSCREEN=0",
        ("getactivewindow",): "111",
    }

    @pytest.fixture
    def manager(self, input_service):
        return LinuxWindowManager(input_service=input_service)

    def fake_run(self, responses):
        async def _run(args, timeout=10.0, max_output_bytes=1024 * 1024):
            key = tuple(args[1:])
            if key not in responses:
                raise WindowManagerError(f"xdotool exited with code 1: {key}")
            return responses[key]
        return _run

    def test_parse_geometry(self):
        assert parse_geometry("X=1\nY=2\nWIDTH=3\nHEIGHT=4") == Bounds(1, 2, 3, 4)

    @pytest.mark.asyncio
    async def test_get_all_windows_skips_unreadable(self, manager):
        with patch("cursor_automation.actuator.window.linux.run_command", self.fake_run(self.XDOTOOL)):
            windows = await manager.get_all_windows()
        assert windows == [
            WindowHandle(id=111, title="main.py - Cursor", process_id=4242, bounds=Bounds(10, 20, 800, 600))
        ]

    @pytest.mark.asyncio
    async def test_get_all_windows_empty_on_failure(self, manager):
        with patch("cursor_automation.actuator.window.linux.run_command", self.fake_run({})):
            assert await manager.get_all_windows() == []

    @pytest.mark.asyncio
    async def test_focus_window(self, manager):
        responses = dict(self.XDOTOOL)
        responses[("windowactivate", "--sync", "111")] = ""
        with patch("cursor_automation.actuator.window.linux.run_command", self.fake_run(responses)):
            window = await manager.find_window_by_process_id(4242)
            assert await manager.focus_window(window) is True

    @pytest.mark.asyncio
    async def test_focus_window_command_failure(self, manager):
        window = WindowHandle(id=111, title="x", process_id=4242)
        with patch("cursor_automation.actuator.window.linux.run_command", self.fake_run({})):
            assert await manager.focus_window(window) is False

    @pytest.mark.asyncio
    async def test_invalid_window_id_rejected(self, manager):
        with pytest.raises(ValidationError):
            await manager.focus_window(WindowHandle(id="--help", title="x", process_id=1))

    @pytest.mark.asyncio
    async def test_close_window_emits(self, manager):
        closed = []
        manager.on(WindowEventType.CLOSE, closed.append)
        window = WindowHandle(id=111, title="x", process_id=4242)
        with patch(
            "cursor_automation.actuator.window.linux.run_command",
            self.fake_run({("windowclose", "111"): ""}),
        ):
            assert await manager.close_window(window) is True
        assert closed[0].window == window


class TestMacOSWindowManager:
    """Tests for MacOSWindowManager with osascript mocked."""

    @pytest.fixture
    def manager(self, input_service):
        return MacOSWindowManager(input_service=input_service)

    def test_parse_window_records(self):
        output = "WINDOW:main.py — project:PID:501:END\nWINDOW:Finder:PID:77:END"
        assert parse_window_records(output) == [("main.py — project", 501), ("Finder", 77)]

    @pytest.mark.asyncio
    async def test_get_all_windows_skips_invalid_titles(self, manager):
        output = "WINDOW:main.py - Cursor:PID:501:END\nWINDOW:tell application x:PID:502:END"
        with patch(
            "cursor_automation.actuator.window.macos.run_command",
            AsyncMock(return_value=output),
        ) as run:
            windows = await manager.get_all_windows()
        assert windows == [WindowHandle(id=501, title="main.py - Cursor", process_id=501)]
        assert run.await_args.args[0] == ["osascript", "-e", LIST_WINDOWS_SCRIPT]

    @pytest.mark.asyncio
    async def test_get_all_windows_empty_on_failure(self, manager):
        with patch(
            "cursor_automation.actuator.window.macos.run_command",
            AsyncMock(side_effect=WindowManagerError("boom")),
        ):
            assert await manager.get_all_windows() == []

    @pytest.mark.asyncio
    async def test_focus_window_success(self, manager):
        async def _run(args, timeout, max_output_bytes):
            if args[2] == ACTIVE_WINDOW_SCRIPT:
                return "WINDOW:main.py:PID:501:END"
            return "SUCCESS"

        window = WindowHandle(id=501, title='say "hi"', process_id=501)
        with patch("cursor_automation.actuator.window.macos.run_command", _run):
            assert await manager.focus_window(window) is True

    @pytest.mark.asyncio
    async def test_focus_script_escapes_title(self, manager):
        run = AsyncMock(return_value="NOT_FOUND")
        window = WindowHandle(id=501, title='a "quoted" title', process_id=501)
        with patch("cursor_automation.actuator.window.macos.run_command", run):
            assert await manager.focus_window(window) is False
        script = run.await_args.args[0][2]
        assert 'contains "a \\"quoted\\" title"' in script
        assert "unix id is 501" in script

    @pytest.mark.asyncio
    async def test_dangerous_title_never_executed(self, manager):
        run = AsyncMock()
        window = WindowHandle(id=501, title="x do shell script y", process_id=501)
        with patch("cursor_automation.actuator.window.macos.run_command", run):
            with pytest.raises(SecurityError):
                await manager.focus_window(window)
        run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_pid_rejected(self, manager):
        window = WindowHandle(id=0, title="Cursor", process_id=0)
        with pytest.raises(ValidationError):
            await manager.close_window(window)

    @pytest.mark.asyncio
    async def test_run_script_blocks_forbidden(self, manager):
        run = AsyncMock()
        with patch("cursor_automation.actuator.window.macos.run_command", run):
            with pytest.raises(SecurityError):
                await manager.run_script('do shell script "id"', "test")
        run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_script_wraps_failures(self, manager):
        with patch(
            "cursor_automation.actuator.window.macos.run_command",
            AsyncMock(side_effect=WindowManagerError("osascript timed out after 10s")),
        ):
            with pytest.raises(WindowManagerError, match="AppleScript execution failed in probe"):
                await manager.run_script("return 1", "probe")

    @pytest.mark.asyncio
    async def test_close_window(self, manager):
        closed = []
        manager.on(WindowEventType.CLOSE, closed.append)
        window = WindowHandle(id=501, title="Cursor", process_id=501)
        with patch(
            "cursor_automation.actuator.window.macos.run_command",
            AsyncMock(return_value="SUCCESS"),
        ):
            assert await manager.close_window(window) is True
        assert len(closed) == 1

    def test_platform_api(self, manager):
        api = manager.get_platform_specific_api()
        assert api["security"]["max_title_length"] == 500


class TestWindowsWindowManager:
    """Tests for WindowsWindowManager with pywin32 injected."""

    @pytest.fixture
    def gui(self):
        gui = MagicMock()
        titles = {1: "main.py - Cursor", 2: ""}

        def enum_windows(callback, extra):
            for hwnd in (1, 2):
                callback(hwnd, extra)

        gui.EnumWindows.side_effect = enum_windows
        gui.IsWindowVisible.return_value = True
        gui.GetWindowText.side_effect = lambda hwnd: titles[hwnd]
        gui.GetWindowRect.return_value = (0, 0, 1280, 720)
        gui.GetForegroundWindow.return_value = 1
        gui.IsIconic.return_value = False
        return gui

    @pytest.fixture
    def manager(self, input_service, gui):
        process = MagicMock()
        process.GetWindowThreadProcessId.return_value = (1, 3030)
        return WindowsWindowManager(
            input_service=input_service,
            gui=gui,
            process=process,
            con=MagicMock(),
            focus_settle_seconds=0,
        )

    @pytest.mark.asyncio
    async def test_enumerates_titled_windows(self, manager):
        windows = await manager.get_all_windows()
        assert windows == [
            WindowHandle(id=1, title="main.py - Cursor", process_id=3030, bounds=Bounds(0, 0, 1280, 720))
        ]

    @pytest.mark.asyncio
    async def test_enumeration_failure(self, manager, gui):
        gui.EnumWindows.side_effect = OSError("access denied")
        assert await manager.get_all_windows() == []

    @pytest.mark.asyncio
    async def test_focus_window(self, manager, gui):
        window = await manager.find_window_by_process_id(3030)
        assert await manager.focus_window(window) is True
        gui.SetForegroundWindow.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_focus_restores_minimized(self, manager, gui):
        gui.IsIconic.return_value = True
        window = await manager.find_window_by_process_id(3030)
        await manager.focus_window(window)
        assert gui.ShowWindow.call_count == 2

    @pytest.mark.asyncio
    async def test_focus_tolerates_foreground_lock(self, manager, gui):
        gui.SetForegroundWindow.side_effect = Exception("SetForegroundWindow refused")
        window = await manager.find_window_by_process_id(3030)
        assert await manager.focus_window(window) is True
        gui.BringWindowToTop.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_close_window(self, manager, gui):
        window = await manager.find_window_by_process_id(3030)
        assert await manager.close_window(window) is True
        gui.PostMessage.assert_called_once()
        assert manager.get_cached_window(3030) is None


class TestFactory:
    """Tests for window manager selection."""

    def test_unknown_platform(self):
        with pytest.raises(PlatformNotSupportedError):
            create_window_manager("sunos5")

    def test_linux_dependency_status(self):
        with patch("cursor_automation.actuator.window.factory.shutil.which", return_value=None):
            assert get_dependency_status("linux") == {"xdotool": False}
            with pytest.raises(DependencyError, match="xdotool"):
                check_dependencies("linux")

    def test_creates_linux_manager(self, input_service):
        with patch("cursor_automation.actuator.window.factory.shutil.which", return_value="/usr/bin/xdotool"):
            manager = create_window_manager("linux", input_service=input_service)
        assert isinstance(manager, LinuxWindowManager)

    def test_creates_macos_manager(self, input_service):
        with patch("cursor_automation.actuator.window.factory.shutil.which", return_value="/usr/bin/osascript"):
            manager = create_window_manager("darwin", input_service=input_service)
        assert isinstance(manager, MacOSWindowManager)

    def test_windows_without_pywin32(self):
        with patch("cursor_automation.actuator.window.windows.HAS_WIN32", False):
            with pytest.raises(DependencyError, match="pywin32"):
                check_dependencies("win32")

    def test_shared_manager(self, input_service):
        with patch(
            "cursor_automation.actuator.window.factory.create_window_manager",
            return_value=MagicMock(),
        ) as create:
            first = get_window_manager(input_service)
            second = get_window_manager(input_service)
        assert first is second
        create.assert_called_once()
