"""
Keyboard and mouse injection using pyautogui.

One ``InputAutomationService`` exists per process (``get_instance``) and is
handed explicitly to the window managers that need it. It holds modifier
state while a chord is being sent, so it must not be driven by two logical
operations at the same time.
"""

import asyncio
from typing import Any, Optional, Sequence

from cursor_automation.config import InputConfig
from cursor_automation.errors import InputAutomationError
from cursor_automation.logging import get_logger

logger = get_logger(__name__)

# pyautogui needs a display at import time on Linux; treat any import failure
# as "input backend unavailable"
try:
    import pyautogui
    HAS_PYAUTOGUI = True
except Exception as e:  # ImportError, or Xlib display errors
    pyautogui = None  # type: ignore
    HAS_PYAUTOGUI = False
    logger.warning("pyautogui not available", error=str(e))


# Logical key names -> pyautogui key names
KEY_MAP = {
    "control": "ctrl",
    "ctrl": "ctrl",
    "shift": "shift",
    "alt": "alt",
    "option": "alt",
    "command": "command",
    "cmd": "command",
    "enter": "enter",
    "return": "enter",
    "tab": "tab",
    "escape": "esc",
    "esc": "esc",
    "backspace": "backspace",
    "delete": "delete",
    "space": "space",
    "up": "up",
    "down": "down",
    "left": "left",
    "right": "right",
}

MODIFIER_KEYS = frozenset({"ctrl", "shift", "alt", "command"})

MOUSE_BUTTONS = ("left", "right", "middle")


class InputAutomationService:
    """
    Raw keyboard/mouse primitives with a fixed inter-event delay.

    Every primitive runs the blocking pyautogui call in a worker thread and
    wraps backend failures in ``InputAutomationError``.
    """

    _instance: Optional["InputAutomationService"] = None

    def __init__(
        self,
        config: Optional[InputConfig] = None,
        backend: Any = None,
    ):
        """
        Initialize InputAutomationService.

        Args:
            config: Input timing configuration
            backend: pyautogui-compatible module (defaults to pyautogui)
        """
        self.config = config or InputConfig()
        self._backend = backend if backend is not None else pyautogui
        self._held_modifiers: list[str] = []

        if self._backend is not None:
            self._backend.PAUSE = self.config.auto_delay_ms / 1000.0
            self._backend.FAILSAFE = self.config.failsafe

        logger.info(
            "InputAutomationService initialized",
            has_backend=self._backend is not None,
            auto_delay_ms=self.config.auto_delay_ms,
        )

    @classmethod
    def get_instance(cls, config: Optional[InputConfig] = None) -> "InputAutomationService":
        """Process-wide shared instance, created on first use."""
        if cls._instance is None:
            cls._instance = cls(config=config)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    @property
    def held_modifiers(self) -> tuple[str, ...]:
        return tuple(self._held_modifiers)

    @staticmethod
    def get_key_code(key: str) -> str:
        """
        Resolve a logical key name to the backend key name.

        Single characters are passed through unchanged so the backend can
        apply shift for upper-case and symbol characters.
        """
        if len(key) == 1:
            return key
        code = KEY_MAP.get(key.lower())
        if code is None:
            raise InputAutomationError(f"Unknown key name: {key[:20]}")
        return code

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        if self._backend is None:
            raise InputAutomationError("pyautogui not available")
        func = getattr(self._backend, method)
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except InputAutomationError:
            raise
        except Exception as e:
            raise InputAutomationError(f"{method} failed: {e}") from e

    async def press_key(self, key: str) -> None:
        await self._call("keyDown", self.get_key_code(key))

    async def release_key(self, key: str) -> None:
        await self._call("keyUp", self.get_key_code(key))

    async def type_text(self, text: str) -> None:
        await self._call("write", text, interval=self.config.auto_delay_ms / 1000.0)

    async def send_keys(self, keys: Sequence[str]) -> None:
        """
        Send a key chord or sequence.

        Modifier keys are held down as they appear; every other key is
        pressed and released. Held modifiers are always released at the end.
        """
        codes = [self.get_key_code(key) for key in keys]
        try:
            for code in codes:
                if code in MODIFIER_KEYS:
                    if code not in self._held_modifiers:
                        await self._call("keyDown", code)
                        self._held_modifiers.append(code)
                    continue
                await self._call("press", code)
        finally:
            await self._release_modifiers()

    async def _release_modifiers(self) -> None:
        errors = []
        while self._held_modifiers:
            code = self._held_modifiers.pop()
            try:
                await self._call("keyUp", code)
            except InputAutomationError as e:
                logger.error("Failed to release modifier", key=code, error=str(e))
                errors.append(e)
        if errors:
            raise errors[0]

    async def move_mouse(self, x: int, y: int) -> None:
        await self._call("moveTo", x, y)

    async def mouse_click(self, button: str = "left") -> None:
        self._check_button(button)
        await self._call("click", button=button)

    async def mouse_double_click(self, button: str = "left") -> None:
        self._check_button(button)
        await self._call("doubleClick", button=button)

    async def mouse_drag(self, start_x: int, start_y: int, end_x: int, end_y: int) -> None:
        await self._call("moveTo", start_x, start_y)
        await self._call("mouseDown", button="left")
        try:
            await self._call("moveTo", end_x, end_y)
        finally:
            await self._call("mouseUp", button="left")

    async def scroll_wheel(self, amount: int) -> None:
        """Scroll down by ``amount`` clicks (negative scrolls up)."""
        await self._call("scroll", -amount)

    @staticmethod
    def _check_button(button: str) -> None:
        if button not in MOUSE_BUTTONS:
            raise InputAutomationError(f"Unsupported mouse button: {button[:10]}")
