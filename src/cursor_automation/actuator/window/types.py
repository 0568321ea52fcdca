"""
Window identity types.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


@dataclass(frozen=True)
class Bounds:
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class WindowHandle:
    """
    Identity and lookup key for an OS window.

    A handle is a weak reference: the window it names can close at any time,
    so consumers re-verify liveness (``is_window_responding``) before acting.
    """

    id: Union[int, str]  # Native handle; aliases the pid where no finer handle exists
    title: str
    process_id: int
    bounds: Optional[Bounds] = None


class WindowEventType(str, Enum):
    FOCUS = "focus"
    BLUR = "blur"
    CLOSE = "close"
    MOVE = "move"
    RESIZE = "resize"


@dataclass(frozen=True)
class WindowEvent:
    type: WindowEventType
    window: WindowHandle
