"""
Platform detection.

The platform is read once at import; components that need to vary by OS
take an explicit ``platform`` argument so tests can exercise every variant.
"""

import sys
from typing import Optional

from cursor_automation.errors import PlatformNotSupportedError

# Platform detection
IS_WINDOWS = sys.platform == "win32"
IS_LINUX = sys.platform.startswith("linux")
IS_MACOS = sys.platform == "darwin"

WINDOWS = "win32"
MACOS = "darwin"
LINUX = "linux"

SUPPORTED_PLATFORMS = (WINDOWS, MACOS, LINUX)


def normalize_platform(platform: Optional[str] = None) -> str:
    """
    Map a ``sys.platform`` style identifier to one of the supported platforms.

    Raises:
        PlatformNotSupportedError: for anything else
    """
    platform = platform or sys.platform
    if platform.startswith("linux"):
        return LINUX
    if platform in (WINDOWS, MACOS):
        return platform
    raise PlatformNotSupportedError(platform)


def primary_modifier(platform: Optional[str] = None) -> str:
    """Modifier used for editor shortcuts: Cmd on macOS, Ctrl elsewhere."""
    return "command" if normalize_platform(platform) == MACOS else "control"
