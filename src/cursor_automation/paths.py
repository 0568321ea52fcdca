"""
Platform-specific locations: Cursor executable, default workspace, config directory.
"""

import os
from typing import Optional

from cursor_automation.actuator.platform import MACOS, WINDOWS, normalize_platform
from cursor_automation.errors import ExecutableNotFoundError
from cursor_automation.logging import get_logger
from cursor_automation.security import validate_path

logger = get_logger(__name__)

APP_DIR_NAME = "cursor-automation"


def _linux_candidates() -> list[str]:
    return [
        os.path.join(os.path.expanduser("~"), ".local", "bin", "cursor"),
        "/usr/local/bin/cursor",
        "/usr/bin/cursor",
    ]


def get_executable_path(platform: Optional[str] = None) -> str:
    """
    Default Cursor executable location for the platform.

    On Linux the first existing candidate wins; if none exists the user-local
    location is returned so the caller can report it.
    """
    platform = normalize_platform(platform)

    if platform == WINDOWS:
        local_app_data = os.environ.get("LOCALAPPDATA", "")
        return os.path.join(local_app_data, "Programs", "cursor", "Cursor.exe")
    if platform == MACOS:
        return "/Applications/Cursor.app/Contents/MacOS/Cursor"

    candidates = _linux_candidates()
    for candidate in candidates:
        if os.path.isfile(candidate):
            return candidate
    return candidates[0]


def resolve_executable(override: Optional[str] = None, platform: Optional[str] = None) -> str:
    """
    Resolve, validate and existence-check the executable to spawn.

    Raises:
        ValidationError: path fails the generic path checks
        ExecutableNotFoundError: nothing exists at the resolved path
    """
    candidate = override or get_executable_path(platform)
    validated = validate_path(candidate, "Cursor executable path")

    if not os.path.isfile(validated):
        logger.error("Cursor executable not found", path=validated)
        raise ExecutableNotFoundError(validated)

    return validated


def get_default_workspace_path(platform: Optional[str] = None) -> str:
    platform = normalize_platform(platform)
    home = os.path.expanduser("~")

    if platform == WINDOWS:
        path = os.path.join(home, "Documents", "cursor-workspaces")
    else:
        path = os.path.join(home, ".cursor", "workspaces")

    return validate_path(path, "Default workspace path")


def get_config_path(platform: Optional[str] = None) -> str:
    """Directory holding config.yaml and log files."""
    platform = normalize_platform(platform)
    home = os.path.expanduser("~")

    if platform == WINDOWS:
        base = os.environ.get("APPDATA") or os.path.join(home, "AppData", "Roaming")
        path = os.path.join(base, APP_DIR_NAME)
    elif platform == MACOS:
        path = os.path.join(home, "Library", "Application Support", APP_DIR_NAME)
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(home, ".config")
        path = os.path.join(base, APP_DIR_NAME)

    return validate_path(path, "Config path")
