"""
Input sanitization for values that cross a trust boundary.

Window titles, process ids and paths end up interpolated into AppleScript
source, xdotool argument vectors and spawned-process arguments. Everything
here is pure validation/transformation; callers log at the boundary.

The title check is a blocklist plus escaping, not a parser: known dangerous
constructs are rejected and string-literal metacharacters are escaped so they
cannot break out of a quoted AppleScript literal.
"""

import os
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from cursor_automation.errors import SecurityError, ValidationError


@dataclass(frozen=True)
class SecurityPolicy:
    """Compile-time security limits. Not configurable at runtime."""

    MAX_TITLE_LENGTH: int = 500
    MAX_PATH_LENGTH: int = 1000
    MAX_KEYS: int = 50
    MAX_KEY_LENGTH: int = 20
    MAX_INSTANCES: int = 10
    MAX_PROCESS_ID: int = 4_194_304  # Linux pid_max upper bound
    MAX_OUTPUT_CHARS: int = 1000
    SCRIPT_TIMEOUT_SECONDS: float = 10.0
    SCRIPT_MAX_OUTPUT_BYTES: int = 1024 * 1024


POLICY = SecurityPolicy()

# Letters/digits (any script), the space character and a fixed punctuation set.
# Control characters (newline, tab, CR, ...) are deliberately absent.
TITLE_PATTERN = re.compile(r"^[\w \-.,()\[\]{}|:;'\"<>?!@#$%^&*+=~/\\`•●·—–]+$")

# Case-insensitive substrings rejected in titles
FORBIDDEN_TITLE_PHRASES = (
    "do shell script",
    "tell application",
    "tell app",
    "system events",
    "run script",
    "load script",
    "osascript",
    "activate",
    "quit",
    "delete",
)

# Checked against a fully generated script immediately before execution
FORBIDDEN_SCRIPT_PATTERNS = (
    re.compile(r"do shell script", re.IGNORECASE),
    re.compile(r"system events.*delete", re.IGNORECASE | re.DOTALL),
    re.compile(r"system events.*\bmove\b", re.IGNORECASE | re.DOTALL),
    re.compile(r"tell application.*\bquit\b", re.IGNORECASE | re.DOTALL),
    re.compile(r"run script", re.IGNORECASE),
    re.compile(r"load script", re.IGNORECASE),
)

PATH_PATTERN = re.compile(r"^[\w\-./\\: ~()\[\]@+,=#&']+$")

# Compared case-insensitively with "/" separators
FORBIDDEN_PATH_PREFIXES = (
    "/etc",
    "/bin",
    "/sbin",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
    "/var/log",
    "/usr/sbin",
    "/System",
    "/Library/Keychains",
    "/private/etc",
    "/private/var/db",
    "C:/Windows",
    "C:/Users/Administrator",
    "C:/ProgramData",
)

# Workspace roots relative to the caller's home directory
HOME_DEVELOPMENT_DIRS = ("projects", "workspace", "dev", "code", "src")

# Scratch roots accepted outside the home directory
DEVELOPMENT_ROOTS = (
    "/tmp",
    "/var/tmp",
    "/private/tmp",
)

NAMED_KEYS = frozenset({
    "control", "ctrl",
    "shift",
    "alt", "option",
    "command", "cmd",
    "enter", "return",
    "tab",
    "escape", "esc",
    "backspace",
    "delete",
    "space",
    "up", "down", "left", "right",
})

# One visible ASCII character
PRINTABLE_KEY_PATTERN = re.compile(r"^[\x21-\x7e]$")

PALETTE_COMMAND_PATTERN = re.compile(r"^[A-Za-z0-9: ]+$")

INSTANCE_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)

# Existing escape sequences are kept; anything else literal-breaking is escaped.
_ESCAPE_PATTERN = re.compile(r'\\[\\"nrt]|[\\"\n\r\t]')
_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}

# Variables inherited by the spawned editor; everything else is dropped
DEFAULT_ENV_ALLOWLIST = (
    "PATH",
    "HOME",
    "USER",
    "LOGNAME",
    "SHELL",
    "LANG",
    "LC_ALL",
    "TMPDIR",
    "TEMP",
    "TMP",
    "DISPLAY",
    "WAYLAND_DISPLAY",
    "XAUTHORITY",
    "XDG_RUNTIME_DIR",
    "XDG_CONFIG_HOME",
    "DBUS_SESSION_BUS_ADDRESS",
    "SYSTEMROOT",
    "USERPROFILE",
    "APPDATA",
    "LOCALAPPDATA",
)

AUTOMATION_ENV = {
    "ELECTRON_ENABLE_LOGGING": "1",
    "ELECTRON_ENABLE_STACK_DUMPING": "1",
}


def _escape_match(match: "re.Match[str]") -> str:
    text = match.group(0)
    if len(text) == 2:
        return text
    return _ESCAPES[text]


def escape_applescript_string(value: str) -> str:
    """Escape literal-breaking characters for an AppleScript string literal."""
    return _ESCAPE_PATTERN.sub(_escape_match, value)


def sanitize_title(title: Any) -> str:
    """
    Validate a window title and escape it for AppleScript interpolation.

    Raises:
        ValidationError: empty, non-string, too long or invalid characters
        SecurityError: title contains a dangerous scripting phrase
    """
    if not isinstance(title, str) or not title:
        raise ValidationError("Title must be a non-empty string", field="title")

    if len(title) > POLICY.MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title length exceeds maximum allowed ({POLICY.MAX_TITLE_LENGTH})",
            field="title",
        )

    if not TITLE_PATTERN.match(title):
        raise ValidationError("Title contains invalid characters", field="title")

    lowered = title.lower()
    for phrase in FORBIDDEN_TITLE_PHRASES:
        if phrase in lowered:
            raise SecurityError(
                f"Title contains forbidden sequence: {phrase}", field="title"
            )

    return escape_applescript_string(title)


def validate_process_id(process_id: Any) -> int:
    """Require a positive integer pid within the platform range."""
    if (
        isinstance(process_id, bool)
        or not isinstance(process_id, int)
        or process_id <= 0
        or process_id > POLICY.MAX_PROCESS_ID
    ):
        raise ValidationError(f"Invalid process ID: {process_id!r}", field="process_id")
    return process_id


def _comparable(path: str) -> str:
    return path.replace("\\", "/").rstrip("/").lower()


def _has_prefix(path: str, prefix: str) -> bool:
    path_cmp = _comparable(path)
    prefix_cmp = _comparable(prefix)
    return path_cmp == prefix_cmp or path_cmp.startswith(prefix_cmp + "/")


def _has_traversal(path: str) -> bool:
    return ".." in re.split(r"[\\/]", path)


def validate_path(path: Any, purpose: str = "Path") -> str:
    """
    Validate a file-system path and return its normalized absolute form.

    Raises:
        ValidationError: on any failed check; the message names the purpose,
            never the rejected value.
    """
    if not isinstance(path, (str, os.PathLike)):
        raise ValidationError(f"{purpose} must be a valid string", field="path")
    path = os.fspath(path)
    if not path:
        raise ValidationError(f"{purpose} must be a valid string", field="path")

    if len(path) > POLICY.MAX_PATH_LENGTH:
        raise ValidationError(
            f"{purpose} exceeds maximum length ({POLICY.MAX_PATH_LENGTH})", field="path"
        )

    if not PATH_PATTERN.match(path):
        raise ValidationError(f"{purpose} contains invalid characters", field="path")

    normalized = os.path.normpath(os.path.expanduser(path))
    if _has_traversal(path) or _has_traversal(normalized):
        raise SecurityError(f"{purpose} contains path traversal sequences", field="path")

    absolute = os.path.abspath(normalized)
    for prefix in FORBIDDEN_PATH_PREFIXES:
        if _has_prefix(normalized, prefix) or _has_prefix(absolute, prefix):
            raise SecurityError(
                f"{purpose} accesses forbidden system directory", field="path"
            )

    return absolute


def validate_workspace_path(
    path: Any,
    extra_roots: Iterable[str] = (),
    home: Optional[str] = None,
) -> str:
    """
    Stricter check for workspace paths handed to the editor.

    The path must live under the caller's home directory (including its
    usual project folders), a scratch root or a configured extra root.
    Other users' home directories are rejected.
    """
    validated = validate_path(path, "Workspace path")

    home_dir = os.path.abspath(home or os.path.expanduser("~"))
    roots = [home_dir]
    roots.extend(os.path.join(home_dir, name) for name in HOME_DEVELOPMENT_DIRS)
    roots.extend(DEVELOPMENT_ROOTS)
    roots.extend(os.path.abspath(os.path.expanduser(r)) for r in extra_roots)

    if not any(_has_prefix(validated, root) for root in roots):
        raise SecurityError(
            "Workspace path must be within user directory or allowed development locations",
            field="workspace_path",
        )
    return validated


def validate_keys(keys: Any) -> list[str]:
    """Validate a key sequence (printable characters or named control keys)."""
    if isinstance(keys, (str, bytes)) or not isinstance(keys, Sequence) or not keys:
        raise ValidationError("Keys must be a non-empty sequence", field="keys")

    if len(keys) > POLICY.MAX_KEYS:
        raise ValidationError(
            f"Key sequence exceeds maximum length ({POLICY.MAX_KEYS})", field="keys"
        )

    validated = []
    for key in keys:
        if not isinstance(key, str) or not key:
            raise ValidationError("Each key must be a non-empty string", field="keys")
        if len(key) > POLICY.MAX_KEY_LENGTH:
            raise ValidationError(
                f"Key name exceeds maximum length ({POLICY.MAX_KEY_LENGTH})", field="keys"
            )
        if not (PRINTABLE_KEY_PATTERN.match(key) or key.lower() in NAMED_KEYS):
            raise ValidationError("Key name is not allowed", field="keys")
        validated.append(key)
    return validated


def validate_palette_command(text: Any) -> str:
    """Palette commands are typed character by character; keep them to a narrow set."""
    if not isinstance(text, str) or not text:
        raise ValidationError("Palette command must be a non-empty string", field="command")
    if len(text) > POLICY.MAX_TITLE_LENGTH:
        raise ValidationError("Palette command is too long", field="command")
    for char in text:
        if not PALETTE_COMMAND_PATTERN.match(char):
            raise ValidationError(
                "Palette command contains invalid characters", field="command"
            )
    return text


def validate_script(script: str) -> str:
    """Second line of defense: reject a generated script with dangerous operations."""
    for pattern in FORBIDDEN_SCRIPT_PATTERNS:
        if pattern.search(script):
            raise SecurityError("Script contains forbidden operations", field="script")
    return script


def validate_instance_id(instance_id: Any) -> str:
    if not isinstance(instance_id, str) or not INSTANCE_ID_PATTERN.match(instance_id):
        raise ValidationError("Invalid instance id format", field="id")
    return instance_id


def truncate_output(text: str, limit: int = POLICY.MAX_OUTPUT_CHARS) -> str:
    """Cap captured process output before it is embedded in an error message."""
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit] + f"... [{len(text) - limit} more chars]"


def build_child_environment(
    environ: Mapping[str, str],
    allowlist: Iterable[str] = DEFAULT_ENV_ALLOWLIST,
) -> dict[str, str]:
    """Copy only allow-listed variables, plus the automation switches."""
    env = {name: environ[name] for name in allowlist if name in environ}
    env.update(AUTOMATION_ENV)
    return env
