"""
Exception hierarchy.

Every error carries a stable ``kind`` so the RPC layer can report failures
without parsing messages.
"""

from typing import Optional, Union


class AutomationError(Exception):
    """Base class for all automation errors."""

    kind = "automation"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


# Validation

class ValidationError(AutomationError):
    """Raised when untrusted input fails validation. Never retried."""

    kind = "validation"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class SecurityError(ValidationError):
    """Raised when input matches a dangerous pattern. The offending value is never echoed."""

    kind = "security"


# Window management

class WindowManagerError(AutomationError):
    kind = "window"


class WindowNotFoundError(WindowManagerError):
    kind = "window_not_found"

    def __init__(self, identifier: Union[str, int]):
        self.identifier = identifier
        super().__init__(f"Window not found: {identifier}")


class WindowFocusError(WindowManagerError):
    kind = "window_focus"

    def __init__(self, message: str):
        super().__init__(f"Failed to focus window: {message}")


class WindowCloseError(WindowManagerError):
    kind = "window_close"

    def __init__(self, message: str):
        super().__init__(f"Failed to close window: {message}")


class WindowResponseError(WindowManagerError):
    kind = "window_not_responding"

    def __init__(self, message: str):
        super().__init__(f"Window not responding: {message}")


class InvalidWindowStateError(WindowManagerError):
    kind = "invalid_window_state"

    def __init__(self, message: str):
        super().__init__(f"Invalid window state: {message}")


class InputAutomationError(WindowManagerError):
    kind = "input_automation"

    def __init__(self, message: str):
        super().__init__(f"Input automation failed: {message}")


class PlatformNotSupportedError(WindowManagerError):
    kind = "platform_not_supported"

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Platform not supported: {platform}")


class DependencyError(WindowManagerError):
    kind = "dependency"

    def __init__(self, dependency: str, platform: str, hint: Optional[str] = None):
        self.dependency = dependency
        self.platform = platform
        message = f"Required dependency '{dependency}' not found for platform {platform}"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)


# Retry / timeout

class OperationTimeoutError(AutomationError):
    kind = "timeout"

    def __init__(self, limit: float, operation: str = "operation"):
        self.limit = limit
        super().__init__(f"{operation} timed out after {limit:g}s")


class RetryExhaustedError(AutomationError):
    """Raised when all attempts failed without a captured error."""

    kind = "retry_exhausted"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Operation failed after {attempts} retries")


# Instance lifecycle

class InstanceError(AutomationError):
    kind = "instance"


class InstanceNotFoundError(InstanceError):
    kind = "instance_not_found"

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"No instance found with id: {instance_id}")


class InstanceInactiveError(InstanceError):
    kind = "instance_inactive"

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Instance is no longer active: {instance_id}")


class InstanceLimitReachedError(InstanceError):
    kind = "instance_limit_reached"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Maximum number of instances reached ({limit})")


class ExecutableNotFoundError(InstanceError):
    kind = "executable_not_found"

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Cursor executable not found at {path}. "
            "Install Cursor or set CURSOR_AUTOMATION_EXECUTABLE."
        )


class SpawnFailedError(InstanceError):
    kind = "spawn_failed"

    def __init__(self, message: str):
        super().__init__(f"Failed to start Cursor process: {message}")


class ProcessExitedError(InstanceError):
    """The process exited before its window was resolved."""

    kind = "process_exited"

    def __init__(self, exit_code: Optional[int], stderr: str = ""):
        self.exit_code = exit_code
        self.stderr = stderr
        if exit_code == 0:
            self.kind = "window_never_appeared"
            message = (
                "Cursor process exited normally but window was not created. "
                "This may indicate a configuration issue."
            )
        else:
            message = f"Cursor process exited with code {exit_code}."
            if stderr:
                message = f"{message} Error output: {stderr}"
        super().__init__(message)


class WindowResolutionTimeoutError(InstanceError):
    kind = "window_resolution_timeout"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Failed to find Cursor window after {attempts} attempts. "
            "The process may have failed to start properly."
        )


class WindowLostError(InstanceError):
    kind = "window_lost"

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Window reference lost for instance: {instance_id}")
