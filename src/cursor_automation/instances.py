"""
Cursor instance lifecycle.

``InstanceManager`` spawns Cursor with a filtered environment, polls the
window manager until the new process's window appears, and owns the map of
live instances. Every read of that map enforces the active/inactive
invariant: an inactive instance is never handed out and cannot receive
commands.

Per-instance state machine::

    spawning -> window_pending -> active -> removing -> terminated
    spawning / window_pending -> terminated   (spawn error, exit, no window)

All mutation happens on the event loop; there is no locking. Callers must
serialize commands to the same instance themselves: overlapping
``send_key_to_instance`` calls interleave at the OS level.
"""

import asyncio
import os
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

import psutil

from cursor_automation.actuator.input import InputAutomationService
from cursor_automation.actuator.platform import normalize_platform, primary_modifier
from cursor_automation.actuator.window import (
    BaseWindowManager,
    WindowEvent,
    WindowEventType,
    WindowHandle,
    get_window_manager,
)
from cursor_automation.commands import get_palette_command
from cursor_automation.config import AutomationConfig
from cursor_automation.errors import (
    InstanceInactiveError,
    InstanceLimitReachedError,
    InstanceNotFoundError,
    OperationTimeoutError,
    ProcessExitedError,
    SpawnFailedError,
    ValidationError,
    WindowLostError,
    WindowManagerError,
    WindowNotFoundError,
    WindowResolutionTimeoutError,
    WindowResponseError,
)
from cursor_automation.logging import bind_instance, get_logger
from cursor_automation.paths import resolve_executable
from cursor_automation.resilience import RetryPolicy, with_retry, with_timeout
from cursor_automation.security import (
    POLICY,
    build_child_environment,
    truncate_output,
    validate_instance_id,
    validate_keys,
    validate_palette_command,
    validate_workspace_path,
)

logger = get_logger(__name__)

MISSING_MODULE = re.compile(r"Cannot find module '([^']+)'")


class InstanceState(str, Enum):
    SPAWNING = "spawning"
    WINDOW_PENDING = "window_pending"
    ACTIVE = "active"
    REMOVING = "removing"
    TERMINATED = "terminated"


LIVE_STATES = frozenset({InstanceState.SPAWNING, InstanceState.WINDOW_PENDING, InstanceState.ACTIVE})


@dataclass(frozen=True)
class InstanceSummary:
    """Public view of an instance. The window reference is deliberately omitted."""

    id: str
    process_id: int
    state: str
    is_active: bool
    created_at: str
    workspace_path: Optional[str] = None


@dataclass
class Instance:
    """One spawned Cursor run plus its resolved window and lifecycle state."""

    id: str
    process: asyncio.subprocess.Process = field(repr=False)
    created_at: datetime
    workspace_path: Optional[str] = None
    window: Optional[WindowHandle] = None
    state: InstanceState = InstanceState.SPAWNING
    exit_code: Optional[int] = None
    stderr_tail: str = field(default="", repr=False)
    startup_error: Optional[Exception] = field(default=None, repr=False)
    exited: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_active(self) -> bool:
        return self.state in LIVE_STATES

    @property
    def pid(self) -> int:
        return self.process.pid

    def summary(self) -> InstanceSummary:
        return InstanceSummary(
            id=self.id,
            process_id=self.pid,
            state=self.state.value,
            is_active=self.is_active,
            created_at=self.created_at.isoformat(),
            workspace_path=self.workspace_path,
        )


def _descendant_pids(pid: int) -> list[int]:
    try:
        return [child.pid for child in psutil.Process(pid).children(recursive=True)]
    except psutil.Error:
        return []


class InstanceManager:
    """
    Authoritative registry of Cursor instances.

    Instances are keyed by id; lookups never return an inactive instance.
    """

    def __init__(
        self,
        window_manager: Optional[BaseWindowManager] = None,
        config: Optional[AutomationConfig] = None,
        platform: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize InstanceManager.

        Args:
            window_manager: Platform window manager (defaults to the shared one)
            config: Automation configuration
            platform: Platform identifier (defaults to the running platform)
            environ: Ambient environment to filter for the child (defaults to os.environ)
        """
        self.config = config or AutomationConfig()
        self.platform = normalize_platform(platform)
        self.window_manager = window_manager or get_window_manager(
            InputAutomationService.get_instance(self.config.input)
        )
        self.retry_policy = RetryPolicy.from_config(self.config.retry)
        self._environ = environ if environ is not None else os.environ
        self._instances: dict[str, Instance] = {}
        self._watchers: dict[str, asyncio.Task] = {}
        self._pending = 0

        self.window_manager.on(WindowEventType.CLOSE, self._on_window_closed)

    # Creation

    async def create(self, workspace_path: Optional[str] = None) -> Instance:
        """
        Spawn Cursor and wait for its window.

        Returns the instance only once a window is confirmed. On any failure
        the process is terminated and the record dropped before the error
        propagates.

        Raises:
            InstanceLimitReachedError, ValidationError, ExecutableNotFoundError,
            SpawnFailedError, ProcessExitedError, WindowResolutionTimeoutError
        """
        settings = self.config.instances

        live = sum(1 for instance in self._instances.values() if instance.is_active)
        if live + self._pending >= settings.max_instances:
            logger.warning(
                "Instance limit reached",
                live=live,
                pending=self._pending,
                limit=settings.max_instances,
            )
            raise InstanceLimitReachedError(settings.max_instances)

        # Slot stays reserved until the instance is registered or creation fails
        self._pending += 1
        try:
            instance = await self._spawn(workspace_path)
        finally:
            self._pending -= 1

        instance.state = InstanceState.WINDOW_PENDING
        try:
            instance.window = await self._resolve_window(instance)
        except BaseException as e:
            logger.error("Error creating Cursor instance", instance_id=instance.id, error=str(e))
            await self._teardown(instance)
            raise

        instance.state = InstanceState.ACTIVE
        logger.info(
            "Cursor instance ready",
            instance_id=instance.id,
            pid=instance.pid,
            window_id=instance.window.id,
        )
        return instance

    async def _spawn(self, workspace_path: Optional[str]) -> Instance:
        settings = self.config.instances
        workspace = None
        if workspace_path is not None:
            workspace = validate_workspace_path(
                workspace_path, extra_roots=self.config.security.extra_workspace_roots
            )

        executable = resolve_executable(settings.executable_path, self.platform)
        env = build_child_environment(self._environ, settings.env_allowlist)
        instance_id = str(uuid.uuid4())

        logger.info(
            "Spawning Cursor",
            instance_id=instance_id,
            executable=executable,
            workspace_path=workspace,
        )
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *([workspace] if workspace else []),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            logger.error("Process spawn failed", instance_id=instance_id, error=str(e))
            raise SpawnFailedError(str(e)) from e

        instance = Instance(
            id=instance_id,
            process=process,
            created_at=datetime.now(timezone.utc),
            workspace_path=workspace,
        )
        self._instances[instance_id] = instance
        self._watchers[instance_id] = asyncio.create_task(self._watch(instance))
        return instance

    async def _find_window(self, instance: Instance) -> WindowHandle:
        """Window owned by the spawned process or, for launcher scripts, one of its children."""
        try:
            return await self.window_manager.find_window_by_process_id(instance.pid)
        except WindowNotFoundError:
            for child_pid in _descendant_pids(instance.pid):
                try:
                    return await self.window_manager.find_window_by_process_id(child_pid)
                except WindowNotFoundError:
                    continue
            raise

    def _check_alive(self, instance: Instance) -> None:
        if instance.startup_error is not None:
            raise instance.startup_error
        if instance.exited.is_set():
            raise ProcessExitedError(instance.exit_code, truncate_output(instance.stderr_tail))

    async def _resolve_window(self, instance: Instance) -> WindowHandle:
        settings = self.config.instances
        interval = settings.window_poll_interval_ms / 1000.0
        attempts = settings.window_poll_attempts
        lookup_limit = settings.window_lookup_timeout_ms / 1000.0

        for attempt in range(1, attempts + 1):
            self._check_alive(instance)
            try:
                return await with_timeout(
                    self._find_window(instance), lookup_limit, "findWindowByProcessId"
                )
            except OperationTimeoutError:
                logger.warning("Window lookup timed out", instance_id=instance.id, attempt=attempt)
            except WindowNotFoundError:
                logger.debug("Window not visible yet", instance_id=instance.id, attempt=attempt)
            except WindowManagerError as e:
                logger.warning("Error checking for window", instance_id=instance.id, error=e.message)

            if attempt < attempts:
                try:
                    await asyncio.wait_for(instance.exited.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass

        self._check_alive(instance)
        raise WindowResolutionTimeoutError(attempts)

    # Process supervision

    async def _drain(self, instance: Instance, stream: Optional[asyncio.StreamReader], name: str) -> None:
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                return
            text = line.decode(errors="replace")
            if name == "stdout":
                logger.debug("Process stdout", instance_id=instance.id, output=text.rstrip())
                continue

            logger.debug("Process stderr", instance_id=instance.id, output=text.rstrip())
            instance.stderr_tail = (instance.stderr_tail + text)[-POLICY.MAX_OUTPUT_CHARS:]
            match = MISSING_MODULE.search(text)
            if match and instance.startup_error is None and instance.window is None:
                instance.startup_error = SpawnFailedError(
                    f"Cursor is missing required module: {match.group(1)[:100]}. "
                    "Please ensure Cursor is installed correctly with all dependencies."
                )

    async def _watch(self, instance: Instance) -> None:
        """Drain output and mark the instance terminated when its process exits."""
        readers = [
            asyncio.create_task(self._drain(instance, instance.process.stdout, "stdout")),
            asyncio.create_task(self._drain(instance, instance.process.stderr, "stderr")),
        ]
        code = await instance.process.wait()
        # Children that inherited the pipes can keep them open; don't wait on them forever
        await asyncio.wait(readers, timeout=1.0)
        self._on_exit(instance, code)

    def _on_exit(self, instance: Instance, code: Optional[int]) -> None:
        expected = instance.state in (InstanceState.REMOVING, InstanceState.TERMINATED)
        instance.exit_code = code
        instance.state = InstanceState.TERMINATED
        instance.exited.set()
        self._instances.pop(instance.id, None)
        self._watchers.pop(instance.id, None)
        if instance.window is not None:
            self.window_manager.invalidate(instance.window.process_id)

        if expected:
            logger.info("Process exited", instance_id=instance.id, exit_code=code)
        else:
            logger.warning(
                "Process exited unexpectedly",
                instance_id=instance.id,
                exit_code=code,
                stderr=truncate_output(instance.stderr_tail),
            )

    def _on_window_closed(self, event: WindowEvent) -> None:
        for instance in self._instances.values():
            if instance.window is not None and instance.window.process_id == event.window.process_id:
                logger.info("Instance window closed", instance_id=instance.id)
                instance.window = None

    async def _terminate(self, instance: Instance) -> None:
        """SIGTERM the process (and any children), escalate to SIGKILL after the grace period."""
        process = instance.process
        if process.returncode is not None:
            return

        grace = self.config.instances.termination_grace_seconds
        children = []
        for pid in _descendant_pids(process.pid):
            try:
                children.append(psutil.Process(pid))
            except psutil.NoSuchProcess:
                continue

        try:
            process.terminate()
        except ProcessLookupError:
            return
        for child in children:
            try:
                child.terminate()
            except psutil.NoSuchProcess:
                continue

        try:
            await asyncio.wait_for(process.wait(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning(
                "Process did not exit after SIGTERM, killing",
                instance_id=instance.id,
                grace_seconds=grace,
            )
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

        if children:
            _, alive = await asyncio.to_thread(psutil.wait_procs, children, timeout=1.0)
            for child in alive:
                try:
                    child.kill()
                except psutil.NoSuchProcess:
                    continue

    async def _teardown(self, instance: Instance) -> None:
        instance.state = InstanceState.REMOVING
        try:
            await self._terminate(instance)
        finally:
            instance.state = InstanceState.TERMINATED
            self._instances.pop(instance.id, None)

    # Lookup

    def get(self, instance_id: str) -> Optional[Instance]:
        """Live instance for ``instance_id``, or None."""
        validate_instance_id(instance_id)
        instance = self._instances.get(instance_id)
        if instance is None or not instance.is_active:
            return None
        return instance

    def get_required(self, instance_id: str) -> Instance:
        """
        Raises:
            ValidationError: malformed id
            InstanceNotFoundError: unknown id
            InstanceInactiveError: instance is being removed or has exited
        """
        validate_instance_id(instance_id)
        instance = self._instances.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        if not instance.is_active:
            raise InstanceInactiveError(instance_id)
        return instance

    def list(self) -> list[InstanceSummary]:
        """Live instances in creation order."""
        return [i.summary() for i in self._instances.values() if i.is_active]

    def __len__(self) -> int:
        return sum(1 for i in self._instances.values() if i.is_active)

    # Commands

    def _require_window(self, instance: Instance) -> WindowHandle:
        if instance.window is None:
            raise WindowLostError(instance.id)
        return instance.window

    async def _run_on_window(
        self,
        instance: Instance,
        operation: Any,
        require_focus: bool = False,
    ) -> Any:
        window = self._require_window(instance)
        with bind_instance(instance.id):
            try:
                return await with_retry(
                    self.window_manager,
                    lambda: operation(window),
                    window,
                    require_focus=require_focus,
                    policy=self.retry_policy,
                )
            except WindowResponseError as e:
                raise WindowLostError(instance.id) from e

    async def send_key_to_instance(self, instance_id: str, keys: Sequence[str]) -> None:
        """Focus the instance window and inject ``keys`` as one chord/sequence."""
        keys = validate_keys(keys)
        instance = self.get_required(instance_id)
        await self._run_on_window(
            instance,
            lambda window: self.window_manager.send_keys(window, keys),
        )

    async def focus_instance(self, instance_id: str) -> bool:
        instance = self.get_required(instance_id)
        return await self._run_on_window(instance, self.window_manager.focus_window)

    async def open_command_palette(self, instance_id: str) -> None:
        """Ctrl+Shift+P (Cmd+Shift+P on macOS)."""
        await self.send_key_to_instance(
            instance_id, [primary_modifier(self.platform), "shift", "p"]
        )

    async def type_palette_command(self, instance_id: str, text: str) -> None:
        """
        Open the command palette, type ``text`` one character at a time, press Enter.

        This is a timing-sensitive UI macro; the palette is assumed open after
        a fixed settle delay.
        """
        text = validate_palette_command(text)
        settings = self.config.instances

        await self.open_command_palette(instance_id)
        await asyncio.sleep(settings.palette_settle_ms / 1000.0)

        for char in text:
            await self.send_key_to_instance(instance_id, ["space" if char == " " else char])
            await asyncio.sleep(settings.char_delay_ms / 1000.0)

        await self.send_key_to_instance(instance_id, ["enter"])

    async def open_cline_tab(self, instance_id: str) -> None:
        await self.run_palette_command(instance_id, "openCline")

    async def run_palette_command(self, instance_id: str, name: str) -> None:
        """Run a registered palette command by name."""
        text = get_palette_command(name)
        if text is None:
            raise ValidationError(f"Unknown command: {name[:50]}", field="command")
        logger.info("Running palette command", instance_id=instance_id, command=name)
        await self.type_palette_command(instance_id, text)

    # Removal

    async def remove(self, instance_id: str) -> bool:
        """
        Terminate and forget an instance. Idempotent.

        Returns:
            True if a live instance was found and removed
        """
        instance = self._instances.get(instance_id)
        if instance is None or not instance.is_active:
            return False

        logger.info("Removing instance", instance_id=instance_id, pid=instance.pid)
        await self._teardown(instance)
        if instance.window is not None:
            self.window_manager.invalidate(instance.window.process_id)
        return True

    async def cleanup(self) -> int:
        """Remove every live instance; one failure does not stop the rest."""
        removed = 0
        for instance_id in list(self._instances):
            try:
                if await self.remove(instance_id):
                    removed += 1
            except Exception as e:
                logger.error("Error removing instance", instance_id=instance_id, error=str(e))
        logger.info("Cleanup complete", removed=removed)
        return removed
