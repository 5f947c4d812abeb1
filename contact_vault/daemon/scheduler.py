"""
Backup timers and the foreground daemon.

Provides:
- BackupScheduler: asyncio timers for rapid, full and cleanup backups. Each
  timer is a TimerSpec whose ``decide`` function maps a SchedulerState to a
  BackupAction (or None); the scheduler owns the task handles
- VaultDaemon: runs a ContactVault with its timers until SIGTERM/SIGINT,
  performing a "terminate" critical save on the way out
- PID file management so two daemons never write to the same data directory
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from contact_vault.backup.manager import DEFAULT_RETENTION, SnapshotWriter
from contact_vault.contacts.contact import utc_now
from contact_vault.utils.paths import DEFAULT_CONFIG_DIR

if TYPE_CHECKING:
    from contact_vault.vault import ContactVault

logger = logging.getLogger(__name__)


# Default PID file location
DEFAULT_PID_DIR = DEFAULT_CONFIG_DIR
DEFAULT_PID_FILE = DEFAULT_PID_DIR / "daemon.pid"

DEFAULT_RAPID_INTERVAL = 30
DEFAULT_FULL_INTERVAL = 5 * 60
DEFAULT_CLEANUP_INTERVAL = 60 * 60


class DaemonError(Exception):
    """Base exception for daemon-related errors."""

    pass


class PIDFileError(DaemonError):
    """Raised when PID file operations fail."""

    pass


class DaemonAlreadyRunningError(DaemonError):
    """Raised when attempting to start a daemon that is already running."""

    pass


class CheckpointTrigger(str, Enum):
    """Lifecycle moments at which the host asks for a critical save."""

    TAB_HIDDEN = "tab-hidden"
    WINDOW_BLUR = "window-blur"
    NETWORK_OFFLINE = "network-offline"
    TERMINATE = "terminate"
    FREEZE = "freeze"
    PAGEHIDE = "pagehide"
    MANUAL = "manual"
    DESTROY = "destroy"


class BackupAction(str, Enum):
    RAPID = "rapid"
    FULL = "full"
    CLEANUP = "cleanup"


@dataclass(frozen=True)
class SchedulerState:
    """What a timer's decide function may look at."""

    dirty: bool
    revision: int
    last_modified: Optional[datetime]
    now: datetime


def decide_rapid(state: SchedulerState) -> Optional[BackupAction]:
    """Rapid backups only run when there are unsaved changes."""
    return BackupAction.RAPID if state.dirty else None


def decide_full(state: SchedulerState) -> Optional[BackupAction]:
    return BackupAction.FULL


def decide_cleanup(state: SchedulerState) -> Optional[BackupAction]:
    return BackupAction.CLEANUP


@dataclass(frozen=True)
class TimerSpec:
    """
    A periodic timer.

    Attributes:
        name: Timer name (used for the task name and logs)
        interval: Seconds between ticks
        decide: Pure function choosing the action for a tick
    """

    name: str
    interval: float
    decide: Callable[[SchedulerState], Optional[BackupAction]]


def default_timers(
    rapid_interval: float = DEFAULT_RAPID_INTERVAL,
    full_interval: float = DEFAULT_FULL_INTERVAL,
    cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL,
) -> list[TimerSpec]:
    return [
        TimerSpec("rapid", rapid_interval, decide_rapid),
        TimerSpec("full", full_interval, decide_full),
        TimerSpec("cleanup", cleanup_interval, decide_cleanup),
    ]


@dataclass
class SchedulerStats:
    """
    Statistics from scheduler operation.

    Tracks how many backups of each kind ran and the last failure.
    """

    started_at: Optional[datetime] = None
    runs: dict[str, int] = field(default_factory=dict)
    errors: dict[str, int] = field(default_factory=dict)
    last_run_at: dict[str, datetime] = field(default_factory=dict)
    last_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "runs": dict(self.runs),
            "errors": dict(self.errors),
            "last_run_at": {k: v.isoformat() for k, v in self.last_run_at.items()},
            "last_error": self.last_error,
        }


class BackupScheduler:
    """
    Owns the periodic backup tasks.

    Writes run shielded from cancellation, so stop() cancels the timers but
    waits for any backup already in progress to finish.

    Usage:
        scheduler = BackupScheduler(writer, default_timers(30, 300, 3600))
        scheduler.start()          # inside a running event loop
        ...
        await scheduler.stop()

    Attributes:
        timers: Timer specifications
        retention: Age after which cleanup deletes snapshots
        stats: Run statistics
    """

    def __init__(
        self,
        writer: SnapshotWriter,
        timers: Optional[list[TimerSpec]] = None,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.writer = writer
        self.timers = timers if timers is not None else default_timers()
        self.retention = retention
        self.stats = SchedulerStats()
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._in_flight: set[asyncio.Future[Any]] = set()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def current_state(self) -> SchedulerState:
        store = self.writer.store
        return SchedulerState(
            dirty=store.dirty,
            revision=store.revision,
            last_modified=store.last_modified,
            now=self._clock(),
        )

    def start(self) -> None:
        """
        Start every timer as an asyncio task.

        Must be called from within a running event loop. Starting an already
        running scheduler does nothing.
        """
        if self.running:
            return
        self.stats = SchedulerStats(started_at=self._clock())
        for spec in self.timers:
            self._tasks[spec.name] = asyncio.create_task(
                self._timer_loop(spec), name=f"backup-timer-{spec.name}"
            )
        logger.info(
            "Backup timers started: "
            + ", ".join(f"{s.name}={s.interval:g}s" for s in self.timers)
        )

    async def _timer_loop(self, spec: TimerSpec) -> None:
        while True:
            await asyncio.sleep(spec.interval)
            await self.tick(spec)

    async def tick(self, spec: TimerSpec) -> Optional[BackupAction]:
        """
        Evaluate one timer and run the chosen action.

        Returns:
            The action that ran, or None if the timer decided to skip
        """
        action = spec.decide(self.current_state())
        if action is None:
            return None
        await self.run_action(action)
        return action

    async def run_action(self, action: BackupAction) -> bool:
        """
        Run a backup action shielded from cancellation.

        Returns:
            True if the action succeeded
        """
        task = asyncio.ensure_future(self._execute(action))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return await asyncio.shield(task)

    async def _execute(self, action: BackupAction) -> bool:
        name = action.value
        self.stats.runs[name] = self.stats.runs.get(name, 0) + 1
        self.stats.last_run_at[name] = self._clock()

        try:
            if action is BackupAction.RAPID:
                await self.writer.rapid_backup()
            elif action is BackupAction.FULL:
                await self.writer.full_backup()
            else:
                await self.writer.cleanup(self.retention)
            return True

        except Exception as e:
            self.stats.errors[name] = self.stats.errors.get(name, 0) + 1
            self.stats.last_error = f"{name}: {e}"
            logger.error(f"{name.capitalize()} backup failed: {e}")
            return False

    async def stop(self) -> None:
        """Cancel the timers, then wait for in-flight writes to complete."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self._in_flight:
            logger.debug(f"Waiting for {len(self._in_flight)} in-flight backup(s)")
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        logger.info("Backup timers stopped")


class PIDFileManager:
    """
    Manages PID file for daemon process.

    Provides methods to create, read, and remove PID files for
    daemon process management and duplicate prevention.
    """

    def __init__(self, pid_file: Path | None = None):
        """
        Args:
            pid_file: Path to the PID file. Defaults to ~/.contact-vault/daemon.pid
        """
        self.pid_file = pid_file or DEFAULT_PID_FILE

    def create(self) -> None:
        """
        Create the PID file with the current process ID.

        Raises:
            PIDFileError: If the PID file cannot be created.
            DaemonAlreadyRunningError: If a daemon is already running.
        """
        existing_pid = self.read()
        if existing_pid is not None:
            if self.is_process_running(existing_pid):
                raise DaemonAlreadyRunningError(
                    f"Daemon already running with PID {existing_pid}"
                )
            logger.warning(f"Removing stale PID file (process {existing_pid} not running)")
            self.remove()

        try:
            self.pid_file.parent.mkdir(parents=True, exist_ok=True)
            pid = os.getpid()
            self.pid_file.write_text(str(pid))
            logger.debug(f"Created PID file: {self.pid_file} (PID: {pid})")
        except OSError as e:
            raise PIDFileError(f"Failed to create PID file {self.pid_file}: {e}") from e

    def read(self) -> int | None:
        """
        Read the PID from the PID file.

        Returns:
            The PID stored in the file, or None if the file doesn't exist.

        Raises:
            PIDFileError: If the PID file exists but cannot be read or parsed.
        """
        if not self.pid_file.exists():
            return None

        try:
            content = self.pid_file.read_text().strip()
            return int(content)
        except ValueError as e:
            raise PIDFileError(f"Invalid PID in file {self.pid_file}: {content}") from e
        except OSError as e:
            raise PIDFileError(f"Failed to read PID file {self.pid_file}: {e}") from e

    def remove(self) -> None:
        """Remove the PID file if it exists."""
        if not self.pid_file.exists():
            return

        try:
            self.pid_file.unlink()
            logger.debug(f"Removed PID file: {self.pid_file}")
        except OSError as e:
            raise PIDFileError(f"Failed to remove PID file {self.pid_file}: {e}") from e

    @staticmethod
    def is_process_running(pid: int) -> bool:
        """Check if a process with the given PID is running."""
        try:
            # Signal 0 only checks that the process exists
            os.kill(pid, 0)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            return True

    def running_pid(self) -> int | None:
        """The PID of the live daemon, or None if none is running."""
        pid = self.read()
        if pid is None or not self.is_process_running(pid):
            return None
        return pid


class VaultDaemon:
    """
    Foreground daemon running a ContactVault's backup timers.

    On SIGTERM/SIGINT it performs a "terminate" critical save immediately
    (synchronously, inside the handler) and then shuts down: timers are
    cancelled, in-flight writes complete and the vault is closed.

    Usage:
        daemon = VaultDaemon(vault, pid_file=Path("~/.contact-vault/daemon.pid"))
        daemon.run()  # blocks until a shutdown signal
    """

    def __init__(self, vault: ContactVault, pid_file: Path | None = None):
        self.vault = vault
        self._pid_manager = PIDFileManager(pid_file)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown: Optional[asyncio.Event] = None
        self._original_handlers: dict[int, Any] = {}

    @property
    def pid_file(self) -> Path:
        return self._pid_manager.pid_file

    def _setup_signal_handlers(self) -> None:
        for signum in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[signum] = signal.signal(signum, self._signal_handler)
        logger.debug("Signal handlers installed for SIGTERM and SIGINT")

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._original_handlers.items():
            if handler is not None:
                signal.signal(signum, handler)
        self._original_handlers.clear()
        logger.debug("Signal handlers restored")

    def _signal_handler(self, signum: int, frame: object) -> None:
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name}, saving and shutting down...")
        try:
            self.vault.checkpoint(CheckpointTrigger.TERMINATE)
        except Exception as e:
            logger.error(f"Critical save on {signal_name} failed: {e}")
        self.stop()

    def stop(self) -> None:
        """Request shutdown. Safe to call from a signal handler."""
        if self._loop is not None and self._shutdown is not None:
            self._loop.call_soon_threadsafe(self._shutdown.set)

    async def serve(self) -> None:
        """Open the vault, run the timers until stop() and close the vault."""
        self._loop = asyncio.get_running_loop()
        self._shutdown = asyncio.Event()

        await self.vault.open()
        self.vault.start_scheduler()
        try:
            await self._shutdown.wait()
        finally:
            await self.vault.close()

    def run(self) -> None:
        """
        Run the daemon. Blocks until a shutdown signal is received.

        Raises:
            DaemonAlreadyRunningError: If another daemon is already running.
            PIDFileError: If the PID file cannot be written.
        """
        self._pid_manager.create()
        logger.info(f"Daemon started (PID: {os.getpid()}, PID file: {self.pid_file})")
        self._setup_signal_handlers()
        try:
            asyncio.run(self.serve())
        finally:
            self._restore_signal_handlers()
            self._pid_manager.remove()
            logger.info("Daemon stopped")

    @classmethod
    def get_running_pid(cls, pid_file: Path | None = None) -> int | None:
        return PIDFileManager(pid_file).running_pid()

    @classmethod
    def stop_running_daemon(cls, pid_file: Path | None = None) -> bool:
        """
        Send SIGTERM to the running daemon.

        Returns:
            True if the signal was sent, False if no daemon is running.
        """
        pid = cls.get_running_pid(pid_file)
        if pid is None:
            logger.info("No running daemon found")
            return False

        try:
            os.kill(pid, signal.SIGTERM)
            logger.info(f"Sent SIGTERM to daemon (PID: {pid})")
            return True
        except ProcessLookupError:
            logger.warning(f"Daemon process {pid} not found")
            return False
        except PermissionError:
            logger.error(f"Permission denied sending signal to PID {pid}")
            return False


__all__ = [
    "BackupAction",
    "BackupScheduler",
    "CheckpointTrigger",
    "DaemonAlreadyRunningError",
    "DaemonError",
    "PIDFileError",
    "PIDFileManager",
    "SchedulerState",
    "SchedulerStats",
    "TimerSpec",
    "VaultDaemon",
    "DEFAULT_PID_DIR",
    "DEFAULT_PID_FILE",
    "decide_cleanup",
    "decide_full",
    "decide_rapid",
    "default_timers",
]
