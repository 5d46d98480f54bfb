"""
Process Supervisor

Tracks the background tasks of a burn-in run (temperature polling,
stress-test subprocesses) and tears them down with graceful-then-forced
escalation.
"""

import itertools
import signal
import subprocess
import threading
from datetime import datetime
from typing import Dict, List, Optional

import psutil

from .exceptions import DiskBurnInProcessError, SupervisionTimeoutError
from .models import MonitoredTask, TaskKind
from burnin_kit.logger import get_module_logger

logger = get_module_logger(__name__)


# ---------------------------------------------------------------------------
# Process handles
# ---------------------------------------------------------------------------

class PopenHandle:
    """Handle for a child started with subprocess.Popen."""

    def __init__(self, process: subprocess.Popen):
        self.process = process
        self.pid = process.pid

    def is_alive(self) -> bool:
        return self.process.poll() is None

    def terminate(self) -> None:
        self.process.terminate()

    def kill(self) -> None:
        self.process.kill()

    def wait(self, timeout: Optional[float] = None) -> bool:
        try:
            self.process.wait(timeout=timeout)
            return True
        except subprocess.TimeoutExpired:
            return False

    def __repr__(self) -> str:
        return f"PopenHandle(pid={self.pid})"


class PsutilHandle:
    """Handle for any process known only by PID (or a psutil.Process)."""

    def __init__(self, process):
        if isinstance(process, int):
            try:
                process = psutil.Process(process)
            except psutil.NoSuchProcess:
                raise DiskBurnInProcessError(f"Process {process} not found")
        self.process = process
        self.pid = process.pid

    def is_alive(self) -> bool:
        try:
            return self.process.is_running() and self.process.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False

    def terminate(self) -> None:
        try:
            self.process.terminate()
        except psutil.NoSuchProcess:
            pass

    def kill(self) -> None:
        try:
            self.process.kill()
        except psutil.NoSuchProcess:
            pass

    def wait(self, timeout: Optional[float] = None) -> bool:
        try:
            self.process.wait(timeout=timeout)
            return True
        except psutil.NoSuchProcess:
            return True
        except psutil.TimeoutExpired:
            return False

    def __repr__(self) -> str:
        return f"PsutilHandle(pid={self.pid})"


_HANDLE_METHODS = ('is_alive', 'terminate', 'kill', 'wait')


def as_handle(task):
    """
    Adapt a task object to the handle contract.

    Accepts subprocess.Popen, psutil.Process, an int PID, or any object
    already providing is_alive/terminate/kill/wait (e.g. TemperatureGuard).

    Raises:
        DiskBurnInProcessError: If the object cannot be supervised
    """
    if isinstance(task, subprocess.Popen):
        return PopenHandle(task)
    if isinstance(task, psutil.Process) or (isinstance(task, int) and not isinstance(task, bool)):
        return PsutilHandle(task)
    if all(callable(getattr(task, name, None)) for name in _HANDLE_METHODS):
        return task
    raise DiskBurnInProcessError(f"Cannot supervise object of type {type(task).__name__}")


# ---------------------------------------------------------------------------
# Supervisor
# ---------------------------------------------------------------------------

class ProcessSupervisor:
    """
    Single owner of the background tasks of one burn-in run.

    The supervisor never starts tasks; it only tracks handles started by
    others. ``stop_all`` signals every live task, waits up to the grace
    period, escalates to a forced stop and always leaves the tracked set
    empty. ``shutdown`` runs that teardown at most once and is safe to call
    from both the normal completion path and a signal handler.

    Example:
        >>> supervisor = ProcessSupervisor(grace_period=2)
        >>> supervisor.install_signal_handlers()
        >>> guard.start()
        >>> supervisor.track(guard, TaskKind.TEMPERATURE_POLL)
        >>> supervisor.track(subprocess.Popen(['badblocks', '-wsv', '/dev/sdb']),
        ...                  TaskKind.STRESS_TEST, name='badblocks /dev/sdb')
        >>> # ... wait for completion ...
        >>> supervisor.shutdown()
        >>> supervisor.restore_signal_handlers()
    """

    HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, grace_period: float = 2, kill_timeout: float = 5):
        """
        Args:
            grace_period: Seconds to wait after a graceful stop before forcing
            kill_timeout: Seconds to wait for a forced stop to take effect
        """
        self.grace_period = grace_period
        self.kill_timeout = kill_timeout

        self._tasks: Dict[int, MonitoredTask] = {}
        # Re-entrant: a signal handler may run while the main thread holds it
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._shutdown_started = False
        self._shutdown_finished = False
        # Signal received while shutdown() was stopping tasks; re-raised after
        self._pending_signal: Optional[int] = None
        self._previous_handlers: Dict[int, object] = {}

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track(self, task, kind: TaskKind, name: Optional[str] = None) -> int:
        """
        Register an already running background task.

        Args:
            task: Popen, psutil.Process, PID or object with the handle contract
            kind: TaskKind of the task
            name: Label for log messages

        Returns:
            int: Task ID

        Raises:
            DiskBurnInProcessError: If shutdown has begun or the task cannot be supervised
        """
        handle = as_handle(task)
        with self._lock:
            if self._shutdown_started:
                raise DiskBurnInProcessError("Supervisor is shut down; stop the task directly")

            task_id = next(self._ids)
            label = name or f"{kind.value}-{getattr(handle, 'pid', task_id)}"
            self._tasks[task_id] = MonitoredTask(
                task_id=task_id,
                handle=handle,
                kind=kind,
                name=label,
                started_at=datetime.now(),
            )

        logger.info(f"Tracking background task {task_id}: {label}")
        return task_id

    def untrack(self, task_id: int) -> Optional[MonitoredTask]:
        """Remove a task without signaling it."""
        with self._lock:
            return self._tasks.pop(task_id, None)

    def reap(self) -> List[MonitoredTask]:
        """
        Remove tasks that have finished on their own.

        Returns:
            List[MonitoredTask]: The removed tasks
        """
        finished = []
        with self._lock:
            for task_id, task in list(self._tasks.items()):
                if not self._alive(task):
                    finished.append(self._tasks.pop(task_id))
        return finished

    def get_tasks(self) -> List[MonitoredTask]:
        with self._lock:
            return list(self._tasks.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown_started

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    @staticmethod
    def _alive(task: MonitoredTask) -> bool:
        try:
            return task.handle.is_alive()
        except Exception as e:
            logger.warning(f"Liveness check failed for {task.name}: {e}")
            return False

    def _stop_task(self, task: MonitoredTask, grace_period: float) -> bool:
        """
        Graceful stop, bounded wait, forced stop.

        Returns:
            bool: True if the task confirmed termination within the grace period
        """
        logger.info(f"Stopping background task {task.task_id}: {task.name}")
        try:
            task.handle.terminate()
            if task.handle.wait(grace_period):
                return True
        except Exception as e:
            logger.warning(f"Graceful stop failed for {task.name}: {e}")

        self._force_stop(task)
        return False

    def _force_stop(self, task: MonitoredTask) -> None:
        logger.warning(f"Force killing background task {task.task_id}: {task.name}")
        try:
            task.handle.kill()
            if not task.handle.wait(self.kill_timeout):
                logger.error(f"Task {task.name} did not confirm termination after kill")
        except Exception as e:
            logger.error(f"Force kill failed for {task.name}: {e}")

    def stop_all(
        self,
        grace_period: Optional[float] = None,
        raise_on_timeout: bool = False
    ) -> List[MonitoredTask]:
        """
        Stop every tracked task and clear the tracked set.

        The set is detached before any signal is sent, so a concurrent or
        re-entrant call finds it empty and does nothing. If the loop is
        interrupted (KeyboardInterrupt, SystemExit), the tasks it has not
        reached yet are force killed before the exception propagates.

        Args:
            grace_period: Seconds between graceful and forced stop (default: instance value)
            raise_on_timeout: Raise SupervisionTimeoutError after teardown if any
                task needed a forced stop

        Returns:
            List[MonitoredTask]: Tasks that did not stop within the grace period

        Raises:
            SupervisionTimeoutError: Only when raise_on_timeout is True
        """
        if grace_period is None:
            grace_period = self.grace_period

        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()

        if not tasks:
            return []

        timed_out = []
        remaining = list(tasks)
        try:
            while remaining:
                task = remaining.pop(0)
                if not self._alive(task):
                    logger.debug(f"Background task {task.name} already finished")
                    continue
                if not self._stop_task(task, grace_period):
                    timed_out.append(task)
        finally:
            # Only non-empty when the loop above was interrupted
            for task in remaining:
                if self._alive(task):
                    self._force_stop(task)

        if timed_out:
            error = SupervisionTimeoutError(timed_out)
            logger.warning(str(error))
            if raise_on_timeout:
                raise error
        logger.info(f"Stopped {len(tasks)} background task(s)")
        return timed_out

    def shutdown(self, grace_period: Optional[float] = None) -> bool:
        """
        One-shot teardown used by both completion and interrupt paths.

        A SIGINT/SIGTERM that arrives while the tasks are being stopped is
        held until every task has been stopped, then raised from here.

        Returns:
            bool: True if this call performed the teardown, False if it already ran

        Raises:
            KeyboardInterrupt: SIGINT was received during the teardown
            SystemExit: SIGTERM was received during the teardown
        """
        with self._lock:
            if self._shutdown_started:
                return False
            self._shutdown_started = True

        logger.info("Cleaning up background processes...")
        try:
            self.stop_all(grace_period=grace_period)
        finally:
            with self._lock:
                self._shutdown_finished = True
                pending, self._pending_signal = self._pending_signal, None

        if pending is not None:
            self._raise_for_signal(pending)
        return True

    # ------------------------------------------------------------------
    # Signal handling
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_signal(signum: int) -> None:
        if signum == signal.SIGINT:
            raise KeyboardInterrupt
        raise SystemExit(128 + signum)

    def _handle_signal(self, signum, frame):
        with self._lock:
            if self._shutdown_started and not self._shutdown_finished:
                logger.warning(f"Received signal {signum} during teardown, finishing teardown first")
                self._pending_signal = signum
                return

        logger.warning(f"Received signal {signum}, shutting down background tasks")
        self.shutdown()
        self._raise_for_signal(signum)

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to shutdown(). Must be called from the main thread."""
        for signum in self.HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            # None means the previous handler was not installed from Python
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def __enter__(self) -> 'ProcessSupervisor':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"ProcessSupervisor(tasks={len(self)}, shut_down={self._shutdown_started})"
