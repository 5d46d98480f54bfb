"""
Disk Burn-in Controller

Orchestrates one burn-in run:
- Host preflight checks
- Drive discovery and safety validation
- Temperature monitoring for the selected drives
- One stress-test process per drive, supervised
- Teardown on completion, timeout or interrupt
"""

import subprocess
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .config import DiskBurnInConfig
from .device_facts import DeviceFactProvider, LinuxDeviceFactProvider
from .exceptions import DiskBurnInConfigError, DiskBurnInProcessError
from .models import AlertEvent, TaskKind, TemperatureSample, ValidationResult
from .preflight import device_short_name, run_preflight, seconds_to_human
from .supervisor import ProcessSupervisor
from .temperature_guard import TemperatureGuard
from .validator import DriveValidator
from burnin_kit.logger import LogSection, LogStep, get_log_dir, get_module_logger

logger = get_module_logger(__name__)


class BurnInController:
    """
    Burn-in run orchestrator.

    Must be run from the main thread when SIGINT/SIGTERM should trigger the
    supervisor teardown; from other threads the run works without signal
    routing.

    Attributes:
        monitored_drives (list): Drives to test; empty means discover all
        force (bool): Allow drives with partitions or a filesystem
        status (bool): True only if every stress command exited with 0
        results (dict): Drive -> stress command exit code (None on timeout)
        validation_results (list): ValidationResult of every considered drive

    Example:
        >>> controller = BurnInController(
        ...     monitored_drives=['/dev/sdb', '/dev/sdc'],
        ...     temperature_threshold_celsius=50,
        ...     timeout_minutes=1440
        ... )
        >>> controller.run()
        True
        >>> controller.results
        {'/dev/sdb': 0, '/dev/sdc': 0}
    """

    def __init__(
        self,
        provider: Optional[DeviceFactProvider] = None,
        on_sample: Optional[Callable[[TemperatureSample], Any]] = None,
        on_alert: Optional[Callable[[AlertEvent], Any]] = None,
        **kwargs
    ):
        """
        Initialize burn-in controller.

        Args:
            provider: Device fact provider (default: LinuxDeviceFactProvider)
            on_sample: Sink for every temperature sample
            on_alert: Sink for every temperature alert
            **kwargs: Configuration parameters, see DiskBurnInConfig.DEFAULT_CONFIG

        Raises:
            DiskBurnInConfigError: If validation fails
        """
        try:
            DiskBurnInConfig.validate_config(kwargs)
        except ValueError as e:
            raise DiskBurnInConfigError(f"Invalid configuration: {e}")

        config = DiskBurnInConfig.merge_config(DiskBurnInConfig.get_default_config(), kwargs)

        self.monitored_drives: List[str] = list(config['monitored_drives'])
        self.force: bool = config['force']
        self.temperature_interval_seconds: float = config['temperature_interval_seconds']
        self.temperature_threshold_celsius: int = config['temperature_threshold_celsius']
        self.query_timeout_seconds: float = config['query_timeout_seconds']
        self.grace_period_seconds: float = config['grace_period_seconds']
        self.kill_timeout_seconds: float = config['kill_timeout_seconds']
        self.stress_command: List[str] = list(config['stress_command'])
        self.timeout_minutes: float = config['timeout_minutes']
        self.check_interval_seconds: float = config['check_interval_seconds']
        self.run_preflight: bool = config['run_preflight']
        self.min_log_space_mb: int = config['min_log_space_mb']

        self.on_sample = on_sample
        self.on_alert = on_alert

        self.provider = provider or LinuxDeviceFactProvider(query_timeout=self.query_timeout_seconds)
        self.validator = DriveValidator(self.provider)
        self.supervisor = ProcessSupervisor(
            grace_period=self.grace_period_seconds,
            kill_timeout=self.kill_timeout_seconds
        )
        self.guard: Optional[TemperatureGuard] = None

        # Run state
        self.status: bool = False
        self.results: Dict[str, Optional[int]] = {}
        self.validation_results: List[ValidationResult] = []
        self._processes: Dict[str, subprocess.Popen] = {}
        self._output_files: List[Any] = []
        self._stop_event = threading.Event()
        self._running = False

        logger.info(
            f"BurnInController initialized with drives={self.monitored_drives or 'auto'}, "
            f"force={self.force}, threshold={self.temperature_threshold_celsius}°C"
        )

    @classmethod
    def from_json(cls, json_path: str, provider: Optional[DeviceFactProvider] = None, **overrides):
        """
        Build a controller from the "diskburnin" section of a JSON file.

        Raises:
            DiskBurnInConfigError: If the file is missing, malformed or invalid
        """
        config = DiskBurnInConfig.load_config_from_json(json_path)
        config.update(overrides)
        return cls(provider=provider, **config)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def select_drives(self) -> List[str]:
        """
        Validate the configured drives (or all discovered drives).

        Returns:
            List[str]: Drives eligible for testing
        """
        candidates = self.monitored_drives or self.validator.discover_drives()
        eligible, self.validation_results = self.validator.filter_eligible(candidates, force=self.force)
        return eligible

    def build_command(self, drive: str) -> List[str]:
        return [arg.replace('{drive}', drive) for arg in self.stress_command]

    def _launch(self, drive: str) -> subprocess.Popen:
        cmd = self.build_command(drive)
        output_path = get_log_dir() / f"stress_{device_short_name(drive)}.log"
        output = open(output_path, 'a', encoding='utf-8')
        self._output_files.append(output)

        logger.info(f"[{drive}] STARTED: {' '.join(cmd)}")
        try:
            return subprocess.Popen(cmd, stdout=output, stderr=subprocess.STDOUT)
        except (OSError, subprocess.SubprocessError) as e:
            raise DiskBurnInProcessError(f"Failed to start stress test on {drive}: {e}")

    def _start_guard(self, drives: List[str]) -> None:
        self.guard = TemperatureGuard(
            drives=drives,
            provider=self.provider,
            interval_seconds=self.temperature_interval_seconds,
            threshold_celsius=self.temperature_threshold_celsius,
            query_timeout_seconds=self.query_timeout_seconds,
            on_sample=self.on_sample,
            on_alert=self.on_alert,
        )
        self.guard.start()
        self.supervisor.track(self.guard, TaskKind.TEMPERATURE_POLL, name='temperature-guard')

    def _start_stress_tests(self, drives: List[str]) -> Dict[str, int]:
        task_ids = {}
        for drive in drives:
            try:
                process = self._launch(drive)
            except DiskBurnInProcessError as e:
                logger.error(str(e))
                self.results[drive] = None
                continue
            self._processes[drive] = process
            task_ids[drive] = self.supervisor.track(
                process, TaskKind.STRESS_TEST, name=f"{self.stress_command[0]} {drive}"
            )
        return task_ids

    def _wait_for_completion(self, task_ids: Dict[str, int]) -> None:
        """
        Poll the stress processes until all finish, the timeout expires or stop() is called.
        """
        start_time = time.monotonic()
        timeout_seconds = self.timeout_minutes * 60
        pending = dict(task_ids)

        while pending:
            for drive, task_id in list(pending.items()):
                exit_code = self._processes[drive].poll()
                if exit_code is None:
                    continue
                duration = time.monotonic() - start_time
                self.results[drive] = exit_code
                self.supervisor.untrack(task_id)
                del pending[drive]
                log = logger.info if exit_code == 0 else logger.error
                log(
                    f"[{drive}] FINISHED: {' '.join(self.build_command(drive))} "
                    f"(exit code: {exit_code}) [duration: {seconds_to_human(duration)}]"
                )

            if not pending:
                break

            if time.monotonic() - start_time > timeout_seconds:
                logger.error(
                    f"Stress tests exceeded timeout of {self.timeout_minutes} minutes: "
                    f"{' '.join(pending)}"
                )
                break

            if self._stop_event.wait(self.check_interval_seconds):
                logger.warning(f"Stop requested, abandoning: {' '.join(pending)}")
                break

        for drive in pending:
            self.results[drive] = None

    def _teardown(self) -> None:
        """Stop the guard and every supervised task; stress logs are closed even if interrupted."""
        try:
            try:
                if self.guard is not None and self.guard.is_alive():
                    # Final pass before the supervisor takes the rest down
                    self.guard.stop(timeout=self.query_timeout_seconds + self.grace_period_seconds)
            finally:
                self.supervisor.shutdown()
        finally:
            for output in self._output_files:
                output.close()
            self._output_files.clear()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> bool:
        """
        Execute the burn-in.

        Steps:
        1. Preflight checks (optional)
        2. Drive selection
        3. Temperature monitoring
        4. Stress tests
        5. Wait for completion, then teardown

        Returns:
            bool: True if every selected drive finished its stress test with exit code 0
        """
        LogSection("Disk Burn-in Test Started")
        self._running = True
        self.status = False
        in_main_thread = threading.current_thread() is threading.main_thread()
        if in_main_thread:
            self.supervisor.install_signal_handlers()

        try:
            if self.run_preflight:
                LogStep(1, "Preflight checks")
                run_preflight(str(get_log_dir()), self.min_log_space_mb)

            LogStep(2, "Drive selection")
            drives = self.select_drives()
            if not drives:
                logger.error("No drives eligible for burn-in testing")
                return False

            LogStep(3, "Temperature monitoring")
            self._start_guard(drives)

            LogStep(4, "Stress tests")
            task_ids = self._start_stress_tests(drives)

            LogStep(5, "Waiting for completion")
            self._wait_for_completion(task_ids)

            self.status = bool(self.results) and all(code == 0 for code in self.results.values())
            return self.status

        finally:
            try:
                self._teardown()
            finally:
                self._running = False
                LogSection(f"Disk Burn-in Test Completed: {'PASSED' if self.status else 'FAILED'}")
                if in_main_thread:
                    self.supervisor.restore_signal_handlers()

    def stop(self) -> None:
        """Ask a running burn-in to stop waiting and tear down."""
        logger.info("Stopping burn-in execution...")
        self._stop_event.set()

    def get_status(self) -> Dict[str, Any]:
        """
        Get current execution status.

        Returns:
            Dictionary with running flag, status, per-drive results,
            rejected drives and temperature statistics
        """
        return {
            'running': self._running,
            'status': self.status,
            'results': dict(self.results),
            'rejected': {
                r.drive: r.reason.value for r in self.validation_results if not r.eligible
            },
            'temperatures': self.guard.get_statistics() if self.guard else {},
        }

    def __repr__(self) -> str:
        return (
            f"BurnInController("
            f"drives={self.monitored_drives or 'auto'}, "
            f"running={self._running}, "
            f"status={self.status})"
        )
