"""
Temperature Guard

Threading-based periodic temperature sampler for the drives under test.

This module provides the TemperatureGuard class that:
- Samples every monitored drive once per tick, fanning out across drives
- Appends one TemperatureSample per drive per tick
- Emits an AlertEvent for every reading above the threshold
- Performs a final sampling pass when stopped
"""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .concurrent_runner import ConcurrentRunner
from .device_facts import DeviceFactProvider
from .exceptions import DiskBurnInConfigError, DiskBurnInStateError
from .models import AlertEvent, GuardState, TemperatureSample
from burnin_kit.logger import get_module_logger

logger = get_module_logger(__name__)


class TemperatureGuard(threading.Thread):
    """
    Periodic temperature monitor for a fixed set of drives.

    States: IDLE -> RUNNING -> STOPPED. STOPPED is terminal; monitoring again
    requires a new instance. The guard also satisfies the process handle
    contract (is_alive / terminate / kill / wait) so a ProcessSupervisor can
    track it like any other background task.

    Attributes:
        drives (tuple): Monitored device paths
        interval_seconds (float): Time between tick starts
        threshold_celsius (int): Readings strictly above this raise an alert
        query_timeout_seconds (float): Per-tick deadline for drive readings

    Example:
        >>> guard = TemperatureGuard(
        ...     drives=['/dev/sdb', '/dev/sdc'],
        ...     provider=LinuxDeviceFactProvider(),
        ...     interval_seconds=60,
        ...     threshold_celsius=55,
        ...     on_alert=lambda alert: print(alert)
        ... )
        >>> guard.start()
        >>> # ... run stress tests ...
        >>> guard.stop()  # final pass, then STOPPED
        >>> guard.get_statistics()['/dev/sdb']['max']
        48
    """

    def __init__(
        self,
        drives: Iterable[str],
        provider: DeviceFactProvider,
        interval_seconds: float = 60,
        threshold_celsius: int = 55,
        query_timeout_seconds: Optional[float] = 30,
        on_sample: Optional[Callable[[TemperatureSample], Any]] = None,
        on_alert: Optional[Callable[[AlertEvent], Any]] = None,
    ):
        super().__init__(name='temperature-guard', daemon=True)

        # Order preserved, duplicates dropped
        self.drives = tuple(dict.fromkeys(drives))
        self.provider = provider
        self.interval_seconds = interval_seconds
        self.threshold_celsius = threshold_celsius
        self.query_timeout_seconds = query_timeout_seconds
        self.on_sample = on_sample
        self.on_alert = on_alert

        self._state = GuardState.IDLE
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._skip_final_pass = False

        self._samples: List[TemperatureSample] = []
        self._alerts: List[AlertEvent] = []
        self._data_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._last_timestamp: Optional[datetime] = None
        self._tick_count = 0
        self._runner = ConcurrentRunner()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def samples(self) -> List[TemperatureSample]:
        with self._data_lock:
            return list(self._samples)

    @property
    def alerts(self) -> List[AlertEvent]:
        with self._data_lock:
            return list(self._alerts)

    def samples_for(self, drive: str) -> List[TemperatureSample]:
        with self._data_lock:
            return [sample for sample in self._samples if sample.drive == drive]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Enter RUNNING and launch the sampling thread.

        Raises:
            DiskBurnInConfigError: If no drives are configured (guard stays IDLE)
            DiskBurnInStateError: If the guard is already running or stopped
        """
        with self._state_lock:
            if self._state is GuardState.STOPPED:
                raise DiskBurnInStateError("Temperature guard already stopped; create a new instance")
            if self._state is GuardState.RUNNING:
                raise DiskBurnInStateError("Temperature guard already running")
            if not self.drives:
                logger.error("No drives configured for temperature monitoring")
                raise DiskBurnInConfigError("No drives configured for temperature monitoring")
            self._state = GuardState.RUNNING

        logger.info(
            f"Starting temperature monitoring (interval: {self.interval_seconds}s, "
            f"threshold: {self.threshold_celsius}°C) for: {' '.join(self.drives)}"
        )
        super().start()

    def run(self) -> None:
        """Sampling loop on a fixed-rate schedule."""
        try:
            next_tick = time.monotonic()
            while not self._stop_event.is_set():
                self.sample_once()

                next_tick += self.interval_seconds
                now = time.monotonic()
                if next_tick < now:
                    logger.warning("Temperature tick overran its interval, sampling again immediately")
                    next_tick = now
                if self._stop_event.wait(next_tick - now):
                    break

            if not self._skip_final_pass:
                logger.info("Recording final temperature readings")
                self.sample_once()

        except Exception as e:
            logger.error(f"Temperature monitoring loop error: {e}")

        finally:
            with self._state_lock:
                self._state = GuardState.STOPPED
            logger.info("Temperature monitoring stopped")

    def terminate(self) -> None:
        """Request a graceful stop; the final sampling pass still runs."""
        with self._state_lock:
            if self._state is GuardState.IDLE:
                self._state = GuardState.STOPPED
                return
        logger.info("Stopping temperature monitoring...")
        self._stop_event.set()

    def kill(self) -> None:
        """Request an immediate stop without the final sampling pass."""
        self._skip_final_pass = True
        self.terminate()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the sampling thread to finish.

        Returns:
            bool: True if the thread is no longer running
        """
        if self.ident is None:
            return True
        self.join(timeout)
        return not self.is_alive()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop monitoring and block until the final pass has been recorded.

        Args:
            timeout: Maximum seconds to wait, None waits for the final pass

        Returns:
            bool: True if the guard reached STOPPED within the timeout
        """
        self.terminate()
        return self.wait(timeout)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _next_timestamp(self) -> datetime:
        # Wall clock may step backwards; keep per-drive timestamps non-decreasing
        now = datetime.now()
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def _read_all(self) -> Dict[str, Optional[int]]:
        tasks = [(self.provider.read_temperature, (drive,), drive) for drive in self.drives]
        results = self._runner.run_all(tasks, timeout=self.query_timeout_seconds)

        readings: Dict[str, Optional[int]] = {}
        for drive in self.drives:
            outcome = results.get(drive)
            if outcome is None:
                logger.warning(f"Temperature query for {drive} timed out")
                readings[drive] = None
                continue

            success, value = outcome
            if not success:
                logger.warning(f"Temperature query for {drive} failed: {value}")
                readings[drive] = None
            elif isinstance(value, int) and not isinstance(value, bool):
                readings[drive] = value
            else:
                readings[drive] = None
        return readings

    def sample_once(self) -> List[TemperatureSample]:
        """
        Run one tick: read every drive, record the samples, emit alerts.

        Returns:
            List[TemperatureSample]: Exactly one sample per monitored drive
        """
        with self._tick_lock:
            timestamp = self._next_timestamp()
            readings = self._read_all()

            samples = [TemperatureSample(drive, timestamp, readings[drive]) for drive in self.drives]
            alerts = [
                AlertEvent(sample.drive, timestamp, sample.value, self.threshold_celsius)
                for sample in samples
                if sample.value is not None and sample.value > self.threshold_celsius
            ]

            with self._data_lock:
                self._samples.extend(samples)
                self._alerts.extend(alerts)
                self._tick_count += 1

        for sample in samples:
            logger.debug(f"[{sample.drive}] temperature {sample.value if sample.available else 'N/A'}")
            self._notify(self.on_sample, sample)

        if alerts:
            logger.warning(
                "High temperature detected - "
                + ' '.join(f"{alert.drive}:{alert.value}°C" for alert in alerts)
                + f" (threshold: {self.threshold_celsius}°C)"
            )
        for alert in alerts:
            self._notify(self.on_alert, alert)

        return samples

    @staticmethod
    def _notify(sink: Optional[Callable], event) -> None:
        if sink is None:
            return
        try:
            sink(event)
        except Exception as e:
            logger.error(f"Event sink failed for {event}: {e}")

    def check_thresholds(self) -> List[str]:
        """
        Read every drive once, without recording, and report overheating drives.

        Returns:
            List[str]: Drives whose current reading exceeds the threshold
        """
        overheating = []
        for drive, value in self._read_all().items():
            if value is not None and value > self.threshold_celsius:
                logger.warning(
                    f"Temperature threshold exceeded: {drive} = {value}°C "
                    f"(threshold: {self.threshold_celsius}°C)"
                )
                overheating.append(drive)
        return overheating

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, Dict[str, Any]]:
        """
        Per-drive temperature statistics over all recorded samples.

        Returns:
            Dictionary keyed by drive with:
            - samples: Number of samples recorded
            - unavailable: Samples without a reading
            - min / max / avg: Over available readings (None if there are none)
            - alerts: Number of alert events
        """
        with self._data_lock:
            samples = list(self._samples)
            alerts = list(self._alerts)

        stats = {}
        for drive in self.drives:
            values = [s.value for s in samples if s.drive == drive and s.value is not None]
            total = sum(1 for s in samples if s.drive == drive)
            stats[drive] = {
                'samples': total,
                'unavailable': total - len(values),
                'min': min(values) if values else None,
                'max': max(values) if values else None,
                'avg': round(sum(values) / len(values), 1) if values else None,
                'alerts': sum(1 for a in alerts if a.drive == drive),
            }
        return stats

    def get_status(self) -> Dict[str, Any]:
        """
        Get current guard status.

        Returns:
            Dictionary with state, drives, ticks, sample and alert counts
        """
        with self._data_lock:
            return {
                'state': self._state.value,
                'drives': list(self.drives),
                'ticks': self._tick_count,
                'samples': len(self._samples),
                'alerts': len(self._alerts),
                'interval_seconds': self.interval_seconds,
                'threshold_celsius': self.threshold_celsius,
            }

    def __repr__(self) -> str:
        return (
            f"TemperatureGuard("
            f"drives={list(self.drives)}, "
            f"state={self._state.value}, "
            f"threshold={self.threshold_celsius})"
        )
