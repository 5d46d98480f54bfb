"""
Disk Burn-in Package

This package decides which drives are safe to burn in and supervises the
background work of a burn-in run.

Main Components:
- DeviceFactProvider / LinuxDeviceFactProvider: Read-only drive fact queries
- DriveValidator: Eligibility policy and drive discovery
- TemperatureGuard: Periodic temperature sampling and alerting (threading.Thread)
- ProcessSupervisor: Tracking and graceful-then-forced teardown of background tasks
- BurnInController: End-to-end orchestration of one run
- DiskBurnInConfig: Configuration management and validation
- Custom exceptions for error handling

Usage:
    from burnin_kit.testtool.diskburnin import (
        LinuxDeviceFactProvider, DriveValidator, TemperatureGuard,
        ProcessSupervisor, TaskKind,
    )

    provider = LinuxDeviceFactProvider()
    validator = DriveValidator(provider)
    drives, _ = validator.filter_eligible(validator.discover_drives())

    supervisor = ProcessSupervisor(grace_period=2)
    guard = TemperatureGuard(drives, provider, interval_seconds=60, threshold_celsius=55)
    guard.start()
    supervisor.track(guard, TaskKind.TEMPERATURE_POLL)

    # ... start and track stress tests ...

    guard.stop()
    supervisor.shutdown()
"""

__version__ = '1.0.0'

from .exceptions import (
    DiskBurnInError,
    DiskBurnInConfigError,
    DiskBurnInStateError,
    DiskBurnInProcessError,
    DiskBurnInPreflightError,
    DriveNotFoundError,
    DriveUnsafeError,
    FactUnavailableError,
    SupervisionTimeoutError,
)

from .models import (
    AlertEvent,
    DriveFacts,
    DriveInfo,
    GuardState,
    IneligibleReason,
    MonitoredTask,
    Outcome,
    TaskKind,
    TemperatureSample,
    ValidationResult,
)

from .config import DiskBurnInConfig
from .device_facts import DeviceFactProvider, LinuxDeviceFactProvider, parse_smart_temperature
from .validator import DriveValidator
from .temperature_guard import TemperatureGuard
from .supervisor import ProcessSupervisor, PopenHandle, PsutilHandle, as_handle
from .controller import BurnInController

__all__ = [
    # Exceptions
    'DiskBurnInError',
    'DiskBurnInConfigError',
    'DiskBurnInStateError',
    'DiskBurnInProcessError',
    'DiskBurnInPreflightError',
    'DriveNotFoundError',
    'DriveUnsafeError',
    'FactUnavailableError',
    'SupervisionTimeoutError',
    # Models
    'AlertEvent',
    'DriveFacts',
    'DriveInfo',
    'GuardState',
    'IneligibleReason',
    'MonitoredTask',
    'Outcome',
    'TaskKind',
    'TemperatureSample',
    'ValidationResult',
    # Config
    'DiskBurnInConfig',
    # Device facts
    'DeviceFactProvider',
    'LinuxDeviceFactProvider',
    'parse_smart_temperature',
    # Validator
    'DriveValidator',
    # Temperature guard
    'TemperatureGuard',
    # Supervisor
    'ProcessSupervisor',
    'PopenHandle',
    'PsutilHandle',
    'as_handle',
    # Controller
    'BurnInController',
]
