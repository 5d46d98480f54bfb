"""
Disk Burn-in Data Models

Value objects exchanged between the fact provider, the validator, the
temperature guard and the process supervisor.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Outcome(enum.Enum):
    ELIGIBLE = 'eligible'
    INELIGIBLE = 'ineligible'


class IneligibleReason(enum.Enum):
    MISSING_BLOCK_DEVICE = 'missing-block-device'
    ALREADY_MOUNTED = 'already-mounted'
    CURRENTLY_BUSY = 'currently-busy'
    HAS_PARTITIONS_OR_FILESYSTEM = 'has-partitions-or-filesystem-without-force'


class TaskKind(enum.Enum):
    TEMPERATURE_POLL = 'temperature-poll'
    STRESS_TEST = 'stress-test'


class GuardState(enum.Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    STOPPED = 'stopped'


# ---------------------------------------------------------------------------
# Device facts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DriveFacts:
    """
    Snapshot of the queryable facts of one drive.

    Every field is ``True``/``False`` when the query succeeded and ``None``
    when the fact was unavailable.

    Attributes:
        drive:                 Device path, e.g. ``/dev/sdb``.
        has_partitions:        At least one child partition exists.
        has_filesystem:        A filesystem signature sits on the whole disk.
        is_mounted:            The disk or one of its partitions is mounted.
        is_busy:               Another process holds the device open.
        supports_temperature:  A temperature reading could be obtained.
        supports_smart:        ``smartctl -i`` could talk to the device.
    """
    drive: str
    has_partitions: Optional[bool] = None
    has_filesystem: Optional[bool] = None
    is_mounted: Optional[bool] = None
    is_busy: Optional[bool] = None
    supports_temperature: Optional[bool] = None
    supports_smart: Optional[bool] = None


@dataclass(frozen=True)
class DriveInfo:
    """Descriptive identity of a drive; any field may be unknown."""
    drive: str
    size: Optional[str] = None
    model: Optional[str] = None
    serial: Optional[str] = None
    vendor: Optional[str] = None
    family: Optional[str] = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    """
    Eligibility decision for one drive.

    ``reason`` is set only when ``outcome`` is INELIGIBLE. ``smart_available``
    is informational and never influences the outcome.
    """
    drive: str
    outcome: Outcome
    reason: Optional[IneligibleReason] = None
    smart_available: Optional[bool] = None

    @property
    def eligible(self) -> bool:
        return self.outcome is Outcome.ELIGIBLE

    @classmethod
    def accept(cls, drive: str, smart_available: Optional[bool] = None) -> 'ValidationResult':
        return cls(drive=drive, outcome=Outcome.ELIGIBLE, smart_available=smart_available)

    @classmethod
    def reject(cls, drive: str, reason: IneligibleReason) -> 'ValidationResult':
        return cls(drive=drive, outcome=Outcome.INELIGIBLE, reason=reason)


# ---------------------------------------------------------------------------
# Temperature monitoring
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TemperatureSample:
    """
    One temperature reading.

    Attributes:
        drive:      Device path.
        timestamp:  When the tick that produced the sample started.
        value:      Degrees Celsius, or ``None`` when unavailable.
    """
    drive: str
    timestamp: datetime
    value: Optional[int]

    @property
    def available(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class AlertEvent:
    """Over-threshold temperature reading."""
    drive: str
    timestamp: datetime
    value: int
    threshold: int


# ---------------------------------------------------------------------------
# Supervision
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MonitoredTask:
    """
    A background task owned by the process supervisor.

    Attributes:
        task_id:     Supervisor-assigned identifier.
        handle:      Process handle adapter (is_alive/terminate/kill/wait).
        kind:        TaskKind of the task.
        name:        Human readable label used in log messages.
        started_at:  When the task was registered.
    """
    task_id: int
    handle: Any
    kind: TaskKind
    name: str
    started_at: datetime
