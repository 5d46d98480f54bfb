"""
Disk Burn-in Custom Exceptions

This module defines custom exception classes for disk burn-in operations.
All exceptions inherit from DiskBurnInError base class.
"""


class DiskBurnInError(Exception):
    """
    Base exception class for all disk burn-in errors.

    Catch this to handle any burn-in related error.

    Example:
        >>> try:
        ...     validator.require_eligible('/dev/sdb')
        ... except DiskBurnInError as e:
        ...     print(f"Burn-in error occurred: {e}")
    """
    pass


class DiskBurnInConfigError(DiskBurnInError):
    """
    Configuration error exception.

    Raised when:
    - Invalid configuration parameters are provided
    - Configuration file is missing or malformed
    - Temperature guard is started with no monitored drives

    Example:
        >>> raise DiskBurnInConfigError("grace_period_seconds must be >= 0")
    """
    pass


class DiskBurnInStateError(DiskBurnInError):
    """
    Illegal state transition.

    Raised when:
    - A stopped temperature guard is started again
    - A running temperature guard is started twice
    """
    pass


class DiskBurnInProcessError(DiskBurnInError):
    """
    Process control error exception.

    Raised when:
    - A stress-test process fails to start
    - A task is tracked after supervisor shutdown has begun
    - A handle type cannot be supervised
    """
    pass


class DiskBurnInPreflightError(DiskBurnInError):
    """
    Preflight check failure.

    Raised when:
    - Required command line tools are missing
    - The process lacks root privileges for raw device access
    """
    pass


class DriveNotFoundError(DiskBurnInError):
    """
    The block device does not exist.

    Every per-drive fact query raises this instead of returning partial
    facts when the device node is absent.

    Example:
        >>> raise DriveNotFoundError("/dev/sdz")
    """

    def __init__(self, drive: str):
        super().__init__(f"Device {drive} does not exist")
        self.drive = drive


class DriveUnsafeError(DiskBurnInError):
    """
    A drive failed a safety rule (mounted, partitioned, busy).

    Carries the ValidationResult that rejected the drive.
    """

    def __init__(self, result):
        super().__init__(f"Device {result.drive} is not safe to test: {result.reason.value}")
        self.result = result


class FactUnavailableError(DiskBurnInError):
    """
    A single device fact could not be obtained.

    Raised inside the fact provider only. Public provider methods turn it
    into the ``None`` sentinel.
    """
    pass


class SupervisionTimeoutError(DiskBurnInError):
    """
    One or more tracked tasks did not confirm termination within the grace period.

    Non-fatal: forced stop was already attempted and the tracked set was
    cleared before this is raised.
    """

    def __init__(self, tasks):
        names = ', '.join(task.name for task in tasks)
        super().__init__(f"{len(tasks)} task(s) did not stop within the grace period: {names}")
        self.tasks = list(tasks)
