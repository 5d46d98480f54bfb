"""
Unit tests for disk burn-in exceptions module.
"""

from datetime import datetime

import pytest

from burnin_kit.testtool.diskburnin.exceptions import (
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
from burnin_kit.testtool.diskburnin.models import (
    IneligibleReason,
    MonitoredTask,
    TaskKind,
    ValidationResult,
)


class TestExceptionHierarchy:
    """Test suite for exception inheritance."""

    @pytest.mark.parametrize('exc_class', [
        DiskBurnInConfigError,
        DiskBurnInStateError,
        DiskBurnInProcessError,
        DiskBurnInPreflightError,
        FactUnavailableError,
    ])
    def test_simple_exceptions_inherit_base(self, exc_class):
        """Test that every simple exception is a DiskBurnInError."""
        error = exc_class("message")

        assert isinstance(error, DiskBurnInError)
        assert isinstance(error, Exception)
        assert str(error) == "message"

    def test_catch_all_with_base(self):
        """Test catching specific errors through the base class."""
        with pytest.raises(DiskBurnInError):
            raise DriveNotFoundError('/dev/sdz')


class TestDriveNotFoundError:
    """Test suite for DriveNotFoundError."""

    def test_message_and_drive(self):
        """Test the message names the missing device."""
        error = DriveNotFoundError('/dev/sdz')

        assert error.drive == '/dev/sdz'
        assert str(error) == "Device /dev/sdz does not exist"


class TestDriveUnsafeError:
    """Test suite for DriveUnsafeError."""

    def test_carries_validation_result(self):
        """Test the error keeps the rejecting result and names the reason."""
        result = ValidationResult.reject('/dev/sdb', IneligibleReason.ALREADY_MOUNTED)
        error = DriveUnsafeError(result)

        assert error.result is result
        assert '/dev/sdb' in str(error)
        assert 'already-mounted' in str(error)


class TestSupervisionTimeoutError:
    """Test suite for SupervisionTimeoutError."""

    def test_lists_task_names(self):
        """Test the message counts and names the stuck tasks."""
        tasks = [
            MonitoredTask(1, object(), TaskKind.STRESS_TEST, 'badblocks /dev/sdb', datetime.now()),
            MonitoredTask(2, object(), TaskKind.TEMPERATURE_POLL, 'temperature-guard', datetime.now()),
        ]
        error = SupervisionTimeoutError(tasks)

        assert error.tasks == tasks
        assert '2 task(s)' in str(error)
        assert 'badblocks /dev/sdb' in str(error)
        assert 'temperature-guard' in str(error)
