"""
Pytest configuration and fixtures for disk burn-in unit tests.
"""

import time

import pytest
import tempfile

from burnin_kit.testtool.diskburnin.device_facts import DeviceFactProvider
from burnin_kit.testtool.diskburnin.exceptions import DriveNotFoundError


class FakeFactProvider(DeviceFactProvider):
    """
    Deterministic fact provider.

    drives:       {path: {fact name: value}}; missing facts default to False
    devices:      list of (path, lsblk type) for discovery
    temperatures: {path: [readings]}, consumed in order, the last one repeats
    delays:       {path: seconds} added to every temperature query
    errors:       {path: exception} raised by temperature queries
    """

    def __init__(self, drives=None, devices=None, temperatures=None, delays=None, errors=None):
        self.drives = drives or {}
        self.devices = devices or []
        self.temperatures = {drive: list(values) for drive, values in (temperatures or {}).items()}
        self.delays = delays or {}
        self.errors = errors or {}
        self.temperature_calls = []

    def _fact(self, drive, name):
        if drive not in self.drives:
            raise DriveNotFoundError(drive)
        return self.drives[drive].get(name, False)

    def list_block_devices(self):
        return list(self.devices)

    def exists(self, drive):
        return drive in self.drives

    def has_partitions(self, drive):
        return self._fact(drive, 'has_partitions')

    def has_filesystem(self, drive):
        return self._fact(drive, 'has_filesystem')

    def is_mounted(self, drive):
        return self._fact(drive, 'is_mounted')

    def is_busy(self, drive):
        return self._fact(drive, 'is_busy')

    def supports_smart(self, drive):
        if drive not in self.drives:
            raise DriveNotFoundError(drive)
        return self.drives[drive].get('supports_smart', True)

    def read_temperature(self, drive):
        self.temperature_calls.append(drive)
        if drive in self.delays:
            time.sleep(self.delays[drive])
        if drive in self.errors:
            raise self.errors[drive]
        values = self.temperatures.get(drive)
        if not values:
            return None
        return values.pop(0) if len(values) > 1 else values[0]


class FakeHandle:
    """Process handle double with configurable stop behavior."""

    def __init__(self, alive=True, ignores_terminate=False, name='fake'):
        self.alive = alive
        self.ignores_terminate = ignores_terminate
        self.name = name
        self.terminate_calls = 0
        self.kill_calls = 0
        self.wait_timeouts = []

    def is_alive(self):
        return self.alive

    def terminate(self):
        self.terminate_calls += 1
        if not self.ignores_terminate:
            self.alive = False

    def kill(self):
        self.kill_calls += 1
        self.alive = False

    def wait(self, timeout=None):
        self.wait_timeouts.append(timeout)
        if self.alive and timeout:
            time.sleep(timeout)
        return not self.alive


@pytest.fixture
def make_provider():
    """Factory for FakeFactProvider instances."""
    return FakeFactProvider


@pytest.fixture
def make_handle():
    """Factory for FakeHandle instances."""
    return FakeHandle


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clean_drive_facts():
    """Facts of an unmounted, unpartitioned, idle drive."""
    return {
        'has_partitions': False,
        'has_filesystem': False,
        'is_mounted': False,
        'is_busy': False,
        'supports_smart': True,
    }


@pytest.fixture
def provider(clean_drive_facts):
    """Provider with one clean drive (/dev/sdb) and one of each unsafe kind."""
    return FakeFactProvider(
        drives={
            '/dev/sdb': dict(clean_drive_facts),
            '/dev/sdc': dict(clean_drive_facts, has_partitions=True),
            '/dev/sdd': dict(clean_drive_facts, is_mounted=True, has_partitions=True),
            '/dev/sde': dict(clean_drive_facts, is_busy=True),
            '/dev/sdf': dict(clean_drive_facts, has_filesystem=True),
        },
        devices=[
            ('/dev/sdb', 'disk'),
            ('/dev/sdc', 'disk'),
            ('/dev/sdd', 'disk'),
            ('/dev/sde', 'disk'),
            ('/dev/sdf', 'disk'),
            ('/dev/loop0', 'loop'),
            ('/dev/zram0', 'disk'),
            ('/dev/sr0', 'rom'),
        ],
    )


@pytest.fixture
def sample_config():
    """Sample valid configuration dictionary."""
    return {
        'monitored_drives': ['/dev/sdb'],
        'temperature_interval_seconds': 60,
        'temperature_threshold_celsius': 55,
        'grace_period_seconds': 2,
        'force': False,
    }
