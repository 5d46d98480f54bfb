"""
Unit tests for the burn-in controller.
"""

import json
import os
import signal
import sys
import threading
import time
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from burnin_kit.logger import get_log_dir
from burnin_kit.testtool.diskburnin.controller import BurnInController
from burnin_kit.testtool.diskburnin.exceptions import (
    DiskBurnInConfigError,
    DiskBurnInPreflightError,
)
from burnin_kit.testtool.diskburnin.models import GuardState
from burnin_kit.testtool.diskburnin.temperature_guard import TemperatureGuard

PASS_COMMAND = [sys.executable, '-c', 'import sys; sys.exit(0)', '{drive}']
FAIL_COMMAND = [sys.executable, '-c', 'import sys; sys.exit(3)', '{drive}']
HANG_COMMAND = [sys.executable, '-c', 'import time; time.sleep(30)', '{drive}']


@pytest.fixture
def fast_config():
    """Configuration that keeps a full run short."""
    return {
        'run_preflight': False,
        'temperature_interval_seconds': 3600,
        'query_timeout_seconds': 2,
        'grace_period_seconds': 1,
        'kill_timeout_seconds': 2,
        'check_interval_seconds': 0.05,
        'stress_command': PASS_COMMAND,
    }


class TestBurnInControllerInit:
    """Test suite for controller construction."""

    def test_init_defaults(self, provider):
        """Test defaults are applied."""
        controller = BurnInController(provider=provider)

        assert controller.monitored_drives == []
        assert controller.force is False
        assert controller.temperature_threshold_celsius == 55
        assert controller.grace_period_seconds == 2
        assert controller.status is False
        assert controller.guard is None
        assert controller.provider is provider

    def test_init_invalid_config(self, provider):
        """Test invalid parameters raise DiskBurnInConfigError."""
        with pytest.raises(DiskBurnInConfigError):
            BurnInController(provider=provider, grace_period_seconds=-1)

        with pytest.raises(DiskBurnInConfigError):
            BurnInController(provider=provider, unknown_option=1)

    def test_from_json(self, provider, temp_dir):
        """Test loading the controller from a JSON file with overrides."""
        path = Path(temp_dir) / 'burnin.json'
        path.write_text(json.dumps({
            'diskburnin': {'monitored_drives': ['/dev/sdb'], 'temperature_threshold_celsius': 50}
        }), encoding='utf-8')

        controller = BurnInController.from_json(str(path), provider=provider, force=True)

        assert controller.monitored_drives == ['/dev/sdb']
        assert controller.temperature_threshold_celsius == 50
        assert controller.force is True

    def test_build_command(self, provider):
        """Test the drive placeholder is substituted."""
        controller = BurnInController(provider=provider)

        assert controller.build_command('/dev/sdb') == ['badblocks', '-wsv', '-b', '4096', '/dev/sdb']

    def test_select_configured_drives(self, provider):
        """Test configured drives are validated and unsafe ones dropped."""
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb', '/dev/sdd', '/dev/sdz'])

        assert controller.select_drives() == ['/dev/sdb']
        assert controller.get_status()['rejected'] == {
            '/dev/sdd': 'already-mounted',
            '/dev/sdz': 'missing-block-device',
        }

    def test_select_discovered_drives(self, provider):
        """Test all discovered drives are considered when none are configured."""
        controller = BurnInController(provider=provider, force=True)

        assert controller.select_drives() == ['/dev/sdb', '/dev/sdc', '/dev/sdf']

    def test_repr(self, provider):
        """Test string representation."""
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb'])

        assert 'BurnInController' in repr(controller)
        assert '/dev/sdb' in repr(controller)


@pytest.mark.slow
class TestBurnInControllerRun:
    """Test suite for full runs against real child processes."""

    def test_run_passes(self, make_provider, clean_drive_facts, fast_config):
        """Test a run where every stress command succeeds."""
        provider = make_provider(
            drives={'/dev/sdb': dict(clean_drive_facts), '/dev/sdc': dict(clean_drive_facts)},
            temperatures={'/dev/sdb': [40], '/dev/sdc': [41]},
        )
        controller = BurnInController(
            provider=provider, monitored_drives=['/dev/sdb', '/dev/sdc'], **fast_config
        )

        assert controller.run() is True

        assert controller.results == {'/dev/sdb': 0, '/dev/sdc': 0}
        assert controller.guard.state is GuardState.STOPPED
        assert len(controller.guard.samples_for('/dev/sdb')) >= 1
        assert controller.supervisor.is_shut_down is True
        assert len(controller.supervisor) == 0
        assert (get_log_dir() / 'stress_sdb.log').exists()
        assert controller.get_status()['running'] is False

    def test_run_fails_on_nonzero_exit(self, provider, fast_config):
        """Test a failing stress command fails the run."""
        fast_config['stress_command'] = FAIL_COMMAND
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb'], **fast_config)

        assert controller.run() is False
        assert controller.results == {'/dev/sdb': 3}

    def test_run_without_eligible_drives(self, provider, fast_config):
        """Test nothing is started when no drive is eligible."""
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdd', '/dev/sdz'], **fast_config)

        assert controller.run() is False
        assert controller.guard is None
        assert controller.results == {}

    def test_run_launch_failure(self, provider, fast_config):
        """Test a stress command that cannot be started counts as failed."""
        fast_config['stress_command'] = ['/nonexistent/stress-tool', '{drive}']
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb'], **fast_config)

        assert controller.run() is False
        assert controller.results == {'/dev/sdb': None}

    def test_stop_tears_down_running_tests(self, provider, fast_config):
        """Test stop() abandons the wait and the supervisor stops the stress process."""
        fast_config['stress_command'] = HANG_COMMAND
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb'], **fast_config)
        timer = threading.Timer(0.5, controller.stop)
        timer.start()

        try:
            assert controller.run() is False
        finally:
            timer.cancel()

        assert controller.results == {'/dev/sdb': None}
        assert controller._processes['/dev/sdb'].poll() is not None
        assert len(controller.supervisor) == 0

    def test_alerts_reach_sink(self, make_provider, clean_drive_facts, fast_config):
        """Test over-threshold readings during a run reach the alert sink."""
        provider = make_provider(drives={'/dev/sdb': dict(clean_drive_facts)}, temperatures={'/dev/sdb': [70]})
        on_alert = Mock()
        controller = BurnInController(
            provider=provider, on_alert=on_alert, monitored_drives=['/dev/sdb'],
            temperature_threshold_celsius=55, **fast_config
        )

        controller.run()

        assert on_alert.called
        alert = on_alert.call_args[0][0]
        assert (alert.drive, alert.value, alert.threshold) == ('/dev/sdb', 70, 55)
        assert controller.get_status()['temperatures']['/dev/sdb']['max'] == 70

    def test_preflight_failure_propagates(self, provider, fast_config):
        """Test a preflight failure aborts the run after teardown."""
        fast_config['run_preflight'] = True
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb'], **fast_config)

        with patch(
            'burnin_kit.testtool.diskburnin.controller.run_preflight',
            side_effect=DiskBurnInPreflightError("Missing required tools: badblocks")
        ):
            with pytest.raises(DiskBurnInPreflightError):
                controller.run()

        assert controller.status is False
        assert controller.supervisor.is_shut_down is True
        assert controller.results == {}

    def test_timeout_follows_monotonic_clock(self, provider, fast_config):
        """Test the run deadline is measured on the monotonic clock."""
        fast_config['stress_command'] = HANG_COMMAND
        fast_config['timeout_minutes'] = 1
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb'], **fast_config)
        ticks = iter([0.0])

        with patch('burnin_kit.testtool.diskburnin.controller.time') as mock_time:
            # One reading for the start, then the clock is past the deadline
            mock_time.monotonic.side_effect = lambda: next(ticks, 61 * 60.0)
            assert controller.run() is False

        assert controller.results == {'/dev/sdb': None}
        assert controller._processes['/dev/sdb'].poll() is not None
        mock_time.time.assert_not_called()

    def test_wall_clock_jump_does_not_end_run(self, provider, fast_config):
        """Test a wall-clock step forward does not count against the timeout."""
        fast_config['timeout_minutes'] = 1
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb'], **fast_config)
        real_monotonic = time.monotonic

        with patch('burnin_kit.testtool.diskburnin.controller.time') as mock_time:
            mock_time.monotonic.side_effect = real_monotonic
            mock_time.time.return_value = time.time() + 7 * 24 * 3600
            assert controller.run() is True

        assert controller.results == {'/dev/sdb': 0}

    @pytest.mark.skipif(sys.platform == 'win32', reason="POSIX signals required")
    def test_interrupt_during_teardown(self, provider, fast_config):
        """Test Ctrl-C during teardown still closes stress logs and restores signal handlers."""
        controller = BurnInController(provider=provider, monitored_drives=['/dev/sdb'], **fast_config)
        previous_int = signal.getsignal(signal.SIGINT)
        previous_term = signal.getsignal(signal.SIGTERM)

        def interrupt(guard, timeout=None):
            os.kill(os.getpid(), signal.SIGINT)

        with patch.object(TemperatureGuard, 'stop', autospec=True, side_effect=interrupt):
            with pytest.raises(KeyboardInterrupt):
                controller.run()

        assert signal.getsignal(signal.SIGINT) == previous_int
        assert signal.getsignal(signal.SIGTERM) == previous_term
        assert controller._output_files == []
        assert controller.supervisor.is_shut_down is True
        assert controller.guard.is_alive() is False
        assert controller.get_status()['running'] is False
