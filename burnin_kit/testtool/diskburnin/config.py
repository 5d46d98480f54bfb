"""
Disk Burn-in Configuration

Defaults, validation and loading of the parameters shared by the validator,
the temperature guard, the supervisor and the controller.
"""

import json
from typing import Any, Dict, Iterable

from .exceptions import DiskBurnInConfigError


class DiskBurnInConfig:
    """
    Burn-in parameter table.

    Every consumer validates keyword overrides through ``validate_config``
    and merges them over ``get_default_config()``; nothing reads
    ``DEFAULT_CONFIG`` directly.

    Example:
        >>> DiskBurnInConfig.get_default_config()['temperature_threshold_celsius']
        55
        >>> DiskBurnInConfig.validate_config({'monitored_drives': ['/dev/sdb'], 'force': True})
        True
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        # Drives to test; empty means every discovered whole disk
        'monitored_drives': [],
        'force': False,

        'temperature_interval_seconds': 60,
        'temperature_threshold_celsius': 55,
        'query_timeout_seconds': 30,

        'grace_period_seconds': 2,
        'kill_timeout_seconds': 5,

        # {drive} is replaced by the device path
        'stress_command': ['badblocks', '-wsv', '-b', '4096', '{drive}'],
        'timeout_minutes': 2880,
        'check_interval_seconds': 5,

        'run_preflight': True,
        'min_log_space_mb': 100,
    }

    VALID_PARAMS = frozenset(DEFAULT_CONFIG)

    PARAM_TYPES: Dict[str, Any] = {
        'monitored_drives': (list, tuple),
        'force': bool,
        'temperature_interval_seconds': (int, float),
        'temperature_threshold_celsius': int,
        'query_timeout_seconds': (int, float),
        'grace_period_seconds': (int, float),
        'kill_timeout_seconds': (int, float),
        'stress_command': (list, tuple),
        'timeout_minutes': (int, float),
        'check_interval_seconds': (int, float),
        'run_preflight': bool,
        'min_log_space_mb': int,
    }

    PARAM_CONSTRAINTS: Dict[str, Dict[str, Any]] = {
        'temperature_interval_seconds': {'min': 0.01, 'max': 86400},
        'temperature_threshold_celsius': {'min': 0, 'max': 150},
        'query_timeout_seconds': {'min': 0.01, 'max': 600},
        'grace_period_seconds': {'min': 0, 'max': 600},
        'kill_timeout_seconds': {'min': 0, 'max': 600},
        'timeout_minutes': {'min': 1, 'max': 20160},  # 14 days
        'check_interval_seconds': {'min': 0.01, 'max': 600},
        'min_log_space_mb': {'min': 0, 'max': 1048576},
    }

    @classmethod
    def validate_config(cls, config: Dict[str, Any]) -> bool:
        """
        Check names, types and ranges of a partial configuration.

        Only the keys present are checked, so ``{}`` is valid.

        Raises:
            ValueError: On the first offending key, naming it

        Example:
            >>> DiskBurnInConfig.validate_config({'grace_period_seconds': -1})
            Traceback (most recent call last):
            ...
            ValueError: grace_period_seconds must be >= 0
        """
        for key, value in config.items():
            if key not in cls.VALID_PARAMS:
                raise ValueError(f"Unknown configuration parameter: {key}")
            cls._check_type(key, value)
            cls._check_range(key, value)

        if 'monitored_drives' in config:
            cls._check_drives(config['monitored_drives'])
        if 'stress_command' in config:
            cls._check_command(config['stress_command'])
        return True

    @classmethod
    def _check_type(cls, key: str, value: Any) -> None:
        expected = cls.PARAM_TYPES[key]
        names = ' or '.join(t.__name__ for t in expected) if isinstance(expected, tuple) else expected.__name__
        # bool is an int subclass; only bool keys take it
        if isinstance(value, bool) and expected is not bool:
            raise ValueError(f"{key} must be of type {names}, got bool")
        if not isinstance(value, expected):
            raise ValueError(f"{key} must be of type {names}, got {type(value).__name__}")

    @classmethod
    def _check_range(cls, key: str, value: Any) -> None:
        limits = cls.PARAM_CONSTRAINTS.get(key, {})
        if 'min' in limits and value < limits['min']:
            raise ValueError(f"{key} must be >= {limits['min']}")
        if 'max' in limits and value > limits['max']:
            raise ValueError(f"{key} must be <= {limits['max']}")

    @staticmethod
    def _check_drives(drives: Iterable[Any]) -> None:
        for drive in drives:
            if not isinstance(drive, str) or not drive:
                raise ValueError(f"monitored_drives entries must be device paths, got {drive!r}")

    @staticmethod
    def _check_command(command) -> None:
        if not command or not all(isinstance(arg, str) for arg in command):
            raise ValueError("stress_command must be a non-empty list of strings")

    @classmethod
    def get_default_config(cls) -> Dict[str, Any]:
        """Fresh defaults; list values are copied so callers may mutate them."""
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in cls.DEFAULT_CONFIG.items()
        }

    @staticmethod
    def merge_config(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Overlay ``updates`` on ``base`` without modifying either.

        Example:
            >>> merged = DiskBurnInConfig.merge_config({'force': False, 'grace_period_seconds': 2},
            ...                                        {'force': True})
            >>> merged
            {'force': True, 'grace_period_seconds': 2}
        """
        return {**base, **updates}

    @classmethod
    def load_config_from_json(cls, json_path: str) -> Dict[str, Any]:
        """
        Read the "diskburnin" section of a JSON file over the defaults.

        File layout:
            {
                "diskburnin": {
                    "monitored_drives": ["/dev/sdb", "/dev/sdc"],
                    "temperature_threshold_celsius": 50
                }
            }

        Raises:
            DiskBurnInConfigError: Missing file, malformed JSON, missing
                section or invalid values
        """
        try:
            with open(json_path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except FileNotFoundError:
            raise DiskBurnInConfigError(f"JSON configuration file not found: {json_path}")
        except json.JSONDecodeError as e:
            raise DiskBurnInConfigError(f"Invalid JSON format in {json_path}: {e}")

        section = document.get('diskburnin') if isinstance(document, dict) else None
        if not isinstance(section, dict):
            raise DiskBurnInConfigError(f"'diskburnin' section not found in {json_path}")

        try:
            cls.validate_config(section)
        except ValueError as e:
            raise DiskBurnInConfigError(f"Invalid configuration in {json_path}: {e}")

        return cls.merge_config(cls.get_default_config(), section)
