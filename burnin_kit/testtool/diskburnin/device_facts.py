"""
Device Fact Provider

Read-only queries against the operating system and drive firmware.

Every per-drive query raises DriveNotFoundError when the device node does
not exist. Otherwise each fact is obtained independently: a failed or
timed-out query yields ``None`` ("unavailable") and never prevents the
other facts from being read. Nothing is retried here.
"""

import json
import os
import re
import stat
import subprocess
from typing import Callable, List, Optional, Tuple

import psutil

from .exceptions import DriveNotFoundError, FactUnavailableError
from .models import DriveFacts, DriveInfo
from burnin_kit.logger import get_module_logger

logger = get_module_logger(__name__)

# smartctl exit status bits 0 and 1: command line error / device open failed
SMARTCTL_FATAL_BITS = 0b11

_NVME_TEMPERATURE_RE = re.compile(r'temperature[^:]*:\s*(\d+)', re.IGNORECASE)
_PARTITION_SUFFIX_RE = re.compile(r'^p?\d+$')


def parse_smart_temperature(output: str) -> Optional[int]:
    """
    Extract the current temperature from ``smartctl -A`` output.

    The first line mentioning "temperature" is used. ATA attribute table
    rows carry the reading in the RAW_VALUE column (10th field); NVMe and
    SCSI print ``Temperature: 35 Celsius``.

    Returns:
        Optional[int]: Degrees Celsius, None if no numeric reading was found

    Example:
        >>> parse_smart_temperature(
        ...     "194 Temperature_Celsius 0x0022 036 045 000 Old_age Always - 36")
        36
        >>> parse_smart_temperature("Temperature:                        41 Celsius")
        41
    """
    for line in output.splitlines():
        if 'temperature' not in line.lower():
            continue

        fields = line.split()
        if fields and fields[0].isdigit():
            # ATA attribute row
            if len(fields) >= 10 and fields[9].isdigit():
                return int(fields[9])
            return None

        match = _NVME_TEMPERATURE_RE.search(line)
        if match:
            return int(match.group(1))
        return None

    return None


class DeviceFactProvider:
    """
    Query interface for drive facts.

    Subclasses implement one method per fact. ``get_facts`` assembles a
    DriveFacts snapshot from the individual queries.
    """

    def list_block_devices(self) -> List[Tuple[str, str]]:
        """Return ``(device_path, lsblk_type)`` for every top-level block device."""
        raise NotImplementedError

    def exists(self, drive: str) -> bool:
        raise NotImplementedError

    def has_partitions(self, drive: str) -> Optional[bool]:
        raise NotImplementedError

    def has_filesystem(self, drive: str) -> Optional[bool]:
        raise NotImplementedError

    def is_mounted(self, drive: str) -> Optional[bool]:
        raise NotImplementedError

    def is_busy(self, drive: str) -> Optional[bool]:
        raise NotImplementedError

    def read_temperature(self, drive: str) -> Optional[int]:
        raise NotImplementedError

    def supports_smart(self, drive: str) -> Optional[bool]:
        raise NotImplementedError

    def get_drive_info(self, drive: str) -> DriveInfo:
        if not self.exists(drive):
            raise DriveNotFoundError(drive)
        return DriveInfo(drive=drive)

    def supports_temperature(self, drive: str) -> bool:
        return self.read_temperature(drive) is not None

    def get_facts(self, drive: str) -> DriveFacts:
        """
        Snapshot all facts of a drive.

        Raises:
            DriveNotFoundError: If the device does not exist
        """
        if not self.exists(drive):
            raise DriveNotFoundError(drive)

        return DriveFacts(
            drive=drive,
            has_partitions=self.has_partitions(drive),
            has_filesystem=self.has_filesystem(drive),
            is_mounted=self.is_mounted(drive),
            is_busy=self.is_busy(drive),
            supports_temperature=self.supports_temperature(drive),
            supports_smart=self.supports_smart(drive),
        )


class LinuxDeviceFactProvider(DeviceFactProvider):
    """
    Fact provider backed by lsblk, lsof, smartctl and psutil.

    Example:
        >>> provider = LinuxDeviceFactProvider(query_timeout=10)
        >>> provider.is_mounted('/dev/sdb')
        False
        >>> provider.read_temperature('/dev/sdb')
        34
    """

    def __init__(self, query_timeout: float = 30):
        """
        Args:
            query_timeout: Seconds allowed for each external command
        """
        self.query_timeout = query_timeout

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.query_timeout
            )
        except FileNotFoundError:
            raise FactUnavailableError(f"{cmd[0]} not found")
        except subprocess.TimeoutExpired:
            raise FactUnavailableError(f"{cmd[0]} timed out after {self.query_timeout} seconds")
        except OSError as e:
            raise FactUnavailableError(f"{cmd[0]} failed: {e}")

    def _query(self, drive: str, fact: str, query: Callable):
        if not self.exists(drive):
            raise DriveNotFoundError(drive)
        try:
            return query()
        except FactUnavailableError as e:
            logger.debug(f"{fact} unavailable for {drive}: {e}")
            return None

    def _lsblk(self, columns: str, *args: str) -> list:
        result = self._run(['lsblk', '-J', '-o', columns, *args])
        if result.returncode != 0:
            raise FactUnavailableError(f"lsblk exited with code {result.returncode}")
        try:
            return json.loads(result.stdout).get('blockdevices', [])
        except json.JSONDecodeError as e:
            raise FactUnavailableError(f"lsblk produced invalid JSON: {e}")

    def _device_tree(self, drive: str) -> dict:
        devices = self._lsblk('NAME,TYPE,FSTYPE,MOUNTPOINT', drive)
        if not devices:
            raise FactUnavailableError(f"lsblk returned no entry for {drive}")
        return devices[0]

    @staticmethod
    def _iter_tree(node: dict):
        yield node
        for child in node.get('children') or []:
            yield from LinuxDeviceFactProvider._iter_tree(child)

    @staticmethod
    def _belongs_to(device: str, drive: str) -> bool:
        """True for the drive itself or one of its partitions (sdb1, nvme0n1p2)."""
        if device == drive:
            return True
        return device.startswith(drive) and bool(_PARTITION_SUFFIX_RE.match(device[len(drive):]))

    def _smartctl(self, option: str, drive: str) -> str:
        result = self._run(['smartctl', option, drive])
        if result.returncode & SMARTCTL_FATAL_BITS:
            raise FactUnavailableError(f"smartctl {option} exited with code {result.returncode}")
        return result.stdout

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def list_block_devices(self) -> List[Tuple[str, str]]:
        try:
            devices = self._lsblk('NAME,TYPE', '-d')
        except FactUnavailableError as e:
            logger.warning(f"Block device listing unavailable: {e}")
            return []
        return [(f"/dev/{dev['name']}", dev.get('type') or '') for dev in devices if dev.get('name')]

    # ------------------------------------------------------------------
    # Facts
    # ------------------------------------------------------------------

    def exists(self, drive: str) -> bool:
        try:
            return stat.S_ISBLK(os.stat(drive).st_mode)
        except OSError:
            return False

    def has_partitions(self, drive: str) -> Optional[bool]:
        def query():
            tree = self._device_tree(drive)
            return any(node.get('type') == 'part' for node in self._iter_tree(tree))
        return self._query(drive, 'partitions', query)

    def has_filesystem(self, drive: str) -> Optional[bool]:
        def query():
            return bool(self._device_tree(drive).get('fstype'))
        return self._query(drive, 'filesystem', query)

    def is_mounted(self, drive: str) -> Optional[bool]:
        def query():
            canonical = os.path.realpath(drive)
            answers = []

            try:
                mounted = psutil.disk_partitions(all=True)
                answers.append(any(
                    self._belongs_to(os.path.realpath(part.device), canonical)
                    for part in mounted if part.device.startswith('/dev/')
                ))
            except (OSError, psutil.Error) as e:
                logger.debug(f"psutil mount table unavailable: {e}")

            try:
                tree = self._device_tree(drive)
                answers.append(any(node.get('mountpoint') for node in self._iter_tree(tree)))
            except FactUnavailableError as e:
                logger.debug(f"lsblk mountpoints unavailable: {e}")

            if not answers:
                raise FactUnavailableError("no mount source could be read")
            return any(answers)
        return self._query(drive, 'mount state', query)

    def is_busy(self, drive: str) -> Optional[bool]:
        def query():
            # lsof exits 1 both for "no holders" and for errors; only the listing matters
            result = self._run(['lsof', drive])
            # NAME holds the resolved node, not a /dev/disk/by-* link
            targets = {drive, os.path.realpath(drive)}
            return any(
                line.split()[-1] in targets
                for line in result.stdout.splitlines()[1:] if line.strip()
            )
        return self._query(drive, 'busy state', query)

    def read_temperature(self, drive: str) -> Optional[int]:
        def query():
            return parse_smart_temperature(self._smartctl('-A', drive))
        return self._query(drive, 'temperature', query)

    def supports_smart(self, drive: str) -> Optional[bool]:
        def query():
            try:
                self._smartctl('-i', drive)
            except FactUnavailableError as e:
                if 'exited with code' in str(e):
                    return False
                raise
            return True
        return self._query(drive, 'SMART support', query)

    def get_drive_info(self, drive: str) -> DriveInfo:
        if not self.exists(drive):
            raise DriveNotFoundError(drive)

        size = model = None
        try:
            devices = self._lsblk('NAME,SIZE,MODEL', '-d', drive)
            if devices:
                size = devices[0].get('size')
                model = (devices[0].get('model') or '').strip() or None
        except FactUnavailableError as e:
            logger.debug(f"lsblk identity unavailable for {drive}: {e}")

        fields = {}
        try:
            for line in self._smartctl('-i', drive).splitlines():
                key, sep, value = line.partition(':')
                if sep:
                    fields[key.strip()] = value.strip()
        except FactUnavailableError as e:
            logger.debug(f"smartctl identity unavailable for {drive}: {e}")

        return DriveInfo(
            drive=drive,
            size=size,
            model=model or fields.get('Device Model') or fields.get('Model Number'),
            serial=fields.get('Serial Number'),
            vendor=fields.get('Vendor'),
            family=fields.get('Product Family') or fields.get('Model Family'),
        )
