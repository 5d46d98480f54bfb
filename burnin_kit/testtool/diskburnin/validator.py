"""
Drive Eligibility Validator

Applies the burn-in safety policy to device facts and decides which drives
may be destructively tested.
"""

from typing import List, Optional, Sequence, Tuple

from .device_facts import DeviceFactProvider
from .exceptions import DriveNotFoundError, DriveUnsafeError
from .models import IneligibleReason, ValidationResult
from burnin_kit.logger import get_module_logger

logger = get_module_logger(__name__)

# lsblk reports these as type "disk" but they are not physical drives
VIRTUAL_DEVICE_PREFIXES = ('loop', 'ram', 'zram')


class DriveValidator:
    """
    Safety gate in front of destructive testing.

    Decision order, first match wins:

    1. device missing             -> missing-block-device
    2. device mounted             -> already-mounted (force never overrides)
    3. device held open           -> currently-busy
    4. partitions or filesystem   -> has-partitions-or-filesystem-without-force
       (skipped when force=True)
    5. otherwise eligible

    A fact reported unavailable counts as "not detected". SMART support is
    recorded on eligible results for information only.

    Example:
        >>> validator = DriveValidator(LinuxDeviceFactProvider())
        >>> result = validator.validate('/dev/sdb')
        >>> result.eligible
        True
    """

    def __init__(self, provider: DeviceFactProvider):
        self.provider = provider

    def validate(self, drive: str, force: bool = False) -> ValidationResult:
        """
        Decide whether a drive may be tested.

        Args:
            drive: Device path
            force: Allow drives that carry partitions or a filesystem

        Returns:
            ValidationResult: The decision; never raises for unsafe drives
        """
        logger.info(f"Validating {drive} for burn-in testing (force={force})")
        try:
            result = self._decide(drive, force)
        except DriveNotFoundError:
            result = ValidationResult.reject(drive, IneligibleReason.MISSING_BLOCK_DEVICE)

        self._emit(result)
        return result

    def _decide(self, drive: str, force: bool) -> ValidationResult:
        if not self.provider.exists(drive):
            return ValidationResult.reject(drive, IneligibleReason.MISSING_BLOCK_DEVICE)

        if self._detected(drive, 'mount state', self.provider.is_mounted(drive)):
            return ValidationResult.reject(drive, IneligibleReason.ALREADY_MOUNTED)

        if self._detected(drive, 'busy state', self.provider.is_busy(drive)):
            return ValidationResult.reject(drive, IneligibleReason.CURRENTLY_BUSY)

        if not force:
            partitioned = self._detected(drive, 'partitions', self.provider.has_partitions(drive))
            formatted = self._detected(drive, 'filesystem', self.provider.has_filesystem(drive))
            if partitioned or formatted:
                return ValidationResult.reject(drive, IneligibleReason.HAS_PARTITIONS_OR_FILESYSTEM)

        return ValidationResult.accept(drive, smart_available=self.provider.supports_smart(drive))

    @staticmethod
    def _detected(drive: str, fact: str, value: Optional[bool]) -> bool:
        if value is None:
            logger.warning(f"Could not determine {fact} of {drive}, treating as not detected")
            return False
        return value

    @staticmethod
    def _emit(result: ValidationResult) -> None:
        if result.eligible:
            if result.smart_available is False:
                logger.warning(f"SMART not available for {result.drive}")
            logger.info(f"Device {result.drive} validated for testing")
        else:
            logger.warning(f"Device {result.drive} rejected: {result.reason.value}")

    def require_eligible(self, drive: str, force: bool = False) -> ValidationResult:
        """
        Validate and raise if the drive may not be tested.

        Raises:
            DriveUnsafeError: If the drive is ineligible for any reason
        """
        result = self.validate(drive, force=force)
        if not result.eligible:
            raise DriveUnsafeError(result)
        return result

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover_drives(self) -> List[str]:
        """
        Enumerate whole-disk block devices.

        Partitions, loop devices and RAM disks are excluded.

        Returns:
            List[str]: Sorted device paths
        """
        drives = []
        for path, dev_type in self.provider.list_block_devices():
            name = path.rsplit('/', 1)[-1]
            if dev_type != 'disk' or name.startswith(VIRTUAL_DEVICE_PREFIXES):
                continue
            drives.append(path)

        drives.sort()
        if drives:
            logger.info(f"Discovered {len(drives)} drive(s): {' '.join(drives)}")
        else:
            logger.warning("No block devices found")
        return drives

    def filter_eligible(
        self,
        drives: Sequence[str],
        force: bool = False
    ) -> Tuple[List[str], List[ValidationResult]]:
        """
        Validate every drive independently.

        Returns:
            Tuple[List[str], List[ValidationResult]]: Eligible drives and all results
        """
        results = [self.validate(drive, force=force) for drive in drives]
        eligible = [result.drive for result in results if result.eligible]
        logger.info(f"{len(eligible)} of {len(results)} drive(s) eligible for testing")
        return eligible, results

    def find_unformatted_drives(self) -> List[str]:
        """Discovered drives that pass validation without force."""
        eligible, _ = self.filter_eligible(self.discover_drives(), force=False)
        return eligible
