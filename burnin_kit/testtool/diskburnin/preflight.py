"""
Preflight Checks

Host checks run before a burn-in: required tools, privileges, log space,
system load and memory. Also logs a summary of the host.
"""

import os
import platform
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

import psutil

from .exceptions import DiskBurnInPreflightError
from burnin_kit.logger import get_module_logger

logger = get_module_logger(__name__)

# Only what this package runs; hdparm and sync are never invoked
REQUIRED_TOOLS = (
    'smartctl',     # SMART monitoring and temperature
    'badblocks',    # Bad block scanning
    'lsblk',        # Block device listing
    'lsof',         # Open device holders
)

OPTIONAL_TOOLS = (
    'nvme',         # NVMe specific tools
    'sg_inq',       # SCSI inquiry (sg3-utils)
)


def check_required_tools(
    required: Sequence[str] = REQUIRED_TOOLS,
    optional: Sequence[str] = OPTIONAL_TOOLS
) -> Tuple[List[str], List[str]]:
    """
    Look up the command line tools on PATH.

    Returns:
        Tuple[List[str], List[str]]: Missing required tools, missing optional tools
    """
    missing_required = [tool for tool in required if shutil.which(tool) is None]
    missing_optional = [tool for tool in optional if shutil.which(tool) is None]

    for tool in missing_required:
        logger.error(f"Missing required tool: {tool}")
    for tool in missing_optional:
        logger.warning(f"Missing optional tool: {tool} (some features may not be available)")

    return missing_required, missing_optional


def check_root_privileges() -> bool:
    """True when running as root (raw device access needs it)."""
    if os.geteuid() != 0:
        logger.error("Disk operations require root privileges")
        return False
    return True


def check_log_space(log_dir: str, min_space_mb: int = 100) -> bool:
    """
    Check free space on the filesystem holding the log directory.

    Args:
        log_dir: Log directory, created if missing
        min_space_mb: Minimum free space in MB

    Returns:
        bool: True if enough space is available
    """
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)

    available_mb = psutil.disk_usage(str(path)).free // (1024 * 1024)
    if available_mb < min_space_mb:
        logger.warning(
            f"Low disk space for logs. Available: {available_mb}MB, Recommended: {min_space_mb}MB"
        )
        return False

    logger.info(f"Sufficient log space available: {available_mb}MB")
    return True


def check_system_resources(max_load: float = 4.0, min_memory_gb: float = 1) -> bool:
    """
    Check the 1-minute load average and the available memory.

    A busy or memory-starved host skews burn-in timing, but never blocks it.

    Args:
        max_load: Highest acceptable 1-minute load average
        min_memory_gb: Lowest acceptable available memory in GB

    Returns:
        bool: True if both are within limits
    """
    acceptable = True

    load_avg = psutil.getloadavg()[0]
    if load_avg > max_load:
        logger.warning(f"High system load: {load_avg:.2f} (threshold: {max_load})")
        acceptable = False
    else:
        logger.info(f"System load acceptable: {load_avg:.2f}")

    available_gb = psutil.virtual_memory().available / (1024 ** 3)
    if available_gb < min_memory_gb:
        logger.warning(f"Low available memory: {available_gb:.1f}GB (minimum: {min_memory_gb}GB)")
        acceptable = False
    else:
        logger.info(f"Available memory sufficient: {available_gb:.1f}GB")

    return acceptable


def _cpu_model() -> str:
    try:
        with open('/proc/cpuinfo', 'r', encoding='utf-8') as f:
            for line in f:
                if line.startswith('model name'):
                    return line.split(':', 1)[1].strip()
    except OSError as e:
        logger.debug(f"/proc/cpuinfo unavailable: {e}")
    return platform.processor() or 'unknown'


def get_system_info() -> Dict[str, Any]:
    """
    Collect and log a summary of the host for the run log.

    Returns:
        Dict[str, Any]: hostname, os, architecture, cpu, cpu_count,
        memory_total_gb, date and uptime
    """
    uname = platform.uname()
    info = {
        'hostname': uname.node,
        'os': f"{uname.system} {uname.release}",
        'architecture': uname.machine,
        'cpu': _cpu_model(),
        'cpu_count': psutil.cpu_count(),
        'memory_total_gb': round(psutil.virtual_memory().total / (1024 ** 3), 1),
        'date': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
        'uptime': seconds_to_human(time.time() - psutil.boot_time()),
    }

    logger.info("=== System Information ===")
    for key, value in info.items():
        logger.info(f"{key}: {value}")
    return info


def run_preflight(
    log_dir: str = './log',
    min_space_mb: int = 100,
    max_load: float = 4.0,
    min_memory_gb: float = 1
) -> None:
    """
    Run all host checks.

    Low log space, high load and low memory only warn; missing tools or
    privileges abort.

    Raises:
        DiskBurnInPreflightError: If a required tool is missing or not running as root
    """
    missing_required, _ = check_required_tools()
    if missing_required:
        raise DiskBurnInPreflightError(
            f"Missing required tools: {', '.join(missing_required)}"
        )

    if not check_root_privileges():
        raise DiskBurnInPreflightError("Burn-in testing must be run as root")

    check_log_space(log_dir, min_space_mb)
    check_system_resources(max_load, min_memory_gb)
    get_system_info()
    logger.info("Preflight checks completed successfully")


def seconds_to_human(seconds: int) -> str:
    """
    Format a duration.

    Example:
        >>> seconds_to_human(93784)
        '1d 2h 3m 4s'
        >>> seconds_to_human(59)
        '59s'
    """
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    if days:
        return f"{days}d {hours}h {minutes}m {seconds}s"
    if hours:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def device_short_name(drive: str) -> str:
    """``/dev/sdb`` -> ``sdb``"""
    return os.path.basename(drive)
