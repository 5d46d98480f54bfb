"""
Logging setup for the disk burn-in kit.

All modules log through the root logger, which writes to:
- <log dir>/burnin.log   INFO and above, appended across runs
- <log dir>/burnin.err   ERROR and above
- stdout                 INFO and above

The log directory is DISKBURNIN_LOG_DIR, or ./log when unset.

Usage:
    from burnin_kit.logger import get_module_logger
    logger = get_module_logger(__name__)
    logger.info("Validating /dev/sdb")

Phase banners for long runs:
    from burnin_kit.logger import LogSection, LogStep
    LogSection("Disk Burn-in Test Started")
    LogStep(1, "Preflight checks")
"""

import os
import logging
import sys
from typing import Dict, Optional
from pathlib import Path

LOG_DIR_ENV = 'DISKBURNIN_LOG_DIR'
DEFAULT_LOG_DIR = './log'

LOG_FILE_NAME = 'burnin.log'
ERR_FILE_NAME = 'burnin.err'

LOG_FORMAT = '[%(levelname)s %(asctime)s] [%(name)s] %(message)s'
BANNER_WIDTH = 60


def get_log_dir() -> Path:
    """
    Resolve the log directory and make sure it exists.

    Read on every call so a changed DISKBURNIN_LOG_DIR takes effect.
    """
    log_dir = Path(os.environ.get(LOG_DIR_ENV, DEFAULT_LOG_DIR))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


class Logger:
    """
    Owner of the burn-in logging configuration.

    ``init_logging`` may be called any number of times: handlers are added
    once, and the two burn-in files follow the log directory when it
    changes between calls.

    Example:
        >>> Logger.init_logging()
        >>> logger = Logger.get_logger('burnin_kit.testtool.diskburnin.validator')
        >>> logger.warning("Device /dev/sdc rejected: already-mounted")
    """

    _initialized = False
    _loggers: Dict[str, logging.Logger] = {}

    @classmethod
    def get_logger(cls, name: str = 'main') -> logging.Logger:
        """
        Return the named logger, configuring logging on first use.

        Args:
            name: Logger name, normally the caller's __name__
        """
        if not cls._initialized:
            cls.init_logging()
        return cls._loggers.setdefault(name, logging.getLogger(name))

    @classmethod
    def init_logging(cls, log_dir: Optional[Path] = None) -> None:
        """
        Attach the burn-in handlers to the root logger.

        Args:
            log_dir: Directory for burnin.log/burnin.err (default: get_log_dir())
        """
        log_dir = Path(log_dir) if log_dir is not None else get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)

        root = logging.getLogger()
        formatter = logging.Formatter(LOG_FORMAT)

        cls._drop_stale_file_handlers(root, log_dir.resolve())
        cls._ensure_file_handler(root, log_dir / LOG_FILE_NAME, logging.INFO, formatter)
        cls._ensure_file_handler(root, log_dir / ERR_FILE_NAME, logging.ERROR, formatter)

        if not any(cls._is_console_handler(h) for h in root.handlers):
            console = logging.StreamHandler(sys.stdout)
            console.setLevel(logging.INFO)
            console.setFormatter(formatter)
            root.addHandler(console)

        # Handlers filter by level; the root passes DEBUG through for them
        root.setLevel(logging.DEBUG)
        cls._initialized = True

    @staticmethod
    def _is_console_handler(handler: logging.Handler) -> bool:
        return isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler)

    @staticmethod
    def _burnin_file_handlers(root: logging.Logger):
        return [
            h for h in root.handlers
            if isinstance(h, logging.FileHandler)
            and Path(h.baseFilename).name in (LOG_FILE_NAME, ERR_FILE_NAME)
        ]

    @classmethod
    def _drop_stale_file_handlers(cls, root: logging.Logger, log_dir: Path) -> None:
        for handler in cls._burnin_file_handlers(root):
            if Path(handler.baseFilename).resolve().parent != log_dir:
                handler.close()
                root.removeHandler(handler)

    @classmethod
    def _ensure_file_handler(
        cls,
        root: logging.Logger,
        path: Path,
        level: int,
        formatter: logging.Formatter
    ) -> None:
        if any(Path(h.baseFilename).name == path.name for h in cls._burnin_file_handlers(root)):
            return
        handler = logging.FileHandler(str(path), mode='a', encoding='utf-8')
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    @classmethod
    def reset(cls) -> None:
        """Close and detach the burn-in file handlers; the next logger call reconfigures."""
        root = logging.getLogger()
        for handler in cls._burnin_file_handlers(root):
            handler.close()
            root.removeHandler(handler)
        cls._initialized = False


def get_module_logger(module_name: str = 'main') -> logging.Logger:
    """
    Module-level entry point.

    Example:
        >>> logger = get_module_logger(__name__)
        >>> logger.info("Starting burn-in...")
    """
    return Logger.get_logger(module_name)


def LogSection(title, width=BANNER_WIDTH):
    """Log a framed section title, e.g. at the start and end of a run."""
    logger = Logger.get_logger('main')
    rule = "=" * width
    logger.info("")
    for line in (rule, f"  {title}", rule):
        logger.info(line)
    logger.info("")


def LogStep(step_number, description, width=BANNER_WIDTH):
    """
    Log a numbered run step.

    Example:
        >>> LogStep(2, "Drive selection")
    """
    logger = Logger.get_logger('main')
    rule = "-" * width
    logger.info(rule)
    logger.info(f"[STEP {step_number}] {description}")
    logger.info(rule)
