"""
Logging for the securevault package.

Only the ``securevault`` logger is configured here. Handlers installed on
the root logger by the host (uvicorn, pytest, an embedding app) are left in
place; a console handler is added to root only when nothing else is there.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = "securevault"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# marks the file handler we own so a restart swaps it instead of stacking
_OWNED_FLAG = "_securevault_file_handler"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _drop_owned_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _OWNED_FLAG, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(level: Union[int, str] = logging.INFO, log_dir: Union[Path, str, None] = None) -> Optional[Path]:
    """Set the package log level and, optionally, a per-run log file.

    Returns the log file path when ``log_dir`` is given.
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(_resolve_level(level))
    _drop_owned_handlers(package_logger)

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    if log_dir is None:
        return None

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    started = datetime.now(tz=timezone.utc)
    file_path = directory / f"securevault-{started:%Y%m%d-%H%M%S}.log"
    file_handler = logging.FileHandler(file_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    setattr(file_handler, _OWNED_FLAG, True)
    package_logger.addHandler(file_handler)
    return file_path
