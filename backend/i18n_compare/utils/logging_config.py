import logging
from logging.handlers import RotatingFileHandler
import os
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_FILENAME = "i18n_compare.log"

# chatty per-request loggers of the provider HTTP client
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Send everything through the root logger to a rotating file and stderr.
    LOG_LEVEL / LOG_DIR fill in whatever is not passed. Safe to call again
    on reload: previous root handlers are closed and replaced.
    Returns the log file path.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root_level = getattr(logging, level_name, logging.INFO)

    directory = Path(log_dir or os.getenv("LOG_DIR", "backend/logs"))
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / LOG_FILENAME

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(root_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    file_handler = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
    console = logging.StreamHandler()
    for handler in (file_handler, console):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    # uvicorn configures its own loggers; keep them at INFO even when the app runs at DEBUG
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.INFO)

    return log_file
