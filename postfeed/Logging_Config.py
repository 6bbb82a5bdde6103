# Logging_Config.py
# Description: Configuration for logging
#
# Imports
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Optional
#
# 3rd-Party Imports
from loguru import logger as loguru_logger
#
# Local Imports
from .config import get_cli_log_file_path, get_cli_setting
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s:%(lineno)d - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LOGURU_LEVEL_MAPPING = {
    "TRACE": logging.DEBUG, "DEBUG": logging.DEBUG, "INFO": logging.INFO,
    "SUCCESS": logging.INFO, "WARNING": logging.WARNING, "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def sink_to_standard_logging(message) -> None:
    """Loguru sink that re-emits each record through the stdlib logger of the same name."""
    record = message.record
    std_level = _LOGURU_LEVEL_MAPPING.get(record["level"].name, logging.INFO)
    std_logger = logging.getLogger(record["name"])
    if record["exception"]:
        std_logger.log(std_level, record["message"], exc_info=record["exception"])
    else:
        std_logger.log(std_level, record["message"])


def configure_application_logging(app_config: Dict[str, Any], log_file_path: Optional[Path] = None,
                                  enable_file_logging: bool = True) -> None:
    """
    Sets up all logging handlers, including Loguru integration.

    Loguru messages (config, CLI) are forwarded into stdlib logging so every
    module ends up in the same console and rotating file handlers. Safe to call
    more than once; root handlers are rebuilt each time.
    """
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # --- Loguru -> standard logging ---
    loguru_logger.remove()
    loguru_logger.add(sink_to_standard_logging, level="TRACE",
                      format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}")

    # --- Root logger ---
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        try:
            handler.close()
        except OSError:
            pass

    console_level_str = str(app_config.get("general", {}).get("log_level", "INFO")).upper()
    console_level = getattr(logging, console_level_str, logging.INFO)
    root_logger.setLevel(console_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # --- File logging ---
    if enable_file_logging:
        try:
            file_path = log_file_path or get_cli_log_file_path()
            file_path.parent.mkdir(parents=True, exist_ok=True)
            max_bytes = int(get_cli_setting("logging", "log_max_bytes", 10485760))
            backup_count = int(get_cli_setting("logging", "log_backup_count", 5))
            file_level_str = str(get_cli_setting("logging", "file_log_level", "INFO")).upper()
            file_level = getattr(logging, file_level_str, logging.INFO)

            file_handler = logging.handlers.RotatingFileHandler(
                file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
            file_handler.setLevel(file_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            # Root must pass through whatever the most verbose handler wants
            if root_logger.level > file_level:
                root_logger.setLevel(file_level)
            logging.info(f"Logging to file '{file_path}' (level {logging.getLevelName(file_level)}).")
        except (OSError, ValueError) as e:
            logging.warning(f"Could not set up file logging: {e}")

    logging.debug(f"Logging configured; root level {logging.getLevelName(root_logger.level)}.")

#
# End of Logging_Config.py
########################################################################################################################
