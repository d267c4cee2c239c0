# Logging_Config.py
# Description: Configuration for logging
#
# Imports
import logging
import logging.handlers
import sys
from typing import Optional
#
# 3rd-Party Imports
from loguru import logger as loguru_logger
from rich.logging import RichHandler
#
# Local Imports
from thinktank_client.config import get_setting, get_int_setting, get_log_file_path
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s:%(lineno)d - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LOGURU_TO_STD_LEVELS = {
    "TRACE": logging.DEBUG, "DEBUG": logging.DEBUG, "INFO": logging.INFO,
    "SUCCESS": logging.INFO, "WARNING": logging.WARNING, "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_loguru_sink_id: Optional[int] = None


def _level_from_name(level_name: Optional[str], fallback: int) -> int:
    if not level_name:
        return fallback
    level = getattr(logging, str(level_name).upper(), None)
    return level if isinstance(level, int) else fallback


def sink_to_standard_logging(message) -> None:
    """Forward a loguru record to the stdlib logger of the same name."""
    record = message.record
    std_level = _LOGURU_TO_STD_LEVELS.get(record["level"].name, logging.INFO)
    std_logger = logging.getLogger(record["name"])
    if record["exception"]:
        std_logger.log(std_level, record["message"], exc_info=record["exception"])
    else:
        std_logger.log(std_level, record["message"])


def configure_application_logging(console: bool = True, log_to_file: bool = True) -> None:
    """
    Sets up all logging handlers, including the Loguru integration.

    Loguru's default stderr sink is replaced by a sink that feeds the standard logging
    tree, so both loguru and stdlib loggers end up on the same handlers:
    a RichHandler on the console and a RotatingFileHandler in the data directory.
    Calling this again replaces the handlers instead of stacking them.
    """
    global _loguru_sink_id

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # --- Loguru ---
    try:
        loguru_logger.remove()
        _loguru_sink_id = loguru_logger.add(sink_to_standard_logging, level="TRACE", format="{message}")
    except ValueError as e:
        print(f"ERROR: Loguru reconfiguration failed: {e}", file=sys.stderr)

    # --- Standard logging root ---
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_level = _level_from_name(get_setting("general", "log_level", "INFO"), logging.INFO)
    handler_levels = []

    if console:
        console_handler = RichHandler(rich_tracebacks=True, show_path=False, log_time_format=LOG_DATE_FORMAT)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
        root_logger.addHandler(console_handler)
        handler_levels.append(console_level)

    if log_to_file:
        try:
            log_file_path = get_log_file_path()
            max_bytes = get_int_setting("logging", "log_max_bytes", 10485760)
            backup_count = get_int_setting("logging", "log_backup_count", 5)
            file_log_level = _level_from_name(get_setting("logging", "file_log_level", "INFO"), logging.INFO)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
            file_handler.setLevel(file_log_level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
            root_logger.addHandler(file_handler)
            handler_levels.append(file_log_level)
            logging.info(f"Standard Logging: Added RotatingFileHandler (File: '{log_file_path}', "
                         f"Level: {logging.getLevelName(file_log_level)}).")
        except OSError as e:
            logging.warning(f"!!! ERROR setting up file logging: {e}")

    # Root level follows the most verbose handler
    root_logger.setLevel(min(handler_levels) if handler_levels else console_level)
    logging.info(f"Logging setup complete. Root logger level is: {logging.getLevelName(root_logger.level)}")

#
# End of Logging_Config.py
########################################################################################################################
