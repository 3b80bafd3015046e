# repochat/services/logging.py
import sys
from loguru import logger

from ..config.paths import get_user_log_dir

def setup_logging(level="INFO", verbose=False, log_to_file=True):
    """Routes loguru output to stderr and, unless disabled, a daily log file."""
    log_level = "DEBUG" if verbose else level

    logger.remove()

    # Console goes to stderr; stdout is reserved for streamed answers
    fmt_console = "<level>{level: <8}</level> | <cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
    logger.add(
        sys.stderr,
        level=log_level,
        format=fmt_console,
        colorize=True,
    )

    if not log_to_file:
        logger.debug(f"Logging initialized. Level: {log_level}. File logging disabled.")
        return

    fmt_file = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {process} | {name}:{function}:{line} - {message}"
    log_file_str = ""
    try:
        log_file_str = str(get_user_log_dir() / "repochat_{time:YYYY-MM-DD}.log")
        logger.add(
            log_file_str,
            level="DEBUG", # Log more details to file
            format=fmt_file,
            rotation="1 day",
            retention="7 days",
            compression="zip",
            enqueue=True,
            encoding="utf-8"
        )
        logger.debug(f"Logging initialized. Level: {log_level}. Log file: {log_file_str}")
    except Exception as e:
        # File logging is optional (e.g. read-only home directory)
        logger.error(f"Could not configure file logging to {log_file_str}: {e}")
        logger.warning("Continuing with stderr logging only.")
