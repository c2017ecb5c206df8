import logging
import sys

LOGGER_NAME = "manga_typesetter"

_logger = logging.getLogger(LOGGER_NAME)


def _ensure_handler() -> None:
    if _logger.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(message)s", "%H:%M:%S"))
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)


def log_message(message: str, verbose: bool = False, always_print: bool = False) -> None:
    """
    Logs a message when verbose logging is enabled or the message is important.

    Args:
        message (str): Message to log
        verbose (bool): Whether verbose logging is enabled for the caller
        always_print (bool): Log regardless of the verbose flag (errors, fallbacks)
    """
    if not (verbose or always_print):
        return
    _ensure_handler()
    _logger.info(message)
