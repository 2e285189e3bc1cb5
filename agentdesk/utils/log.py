import logging
from os import getenv
from typing import Any

from rich.logging import RichHandler
from rich.text import Text

LOGGER_NAME = "agentdesk"

# Level -> rich style for the message text
LOG_STYLES = {
    logging.DEBUG: "green",
    logging.INFO: "blue",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
}


class ColoredRichHandler(RichHandler):
    def render_message(self, record: logging.LogRecord, message: str) -> Text:
        style = LOG_STYLES.get(record.levelno)
        if style:
            return Text(message, style=style)
        return super().render_message(record, message)


def build_logger(logger_name: str) -> logging.Logger:
    _logger = logging.getLogger(logger_name)
    # Reuse the configured logger on re-import
    if _logger.handlers:
        return _logger

    rich_handler = ColoredRichHandler(
        show_time=False,
        rich_tracebacks=False,
        show_path=getenv("AGENTDESK_RUNTIME") == "dev",
        tracebacks_show_locals=False,
    )
    rich_handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%X]"))

    _logger.addHandler(rich_handler)
    _logger.setLevel(logging.INFO)
    _logger.propagate = False
    return _logger


logger: logging.Logger = build_logger(LOGGER_NAME)

debug_on: bool = False


def set_log_level_to_debug() -> None:
    global debug_on
    logger.setLevel(logging.DEBUG)
    debug_on = True


def set_log_level_to_info() -> None:
    global debug_on
    logger.setLevel(logging.INFO)
    debug_on = False


def set_logging_enabled(enabled: bool) -> None:
    """Turn all library logging on or off (the user-facing "log enabled" setting)."""
    logger.disabled = not enabled


def log_debug(msg: str, *args: Any, **kwargs: Any) -> None:
    if debug_on:
        logger.debug(msg, *args, **kwargs)


def log_info(msg: str, *args: Any, **kwargs: Any) -> None:
    logger.info(msg, *args, **kwargs)


def log_warning(msg: str, *args: Any, **kwargs: Any) -> None:
    logger.warning(msg, *args, **kwargs)


def log_error(msg: str, *args: Any, **kwargs: Any) -> None:
    logger.error(msg, *args, **kwargs)


if getenv("AGENTDESK_DEBUG", "false").lower() == "true":
    set_log_level_to_debug()
