"""
Logging configuration: colours on the console, plain text in the log file.
"""

import logging
import re


# Custom formatter to strip ANSI color codes from file logs
class ColorStripFormatter(logging.Formatter):
    """Formatter that strips ANSI color codes from log messages."""
    ansi_escape = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')

    def format(self, record):
        message = super().format(record)
        return self.ansi_escape.sub('', message)


def _handlers(settings, log_to_file: bool):
    handlers = []
    if log_to_file:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file, encoding='utf-8')
        file_handler.setFormatter(ColorStripFormatter(settings.log_format))
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(settings.log_format))
    handlers.append(console_handler)
    return handlers


def configure_logging(settings, log_to_file: bool = True):
    """
    Configure root and scraper loggers from settings.

    Site adapters log under `scraper.<short_name>`; that logger gets its own
    handlers and does not propagate, so each line appears once.
    """
    level = getattr(logging, settings.log_level.upper())

    logging.basicConfig(
        level=level,
        handlers=_handlers(settings, log_to_file),
        force=True  # Override any existing configuration
    )

    scraper_logger = logging.getLogger('scraper')
    scraper_logger.propagate = False
    # Only add handlers if not already present (prevents duplicates on reload)
    if not scraper_logger.handlers:
        for handler in _handlers(settings, log_to_file):
            scraper_logger.addHandler(handler)
    scraper_logger.setLevel(level)

    # httpx logs every request URL, which carries the fetch service key
    logging.getLogger('httpx').setLevel(logging.WARNING)
