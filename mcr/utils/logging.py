"""Logging setup for mcr.

Everything under the `mcr.` logger namespace goes to a single log file.
INFO lines are kept short; other levels carry the logger name and line.
Sessions log through an adapter that tags each line with the session id.
"""

import logging
from pathlib import Path
from typing import Any, MutableMapping, Tuple
from absl import logging as absl_logging

# Client libraries that are chatty at INFO
_NOISY_LOGGERS = ("google_genai", "httpx", "httpcore", "urllib3")


class CustomFormatter(logging.Formatter):
    """Short INFO lines, detailed lines for every other level."""

    def __init__(self):
        super().__init__()
        self.detailed_formatter = logging.Formatter(
            '%(asctime)s [%(name)s:%(lineno)d] %(levelname)s: %(message)s', datefmt='%H:%M:%S'
        )
        self.info_formatter = logging.Formatter('%(asctime)s %(message)s', datefmt='%H:%M:%S')

    def format(self, record):
        if record.levelno == logging.INFO:
            return self.info_formatter.format(record)
        return self.detailed_formatter.format(record)


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Prefixes messages with the session they belong to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['session_id']}] {msg}", kwargs


def configure_logging(development: bool = True, log_file: Path = Path("mcr.log"), append: bool = False) -> None:
    """Send mcr logs to a file.

    Args:
        development: Log DEBUG from mcr loggers; INFO otherwise
        log_file: Target file, truncated first unless append is set
        append: Keep the previous contents of log_file
    """
    log_file = Path(log_file)
    if log_file.exists() and not append:
        log_file.unlink()

    # absl would otherwise print to stderr before flags are parsed
    absl_logging.set_stderrthreshold('FATAL')
    absl_logging.use_absl_handler()

    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(CustomFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)

    app_logger = logging.getLogger('mcr')
    app_logger.setLevel(logging.DEBUG if development else logging.INFO)
    app_logger.propagate = False
    app_logger.handlers.clear()
    app_logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    warnings_logger = logging.getLogger('py.warnings')
    warnings_logger.handlers.clear()
    warnings_logger.addHandler(file_handler)

    app_logger.info("=" * 80)
    app_logger.info(f"mcr logging started ({'development' if development else 'production'})")
    app_logger.info("=" * 80)


def get_logger(name: str) -> logging.Logger:
    """Logger in the mcr namespace; `__main__` maps to `mcr.main`."""
    if name == '__main__':
        return logging.getLogger('mcr.main')
    if name != 'mcr' and not name.startswith('mcr.'):
        name = f'mcr.{name}'
    return logging.getLogger(name)


def get_session_logger(name: str, session_id: str) -> SessionLoggerAdapter:
    return SessionLoggerAdapter(get_logger(name), {"session_id": session_id})
