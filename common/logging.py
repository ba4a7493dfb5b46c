"""
Logging setup for the project dashboard

Provides a manager that configures the application logger with consistent
formatting for console and file output. Library modules never configure
handlers themselves; they ask for a child logger (``projectdash.<module>``)
and let it propagate to whatever the entry point configured.
"""

import logging
import os
import sys
from datetime import datetime
from typing import Optional, Union

APP_LOGGER_NAME = "projectdash"


class LoggingManager:
    """
    Configures one named logger and hands out children of it.
    """

    DEFAULT_LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)8s | %(message)s"
    DEFAULT_LOG_LEVEL = logging.INFO

    def __init__(self,
                 logger_name: str = APP_LOGGER_NAME,
                 log_level: Union[int, str] = DEFAULT_LOG_LEVEL,
                 log_format: str = DEFAULT_LOG_FORMAT,
                 log_file: Optional[str] = None,
                 console_output: bool = True,
                 propagate: bool = False):
        """
        Configures the logger called ``logger_name``.

        Args:
            logger_name (str): Logger to configure, usually the application root.
            log_level (Union[int, str], optional): Level name or number.
            log_format (str, optional): Format string for every handler.
            log_file (Optional[str], optional): Append log records to this file.
            console_output (bool, optional): Also write to stdout.
            propagate (bool, optional): Pass records on to ancestor loggers.
        """
        self.logger_name = logger_name
        self.log_level = log_level.upper() if isinstance(log_level, str) else log_level
        self.log_format_str = log_format
        self.log_file = log_file
        self.console_output = console_output
        self.propagate = propagate

        self._configured_logger = logging.getLogger(self.logger_name)
        self._configured_logger.setLevel(self.log_level)
        self._configured_logger.propagate = self.propagate

        # Reconfiguring the same logger must not stack handlers.
        if self._configured_logger.hasHandlers():
            self._configured_logger.handlers.clear()

        self._formatter = logging.Formatter(self.log_format_str)
        self._configure_handlers()

    @classmethod
    def for_run(cls, log_dir: str, prefix: str = APP_LOGGER_NAME,
                log_level: Union[int, str] = DEFAULT_LOG_LEVEL,
                console_output: bool = True) -> "LoggingManager":
        """Configure the application logger with a timestamped file in ``log_dir``."""
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = os.path.join(log_dir, f"{prefix}_{timestamp}.log")
        return cls(logger_name=APP_LOGGER_NAME, log_level=log_level,
                   log_file=log_file, console_output=console_output)

    def _configure_handlers(self) -> None:
        if self.console_output:
            console_handler = logging.StreamHandler(stream=sys.stdout)
            console_handler.setFormatter(self._formatter)
            self._configured_logger.addHandler(console_handler)

        if self.log_file:
            try:
                file_handler = logging.FileHandler(self.log_file, mode='a')
            except OSError as e:
                # Console logging still works; a broken log dir must not stop a scan.
                print(f"Warning: logger '{self.logger_name}' cannot write to {self.log_file}: {e}",
                      file=sys.stderr)
            else:
                file_handler.setFormatter(self._formatter)
                self._configured_logger.addHandler(file_handler)

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        """
        Retrieves a logger by name.

        Children of the application logger (``projectdash.scanner`` and so on)
        propagate to the handlers installed by the configured manager.

        Args:
            name (str): Dotted logger name.

        Returns:
            logging.Logger: The logger instance.
        """
        return logging.getLogger(name)
