"""
Centralized logging configuration for configuration loading.
Singleton pattern for consistent logging across the package.
"""

import logging
import os

app_logger = logging.getLogger("opconfig")


def apply_log_level():
    """Set the package log level from OP_CONFIG_LOG_LEVEL (default INFO)."""
    app_logger.setLevel(os.getenv("OP_CONFIG_LOG_LEVEL", "INFO").upper())


apply_log_level()

if not app_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    app_logger.addHandler(handler)


class ConfigLogger:
    """
    Singleton logger for the configuration loader.
    Every message is tagged with the component that produced it.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._logger = app_logger
        self._initialized = True

    @classmethod
    def get_instance(cls):
        """Returns the logger singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _log(self, level: int, message: str, source=None):
        """Internal logging method."""
        self._logger.log(level, f"[{source or 'CONFIG'}] {message}")

    def log_debug(self, message, source=None):
        """Log debug message."""
        self._log(logging.DEBUG, message, source)

    def log_info(self, message, source=None):
        """Log info message."""
        self._log(logging.INFO, message, source)

    def log_warning(self, message, source=None):
        """Log warning message."""
        self._log(logging.WARNING, message, source)

    def log_error(self, message, source=None):
        """Log error message."""
        self._log(logging.ERROR, message, source)
