# smart_transfer/utils/logger.py

import logging
import logging.handlers
from pathlib import Path

DEFAULT_LOG_FILE = Path(__file__).resolve().parents[2] / 'transfer.log'

# Rotation limits for the persistent log.
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5


class LoggerManager:
    """
    Configures the application-wide logging system.

    Two handlers are attached to the root logger:
    1. Console Handler: short INFO-and-above lines for whoever is watching
       transfers run.
    2. Rotating File Handler: DEBUG-and-above lines with module and line
       number, including every progress and scheduling decision.
    """

    def __init__(self, log_file: Path | None = None, log_level=logging.DEBUG):
        """
        Args:
            log_file: Where the rotating log is written. Defaults to transfer.log
                in the project root.
            log_level: The base level captured by the root logger.
        """
        self.log_file_path = Path(log_file) if log_file else DEFAULT_LOG_FILE
        self.log_level = log_level
        self.root_logger = logging.getLogger()

    def setup(self):
        """Attaches both handlers to the root logger. Does nothing if handlers already exist."""
        if self.root_logger.hasHandlers():
            return

        self.root_logger.setLevel(self.log_level)
        self.root_logger.addHandler(self._create_console_handler())
        self.root_logger.addHandler(self._create_file_handler())

        # paramiko's transport chatter is only useful when debugging the SSH layer itself.
        logging.getLogger("paramiko").setLevel(logging.WARNING)

        logging.info(f"Logging configured. Detailed log: {self.log_file_path}")

    def _create_console_handler(self) -> logging.StreamHandler:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        formatter = logging.Formatter(
            '%(asctime)s - [%(levelname)s] - %(message)s',
            datefmt='%H:%M:%S'
        )
        handler.setFormatter(formatter)
        return handler

    def _create_file_handler(self) -> logging.handlers.RotatingFileHandler:
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            self.log_file_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding='utf-8'
        )
        handler.setLevel(logging.DEBUG)
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - [%(levelname)s] - %(threadName)s - %(filename)s:%(lineno)d - %(message)s'
        )
        handler.setFormatter(formatter)
        return handler


def setup_logging(log_file: Path | None = None, level=logging.DEBUG):
    """Initializes and configures the application-wide logging system."""
    manager = LoggerManager(log_file, level)
    manager.setup()
