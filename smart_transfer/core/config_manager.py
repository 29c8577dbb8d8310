# smart_transfer/core/config_manager.py

import json
import logging
import shutil
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from .errors import CapacityError
from .filesystem import DEFAULT_CHUNK_SIZE
from .models import ListingOptions, SortDirection, SortKey
from .transfer_queue import DEFAULT_TICK_INTERVAL
from .transfer_task import DEFAULT_SPEED_WINDOW
from smart_transfer.utils.thread_manager import DEFAULT_MAX_CONCURRENCY

# A dedicated logger for the module that manages the engine's settings.
logger = logging.getLogger(__name__)

# The settings file lives in the project's config directory by default.
DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parents[2] / 'config' / 'settings.json'


@dataclass
class TransferSettings:
    """
    Every tunable of the transfer engine, validated on construction.

    Raises:
        CapacityError: If max_concurrency is not a positive integer.
        ValueError: If any other value is out of range.
    """
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    chunk_size: int = DEFAULT_CHUNK_SIZE
    tick_interval: float = DEFAULT_TICK_INTERVAL
    speed_window: int = DEFAULT_SPEED_WINDOW
    show_hidden: bool = False
    sort_key: str = SortKey.NAME.value
    sort_direction: str = SortDirection.ASC.value
    local_path: str = field(default_factory=lambda: str(Path.home()))
    remote_path: str = "/"

    def __post_init__(self):
        if isinstance(self.max_concurrency, bool) or not isinstance(self.max_concurrency, int) \
                or self.max_concurrency <= 0:
            raise CapacityError(f"max_concurrency must be a positive integer, got {self.max_concurrency!r}.")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size!r}.")
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval!r}.")
        if self.speed_window <= 0:
            raise ValueError(f"speed_window must be positive, got {self.speed_window!r}.")
        # Enum lookups double as validation of the two sort settings.
        SortKey(self.sort_key)
        SortDirection(self.sort_direction)

    def listing_options(self) -> ListingOptions:
        """The default visibility and ordering preferences for both sides."""
        return ListingOptions(
            show_hidden=self.show_hidden,
            sort_key=SortKey(self.sort_key),
            direction=SortDirection(self.sort_direction),
        )


def load_settings(config_path: Path = DEFAULT_SETTINGS_PATH) -> TransferSettings:
    """
    Reads settings from a JSON file, falling back to defaults when the file
    is missing or unreadable.

    Unknown keys are ignored with a warning. Invalid values are not silently
    corrected: a bad concurrency limit raises CapacityError here, at
    configuration time.

    Args:
        config_path: The path to settings.json.

    Returns:
        The validated settings.
    """
    if not config_path.exists():
        logger.info(f"No settings file at '{config_path}', using defaults.")
        return TransferSettings()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read settings from '{config_path}' ({e}); using defaults.")
        return TransferSettings()

    if not isinstance(data, dict):
        logger.warning(f"Settings file '{config_path}' does not hold an object; using defaults.")
        return TransferSettings()

    known = {f.name for f in fields(TransferSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(f"Ignoring unknown settings keys: {', '.join(unknown)}")

    settings = TransferSettings(**{key: value for key, value in data.items() if key in known})
    logger.info(f"Loaded settings from '{config_path}'.")
    return settings


def save_settings(settings: TransferSettings, config_path: Path = DEFAULT_SETTINGS_PATH) -> bool:
    """
    Writes settings to JSON, keeping a backup of the previous file.

    If the write fails, the backup is restored so the settings file is
    never left half written.

    Returns:
        True on success, False otherwise.
    """
    backup_path = config_path.with_suffix(".json.bak")
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        if config_path.exists():
            shutil.copy(config_path, backup_path)
            logger.info(f"Settings backup created at: {backup_path}")

        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(asdict(settings), f, indent=2)
        logger.info(f"Settings saved to '{config_path}'.")
        return True

    except Exception as e:
        logger.error(f"Failed to save settings: {e}", exc_info=True)
        if backup_path.exists():
            shutil.copy(backup_path, config_path)
            logger.warning("Restored settings from backup due to a save failure.")
        return False
