import logging
import os
import tomllib
from pathlib import Path

logger = logging.getLogger(__name__)

SETTINGS_ENVIRONMENT_VARIABLE = 'LFINDER_SETTINGS'

# Settings key constants
SETTING_SKIP_DIRS = 'scan.skip_dirs'
SETTING_TIMEOUT_MINUTES = 'scan.timeout_minutes'
SETTING_WORKERS = 'scan.workers'
SETTING_QUEUE_SIZE = 'scan.queue_size'
SETTING_LOG_PATH = 'logging.path'
SETTING_LOG_LEVEL = 'logging.level'


class ScanSettings:
    """Settings manager for scan defaults.

    Provides a read-only key-value interface to a TOML settings file. The file
    is optional: without one every get() returns its default. Interpreting the
    values is left to the caller.

    Example:
        settings = ScanSettings.locate(args.settings)
        extra_skip_dirs = settings.get(SETTING_SKIP_DIRS, [])
        workers = settings.get('scan.workers', 8)
    """

    def __init__(self, settings_file: Path | None = None):
        """Initialize settings from TOML file.

        Args:
            settings_file: Path to the TOML file, or None for empty settings

        Raises:
            tomllib.TOMLDecodeError: the file exists but is not valid TOML
        """
        self._settings = {}

        if settings_file is not None:
            if settings_file.exists():
                with open(settings_file, 'rb') as f:
                    self._settings = tomllib.load(f)
            else:
                logger.warning(f"Settings file {settings_file} does not exist, using defaults")

    @classmethod
    def locate(cls, path: str | os.PathLike | None = None) -> 'ScanSettings':
        """Load settings from path, or from LFINDER_SETTINGS if path is None."""
        if path is None:
            path = os.environ.get(SETTINGS_ENVIRONMENT_VARIABLE)
        return cls(None if path is None else Path(path))

    def get(self, key: str, default=None):
        """Get a setting value by key with optional default.

        Dotted keys address nested tables, e.g. 'scan.workers' accesses
        settings['scan']['workers']. Returns the default if any part of the key
        path is missing or an intermediate value is not a table.

        Examples:
            >>> settings.get(SETTING_SKIP_DIRS, [])
            ['/mnt/backup', '/var/lib/docker']
            >>> settings.get('nonexistent.key', 'fallback')
            'fallback'
        """
        keys = key.split('.')
        value = self._settings

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value
