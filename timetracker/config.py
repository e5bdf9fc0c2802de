"""Configuration management for the time tracker"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class Config:
    """Application configuration loaded from .env and environment variables"""

    def __init__(self, env_path: Optional[Path] = None):
        # Load .env file from project root
        env_path = env_path or Path(__file__).parent.parent / '.env'
        load_dotenv(env_path)

        # Storage
        self.data_dir = self._get_data_dir()
        self.db_path = self.data_dir / 'timetracker.db'
        self.reports_dir = self.data_dir / 'Reports'

        # Idle detection
        self.idle_threshold_seconds = self._parse_int('IDLE_THRESHOLD_SECONDS', 600)
        self.idle_check_interval_seconds = max(1, self._parse_int('IDLE_CHECK_INTERVAL_SECONDS', 60))

        # Checkpoints (0 disables)
        self.auto_save_interval_seconds = max(0, self._parse_int('AUTO_SAVE_INTERVAL_SECONDS', 300))

        # Behavior
        self.auto_start = self._parse_bool(os.getenv('AUTO_START', 'true'))
        self.auto_stop = self._parse_bool(os.getenv('AUTO_STOP', 'true'))
        self.file_activity_poll_seconds = max(0, self._parse_int('FILE_ACTIVITY_POLL_SECONDS', 30))

        self.log_level = os.getenv('LOG_LEVEL', 'WARNING').upper()

    @property
    def idle_detection_enabled(self) -> bool:
        return self.idle_threshold_seconds > 0

    @property
    def idle_threshold_ms(self) -> int:
        """Idle threshold in milliseconds, 0 when idle detection is disabled"""
        return max(0, self.idle_threshold_seconds) * 1000

    def _get_data_dir(self) -> Path:
        """Get data directory from .env or environment variables"""
        env_path = os.getenv('TIMETRACKER_DATA_DIR')
        if env_path:
            return Path(env_path).expanduser()

        # Fallback to user home directory
        return Path.home() / '.timetracker'

    def _parse_int(self, name: str, default: int) -> int:
        """Parse an integer setting, falling back to the default when malformed"""
        value = os.getenv(name)
        if value is None or not value.strip():
            return default
        try:
            return int(value.strip())
        except ValueError:
            logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
            return default

    def _parse_bool(self, value: str) -> bool:
        """Parse boolean string"""
        return value.strip().lower() in ('true', '1', 'yes', 'on')
