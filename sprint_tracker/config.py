"""
Sprint Tracker Settings

Loads settings from config/config.yaml, overridden by environment variables.
"""

import logging
import os
from typing import Any, Optional

import yaml

from .models import AppConfig, DEFAULT_MEETING_PERCENTAGE, DEFAULT_VELOCITY_CALCULATION_SPRINTS
from .store import DEFAULT_BACKUP_RETENTION, DEFAULT_DATA_FILE, RecordStore


DEFAULT_CONFIG_PATH = "config/config.yaml"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class Settings:
    """Load configuration from config.yaml and environment."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.getenv("SPRINT_TRACKER_CONFIG", DEFAULT_CONFIG_PATH)
        self.config: dict[str, Any] = {}

        if os.path.exists(self.config_path):
            with open(self.config_path, encoding="utf-8") as f:
                self.config = yaml.safe_load(f) or {}

        # Override with environment variables
        self._load_env()

    def _load_env(self):
        """Load configuration from environment variables."""
        env_mapping = {
            "SPRINT_TRACKER_DATA_DIR": ("storage", "data_dir"),
            "SPRINT_TRACKER_DATA_FILE": ("storage", "data_file"),
            "SPRINT_TRACKER_BACKUP_RETENTION": ("storage", "backup_retention"),
            "SPRINT_TRACKER_RECOVER_CORRUPTED": ("storage", "recover_corrupted"),
            "SPRINT_TRACKER_VELOCITY_SPRINTS": ("defaults", "velocity_calculation_sprints"),
            "SPRINT_TRACKER_MEETING_PERCENTAGE": ("defaults", "meeting_percentage"),
            "SPRINT_TRACKER_LOG_LEVEL": ("logging", "level"),
        }

        for env_var, (section, key) in env_mapping.items():
            value = os.getenv(env_var)
            if value:
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value

    def get(self, section: str, key: str, default=None):
        """Get configuration value."""
        return (self.config.get(section) or {}).get(key, default)

    @property
    def data_dir(self) -> str:
        return str(self.get("storage", "data_dir", "data"))

    @property
    def data_file(self) -> str:
        return str(self.get("storage", "data_file", DEFAULT_DATA_FILE))

    @property
    def backup_retention(self) -> Optional[int]:
        """Backups to keep; 'all' or a negative number disables pruning."""
        value = self.get("storage", "backup_retention", DEFAULT_BACKUP_RETENTION)
        if value is None or str(value).lower() == "all":
            return None
        retention = int(value)
        return None if retention < 0 else retention

    @property
    def recover_corrupted(self) -> bool:
        value = self.get("storage", "recover_corrupted", False)
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES

    @property
    def velocity_calculation_sprints(self) -> int:
        return int(self.get("defaults", "velocity_calculation_sprints",
                            DEFAULT_VELOCITY_CALCULATION_SPRINTS))

    @property
    def meeting_percentage(self) -> float:
        return float(self.get("defaults", "meeting_percentage", DEFAULT_MEETING_PERCENTAGE))

    @property
    def log_level(self) -> str:
        return str(self.get("logging", "level", "INFO")).upper()

    def default_app_config(self) -> AppConfig:
        """Configuration a fresh data file starts with."""
        return AppConfig(
            velocity_calculation_sprints=self.velocity_calculation_sprints,
            team_members=[],
            default_meeting_percentage=self.meeting_percentage
        )

    def create_store(self) -> RecordStore:
        return RecordStore(
            data_dir=self.data_dir,
            default_config=self.default_app_config(),
            file_name=self.data_file,
            backup_retention=self.backup_retention,
            recover_corrupted=self.recover_corrupted
        )


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure console logging for the sprint_tracker package.

    Returns:
        The package logger
    """
    package_logger = logging.getLogger("sprint_tracker")
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)

    return package_logger
