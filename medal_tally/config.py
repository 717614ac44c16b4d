"""
Configuration management for the medal tally.
Supports both JSON file configuration and environment variable overrides.
"""

import copy
import json
import os
from pathlib import Path
from typing import Dict, Any

from .logger import get_logger
from .models import MedalValues

log = get_logger("medal_tally.config")


class TallyConfig:
    """Configuration management for the medal tally."""

    DEFAULT_CONFIG = {
        "event_name": "Intramurals Medal Tally",
        "storage": {
            "db_path": "medal_tally.db",
            "data_key": "intramurals_data",
            "trigger_key": "intramurals_update_trigger",
        },
        "bootstrap": {
            # Path or http(s) URL of the bundled default data; empty uses the packaged file
            "default_data": "",
            "fetch_timeout": 10,
        },
        "replication": {
            "channel": "intramurals_updates",
            "poll_interval": 5,  # seconds between durable-slot checks
            "refresh_interval": 30,  # seconds between full reloads
        },
        "medal_values": {
            "gold": 3,
            "silver": 2,
            "bronze": 1,
        },
        "features": {
            "admin_enabled": True,
            "live_updates": True,
            "json_export": True,
            "manual_medal_edits": True,
        },
        "ui": {
            "show_timestamps": True,
        },
    }

    def __init__(
        self,
        config_path: str = "tally_config.json",
    ) -> None:
        """Initialize configuration from file, environment variables, or defaults."""
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from JSON file or create default.

        @return: Dictionary containing the loaded configuration
        """
        config = copy.deepcopy(self.DEFAULT_CONFIG)

        if not self.config_path.exists():
            self._create_default_config()
            return config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                loaded_config = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.warning(f"Error loading config from {self.config_path}: {e}; using defaults")
            return config

        if not isinstance(loaded_config, dict):
            log.warning(f"Config file {self.config_path} is not an object; using defaults")
            return config

        # Merge with defaults to ensure all keys exist
        self._deep_merge(config, loaded_config)
        return config

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        """
        Recursively merge dictionaries.

        @param base_dict: Base dictionary to merge into
        @param update_dict: Dictionary with updates to merge
        """
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        Environment variables follow the pattern: SECTION_KEY (e.g., EVENT_NAME, POLL_INTERVAL)
        """
        env_mappings = {
            "EVENT_NAME": ("event_name",),

            # Storage
            "DB_PATH": ("storage", "db_path"),
            "DATA_KEY": ("storage", "data_key"),
            "TRIGGER_KEY": ("storage", "trigger_key"),

            # Bootstrap
            "DEFAULT_DATA": ("bootstrap", "default_data"),
            "FETCH_TIMEOUT": ("bootstrap", "fetch_timeout"),

            # Replication
            "CHANNEL_NAME": ("replication", "channel"),
            "POLL_INTERVAL": ("replication", "poll_interval"),
            "REFRESH_INTERVAL": ("replication", "refresh_interval"),

            # Medal values
            "GOLD_VALUE": ("medal_values", "gold"),
            "SILVER_VALUE": ("medal_values", "silver"),
            "BRONZE_VALUE": ("medal_values", "bronze"),

            # Features
            "ADMIN_ENABLED": ("features", "admin_enabled"),
            "LIVE_UPDATES": ("features", "live_updates"),
            "JSON_EXPORT": ("features", "json_export"),
            "MANUAL_MEDAL_EDITS": ("features", "manual_medal_edits"),

            # UI
            "SHOW_TIMESTAMPS": ("ui", "show_timestamps"),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                converted_value = self._convert_env_value(env_value)
                self._set_nested_config(config_path, converted_value)

    def _convert_env_value(self, value: str) -> Any:
        """
        Convert environment variable string to appropriate type.

        @param value: String value from environment variable
        @return: Converted value (bool, int, or string)
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def _set_nested_config(self, path: tuple, value: Any) -> None:
        """
        Set a nested configuration value using a path tuple.

        @param path: Tuple representing the nested path (e.g., ("replication", "poll_interval"))
        @param value: Value to set
        """
        current = self.config
        for key in path[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """
        Create a default configuration file.

        Writes the default configuration to the configured file path.
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            log.info(f"Created default configuration file: {self.config_path}")
        except IOError as e:
            log.warning(f"Could not create config file {self.config_path}: {e}")

    def _validate_config(self) -> None:
        """
        Validate configuration values.

        Checks configuration values for validity and sets defaults for invalid values.
        """
        for section, key in (
            ("replication", "poll_interval"),
            ("replication", "refresh_interval"),
            ("bootstrap", "fetch_timeout"),
        ):
            value = self.get(section, key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                default = self.DEFAULT_CONFIG[section][key]
                log.warning(f"Invalid {section}.{key}, using {default}")
                self._set_nested_config((section, key), default)

        for medal in ("gold", "silver", "bronze"):
            value = self.get("medal_values", medal)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                default = self.DEFAULT_CONFIG["medal_values"][medal]
                log.warning(f"Invalid medal_values.{medal}, using {default}")
                self._set_nested_config(("medal_values", medal), default)

        if not self.get("storage", "data_key"):
            log.warning("Invalid storage.data_key, using 'intramurals_data'")
            self._set_nested_config(("storage", "data_key"), "intramurals_data")

        if not self.get("storage", "trigger_key"):
            log.warning("Invalid storage.trigger_key, using 'intramurals_update_trigger'")
            self._set_nested_config(("storage", "trigger_key"), "intramurals_update_trigger")

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Get nested configuration value using dot notation.

        @param keys: Variable arguments representing nested keys to traverse
        @return: Configuration value at the specified path, None if not found
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def is_feature_enabled(
        self,
        feature_name: str,
    ) -> bool:
        """
        Check if a feature is enabled.

        @param feature_name: Name of the feature to check
        @return: True if feature is enabled, False otherwise
        """
        return self.get("features", feature_name) is True

    def get_medal_values(self) -> MedalValues:
        """
        Get the configured point weights used for the hard-coded default snapshot.

        @return: MedalValues built from the medal_values section
        """
        return MedalValues(
            gold=self.get("medal_values", "gold"),
            silver=self.get("medal_values", "silver"),
            bronze=self.get("medal_values", "bronze"),
        )
