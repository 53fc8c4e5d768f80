#!/usr/bin/env python3
"""
War Stats Configuration

Defaults live in DEFAULT_CONFIG; a YAML file can override any key and the
environment (optionally loaded from a .env file) supplies the API key, clan
tag and data directory. Keys are UPPER_CASE, the same way the ranking config
is laid out.
"""

import copy
import logging
import os
import re
from datetime import time
from pathlib import Path
from typing import Any, Dict, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a configuration value cannot be used."""


DEFAULT_CONFIG: Dict[str, Any] = {
    # Upstream API
    "CLAN_TAG": "2CPPJLJ",
    "API_BASE_URL": "https://api.clashroyale.com/v1",
    "API_KEY": "",
    "REQUEST_TIMEOUT": 10,
    "WAR_LOG_PATH": "warlog",
    "USER_AGENT": "Gladiators-War-Stats/1.0",

    # Storage
    "DATA_DIR": "data",
    "HISTORY_MAX_WEEKS": 260,
    "DISPLAY_WEEKS": 10,

    # Week boundary (Monday 04:30 Central)
    "BOUNDARY_WEEKDAY": 0,
    "BOUNDARY_TIME": "04:30",
    "BOUNDARY_TIMEZONE": "America/Chicago",
    "ROLL_DIRECTION": "forward",

    # Policy
    "WAR_POINT_REQUIREMENT": 1600,
    "PROMOTION_STREAK_WEEKS": 12,
    "JOINED_RECENTLY_DAYS": 7,
    "DEMOTION_WINDOW_BEFORE_HOURS": 12,
    "DEMOTION_WINDOW_AFTER_HOURS": 12,
    "DEMOTION_THRESHOLD_PRE_ROLLOVER": 1200,
    "DEMOTION_THRESHOLD_POST_ROLLOVER": 1600,

    # Scheduling
    "REFRESH_INTERVAL_SECONDS": 300,
    "CAPTURE_INTERVAL_SECONDS": 3600,
    "WARLOG_CHECK_INTERVAL_SECONDS": 86400,
    "ROLLOVER_SNAPSHOT_INTERVAL_SECONDS": 60,
    "ROLLOVER_SNAPSHOT_MINUTES_BEFORE": 5,
    "ROLLOVER_SNAPSHOT_MINUTES_AFTER": 1,
    "FAILURE_BACKOFF_INTERVALS": 1,
}

# Environment variable -> config key
ENV_OVERRIDES = {
    "CLASH_ROYALE_API_KEY": "API_KEY",
    "CLAN_TAG": "CLAN_TAG",
    "WARSTATS_DATA_DIR": "DATA_DIR",
}

POSITIVE_INT_KEYS = (
    "HISTORY_MAX_WEEKS", "DISPLAY_WEEKS", "PROMOTION_STREAK_WEEKS",
    "REFRESH_INTERVAL_SECONDS", "CAPTURE_INTERVAL_SECONDS",
    "WARLOG_CHECK_INTERVAL_SECONDS", "ROLLOVER_SNAPSHOT_INTERVAL_SECONDS",
)


def is_valid_api_key(key: Any) -> bool:
    """API keys are long opaque strings; anything short or padded is treated as unset."""
    return isinstance(key, str) and len(key) > 10 and key.strip() == key


def mask_api_key(key: str) -> str:
    """Preview of a key that is safe to log."""
    if not is_valid_api_key(key):
        return "<not set>"
    return f"{key[:4]}...{key[-4:]}"


def parse_boundary_time(value: Union[str, time]) -> time:
    """Parse an "HH:MM" boundary time."""
    if isinstance(value, time):
        return value
    match = re.fullmatch(r"\s*(\d{1,2}):(\d{2})\s*", str(value))
    if not match:
        raise ConfigError(f"BOUNDARY_TIME must look like HH:MM, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ConfigError(f"BOUNDARY_TIME out of range: {value!r}")
    return time(hour, minute)


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check the values the engine relies on.

    Args:
        config: Merged configuration dictionary

    Returns:
        The same dictionary

    Raises:
        ConfigError: If a value is unusable
    """
    weekday = config.get("BOUNDARY_WEEKDAY")
    if not isinstance(weekday, int) or not 0 <= weekday <= 6:
        raise ConfigError(f"BOUNDARY_WEEKDAY must be 0 (Monday) .. 6 (Sunday), got {weekday!r}")

    parse_boundary_time(config.get("BOUNDARY_TIME"))

    try:
        ZoneInfo(str(config.get("BOUNDARY_TIMEZONE")))
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown BOUNDARY_TIMEZONE {config.get('BOUNDARY_TIMEZONE')!r}") from e

    if config.get("ROLL_DIRECTION") not in ("forward", "backward"):
        raise ConfigError(f"ROLL_DIRECTION must be 'forward' or 'backward', got {config.get('ROLL_DIRECTION')!r}")

    for key in POSITIVE_INT_KEYS:
        value = config.get(key)
        if not isinstance(value, int) or value <= 0:
            raise ConfigError(f"{key} must be a positive integer, got {value!r}")

    for key in ("DEMOTION_WINDOW_BEFORE_HOURS", "DEMOTION_WINDOW_AFTER_HOURS", "JOINED_RECENTLY_DAYS"):
        value = config.get(key)
        if not isinstance(value, (int, float)) or value < 0:
            raise ConfigError(f"{key} must be a non-negative number, got {value!r}")

    return config


def load_config(config_path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None,
                use_env: bool = True) -> Dict[str, Any]:
    """
    Build the effective configuration.

    Precedence (lowest to highest): DEFAULT_CONFIG, YAML file, environment,
    explicit overrides.

    Args:
        config_path: Optional YAML file path
        overrides: Optional dictionary of final overrides (e.g. from CLI flags)
        use_env: Whether to read the environment / .env file

    Returns:
        Validated configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        config.update({str(k).upper(): v for k, v in file_config.items()})
        logger.info(f"Loaded configuration from {path}")

    if use_env:
        load_dotenv()
        for env_name, key in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                config[key] = value.strip() if key != "API_KEY" else value

    if overrides:
        config.update({k: v for k, v in overrides.items() if v is not None})

    config["CLAN_TAG"] = str(config["CLAN_TAG"]).lstrip("#").upper()
    return validate_config(config)
