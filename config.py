import json
import os
from typing import Any, Dict, Optional

from constants import (
    AUTH_SETTLE_DELAY_SECONDS,
    AUTH_TIMEOUT_SECONDS,
    DEFAULT_MARKET,
    POLL_INTERVAL_SECONDS,
    REFRESH_TIMEOUT_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
)

DEFAULT_CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".spotify-terminal-player")
CONFIG_PATH = os.environ.get("SPOTIFY_PLAYER_CONFIG", os.path.join(DEFAULT_CONFIG_DIR, "config.json"))

# Environment variables that take precedence over the config file.
ENV_OVERRIDES = {
    "SPOTIFY_CLIENT_ID": "spotify_client_id",
    "SPOTIFY_CLIENT_SECRET": "spotify_client_secret",
    "SPOTIFY_REDIRECT_URI": "spotify_redirect_uri",
}

# Default configuration values
DEFAULT_CONFIG = {
    "config_dir": DEFAULT_CONFIG_DIR,
    "db_file": "spotify-player.db",
    "log_file": "log",
    "log_level": "DEBUG",

    # Client credentials only seed the credential store on first run.
    "spotify_client_id": "",
    "spotify_client_secret": "",
    "spotify_redirect_uri": "http://127.0.0.1:8888/callback",
    "open_browser": True,

    # Remote API
    "market": DEFAULT_MARKET,
    "playlist_limit": 10,
    "top_items_limit": 20,
    "request_timeout": REQUEST_TIMEOUT_SECONDS,

    # Authorization and token lifecycle
    "auth_timeout": AUTH_TIMEOUT_SECONDS,
    "auth_settle_delay": AUTH_SETTLE_DELAY_SECONDS,
    "refresh_timeout": REFRESH_TIMEOUT_SECONDS,

    # Interactive session
    "poll_interval": POLL_INTERVAL_SECONDS,
    "message_log_size": 50,
    "volume_step": 10,
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "config_dir": {"type": str, "required": True},
    "db_file": {"type": str, "required": True},
    "log_file": {"type": str, "required": False},
    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},

    "spotify_client_id": {"type": str, "required": False},
    "spotify_client_secret": {"type": str, "required": False},
    "spotify_redirect_uri": {"type": str, "required": False},
    "open_browser": {"type": bool, "required": False},

    "market": {"type": str, "required": False},
    "playlist_limit": {"type": int, "required": False, "min": 1, "max": 50},
    "top_items_limit": {"type": int, "required": False, "min": 1, "max": 50},
    "request_timeout": {"type": (int, float), "required": False, "min": 1, "max": 120},

    "auth_timeout": {"type": (int, float), "required": False, "min": 1, "max": 600},
    "auth_settle_delay": {"type": (int, float), "required": False, "min": 0, "max": 5},
    "refresh_timeout": {"type": (int, float), "required": False, "min": 1, "max": 120},

    "poll_interval": {"type": (int, float), "required": False, "min": 0.25, "max": 60},
    "message_log_size": {"type": int, "required": False, "min": 1, "max": 1000},
    "volume_step": {"type": int, "required": False, "min": 1, "max": 50},
}


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file, applying defaults for missing fields.

    A missing file is not an error: the defaults are used as-is.
    """
    path = path or CONFIG_PATH
    config: Dict[str, Any] = {}

    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name, "").strip()
        if value:
            config[key] = value

    return config


def save_config(config: Dict[str, Any], path: Optional[str] = None) -> bool:
    """Save configuration to file."""
    path = path or CONFIG_PATH
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except OSError as e:
        raise IOError(f"Failed to save config: {e}")


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # bool is an int subclass; never accept it for numeric fields
        expected_type = rules.get("type")
        if isinstance(value, bool) and expected_type is not bool:
            errors.append(f"Field '{key}' must not be a boolean")
            continue

        if expected_type and not isinstance(value, expected_type):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def update_config(key: str, value: Any, path: Optional[str] = None) -> tuple[bool, str]:
    """
    Update a single config field with validation.
    Returns (success, message).
    """
    config = load_config(path)

    if key not in CONFIG_SCHEMA:
        return False, f"Unknown config key: {key}"

    test_config = config.copy()
    test_config[key] = value

    is_valid, errors = validate_config(test_config)
    if not is_valid:
        return False, f"Validation failed: {', '.join(errors)}"

    config[key] = value
    save_config(config, path)

    return True, f"Updated '{key}' to '{value}'"


def resolve_path(config: Dict[str, Any], key: str) -> str:
    """Return a config file path, relative entries resolved against config_dir."""
    value = str(config.get(key) or DEFAULT_CONFIG[key])
    value = os.path.expanduser(value)
    if os.path.isabs(value):
        return value
    return os.path.join(os.path.expanduser(str(config.get("config_dir") or DEFAULT_CONFIG_DIR)), value)
