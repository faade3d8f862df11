"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a YAML
configuration file (~/.quotaguard/config.yaml). Dotted keys such as
`retry.max_retries` are looked up as nested YAML sections and as
upper-cased environment variables (`RETRY_MAX_RETRIES`).
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Dict

import yaml
from dotenv import load_dotenv

from quotaguard.domain.models.common import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    RetryPolicy,
)

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".quotaguard"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{full_key}."))
        else:
            flat[full_key] = value
    return flat


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None, force: bool = False) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values passed to get_config

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: ENV VARS take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no file found).")

    # 3. Environment Variables (Highest priority) are handled in get_config

    _loaded = True


def _coerce(value: str) -> Any:
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (key upper-cased, dots as underscores)
    3. YAML config
    4. Default value

    Args:
        key: The configuration key
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = key.upper().replace('.', '_')
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None

# --- Convenience Functions ---

def get_places_api_key() -> Optional[str]:
    """Convenience function to get the Google Places API key."""
    key = get_config('GOOGLE_PLACES_API_KEY') or get_config('places.api_key')
    return str(key) if key else None


def get_retry_policy() -> RetryPolicy:
    """Builds the RetryPolicy described by the `retry.*` keys."""
    return RetryPolicy(
        max_retries=int(get_config('retry.max_retries', DEFAULT_MAX_RETRIES)),
        base_delay_ms=int(get_config('retry.base_delay_ms', DEFAULT_BASE_DELAY_MS)),
        max_delay_ms=int(get_config('retry.max_delay_ms', DEFAULT_MAX_DELAY_MS)),
        jitter=bool(get_config('retry.jitter', True)),
    )


def get_queue_settings() -> Dict[str, Any]:
    """Keyword arguments for SerialRequestQueue from the `queue.*` keys."""
    return {
        'min_interval_ms': int(get_config('queue.min_interval_ms', 1000)),
        'cache_ttl_ms': int(get_config('queue.cache_ttl_ms', 5 * 60 * 1000)),
        'cache_max_items': int(get_config('queue.cache_max_items', 500)),
        'coalesce': bool(get_config('queue.coalesce', False)),
    }


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
