"""Configuration management for kinsync."""

import os
import logging
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from ..models.config import PCO_BASE_URL, FiberySettings, HttpSettings, PlanningCenterSettings, SyncSettings
from ..models.fields import EntityKind
from ..models.sync import Direction

_TRUE_VALUES = {"1", "true", "yes", "on", "enabled"}


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_environment(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file.

    Args:
        env_file: Path to .env file. If None, looks for .env in current directory.
    """
    if env_file:
        env_path = Path(env_file)
    else:
        env_path = Path('.env')

    if env_path.exists():
        load_dotenv(env_path)
        logging.info(f"Loaded environment from {env_path}")
    else:
        logging.warning(f"No .env file found at {env_path}")


def get_required_env(key: str) -> str:
    """Get a required environment variable.

    Args:
        key: Environment variable name

    Returns:
        Environment variable value

    Raises:
        ConfigurationError: If the environment variable is not set
    """
    value = os.getenv(key)
    if not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def get_optional_env(key: str, default: str = "") -> str:
    """Get an optional environment variable.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value or default
    """
    return os.getenv(key, default)


def _int_env(key: str, default: int) -> int:
    raw = get_optional_env(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be an integer, got {raw!r}")


def _name_set(key: str) -> FrozenSet[str]:
    return frozenset(name.strip() for name in get_optional_env(key).split(",") if name.strip())


def load_settings(credentials: Optional[Dict[str, str]] = None) -> SyncSettings:
    """Build immutable sync settings from the environment.

    Args:
        credentials: Credential values that take precedence over the environment,
            e.g. from SecretManagerService.get_api_credentials()

    Returns:
        SyncSettings for one orchestrator

    Raises:
        ConfigurationError: If a required value is missing or a value is invalid
    """
    credentials = {key: value for key, value in (credentials or {}).items() if value}

    def credential(key: str) -> str:
        return credentials.get(key) or get_required_env(key)

    always_refresh: Dict[EntityKind, FrozenSet[str]] = {}
    people_refresh = _name_set("ALWAYS_REFRESH_PEOPLE")
    household_refresh = _name_set("ALWAYS_REFRESH_HOUSEHOLDS")
    if people_refresh:
        always_refresh[EntityKind.PERSON] = people_refresh
    if household_refresh:
        always_refresh[EntityKind.HOUSEHOLD] = household_refresh

    reverse = get_optional_env("REVERSE_SYNC").strip().lower() in _TRUE_VALUES

    try:
        return SyncSettings(
            pco=PlanningCenterSettings(
                app_id=credential("PCO_APP_ID"),
                secret=credential("PCO_SECRET"),
                base_url=get_optional_env("PCO_BASE_URL", PCO_BASE_URL),
            ),
            fibery=FiberySettings(
                host=get_required_env("FIBERY_HOST"),
                token=credential("FIBERY_TOKEN"),
                space=get_required_env("FIBERY_SPACE"),
                query_limit=_int_env("FIBERY_QUERY_LIMIT", 1000),
            ),
            http=HttpSettings(
                retries=_int_env("HTTP_RETRIES", 3),
                backoff_ms=_int_env("HTTP_BACKOFF_MS", 500),
                timeout_seconds=_int_env("HTTP_TIMEOUT_SECONDS", 30),
            ),
            max_per_run=_int_env("SYNC_MAX_PER_RUN", 500),
            reverse_sync=Direction.ENABLED if reverse else Direction.DISABLED,
            always_refresh=always_refresh,
            google_cloud_project=get_optional_env("GOOGLE_CLOUD_PROJECT") or None,
            cursor_collection=get_optional_env("CURSOR_COLLECTION", "sync_cursors"),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid sync settings: {e}") from e
