"""
Configuration for the activity aggregation engine.

Settings come from an optional ``config.json`` at the project root (or the
file named by ``ACTIVITY_TREE_CONFIG``), overlaid with the
``TODOIST_API_TOKEN`` environment variable. Everything has a default so a
bare token is enough to run.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from activity_tree.core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config.json"

SYNC_API_URL = "https://api.todoist.com/sync/v9"
REST_API_URL = "https://api.todoist.com/rest/v2"

# The activity endpoint refuses pages larger than this
MAX_PAGE_SIZE = 50


@dataclass(frozen=True)
class HealthThresholds:
    """
    Thresholds used to tag item health.

    Parameters
    ----------
    idle_days : int
        Items idle for more days than this are tagged ``idle``
    long_postpone_days : float
        Average postponement above this tags ``long_postpones``
    frequent_postpone_streak : int
        A streak of back-to-back postponements longer than this tags
        ``frequent_postpones``
    """

    idle_days: int = 30
    long_postpone_days: float = 7.0
    frequent_postpone_streak: int = 2


@dataclass
class AppConfig:
    """Resolved settings for one process."""

    api_token: Optional[str] = None
    sync_url: str = SYNC_API_URL
    rest_url: str = REST_API_URL
    page_size: int = MAX_PAGE_SIZE
    request_timeout: float = 30.0
    health: HealthThresholds = field(default_factory=HealthThresholds)
    history_max_retries: int = 3
    history_backoff_base: float = 1.0
    port: int = 4301

    def __post_init__(self) -> None:
        """Validate numeric ranges."""
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ConfigError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {self.page_size}")
        if self.history_max_retries < 0:
            raise ConfigError("history_max_retries must not be negative")

    def require_token(self) -> str:
        """Return the API token or fail with a clear message."""
        if not self.api_token:
            raise ConfigError("TODOIST_API_TOKEN environment variable is required")
        return self.api_token


def _thresholds_from(data: Dict[str, Any]) -> HealthThresholds:
    defaults = HealthThresholds()
    return HealthThresholds(
        idle_days=int(data.get("idle_days", defaults.idle_days)),
        long_postpone_days=float(data.get("long_postpone_days", defaults.long_postpone_days)),
        frequent_postpone_streak=int(
            data.get("frequent_postpone_streak", defaults.frequent_postpone_streak)
        ),
    )


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Load configuration from JSON and the environment.

    Parameters
    ----------
    path : Optional[Union[str, Path]]
        Config file to read. Defaults to ``ACTIVITY_TREE_CONFIG`` or
        ``config.json`` at the project root.

    Returns
    -------
    AppConfig
        Resolved configuration

    Raises
    ------
    ConfigError
        If the file exists but is not valid JSON or holds invalid values
    """
    if path is None:
        path = os.getenv("ACTIVITY_TREE_CONFIG", DEFAULT_CONFIG_PATH)
    config_path = Path(path)

    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
        logger.info(f"Loaded config from {config_path}")
    else:
        logger.warning(f"Config file not found: {config_path}, using defaults")

    api = data.get("api", {})
    history = data.get("history", {})
    try:
        config = AppConfig(
            api_token=os.getenv("TODOIST_API_TOKEN") or api.get("token"),
            sync_url=api.get("sync_url", SYNC_API_URL),
            rest_url=api.get("rest_url", REST_API_URL),
            page_size=int(api.get("page_size", MAX_PAGE_SIZE)),
            request_timeout=float(api.get("timeout", 30.0)),
            health=_thresholds_from(data.get("health", {})),
            history_max_retries=int(history.get("max_retries", 3)),
            history_backoff_base=float(history.get("backoff_base", 1.0)),
            port=int(data.get("backend", {}).get("port", 4301)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {config_path}: {e}") from e

    return config
