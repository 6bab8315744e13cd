"""
Configuration management and loading.

Handles application settings from a YAML file and environment variables.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

CONFIG_ENV = "JEVONS_CONFIG"

ENV_VARS = {
    "data_dir": "CLAUDE_USAGE_DATA_DIR",
    "source_dir": "CLAUDE_USAGE_SOURCE_DIR",
    "account_source": "JEVONS_ACCOUNT_SOURCE",
    "sync_interval": "JEVONS_SYNC_INTERVAL",
    "host": "JEVONS_HOST",
    "port": "JEVONS_PORT",
    "live_retention": "JEVONS_LIVE_RETENTION",
    "live_row_limit": "JEVONS_LIVE_ROW_LIMIT",
    "log_level": "JEVONS_LOG_LEVEL",
}

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings for the sync pipeline, scheduler and server."""
    data_dir: Path = Path("~/dev/.claude-usage").expanduser()
    source_dir: Path = Path("~/.claude/projects").expanduser()
    account_source: Optional[Path] = Path("~/.claude.json").expanduser()
    sync_interval: int = 15
    host: str = "127.0.0.1"
    port: int = 8765
    live_retention: int = 172800
    live_row_limit: int = 200
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate ranges."""
        if self.sync_interval < 0:
            raise ValueError("sync_interval must be >= 0")
        if not 1 <= self.port <= 65535:
            raise ValueError("port must be between 1 and 65535")
        if self.live_retention <= 0:
            raise ValueError("live_retention must be > 0")
        if not 1 <= self.live_row_limit <= 1000:
            raise ValueError("live_row_limit must be between 1 and 1000")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {sorted(LOG_LEVELS)}")
        if not self.host:
            raise ValueError("host cannot be empty")

    @property
    def log_file(self) -> Path:
        return Path(self.data_dir) / "logs" / "jevons.log"

    @property
    def heartbeat_file(self) -> Path:
        return Path(self.data_dir) / "heartbeat" / "sync.txt"

    @property
    def pid_file(self) -> Path:
        return Path(self.data_dir) / "pids" / "sync.pid"


_PATH_KEYS = {"data_dir", "source_dir", "account_source"}
_INT_KEYS = {"sync_interval", "port", "live_retention", "live_row_limit"}
_STR_KEYS = {"host", "log_level"}


def _coerce(key: str, value: Any, origin: str) -> Any:
    """Convert a raw setting to its typed value.

    Raises:
        ValueError: If the value has the wrong type
    """
    if key in _PATH_KEYS:
        if not isinstance(value, (str, Path)) or not str(value).strip():
            raise ValueError(f"'{key}' in {origin} must be a non-empty path")
        return Path(str(value)).expanduser()
    if key in _INT_KEYS:
        if isinstance(value, bool):
            raise ValueError(f"'{key}' in {origin} must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass
        raise ValueError(f"'{key}' in {origin} must be an integer")
    if not isinstance(value, str):
        raise ValueError(f"'{key}' in {origin} must be a string")
    return value.strip().upper() if key == "log_level" else value.strip()


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    allowed_keys = {f.name for f in fields(AppConfig)}
    unknown_keys = set(raw_config.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")
    return {key: _coerce(key, value, str(path)) for key, value in raw_config.items()}


def load_config(
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> AppConfig:
    """Load application configuration.

    Precedence, lowest first: built-in defaults, the YAML file, environment
    variables, then ``overrides`` (CLI flags). Overrides that are None are
    ignored.

    Args:
        path: YAML config file; falls back to ``$JEVONS_CONFIG`` when unset
        env: Environment mapping (defaults to ``os.environ``)
        **overrides: Explicit values for AppConfig fields

    Returns:
        Validated AppConfig

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If a key is unknown or a value is invalid
    """
    env = os.environ if env is None else env
    settings: Dict[str, Any] = {}

    config_path = path or env.get(CONFIG_ENV)
    if config_path:
        settings.update(_read_yaml(Path(config_path).expanduser()))

    for key, var in ENV_VARS.items():
        value = env.get(var)
        if value is not None and value.strip():
            settings[key] = _coerce(key, value, f"${var}")

    allowed_keys = {f.name for f in fields(AppConfig)}
    unknown_keys = set(overrides) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")
    for key, value in overrides.items():
        if value is not None:
            settings[key] = _coerce(key, value, "overrides")

    return replace(AppConfig(), **settings)
