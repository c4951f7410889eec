"""Provides functions for loading and accessing configuration settings.

Supports loading from a YAML file (``~/.config/notion-tui/config.yaml``),
a ``.env`` file, ``NOTION_TUI_*`` environment variables and explicit
overrides from the command line. The result is an immutable Settings value
that is passed to whatever needs it; nothing is cached at module level.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from dotenv import dotenv_values

from notiontui.domain.errors import ConfigurationError
from notiontui.domain.models.common import is_valid_notion_id
from notiontui.domain.models.resilience import RetryConfig

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
ENV_PREFIX = "NOTION_TUI_"
TOKEN_FALLBACK_ENV = "NOTION_TOKEN"
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "notion-tui"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
LOCAL_CONFIG_FILE = Path("config.yaml")
ENV_FILE_NAME = ".env"

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "notion-tui"
DEFAULT_CACHE_TTL_SECONDS = 3600.0
DEFAULT_RATE_LIMIT_PER_SECOND = 2.5
DEFAULT_RATE_LIMIT_BURST = 3

LEGACY_DATABASE_NAME = "Default Database"
LEGACY_DATABASE_ICON = "📄"

# Flat keys readable from every source; YAML may nest the retry_* ones under "retry:"
SCALAR_KEYS = (
    "notion_token",
    "database_id",
    "default_database",
    "debug",
    "cache_dir",
    "cache_ttl_seconds",
    "rate_limit_per_second",
    "rate_limit_burst",
    "log_file",
    "retry_max_retries",
    "retry_initial_backoff",
    "retry_max_backoff",
    "retry_backoff_multiplier",
)
RETRY_KEYS = ("max_retries", "initial_backoff", "max_backoff", "backoff_multiplier")

MASKED = "***"


@dataclass(frozen=True)
class DatabaseConfig:
    """A database the user has bookmarked in the config file."""

    id: str
    name: str
    icon: str = ""


@dataclass(frozen=True)
class Settings:
    """Effective application configuration.

    The token is never part of ``repr``; use ``notion_token`` explicitly.
    """

    notion_token: str = ""
    databases: Tuple[DatabaseConfig, ...] = ()
    default_database: str = ""
    debug: bool = False
    cache_dir: Path = DEFAULT_CACHE_DIR
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    rate_limit_per_second: float = DEFAULT_RATE_LIMIT_PER_SECOND
    rate_limit_burst: int = DEFAULT_RATE_LIMIT_BURST
    retry: RetryConfig = field(default_factory=RetryConfig.default)
    log_file: Optional[str] = None

    def validate(self, require_token: bool = True) -> "Settings":
        """Checks required values and returns settings with the default database filled in.

        Raises:
            ConfigurationError: If the token is missing, a database entry is
                incomplete, or the default database is not in the list.
        """
        if require_token and not self.notion_token:
            raise ConfigurationError(
                "notion_token is required (set via --token flag, NOTION_TUI_NOTION_TOKEN env var, or config file)"
            )

        for i, db in enumerate(self.databases):
            if not db.id:
                raise ConfigurationError(f"database[{i}] is missing required field 'id'")
            if not db.name:
                raise ConfigurationError(f"database[{i}] is missing required field 'name'")

        if not self.databases:
            return self

        default = self.default_database or self.databases[0].id
        if self.get_database(default) is None:
            raise ConfigurationError(f"default_database '{default}' not found in databases list")
        return replace(self, default_database=default)

    def get_database(self, database_id: str) -> Optional[DatabaseConfig]:
        return next((db for db in self.databases if db.id == database_id), None)

    @property
    def default_database_config(self) -> Optional[DatabaseConfig]:
        return self.get_database(self.default_database)

    @property
    def has_databases(self) -> bool:
        return bool(self.databases)

    def __repr__(self) -> str:
        token = MASKED if self.notion_token else ""
        return (
            f"Settings(notion_token={token!r}, databases={len(self.databases)}, "
            f"default_database={self.default_database!r}, debug={self.debug}, cache_dir={str(self.cache_dir)!r})"
        )

    __str__ = __repr__


# --- Sources ---

def find_dotenv_path(start: Optional[Path] = None) -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = start or Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"read config file {config_file}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"parse config file {config_file}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {config_file} must contain a mapping")
    logger.info(f"Loaded configuration from YAML: {config_file}")

    retry = data.pop("retry", None)
    if isinstance(retry, dict):
        for key in RETRY_KEYS:
            if key in retry:
                data.setdefault(f"retry_{key}", retry[key])
    elif retry is not None:
        raise ConfigurationError(f"config file {config_file}: 'retry' must be a mapping")
    return data


def _resolve_config_file(config_file: Optional[Union[str, Path]]) -> Optional[Path]:
    if config_file is not None:
        path = Path(config_file).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"config file not found: {path}")
        return path
    for candidate in (DEFAULT_CONFIG_FILE, LOCAL_CONFIG_FILE):
        if candidate.is_file():
            return candidate
    logger.debug("No YAML config file found, using defaults")
    return None


def _from_environment(environ: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key in SCALAR_KEYS:
        value = environ.get(f"{ENV_PREFIX}{key.upper()}")
        if value is not None and value != "":
            values[key] = value
    if "notion_token" not in values and environ.get(TOKEN_FALLBACK_ENV):
        values["notion_token"] = environ[TOKEN_FALLBACK_ENV]
    return values


# --- Coercion ---

def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")


def _as_number(key: str, value: Any, kind: type) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be a {kind.__name__}, got {value!r}") from e


def _parse_databases(raw: Any) -> Tuple[DatabaseConfig, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigurationError("databases must be a list")
    parsed: List[DatabaseConfig] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigurationError(f"database[{i}] must be a mapping")
        parsed.append(DatabaseConfig(
            id=str(item.get("id") or ""),
            name=str(item.get("name") or ""),
            icon=str(item.get("icon") or ""),
        ))
    return tuple(parsed)


def _migrate_legacy_database(databases: Tuple[DatabaseConfig, ...], database_id: str) -> Tuple[DatabaseConfig, ...]:
    """Turns a lone ``database_id`` into a one-entry database list when it is a valid id."""
    if databases or not database_id:
        return databases
    if not is_valid_notion_id(database_id):
        logger.debug("Ignoring legacy database_id that is not a valid Notion id")
        return databases
    logger.info("Migrated legacy database_id to databases list")
    return (DatabaseConfig(id=database_id, name=LEGACY_DATABASE_NAME, icon=LEGACY_DATABASE_ICON),)


def _build_settings(merged: Dict[str, Any]) -> Settings:
    retry_changes = {}
    for key in RETRY_KEYS:
        value = merged.get(f"retry_{key}")
        if value is not None:
            retry_changes[key] = _as_number(f"retry.{key}", value, int if key == "max_retries" else float)
    try:
        retry = RetryConfig.default().evolve(**retry_changes)
    except ValueError as e:
        raise ConfigurationError(f"invalid retry configuration: {e}") from e

    database_id = str(merged.get("database_id") or "")
    databases = _migrate_legacy_database(_parse_databases(merged.get("databases")), database_id)
    default_database = str(merged.get("default_database") or "")
    if not default_database and database_id and databases and databases[0].id == database_id:
        default_database = database_id

    cache_dir = merged.get("cache_dir") or DEFAULT_CACHE_DIR
    return Settings(
        notion_token=str(merged.get("notion_token") or ""),
        databases=databases,
        default_database=default_database,
        debug=_as_bool("debug", merged.get("debug", False)),
        cache_dir=Path(cache_dir).expanduser(),
        cache_ttl_seconds=_as_number("cache_ttl_seconds", merged.get("cache_ttl_seconds", DEFAULT_CACHE_TTL_SECONDS), float),
        rate_limit_per_second=_as_number(
            "rate_limit_per_second", merged.get("rate_limit_per_second", DEFAULT_RATE_LIMIT_PER_SECOND), float
        ),
        rate_limit_burst=_as_number("rate_limit_burst", merged.get("rate_limit_burst", DEFAULT_RATE_LIMIT_BURST), int),
        retry=retry,
        log_file=merged.get("log_file") or None,
    )


def load_settings(
    config_file: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, Optional[str]]] = None,
) -> Settings:
    """Loads configuration from all sources.

    Priority order (highest to lowest):
    1. Explicit overrides (CLI flags); None values are ignored
    2. Environment variables (``NOTION_TUI_*``, plus ``NOTION_TOKEN``)
    3. .env file
    4. YAML configuration file
    5. Defaults

    Args:
        config_file: YAML file; when None the default locations are tried.
        env_file: .env file; when None it is searched upwards from cwd.
        overrides: Flat key/value pairs, e.g. ``{"notion_token": ...}``.
        environ: Environment mapping (``os.environ`` when None).

    Returns:
        The merged, unvalidated Settings.

    Raises:
        ConfigurationError: If a file cannot be read or a value has the wrong type.
    """
    merged: Dict[str, Any] = {}

    yaml_path = _resolve_config_file(config_file)
    if yaml_path is not None:
        merged.update(_read_yaml(yaml_path))

    dotenv_path = Path(env_file) if env_file is not None else find_dotenv_path()
    if dotenv_path is not None and dotenv_path.is_file():
        merged.update(_from_environment(dotenv_values(dotenv_path)))
        logger.info(f"Loaded environment variables from: {dotenv_path}")

    merged.update(_from_environment(os.environ if environ is None else environ))

    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})

    settings = _build_settings(merged)
    logger.debug(f"Configuration loaded: {settings}")
    return settings
