from pathlib import Path

import pytest
import yaml

from notiontui.domain.errors import ConfigurationError
from notiontui.domain.models.resilience import RetryConfig
from notiontui.infrastructure.config.settings import (
    DEFAULT_CACHE_DIR,
    LEGACY_DATABASE_NAME,
    DatabaseConfig,
    Settings,
    find_dotenv_path,
    load_settings,
)

TOKEN = "secret_SettingsTestToken123456"
VALID_DB_ID = "0123456789abcdef0123456789abcdef"


def write_yaml(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


# --- load_settings ---

def test_defaults_without_any_source():
    settings = load_settings(environ={})

    assert settings.notion_token == ""
    assert settings.databases == ()
    assert settings.cache_dir == DEFAULT_CACHE_DIR
    assert settings.cache_ttl_seconds == 3600.0
    assert settings.rate_limit_per_second == 2.5
    assert settings.rate_limit_burst == 3
    assert settings.retry == RetryConfig.default()
    assert settings.debug is False


def test_yaml_file_is_read(tmp_path):
    config = write_yaml(tmp_path / "config.yaml", {
        "notion_token": TOKEN,
        "databases": [{"id": "db1", "name": "Tasks", "icon": "✅"}, {"id": "db2", "name": "Notes"}],
        "default_database": "db2",
        "cache_ttl_seconds": 60,
        "retry": {"max_retries": 5, "initial_backoff": 0.5},
    })

    settings = load_settings(config_file=config, environ={})

    assert settings.notion_token == TOKEN
    assert settings.databases == (DatabaseConfig("db1", "Tasks", "✅"), DatabaseConfig("db2", "Notes"))
    assert settings.default_database == "db2"
    assert settings.cache_ttl_seconds == 60.0
    assert settings.retry == RetryConfig(max_retries=5, initial_backoff=0.5)


def test_default_config_location_is_used(tmp_path, monkeypatch):
    home_config = write_yaml(tmp_path / "home" / "config.yaml", {"rate_limit_burst": 5})
    monkeypatch.setattr("notiontui.infrastructure.config.settings.DEFAULT_CONFIG_FILE", home_config)

    assert load_settings(environ={}).rate_limit_burst == 5


def test_local_config_file_is_used_as_fallback():
    write_yaml(Path("config.yaml"), {"debug": True})

    assert load_settings(environ={}).debug is True


def test_missing_explicit_config_file_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError, match="config file not found"):
        load_settings(config_file=tmp_path / "nope.yaml", environ={})


@pytest.mark.parametrize("content", ["key: [unclosed", "- just\n- a list\n", "retry: 3\n"])
def test_malformed_yaml_is_an_error(tmp_path, content):
    config = tmp_path / "config.yaml"
    config.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings(config_file=config, environ={})


def test_empty_yaml_file_means_defaults(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("", encoding="utf-8")

    assert load_settings(config_file=config, environ={}) == Settings()


def test_source_precedence(tmp_path):
    config = write_yaml(tmp_path / "config.yaml", {
        "notion_token": "secret_fromYamlFile0000",
        "cache_ttl_seconds": 10,
        "rate_limit_burst": 1,
        "debug": False,
    })
    env_file = tmp_path / ".env"
    env_file.write_text("NOTION_TUI_CACHE_TTL_SECONDS=20\nNOTION_TUI_RATE_LIMIT_BURST=2\n", encoding="utf-8")
    environ = {"NOTION_TUI_RATE_LIMIT_BURST": "4", "NOTION_TUI_DEBUG": "true"}

    settings = load_settings(
        config_file=config,
        env_file=env_file,
        environ=environ,
        overrides={"notion_token": TOKEN, "cache_dir": None},
    )

    assert settings.notion_token == TOKEN
    assert settings.cache_ttl_seconds == 20.0
    assert settings.rate_limit_burst == 4
    assert settings.debug is True
    assert settings.cache_dir == DEFAULT_CACHE_DIR


def test_dotenv_is_found_in_working_directory():
    Path(".env").write_text(f"NOTION_TUI_NOTION_TOKEN={TOKEN}\n", encoding="utf-8")

    assert load_settings(environ={}).notion_token == TOKEN


def test_find_dotenv_path_searches_parents(tmp_path):
    (tmp_path / ".env").write_text("X=1\n", encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_dotenv_path(nested) == tmp_path / ".env"


def test_generic_token_variable_is_a_fallback():
    assert load_settings(environ={"NOTION_TOKEN": TOKEN}).notion_token == TOKEN

    settings = load_settings(environ={"NOTION_TOKEN": "secret_other000000", "NOTION_TUI_NOTION_TOKEN": TOKEN})
    assert settings.notion_token == TOKEN


def test_retry_values_from_environment():
    settings = load_settings(environ={
        "NOTION_TUI_RETRY_MAX_RETRIES": "0",
        "NOTION_TUI_RETRY_MAX_BACKOFF": "8",
    })

    assert settings.retry.max_retries == 0
    assert settings.retry.max_backoff == 8.0


@pytest.mark.parametrize(
    "environ",
    [
        {"NOTION_TUI_CACHE_TTL_SECONDS": "soon"},
        {"NOTION_TUI_DEBUG": "maybe"},
        {"NOTION_TUI_RETRY_BACKOFF_MULTIPLIER": "0.5"},
    ],
)
def test_bad_values_are_configuration_errors(environ):
    with pytest.raises(ConfigurationError):
        load_settings(environ=environ)


def test_cache_dir_expands_user():
    settings = load_settings(environ={"NOTION_TUI_CACHE_DIR": "~/notion-cache"})

    assert settings.cache_dir == Path.home() / "notion-cache"


# --- Legacy database_id migration ---

def test_legacy_database_id_is_migrated():
    settings = load_settings(environ={"NOTION_TUI_DATABASE_ID": VALID_DB_ID})

    assert len(settings.databases) == 1
    assert settings.databases[0].id == VALID_DB_ID
    assert settings.databases[0].name == LEGACY_DATABASE_NAME
    assert settings.default_database == VALID_DB_ID


def test_invalid_legacy_database_id_is_ignored():
    assert load_settings(environ={"NOTION_TUI_DATABASE_ID": "not-an-id"}).databases == ()


def test_legacy_id_does_not_override_database_list(tmp_path):
    config = write_yaml(tmp_path / "config.yaml", {
        "database_id": VALID_DB_ID,
        "databases": [{"id": "db1", "name": "Tasks"}],
    })

    settings = load_settings(config_file=config, environ={})

    assert [db.id for db in settings.databases] == ["db1"]


# --- Settings.validate ---

def test_validate_requires_token():
    with pytest.raises(ConfigurationError, match="notion_token is required"):
        Settings().validate()


def test_validate_without_token_requirement():
    assert Settings().validate(require_token=False) == Settings()


def test_validate_fills_default_database():
    settings = Settings(notion_token=TOKEN, databases=(DatabaseConfig("db1", "Tasks"), DatabaseConfig("db2", "Notes")))

    validated = settings.validate()

    assert validated.default_database == "db1"
    assert validated.default_database_config == DatabaseConfig("db1", "Tasks")
    assert settings.default_database == ""


@pytest.mark.parametrize(
    "databases, message",
    [
        ((DatabaseConfig("", "Tasks"),), "database\\[0\\] is missing required field 'id'"),
        ((DatabaseConfig("db1", "Tasks"), DatabaseConfig("db2", "")), "database\\[1\\] is missing required field 'name'"),
    ],
)
def test_validate_rejects_incomplete_databases(databases, message):
    with pytest.raises(ConfigurationError, match=message):
        Settings(notion_token=TOKEN, databases=databases).validate()


def test_validate_rejects_unknown_default_database():
    settings = Settings(notion_token=TOKEN, databases=(DatabaseConfig("db1", "Tasks"),), default_database="db9")

    with pytest.raises(ConfigurationError, match="default_database 'db9' not found"):
        settings.validate()


def test_repr_masks_token():
    settings = Settings(notion_token=TOKEN)

    assert TOKEN not in repr(settings)
    assert TOKEN not in str(settings)
    assert "***" in repr(settings)
