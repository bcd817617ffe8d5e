import argparse

import pytest

from kiln.bootstrap.config.loader import get_cli_args, get_env_file
from kiln.bootstrap.config.settings import load_settings
from kiln.core.exception import ConfigError


@pytest.mark.ut
def test_load_settings_from_environment(env):
    settings = load_settings()

    assert settings.port == 8000
    assert settings.app_secret == "secret"
    assert settings.pg_host == "db.local"
    assert settings.pg_port == 5432
    assert settings.database_enabled is True


@pytest.mark.ut
def test_missing_variables_are_all_reported(env, monkeypatch):
    for name in ("APP_SECRET", "PG_HOST", "PG_PASSWORD"):
        monkeypatch.delenv(name)

    with pytest.raises(ConfigError) as exc_info:
        load_settings()

    assert exc_info.value.missing == ["APP_SECRET", "PG_HOST", "PG_PASSWORD"]
    assert str(exc_info.value) == "Missing required environment variables: APP_SECRET, PG_HOST, PG_PASSWORD"


@pytest.mark.ut
def test_empty_variable_counts_as_missing(env, monkeypatch):
    monkeypatch.setenv("JWT_EXPIRES_IN", "")

    with pytest.raises(ConfigError) as exc_info:
        load_settings()

    assert exc_info.value.missing == ["JWT_EXPIRES_IN"]


@pytest.mark.ut
def test_database_variables_not_required_when_disabled(env, monkeypatch):
    monkeypatch.setenv("DATABASE_ENABLED", "false")
    for name in ("PG_HOST", "PG_PORT", "PG_USER", "PG_PASSWORD", "PG_DATABASE"):
        monkeypatch.delenv(name)

    settings = load_settings()

    assert settings.database_enabled is False


@pytest.mark.ut
@pytest.mark.parametrize("raw", ["f", "n", "off"])
def test_database_disabled_accepts_short_falsy_values(env, monkeypatch, raw):
    monkeypatch.setenv("DATABASE_ENABLED", raw)
    for name in ("PG_HOST", "PG_PORT", "PG_USER", "PG_PASSWORD", "PG_DATABASE"):
        monkeypatch.delenv(name)

    settings = load_settings()

    assert settings.database_enabled is False


@pytest.mark.ut
def test_shutdown_timeout_depends_on_variant(env, monkeypatch):
    assert load_settings().graceful_shutdown_timeout == 15.0

    monkeypatch.setenv("DATABASE_ENABLED", "0")
    assert load_settings().graceful_shutdown_timeout == 30.0

    monkeypatch.setenv("SHUTDOWN_TIMEOUT", "2.5")
    assert load_settings().graceful_shutdown_timeout == 2.5


@pytest.mark.ut
def test_env_file_completes_environment(env, monkeypatch, tmp_path):
    monkeypatch.delenv("APP_SECRET")
    env_file = tmp_path / ".env"
    env_file.write_text("APP_SECRET=from-file\nPORT=9000\n")

    settings = load_settings(env_file)

    assert settings.app_secret == "from-file"
    # process variables win over the file
    assert settings.port == 8000


@pytest.mark.ut
def test_invalid_value_raises_config_error(env, monkeypatch):
    monkeypatch.setenv("PORT", "not-a-port")

    with pytest.raises(ConfigError, match="Invalid configuration: PORT"):
        load_settings()


@pytest.mark.ut
def test_pool_bounds_are_checked(env, monkeypatch):
    monkeypatch.setenv("PG_POOL_MIN_SIZE", "5")
    monkeypatch.setenv("PG_POOL_MAX_SIZE", "2")

    with pytest.raises(ConfigError, match="PG_POOL_MIN_SIZE must not exceed PG_POOL_MAX_SIZE"):
        load_settings()


@pytest.mark.ut
def test_cli_args():
    args = get_cli_args(("-e", "prod.env", "-l", "DEBUG"))

    assert args.env_file == "prod.env"
    assert args.log_level == "DEBUG"


@pytest.mark.ut
def test_env_file_defaults_to_cwd_dotenv(monkeypatch, tmp_path):
    monkeypatch.delenv("KILN_ENV_FILE", raising=False)
    monkeypatch.chdir(tmp_path)
    args = argparse.Namespace(env_file=None)

    assert get_env_file(args) is None

    (tmp_path / ".env").write_text("PORT=1\n")
    assert get_env_file(args) == tmp_path / ".env"


@pytest.mark.ut
def test_env_file_from_variable(monkeypatch, tmp_path):
    env_file = tmp_path / "service.env"
    env_file.write_text("PORT=1\n")
    monkeypatch.setenv("KILN_ENV_FILE", str(env_file))

    assert get_env_file(argparse.Namespace(env_file=None)) == env_file


@pytest.mark.ut
def test_explicit_env_file_must_exist(tmp_path):
    with pytest.raises(SystemExit, match="Environment file not found"):
        get_env_file(argparse.Namespace(env_file=str(tmp_path / "missing.env")))
