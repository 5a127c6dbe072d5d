import os

import pytest

from stripboard.config.config import ENV_OVERRIDES, apply_env_overrides, get_default_config, load_config


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_OVERRIDES:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("STRIPBOARD_CONFIG", raising=False)


def test_defaults_have_every_key():
    defaults = get_default_config()
    for key in (
        "data_dir",
        "busy_timeout_sec",
        "log_file",
        "log_level",
        "log_console",
        "server_host",
        "server_port",
        "cors_origins",
    ):
        assert key in defaults


def test_env_overrides_convert_types():
    config = apply_env_overrides(
        get_default_config(),
        {
            "STRIPBOARD_PORT": "9001",
            "STRIPBOARD_BUSY_TIMEOUT_SEC": "0.5",
            "STRIPBOARD_LOG_CONSOLE": "yes",
            "STRIPBOARD_CORS_ORIGINS": "http://a.test, http://b.test",
            "STRIPBOARD_LOG_LEVEL": "",
        },
    )
    assert config["server_port"] == 9001
    assert config["busy_timeout_sec"] == 0.5
    assert config["log_console"] is True
    assert config["cors_origins"] == ["http://a.test", "http://b.test"]
    assert config["log_level"] == "INFO"


def test_env_override_rejects_bad_number():
    with pytest.raises(ValueError):
        apply_env_overrides(get_default_config(), {"STRIPBOARD_PORT": "eighty"})


def test_load_config_layers_file_then_env_file(tmp_path, clean_env):
    toml_file = tmp_path / "config.toml"
    toml_file.write_text('data_dir = "/srv/schedules"\nserver_port = 8100\nlog_level = "DEBUG"\n', encoding="utf-8")
    env_file = tmp_path / ".env"
    env_file.write_text("STRIPBOARD_PORT=8200\n", encoding="utf-8")

    config_file, config = load_config(config_file=str(toml_file), env_file=str(env_file))
    assert config_file == str(toml_file)
    assert config["data_dir"] == "/srv/schedules"
    assert config["log_level"] == "DEBUG"
    assert config["server_port"] == 8200


def test_process_env_beats_env_file(tmp_path, clean_env, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("STRIPBOARD_LOG_LEVEL=DEBUG\n", encoding="utf-8")
    monkeypatch.setenv("STRIPBOARD_LOG_LEVEL", "WARNING")
    _, config = load_config(config_file=str(tmp_path / "missing.toml"), env_file=str(env_file))
    assert config["log_level"] == "WARNING"


def test_relative_paths_resolve_against_project_root(tmp_path, clean_env):
    toml_file = tmp_path / "config.toml"
    toml_file.write_text('data_dir = "data/projects"\n', encoding="utf-8")
    _, config = load_config(config_file=str(toml_file), env_file=str(tmp_path / "none.env"))
    assert os.path.isabs(config["data_dir"])
    assert config["data_dir"].endswith(os.path.join("data", "projects"))
    assert os.path.isabs(config["log_file"])
