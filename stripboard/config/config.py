import os

import toml
from dotenv import dotenv_values


def get_default_config():
    """Get default configuration"""
    # Project root, assuming config.py lives in stripboard/config/
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

    return {
        # Storage: one SQLite database per project under data_dir
        "data_dir": os.path.join(project_root, "projects"),
        "busy_timeout_sec": 5.0,

        # Logging
        "log_file": os.path.join(project_root, "logs", "stripboard.log"),
        "log_level": "INFO",
        "log_console": False,

        # HTTP server
        "server_host": "0.0.0.0",
        "server_port": 8000,
        "cors_origins": ["*"],
    }


# Environment variable -> (config key, converter)
ENV_OVERRIDES = {
    "STRIPBOARD_DATA_DIR": ("data_dir", str),
    "STRIPBOARD_BUSY_TIMEOUT_SEC": ("busy_timeout_sec", float),
    "STRIPBOARD_LOG_FILE": ("log_file", str),
    "STRIPBOARD_LOG_LEVEL": ("log_level", str),
    "STRIPBOARD_LOG_CONSOLE": ("log_console", lambda v: v.strip().lower() in ("1", "true", "yes", "on")),
    "STRIPBOARD_HOST": ("server_host", str),
    "STRIPBOARD_PORT": ("server_port", int),
    "STRIPBOARD_CORS_ORIGINS": ("cors_origins", lambda v: [o.strip() for o in v.split(",") if o.strip()]),
}


def apply_env_overrides(config, env_vars):
    for env_key, (config_key, convert) in ENV_OVERRIDES.items():
        raw = env_vars.get(env_key)
        if raw is None or raw == "":
            continue
        try:
            config[config_key] = convert(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {env_key}: {raw!r}") from e
    return config


def load_config(config_file=None, env_file=None):
    """Load configuration from defaults, an optional TOML file and .env/environment overrides.

    Precedence, lowest first: defaults, TOML file, .env file, process environment.
    """
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

    config = get_default_config()

    config_file = config_file or os.environ.get("STRIPBOARD_CONFIG") or os.path.join(
        project_root, "stripboard", "config", "config.toml"
    )
    if os.path.exists(config_file):
        with open(config_file, "r", encoding="utf-8") as f:
            file_config = toml.load(f)
        # Merge over defaults so every required key exists
        for key, value in file_config.items():
            config[key] = value

    env_file = env_file or os.path.join(project_root, ".env")
    env_vars = {}
    if os.path.exists(env_file):
        env_vars.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    env_vars.update(os.environ)
    apply_env_overrides(config, env_vars)

    # Relative paths are resolved against the project root, not the cwd
    for path_key in ("data_dir", "log_file"):
        path = os.path.expanduser(str(config[path_key]))
        if not os.path.isabs(path):
            path = os.path.join(project_root, path)
        config[path_key] = path

    return config_file, config


CONFIG_FILE, config = load_config()
