"""CLI configuration management."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

ENV_PREFIX = "ANNOTATION_HUB_"


class CLIConfig(BaseSettings):
    """CLI configuration loaded from environment or config file."""

    api_url: str = Field(default="http://localhost:8000", description="Annotation Hub API URL")
    api_token: str | None = Field(default=None, description="Admin JWT for authentication")
    api_timeout: int = Field(default=60, description="API request timeout in seconds")
    output_format: str = Field(default="table", description="Default output format (table, json)")

    model_config = {
        "env_prefix": ENV_PREFIX,
        "env_file": ".env",
        "extra": "ignore",
    }


def get_config_file() -> Path:
    """Get the CLI configuration file path."""
    config_dir = Path.home() / ".config" / "annotation-hub"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir / "config.env"


def _read_config_file(config_file: Path) -> dict[str, str]:
    values = {}
    if config_file.exists():
        with open(config_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    values[key] = value.strip('"').strip("'")
    return values


def load_config() -> CLIConfig:
    """Load CLI configuration from environment and config file."""
    for key, value in _read_config_file(get_config_file()).items():
        # Environment wins over the file
        os.environ.setdefault(key, value)
    return CLIConfig()


def save_config(key: str, value: str) -> None:
    """Save a configuration value to the config file."""
    config_file = get_config_file()
    values = _read_config_file(config_file)
    values[f"{ENV_PREFIX}{key.upper()}"] = value
    with open(config_file, "w") as f:
        for k, v in sorted(values.items()):
            f.write(f"{k}={v}\n")


_config: CLIConfig | None = None


def get_config() -> CLIConfig:
    """Get the global CLI configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    global _config
    _config = None
