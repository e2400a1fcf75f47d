import yaml
from pathlib import Path
from pydantic import ValidationError
from mbc.domain.errors import ConfigError
from .models import AppConfig

def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {config_path}")

    try:
        return AppConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config {config_path}: {exc}", cause=exc) from exc
