"""wizgate configuration loading."""

import logging
import os
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import ValidationError as SchemaError

from wizgate.config.models import (
    DownloadConfig,
    LogLevel,
    ProxyConfig,
    ScanConfig,
    TrustConfig,
    WizGateConfig,
)
from wizgate.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "WIZGATE_CONFIG"


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".wizgate" / "config.yaml"


def load_config(config_path: Optional[Union[str, Path]] = None) -> WizGateConfig:
    """Load and validate the configuration file.

    A missing file yields defaults. A file that cannot be read, is not valid
    YAML, or does not match the schema raises ConfigError.
    """
    path = Path(config_path).expanduser() if config_path else default_config_path()

    if not path.exists():
        logger.debug("No configuration file at %s, using defaults", path)
        return WizGateConfig()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")

    try:
        config = WizGateConfig.model_validate(raw)
    except SchemaError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.debug("Loaded configuration from %s", path)
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "DownloadConfig",
    "LogLevel",
    "ProxyConfig",
    "ScanConfig",
    "TrustConfig",
    "WizGateConfig",
    "default_config_path",
    "load_config",
]
