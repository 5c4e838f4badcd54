"""Configuration for ecs-watch.

Values come from model defaults, then an optional YAML file
(``.ecs-watch.yaml`` in the current directory or ``--config PATH``), then
command-line options. Later sources win.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".ecs-watch.yaml"

DEFAULT_CONFIG_YAML = """# ecs-watch configuration
# Command-line options override these values.

# Cluster name to watch (or set AWS_ECS_CLUSTER / pass --cluster)
# cluster: my-cluster

# AWS profile and region
# aws_profile: default
aws_region: us-east-1

# Seconds between polls
poll_interval: 2

# Sleep until the next whole second so polls line up with the clock
align_to_second: true

# Retry behaviour after transient API failures
backoff_multiplier: 2.0
max_backoff: 60
# Stop after this many consecutive failures (omit to retry forever)
# max_consecutive_failures: 30
"""


class ConfigError(Exception):
    """Invalid or unreadable configuration."""

    pass


class WatchConfig(BaseModel):
    """Validated settings for one watch run."""

    model_config = ConfigDict(extra="forbid")

    cluster: str
    poll_interval: PositiveInt = 2
    one_shot: bool = False
    detail: bool = False
    aws_profile: str | None = None
    aws_region: str = "us-east-1"
    max_consecutive_failures: PositiveInt | None = None
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_backoff: PositiveFloat = 60.0
    align_to_second: bool = True

    @field_validator("cluster")
    @classmethod
    def _cluster_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("cluster must not be empty")
        return value


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Read settings from a YAML config file.

    Args:
        path: Explicit file. When None, ``.ecs-watch.yaml`` in the current
            directory is used if it exists.

    Returns:
        Mapping of settings (empty when no file is found)

    Raises:
        ConfigError: explicit file missing, invalid YAML, or not a mapping
    """
    if path is None:
        path = Path.cwd() / CONFIG_FILENAME
        if not path.exists():
            return {}
    elif not path.exists():
        raise ConfigError(f"Config file '{path}' does not exist")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file '{path}': {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Invalid YAML content in '{path}'. Expected a mapping, got {type(data).__name__}."
        )
    logger.debug("Loaded config from %s", path)
    return data


def build_config(file_values: dict[str, Any], overrides: dict[str, Any]) -> WatchConfig:
    """Merge file values with command-line overrides and validate.

    Overrides set to None are treated as "not given".
    """
    merged = dict(file_values)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return WatchConfig(**merged)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(x) for x in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {details}") from e
