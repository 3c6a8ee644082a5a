from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from slsa_builder.errors import (
    ConfigError,
    InvalidDirectoryError,
    InvalidEnvironmentVariableError,
    UnsupportedVersionError,
)

SUPPORTED_CONFIG_VERSION = 1

ENV_NAME_PATTERN = re.compile(r"[A-Za-z0-9_]+")
ENV_VALUE_PATTERN = re.compile(r"[A-Za-z0-9_\-.,:/=+@% ]*")

_logger = logging.getLogger(__name__)


class Step(BaseModel):
    command: List[str] = Field(min_length=1)
    env: List[str] = Field(default_factory=list)
    dir: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def declared_names(self) -> List[str]:
        return [entry for entry in self.env if "=" not in entry]


class BuildConfig(BaseModel):
    version: int
    steps: List[Step] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")


def split_env_entry(entry: str) -> Tuple[str, Optional[str]]:
    """Split `NAME=VALUE` into its parts; a bare `NAME` has no value."""
    if "=" not in entry:
        return entry, None
    name, value = entry.split("=", 1)
    return name, value


def validate_env_name(name: str) -> str:
    if not ENV_NAME_PATTERN.fullmatch(name):
        raise InvalidEnvironmentVariableError(f"invalid environment variable name: {name!r}")
    return name


def validate_env_value(name: str, value: str) -> str:
    if not ENV_VALUE_PATTERN.fullmatch(value):
        raise InvalidEnvironmentVariableError(
            f"invalid value for environment variable {name}: {value!r}"
        )
    return value


def validate_env_entry(entry: str) -> None:
    name, value = split_env_entry(entry)
    validate_env_name(name)
    if value is not None:
        validate_env_value(name, value)


def is_under_wd(path: str) -> Path:
    """Return the resolved path if it lies inside the current working directory."""
    root = Path(os.getcwd()).resolve()
    candidate = (root / path).resolve()
    if candidate != root and root not in candidate.parents:
        raise InvalidDirectoryError(f"path is outside the working directory: {path}")
    return candidate


def _check_version(raw: Any) -> None:
    version = raw.get("version")
    # bool is an int subclass; `version: true` is not version 1.
    if isinstance(version, bool) or not isinstance(version, int):
        raise UnsupportedVersionError(f"missing or non-integer version: {version!r}")
    if version != SUPPORTED_CONFIG_VERSION:
        raise UnsupportedVersionError(
            f"unsupported version {version}; expected {SUPPORTED_CONFIG_VERSION}"
        )


def validate_config_payload(raw: Any) -> BuildConfig:
    if not isinstance(raw, dict):
        raise ConfigError("build configuration must be a mapping")
    _check_version(raw)
    try:
        config = BuildConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
    for step in config.steps:
        for entry in step.env:
            validate_env_entry(entry)
        if step.dir is not None:
            is_under_wd(step.dir)
    return config


def parse_config(path: str) -> BuildConfig:
    config_path = is_under_wd(path)
    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read build configuration {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"build configuration {path} is not valid YAML: {e}") from e
    config = validate_config_payload(raw)
    _logger.debug("loaded build configuration %s with %d step(s)", path, len(config.steps))
    return config
